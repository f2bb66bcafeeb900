"""
TermiVoxed Billing API - Main FastAPI Application

HTTP endpoints for the dashboard's payment flows, backed by Razorpay and
Firestore. Every JSON error response has the shape:

    {"success": false, "error": "<message>"}

The Razorpay webhook is the exception and answers in plain text.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_settings
from cloud_functions.dependencies import BillingServices, build_services
from cloud_functions.routes import account, payments, webhooks
from subscription.errors import BillingError

logger = logging.getLogger(__name__)

PRODUCTION_ORIGINS = [
    "https://lxusbrain.com",
    "https://www.lxusbrain.com",
    "https://termivoxed.com",
    "https://www.termivoxed.com",
    "https://termivoxed.web.app",
    "https://termivoxed.firebaseapp.com",
]

DEVELOPMENT_ORIGINS = [
    "http://localhost:5173",
    "http://localhost:3000",
]


def cors_origins(settings: Settings) -> list:
    origins = list(PRODUCTION_ORIGINS)
    if not settings.is_production:
        origins.extend(DEVELOPMENT_ORIGINS)
    return origins


def _error(status_code: int, message: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": message},
        headers=headers,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BillingError)
    async def billing_error_handler(request: Request, exc: BillingError):
        if exc.status_code >= 500:
            logger.error(f"{request.url.path}: {exc.message}")
        return _error(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return _error(400, f"Invalid request body: {message}")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.url.path}")
        return _error(500, str(exc) or "Internal server error")


def create_app(
    services: Optional[BillingServices] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """
    Build the API.

    Args:
        services: prebuilt services; built from settings at startup when omitted
        settings: defaults to the cached environment settings
    """
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan - startup and shutdown events"""
        if app.state.services is None:
            app.state.services = build_services(settings)
        logger.info(f"TermiVoxed Billing API started ({settings.ENVIRONMENT})")
        yield
        logger.info("TermiVoxed Billing API shutting down...")

    app = FastAPI(
        title="TermiVoxed Billing API",
        description="Razorpay payments and subscriptions for TermiVoxed",
        version="1.0.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(settings),
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    _register_exception_handlers(app)

    app.include_router(payments.router, tags=["Payments"])
    app.include_router(account.router, tags=["Account"])
    app.include_router(webhooks.router, tags=["Webhooks"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    _settings = get_settings()
    uvicorn.run(app, host=_settings.TERMIVOXED_HOST, port=_settings.TERMIVOXED_PORT)
