"""
Authentication for the billing API

Every endpoint except the Razorpay webhook requires a Firebase ID token:

    Authorization: Bearer <id token>
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.concurrency import run_in_threadpool
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from firebase_admin import auth

from cloud_functions.firebase import get_firebase_app

logger = logging.getLogger(__name__)


@dataclass
class AuthenticatedUser:
    """Identity taken from a verified Firebase ID token"""
    uid: str
    email: Optional[str]
    email_verified: bool
    display_name: Optional[str]


# Security scheme for Swagger UI
security_scheme = HTTPBearer(auto_error=False)


def verify_firebase_token(token: str) -> Optional[dict]:
    """
    Verify a Firebase ID token.

    Returns:
        Decoded token claims if valid, None otherwise
    """
    firebase_app = get_firebase_app()
    try:
        return auth.verify_id_token(token, app=firebase_app, check_revoked=True)
    except (auth.InvalidIdTokenError, auth.UserDisabledError) as e:
        # Covers expired and revoked tokens
        logger.info(f"Rejected ID token: {e}")
        return None
    except ValueError as e:
        logger.info(f"Malformed ID token: {e}")
        return None


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> AuthenticatedUser:
    """
    FastAPI dependency to get the current authenticated user.

    Raises HTTPException 401 if the token is missing or invalid.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized()

    decoded = await run_in_threadpool(verify_firebase_token, credentials.credentials)
    if decoded is None:
        raise _unauthorized()

    return AuthenticatedUser(
        uid=decoded["uid"],
        email=decoded.get("email"),
        email_verified=decoded.get("email_verified", False),
        display_name=decoded.get("name"),
    )
