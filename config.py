"""Configuration management using Pydantic settings"""

import logging
from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings

from subscription.models import BillingConfig, BillingPeriod, PlanId
from subscription.plans import build_plan_catalog

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings"""

    # Razorpay API keys (Dashboard > Settings > API Keys)
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    # Dashboard > Settings > Webhooks
    RAZORPAY_WEBHOOK_SECRET: str = ""

    # Recurring plan ids (Dashboard > Subscriptions > Plans)
    RAZORPAY_PLAN_INDIVIDUAL_MONTHLY: str = ""
    RAZORPAY_PLAN_INDIVIDUAL_YEARLY: str = ""
    RAZORPAY_PLAN_PRO_MONTHLY: str = ""
    RAZORPAY_PLAN_PRO_YEARLY: str = ""

    # Service account for Firebase Admin; application default credentials when unset
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None

    ENVIRONMENT: str = "development"

    # Server
    TERMIVOXED_HOST: str = "127.0.0.1"
    TERMIVOXED_PORT: int = 8000

    # Logging
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    def missing_razorpay_settings(self) -> List[str]:
        """Names of required Razorpay settings that are empty"""
        required = ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET", "RAZORPAY_WEBHOOK_SECRET")
        return [name for name in required if not getattr(self, name)]

    def to_billing_config(self) -> BillingConfig:
        """Freeze the billing configuration handed to every service"""
        for name in self.missing_razorpay_settings():
            logger.warning(f"{name} is not set; Razorpay calls depending on it will fail")

        catalog = build_plan_catalog({
            (PlanId.INDIVIDUAL, BillingPeriod.MONTHLY): self.RAZORPAY_PLAN_INDIVIDUAL_MONTHLY,
            (PlanId.INDIVIDUAL, BillingPeriod.YEARLY): self.RAZORPAY_PLAN_INDIVIDUAL_YEARLY,
            (PlanId.PRO, BillingPeriod.MONTHLY): self.RAZORPAY_PLAN_PRO_MONTHLY,
            (PlanId.PRO, BillingPeriod.YEARLY): self.RAZORPAY_PLAN_PRO_YEARLY,
        })
        return BillingConfig(
            key_id=self.RAZORPAY_KEY_ID,
            key_secret=self.RAZORPAY_KEY_SECRET,
            webhook_secret=self.RAZORPAY_WEBHOOK_SECRET,
            catalog=catalog,
        )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
