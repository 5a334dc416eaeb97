import os
from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from bandhu_payments.exceptions import ConfigurationError

# .env lives at the project root
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(dotenv_path=BASE_DIR / ".env")


class PayUConfig(BaseModel):
    merchant_key: Optional[str] = None
    merchant_salt: Optional[str] = None
    base_url: str = "https://secure.payu.in/_payment"


class RazorpayConfig(BaseModel):
    key_id: Optional[str] = None
    key_secret: Optional[str] = None


class PhonePeConfig(BaseModel):
    merchant_id: Optional[str] = None
    salt_key: Optional[str] = None
    salt_index: Optional[str] = None


class PaytmConfig(BaseModel):
    merchant_id: Optional[str] = None
    merchant_key: Optional[str] = None


# Fields of each gateway's config section that must be set before its callbacks are trusted.
REQUIRED_SECRETS = {
    "payu": ("merchant_key", "merchant_salt"),
    "razorpay": ("key_id", "key_secret"),
    "phonepe": ("merchant_id", "salt_key", "salt_index"),
    "paytm": ("merchant_key",),
}


class Settings(BaseModel):
    app_url: str = "http://localhost:3000"
    service_url: str = "http://localhost:8000"
    success_path: str = "/retailer/payment-success"
    pending_path: str = "/retailer/payment-status"
    failure_path: str = "/retailer/payment-failure"
    jwt_secret: Optional[str] = None
    status_cache_ttl_seconds: float = 30.0
    log_level: str = "INFO"

    payu: PayUConfig = Field(default_factory=PayUConfig)
    razorpay: RazorpayConfig = Field(default_factory=RazorpayConfig)
    phonepe: PhonePeConfig = Field(default_factory=PhonePeConfig)
    paytm: PaytmConfig = Field(default_factory=PaytmConfig)

    def require(self, gateway: str) -> None:
        """Raise ConfigurationError unless every secret the gateway needs is set."""
        if gateway not in REQUIRED_SECRETS:
            raise ConfigurationError(f"Unsupported payment gateway: {gateway}")
        config = getattr(self, gateway)
        missing = [name for name in REQUIRED_SECRETS[gateway] if not getattr(config, name)]
        if missing:
            raise ConfigurationError(
                f"{gateway} is not configured (missing {', '.join(missing)})"
            )


def load_settings() -> Settings:
    return Settings(
        app_url=os.getenv("APP_URL", "http://localhost:3000").rstrip("/"),
        service_url=os.getenv("SERVICE_URL", "http://localhost:8000").rstrip("/"),
        jwt_secret=os.getenv("JWT_SECRET"),
        status_cache_ttl_seconds=float(os.getenv("STATUS_CACHE_TTL_SECONDS", "30")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        payu=PayUConfig(
            merchant_key=os.getenv("PAYU_MERCHANT_KEY"),
            merchant_salt=os.getenv("PAYU_MERCHANT_SALT"),
            base_url=os.getenv("PAYU_BASE_URL", "https://secure.payu.in/_payment"),
        ),
        razorpay=RazorpayConfig(
            key_id=os.getenv("RAZORPAY_KEY_ID"),
            key_secret=os.getenv("RAZORPAY_KEY_SECRET"),
        ),
        phonepe=PhonePeConfig(
            merchant_id=os.getenv("PHONEPE_MERCHANT_ID"),
            salt_key=os.getenv("PHONEPE_SALT_KEY"),
            salt_index=os.getenv("PHONEPE_SALT_INDEX"),
        ),
        paytm=PaytmConfig(
            merchant_id=os.getenv("PAYTM_MERCHANT_ID"),
            merchant_key=os.getenv("PAYTM_MERCHANT_KEY"),
        ),
    )


@lru_cache
def get_settings() -> Settings:
    return load_settings()
