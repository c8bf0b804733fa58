# ethree/config.py

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

GATEWAY_BASE_URLS = {
    "test": "https://testpay.easebuzz.in",
    "prod": "https://pay.easebuzz.in",
}


@dataclass(frozen=True)
class Settings:
    """
    Process-wide configuration.
    Built once at startup and handed to the components that need it.
    """

    merchant_key: str = ""
    merchant_salt: str = ""
    gateway_env: str = "test"
    iframe_enabled: bool = False
    gateway_timeout: float = 15.0
    frontend_url: str = "http://localhost:5173"
    backend_url: str = "http://localhost:5001"
    log_level: str = "INFO"

    @property
    def gateway_base_url(self) -> str:
        return GATEWAY_BASE_URLS[self.gateway_env]

    @property
    def checkout_mode(self) -> str:
        return "iframe" if self.iframe_enabled else "hosted"


def _flag(value: str | None) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


def load_settings() -> Settings:
    load_dotenv()

    gateway_env = os.getenv("EASEBUZZ_ENV", "test").strip().lower()
    if gateway_env not in GATEWAY_BASE_URLS:
        logger.warning(
            "Unknown EASEBUZZ_ENV=%r, falling back to 'test'.",
            gateway_env,
        )
        gateway_env = "test"

    return Settings(
        merchant_key=os.getenv("EASEBUZZ_KEY", ""),
        merchant_salt=os.getenv("EASEBUZZ_SALT", ""),
        gateway_env=gateway_env,
        iframe_enabled=_flag(os.getenv("EASEBUZZ_IFRAME")),
        gateway_timeout=float(os.getenv("EASEBUZZ_TIMEOUT", "15")),
        frontend_url=os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/"),
        backend_url=os.getenv("BACKEND_URL", "http://localhost:5001").rstrip("/"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
