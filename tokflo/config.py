import logging
import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from .pydantic_compat import BaseModel

logger = logging.getLogger(__name__)

DEFAULT_MONIME_API_BASE_URL = "https://api.monime.io/v1"
DEFAULT_BASE_URL = "http://localhost:3000"

_TRUTHY = {"1", "true", "yes", "on"}


class Settings(BaseModel):
    """Process configuration, read from the environment (and ``.env``)."""

    project_id: str = "tokflo-local"
    database: Optional[str] = None
    emulator_host: Optional[str] = None
    credentials_path: Optional[str] = None

    monime_api_base_url: str = DEFAULT_MONIME_API_BASE_URL
    monime_environment: str = "test"
    monime_test_api_token: Optional[str] = None
    monime_live_api_token: Optional[str] = None
    monime_space_id: Optional[str] = None
    monime_webhook_secret: Optional[str] = None
    payment_currency: str = "SLE"

    base_url: str = DEFAULT_BASE_URL
    debug: bool = False
    log_level: str = "INFO"
    port: int = 8000

    @property
    def is_live(self) -> bool:
        return self.monime_environment.lower() == "live"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from ``environ`` (defaults to ``os.environ`` after
        loading ``env_file`` or ``./.env`` with python-dotenv).
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        def get(*names: str, default: Optional[str] = None) -> Optional[str]:
            for name in names:
                value = environ.get(name)
                if value:
                    return value
            return default

        settings = cls(
            project_id=get("GOOGLE_CLOUD_PROJECT", "FIREBASE_PROJECT_ID", default="tokflo-local"),
            database=get("DATABASE"),
            emulator_host=get("FIRESTORE_EMULATOR_HOST"),
            credentials_path=get("GOOGLE_APPLICATION_CREDENTIALS"),
            monime_api_base_url=get("MONIME_API_BASE_URL", default=DEFAULT_MONIME_API_BASE_URL),
            monime_environment=get("MONIME_ENVIRONMENT", default="test"),
            monime_test_api_token=get("MONIME_TEST_API_TOKEN"),
            monime_live_api_token=get("MONIME_LIVE_API_TOKEN"),
            monime_space_id=get("MONIME_SPACE_ID"),
            monime_webhook_secret=get("MONIME_WEBHOOK_SECRET"),
            payment_currency=get("PAYMENT_CURRENCY", default="SLE"),
            base_url=get("TOKFLO_BASE_URL", "NEXT_PUBLIC_BASE_URL", default=DEFAULT_BASE_URL),
            debug=(get("TOKFLO_DEBUG", default="") or "").lower() in _TRUTHY,
            log_level=get("LOG_LEVEL", default="INFO"),
            port=int(get("PORT", default="8000")),
        )
        logger.debug(f"Settings loaded: project={settings.project_id} monime={settings.monime_environment}")
        return settings
