# backend/tanker/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url

logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


CredentialTier = Literal["client", "service"]


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment mode")

    # Remote relational store. Credentials are kept out of the URL and injected
    # per tier so the migration tool never runs with the app's restricted role.
    remote_store_url: str = Field(
        default="sqlite+pysqlite:///./tanker.db",
        description="SQLAlchemy URL of the remote relational store (no credentials)",
    )
    remote_client_role: str = Field(default="tanker_app")
    remote_client_key: Optional[SecretStr] = Field(
        default=None, description="Restricted key used for normal operation"
    )
    remote_service_role: str = Field(default="tanker_service")
    remote_service_key: Optional[SecretStr] = Field(
        default=None,
        description="Elevated key for migration; bypasses row-level authorization",
    )

    # Real-time change notification
    change_feed_url: str = Field(
        default="memory://", description="broadcaster backend URL (memory:// or redis://)"
    )

    # On-device store
    local_store_path: str = Field(default="./local_store")
    local_poll_interval_seconds: float = Field(
        default=5.0, description="Poll interval for adapters without push support"
    )

    persistence_backend: Literal["local", "remote"] = Field(default="local")
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("local_poll_interval_seconds")
    @classmethod
    def validate_poll_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("local_poll_interval_seconds must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.upper()

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in {"prod", "production"}

    def remote_url_for(self, tier: CredentialTier = "client") -> str:
        """
        Return the remote store URL with the credentials of the given tier.

        When the tier has no key configured (local sqlite, CI) the URL is
        returned untouched.
        """
        if tier == "service":
            role, key = self.remote_service_role, self.remote_service_key
        else:
            role, key = self.remote_client_role, self.remote_client_key

        if key is None:
            return self.remote_store_url

        url = make_url(self.remote_store_url).set(
            username=role, password=key.get_secret_value()
        )
        return url.render_as_string(hide_password=False)


settings = Settings()
