# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


if os.getenv("CI"):
    _DEFAULT_SECRET_KEY: SecretStr | object = SecretStr("ci-test-secret-key-not-for-production")
else:
    _DEFAULT_SECRET_KEY = ...


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    is_testing: bool = Field(
        default_factory=is_running_tests, description="True under pytest or when IS_TESTING is set"
    )

    # Use a default secret key for CI/testing environments
    secret_key: SecretStr = Field(
        default=_DEFAULT_SECRET_KEY,
        description="Secret key for JWT tokens",
    )  # type: ignore[assignment]  # defaults to ellipsis outside CI
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    database_url: str = Field(
        default="sqlite:///./private_sessions.db",
        description="SQLAlchemy database URL",
    )

    portal_url: str = Field(
        default="http://localhost:3000",
        description="Public base URL of the portal front-end (used in emails and checkout redirects)",
    )
    default_timezone: str = Field(
        default="America/Vancouver",
        description="Timezone used for recipients without a stored timezone",
    )

    email_provider: Literal["console", "resend"] = Field(
        default="console",
        alias="EMAIL_PROVIDER",
        description="Email provider name",
    )
    resend_api_key: str | None = Field(
        default=None,
        alias="RESEND_API_KEY",
        description="API key for Resend provider (optional)",
    )
    from_email: str = "Coaching Portal <hello@coachingportal.ca>"
    management_emails: str = Field(
        default="",
        alias="PORTAL_MANAGEMENT_EMAILS",
        description="Comma-separated addresses that receive administrative notices",
    )
    etransfer_email: str = Field(
        default="payments@coachingportal.ca",
        alias="ETRANSFER_EMAIL",
        description="Address students send Interac e-transfers to",
    )

    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret API key",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Signing secret for the Stripe webhook endpoint",
    )
    stripe_currency: str = Field(default="cad", description="Currency for private session checkouts")

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,  # allows SECRET_KEY to match secret_key
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("stripe_currency")
    @classmethod
    def _lower_currency(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def management_email_list(self) -> List[str]:
        """Administrative recipients parsed from the comma-separated setting."""
        return [item.strip() for item in self.management_emails.split(",") if item.strip()]


settings = Settings()
