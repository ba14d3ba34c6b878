"""Application settings."""

from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings read from the environment and an optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Billing Backend"
    API_PREFIX: str = "/api"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"
    BACKEND_CORS_ORIGINS: List[str] = ["http://localhost:5173"]

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = ""
    POSTGRES_DB: str = "billing"
    DATABASE_URL: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return str(
            MultiHostUrl.build(
                scheme="postgresql+psycopg",
                username=self.POSTGRES_USER,
                password=self.POSTGRES_PASSWORD,
                host=self.POSTGRES_SERVER,
                port=self.POSTGRES_PORT,
                path=self.POSTGRES_DB,
            )
        )

    # Payment gateway
    GATEWAY_KEY_ID: str = ""
    GATEWAY_KEY_SECRET: str = ""
    GATEWAY_BASE_URL: str = "https://api.razorpay.com"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    CURRENCY: str = "INR"
    CURRENCY_SYMBOL: str = "Rs. "

    # Billing rules
    DEFAULT_TAX_RATE: Decimal = Decimal("0")
    BILL_DUE_DAYS: int = 30
    BILL_NUMBER_MAX_RETRIES: int = 5
    BILLING_TIMEZONE: str = "UTC"
    EMAIL_INVOICE_ON_PAYMENT: bool = False

    # Company details printed on invoices and emails
    COMPANY_NAME: str = "Billing App"
    COMPANY_ADDRESS: str = "123 Business Street, Tech City, TC 12345"
    COMPANY_PHONE: str = "+1 (555) 123-4567"
    COMPANY_EMAIL: str = "info@billingapp.com"
    COMPANY_WEBSITE: str = "www.billingapp.com"

    # Rendered invoice storage
    INVOICE_STORAGE_DIR: str = "uploads/invoices"
    INVOICE_URL_PREFIX: str = "/uploads/invoices"
    STORAGE_TIMEOUT_SECONDS: float = 15.0

    # Email
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_USE_TLS: bool = True
    SMTP_TIMEOUT_SECONDS: float = 15.0
    EMAILS_FROM_NAME: Optional[str] = None


settings = Settings()  # type: ignore
