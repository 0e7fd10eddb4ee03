import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    # Database
    POSTGRES_CONNECTION_STRING: str = os.getenv("POSTGRES_CONNECTION_STRING", "")
    SQLITE_PATH: str = os.getenv("SQLITE_PATH", "./storefront.db")

    # API
    ADMIN_API_TOKEN: str = os.getenv("ADMIN_API_TOKEN", "")
    SITE_URL: str = os.getenv("SITE_URL", "http://localhost:8080")
    BRAND_NAME: str = os.getenv("BRAND_NAME", "Moenviron")

    # Payments
    STRIPE_SECRET_KEY: str = os.getenv("STRIPE_SECRET_KEY", "")
    STRIPE_WEBHOOK_SECRET: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    STRIPE_API_BASE_URL: str = os.getenv("STRIPE_API_BASE_URL", "https://api.stripe.com")
    WEBHOOK_TOLERANCE_SECONDS: int = int(os.getenv("WEBHOOK_TOLERANCE_SECONDS", "300"))

    # Email / mailing list
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    RESEND_API_BASE_URL: str = os.getenv("RESEND_API_BASE_URL", "https://api.resend.com")
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "Moenviron <orders@moenviron.com>")
    MAILERLITE_API_KEY: str = os.getenv("MAILERLITE_API_KEY", "")
    MAILERLITE_API_BASE_URL: str = os.getenv("MAILERLITE_API_BASE_URL", "https://connect.mailerlite.com/api")

    # Orders
    ORDER_INTAKE_STATUS: str = os.getenv("ORDER_INTAKE_STATUS", "pending")
    STRICT_STATUS_TRANSITIONS: bool = _flag("STRICT_STATUS_TRANSITIONS")
    SHIPPING_FLAT_RATE: Decimal = Decimal(os.getenv("SHIPPING_FLAT_RATE", "5"))

    @property
    def DATABASE_URL(self) -> str:
        """Async URL for the application"""
        if not self.POSTGRES_CONNECTION_STRING:
            return f"sqlite+aiosqlite:///{self.SQLITE_PATH}"
        return (
            self.POSTGRES_CONNECTION_STRING
            .replace("postgresql://", "postgres://")
            .replace("postgres://", "postgresql+asyncpg://")
        )

    @property
    def SYNC_DATABASE_URL(self) -> str:
        """Sync URL for Alembic"""
        if not self.POSTGRES_CONNECTION_STRING:
            return f"sqlite:///{self.SQLITE_PATH}"
        return self.POSTGRES_CONNECTION_STRING.replace("postgres://", "postgresql://")


settings = Settings()
