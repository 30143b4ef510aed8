import os
from dataclasses import dataclass, field
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CashfreeConfig:
    """Credentials and endpoints for the Cashfree PG API."""

    app_id: str = ""
    secret_key: str = ""
    webhook_secret: str = ""
    environment: str = "SANDBOX"
    api_version: str = "2023-08-01"
    currency: str = "INR"
    timeout: float = 15.0
    min_amount: Decimal = Decimal("1")
    return_url: str = "http://localhost:3000/checkout/payment-status?order={order_number}"

    @property
    def base_url(self) -> str:
        if self.environment.upper() == "PRODUCTION":
            return "https://api.cashfree.com"
        return "https://sandbox.cashfree.com"

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.secret_key)

    @classmethod
    def from_env(cls) -> "CashfreeConfig":
        frontend = os.getenv("FRONTEND_URL", "http://localhost:3000").split(",")[0].strip().rstrip("/")
        return cls(
            app_id=os.getenv("CASHFREE_APP_ID", ""),
            secret_key=os.getenv("CASHFREE_SECRET_KEY", ""),
            webhook_secret=os.getenv("CASHFREE_WEBHOOK_SECRET", ""),
            environment=os.getenv("CASHFREE_ENVIRONMENT", "SANDBOX"),
            api_version=os.getenv("CASHFREE_API_VERSION", "2023-08-01"),
            currency=os.getenv("CASHFREE_CURRENCY", "INR"),
            timeout=float(os.getenv("CASHFREE_TIMEOUT", "15")),
            min_amount=Decimal(os.getenv("CASHFREE_MIN_AMOUNT", "1")),
            return_url=f"{frontend}/checkout/payment-status?order={{order_number}}",
        )


@dataclass(frozen=True)
class Settings:
    """Application settings, built once at startup and passed to create_app()."""

    env: str = "development"
    secret_key: str = "supersecretkey"
    jwt_secret: str = "super_jwt_secret"
    mongodb_uri: str = "mongodb://localhost:27017/bloomtales_db"
    log_dir: str = "logs"
    expose_errors: bool = True
    testing: bool = False
    rate_limits: tuple = ("200 per hour", "10 per second")
    ratelimit_storage_uri: str = "memory://"
    cashfree: CashfreeConfig = field(default_factory=CashfreeConfig)

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.getenv("APP_ENV", os.getenv("FLASK_ENV", "development")).lower()
        return cls(
            env=env,
            secret_key=os.getenv("SECRET_KEY", "supersecretkey"),
            jwt_secret=os.getenv("JWT_SECRET", "super_jwt_secret"),
            mongodb_uri=os.getenv("MONGODB_URI", "mongodb://localhost:27017/bloomtales_db"),
            log_dir=os.getenv("LOG_DIR", "logs"),
            expose_errors=_env_bool("EXPOSE_ERRORS", "false" if env == "production" else "true"),
            rate_limits=(
                os.getenv("LIMIT_DEFAULT_HOURLY", "200 per hour"),
                os.getenv("LIMIT_DEFAULT_SECONDLY", "10 per second"),
            ),
            ratelimit_storage_uri=os.getenv("RATELIMIT_STORAGE_URI", "memory://"),
            cashfree=CashfreeConfig.from_env(),
        )
