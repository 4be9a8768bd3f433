from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "grocery-jwt-secret"
DEFAULT_WEBHOOK_SECRET = "grocery-lygos-webhook-secret"
ALLOWED_RATE_LIMIT_BACKENDS = {"memory", "redis"}
ALLOWED_APP_MODES = {"demo", "pilot", "production"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Click & Collect Grocery API"
    app_mode: str = Field(default="pilot", validation_alias="GROCERY_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./test.db",
        validation_alias="GROCERY_DATABASE_URL",
    )
    cors_allowed_origins: str = "http://localhost:3000,http://localhost:5173"

    jwt_secret: str = DEFAULT_JWT_SECRET
    allowed_roles: str = "CUSTOMER,PREPARER,CASHIER,ADMIN"
    testing: bool = Field(default=False, validation_alias="GROCERY_TESTING")
    auto_create_schema: bool = Field(default=True, validation_alias="GROCERY_AUTO_CREATE_SCHEMA")
    require_migrations: bool = Field(default=False, validation_alias="GROCERY_REQUIRE_MIGRATIONS")

    currency: str = "XAF"
    order_number_prefix: str = "GC"
    perishable_window_h: int = 24
    non_perishable_window_h: int = 48
    pickup_timezone: str = "UTC"

    payment_webhook_secret: str = Field(
        default=DEFAULT_WEBHOOK_SECRET,
        validation_alias="LYGOS_WEBHOOK_SECRET",
    )
    payment_signature_headers: str = "X-Lygos-Signature,X-Lygos-Signature-Sha256"
    payment_webhook_rate_limit_requests: int = 20
    payment_webhook_rate_limit_window_s: int = 60
    rate_limit_backend: str = Field(default="memory", validation_alias="GROCERY_RATE_LIMIT_BACKEND")
    redis_url: str = ""

    lygos_base_url: str = Field(default="", validation_alias="LYGOS_BASE_URL")
    lygos_api_key: str = Field(default="", validation_alias="LYGOS_API_KEY")
    lygos_merchant_id: str = Field(default="", validation_alias="LYGOS_MERCHANT_ID")
    lygos_channel: str = "mtn_momo_cg"
    lygos_timeout_s: float = 15.0

    email_api_base_url: str = ""
    email_api_key: str = ""
    email_sender: str = "commandes@example.com"
    sms_api_base_url: str = ""
    sms_api_key: str = ""
    sms_sender: str = "GROCERY"
    notification_timeout_s: float = 10.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("rate_limit_backend")
    @classmethod
    def validate_rate_limit_backend(cls, value: str) -> str:
        backend = value.lower().strip()
        if backend not in ALLOWED_RATE_LIMIT_BACKENDS:
            allowed = ", ".join(sorted(ALLOWED_RATE_LIMIT_BACKENDS))
            raise ValueError(f"GROCERY_RATE_LIMIT_BACKEND must be one of: {allowed}")
        return backend

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"GROCERY_APP_MODE must be one of: {allowed}")
        return mode


settings = Settings()


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def signature_header_names() -> list[str]:
    return [
        value.strip() for value in settings.payment_signature_headers.split(",") if value.strip()
    ]


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def ensure_secure_runtime_settings() -> None:
    """Fail fast when production-like runtime uses insecure defaults."""
    if not settings.testing and settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when GROCERY_TESTING is false"
        )
    if not settings.testing and settings.payment_webhook_secret == DEFAULT_WEBHOOK_SECRET:
        raise RuntimeError(
            "LYGOS_WEBHOOK_SECRET must be set to a non-default value when GROCERY_TESTING is false"
        )
    if not settings.testing and len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when GROCERY_TESTING is false"
        )
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError(
            "GROCERY_DATABASE_URL must use postgres when GROCERY_APP_MODE is production"
        )
    if settings.rate_limit_backend == "redis" and not settings.redis_url.strip():
        raise RuntimeError("REDIS_URL must be set when GROCERY_RATE_LIMIT_BACKEND is redis")


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
