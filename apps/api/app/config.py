from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "courier-dispatch-jwt-secret"
ALLOWED_APP_MODES = {"demo", "pilot", "production"}
ALLOWED_ORDER_STORE_BACKENDS = {"db", "memory"}
MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    app_name: str = "Courier Dispatch Service"
    app_mode: str = Field(default="pilot", validation_alias="DISPATCH_APP_MODE")

    database_url: str = Field(
        default="sqlite+pysqlite:///./dispatch.db",
        validation_alias="DISPATCH_DATABASE_URL",
    )
    order_store_backend: str = Field(default="db", validation_alias="DISPATCH_ORDER_STORE")
    auto_create_schema: bool = True
    require_migrations: bool = False

    change_feed_max_pending: int = Field(
        default=1000, ge=1, validation_alias="DISPATCH_CHANGE_FEED_MAX_PENDING"
    )

    cors_allowed_origins: str = "http://localhost:8081,http://localhost:19006"

    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_ttl_s: int = 12 * 60 * 60
    allowed_roles: str = "DRIVER,OPS,ADMIN"
    enable_test_auth_bypass: bool = False
    testing: bool = Field(default=False, validation_alias="DISPATCH_TESTING")

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @field_validator("app_mode")
    @classmethod
    def validate_app_mode(cls, value: str) -> str:
        mode = value.lower().strip()
        if mode not in ALLOWED_APP_MODES:
            allowed = ", ".join(sorted(ALLOWED_APP_MODES))
            raise ValueError(f"DISPATCH_APP_MODE must be one of: {allowed}")
        return mode

    @field_validator("order_store_backend")
    @classmethod
    def validate_order_store_backend(cls, value: str) -> str:
        backend = value.lower().strip()
        if backend not in ALLOWED_ORDER_STORE_BACKENDS:
            allowed = ", ".join(sorted(ALLOWED_ORDER_STORE_BACKENDS))
            raise ValueError(f"DISPATCH_ORDER_STORE must be one of: {allowed}")
        return backend


settings = Settings()


def is_production_mode() -> bool:
    return settings.app_mode == "production"


def allowed_origins() -> list[str]:
    return [origin.strip() for origin in settings.cors_allowed_origins.split(",") if origin.strip()]


def allowed_roles_list() -> list[str]:
    return [value.strip() for value in settings.allowed_roles.split(",") if value.strip()]


def ensure_secure_runtime_settings() -> None:
    """Fail fast when a production-like runtime uses insecure or single-process defaults."""
    if settings.testing:
        return
    if settings.enable_test_auth_bypass:
        raise RuntimeError(
            "ENABLE_TEST_AUTH_BYPASS is only allowed when DISPATCH_TESTING is true"
        )
    if settings.jwt_secret == DEFAULT_JWT_SECRET:
        raise RuntimeError(
            "JWT_SECRET must be set to a non-default value when DISPATCH_TESTING is false"
        )
    if len(settings.jwt_secret) < MIN_SECRET_LENGTH:
        raise RuntimeError(
            "JWT_SECRET must be at least "
            f"{MIN_SECRET_LENGTH} characters when DISPATCH_TESTING is false"
        )
    if settings.order_store_backend != "db":
        raise RuntimeError("DISPATCH_ORDER_STORE must be 'db' when DISPATCH_TESTING is false")
    if is_production_mode() and _is_sqlite_url(settings.database_url):
        raise RuntimeError(
            "DISPATCH_DATABASE_URL must use postgres in DISPATCH_APP_MODE=production"
        )


def _is_sqlite_url(database_url: str) -> bool:
    value = database_url.strip().lower()
    return value.startswith("sqlite")
