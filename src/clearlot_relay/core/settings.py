"""Runtime configuration for the relay, read from the environment or `.env`."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven settings; each field maps to the upper-case alias."""

    app_name: str = Field(default="Clearlot Relay", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Bearer tokens are minted by the marketplace identity service.
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24, alias="ACCESS_TOKEN_EXPIRE_MINUTES"
    )
    # Event intake requires a service token carrying this scope.
    event_scope: str = Field(default="relay:events", alias="EVENT_SCOPE")

    database_url: str = Field(default="sqlite:///./clearlot_relay.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # "database" or "redis"
    dedup_backend: str = Field(default="database", alias="DEDUP_BACKEND")
    dedup_capacity: int = Field(default=100, ge=1, alias="DEDUP_CAPACITY")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    reminder_interval_seconds: int = Field(default=3600, ge=1, alias="REMINDER_INTERVAL_SECONDS")
    reminder_escalation_hours: float = Field(default=6.0, gt=0, alias="REMINDER_ESCALATION_HOURS")

    price_drop_threshold: float = Field(default=0.05, ge=0, alias="PRICE_DROP_THRESHOLD")
    message_preview_length: int = Field(default=50, ge=1, alias="MESSAGE_PREVIEW_LENGTH")
    notification_list_limit: int = Field(default=50, ge=1, alias="NOTIFICATION_LIST_LIMIT")
    notification_retention_days: int = Field(default=30, ge=1, alias="NOTIFICATION_RETENTION_DAYS")
    action_url_prefix: str = Field(default="/hk", alias="ACTION_URL_PREFIX")

    subscription_retry_seconds: float = Field(default=5.0, gt=0, alias="SUBSCRIPTION_RETRY_SECONDS")

    # Attachments are disabled unless a blob endpoint is configured.
    blob_base_url: str | None = Field(default=None, alias="BLOB_BASE_URL")
    blob_http_timeout_seconds: float = Field(default=10.0, alias="BLOB_HTTP_TIMEOUT_SECONDS")

    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"], alias="CORS_ALLOW_METHODS"
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True, extra="ignore")

    @property
    def effective_database_url(self) -> str:
        """Database URL, switched to the test database when requested."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def database_url_sync(self) -> str:
        """Database URL with a synchronous driver, for Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def reminder_escalation_seconds(self) -> float:
        """Dwell time after shipment before a reminder escalates to admins."""
        return self.reminder_escalation_hours * 3600


settings = Settings()  # type: ignore[call-arg]
