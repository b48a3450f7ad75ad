from functools import lru_cache
import os
from pydantic import BaseModel, Field


class Settings(BaseModel):
    env: str = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    app_url: str = Field(default="http://localhost:3000", alias="APP_URL")

    database_url: str = Field(default="", alias="DATABASE_URL")
    postgres_db: str = Field(default="hilink", alias="POSTGRES_DB")
    postgres_user: str = Field(default="hilink", alias="POSTGRES_USER")
    postgres_password: str = Field(default="hilink", alias="POSTGRES_PASSWORD")
    postgres_host: str = Field(default="localhost", alias="POSTGRES_HOST")
    postgres_port: int = Field(default=5432, alias="POSTGRES_PORT")

    jwt_secret: str = Field(default="secret", alias="JWT_SECRET")

    hold_duration_minutes: int = Field(default=15, alias="HOLD_DURATION_MINUTES")
    hold_cleanup_grace_minutes: int = Field(default=60, alias="HOLD_CLEANUP_GRACE_MINUTES")
    booking_payment_timeout_minutes: int = Field(
        default=60, alias="BOOKING_PAYMENT_TIMEOUT_MINUTES"
    )
    booking_expiry_enabled: bool = Field(default=False, alias="BOOKING_EXPIRY_ENABLED")
    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")

    payment_provider: str = Field(default="stub", alias="PAYMENT_PROVIDER")
    payment_http_timeout: float = Field(default=10.0, alias="PAYMENT_HTTP_TIMEOUT")
    payment_cancel_max_attempts: int = Field(default=5, alias="PAYMENT_CANCEL_MAX_ATTEMPTS")
    midtrans_server_key: str = Field(default="", alias="MIDTRANS_SERVER_KEY")
    midtrans_is_production: bool = Field(default=False, alias="MIDTRANS_IS_PRODUCTION")

    class Config:
        populate_by_name = True

    @property
    def sqlalchemy_url(self) -> str:
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(**os.environ)
