from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = Field(default="Partner Vouchers", alias="APP_NAME")
    app_env: str = Field(default="dev", alias="APP_ENV")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    database_url: str = Field(default="sqlite:///./vouchers.db", alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Codigos BABSY-XXXX-XXXX-XXXX-XXXX
    code_prefix: str = Field(default="BABSY", alias="CODE_PREFIX")
    code_segments: int = Field(default=4, ge=1, alias="CODE_SEGMENTS")
    code_segment_length: int = Field(default=4, ge=1, alias="CODE_SEGMENT_LENGTH")
    code_max_attempts: int = Field(default=10, ge=1, alias="CODE_MAX_ATTEMPTS")
    qr_type: str = Field(default="BABSY_VOUCHER", alias="QR_TYPE")

    # Notificaciones: log | smtp | webhook
    notify_backend: str = Field(default="log", alias="NOTIFY_BACKEND")
    notify_workers: int = Field(default=2, ge=1, alias="NOTIFY_WORKERS")
    notify_timeout: float = Field(default=10.0, alias="NOTIFY_TIMEOUT")
    smtp_host: Optional[str] = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: Optional[str] = Field(default=None, alias="SMTP_USER")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    smtp_from: str = Field(default="gutscheine@babsy.ch", alias="SMTP_FROM")
    smtp_starttls: bool = Field(default=True, alias="SMTP_STARTTLS")
    notify_webhook_url: Optional[str] = Field(default=None, alias="NOTIFY_WEBHOOK_URL")
    notify_webhook_token: Optional[str] = Field(default=None, alias="NOTIFY_WEBHOOK_TOKEN")

    class Config:
        env_file = ".env"
        populate_by_name = True


settings = Settings()
