from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Public URL used to build the parent consent links
    app_base_url: str = Field("http://localhost:8000", alias="APP_BASE_URL")

    paystack_secret_key: Optional[str] = Field(None, alias="PAYSTACK_SECRET_KEY")
    paystack_base_url: str = Field("https://api.paystack.co", alias="PAYSTACK_BASE_URL")
    paystack_timeout_seconds: float = Field(30.0, alias="PAYSTACK_TIMEOUT_SECONDS")

    smtp_host: str = Field("localhost", alias="SMTP_HOST")
    smtp_port: int = Field(587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(None, alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(True, alias="SMTP_USE_TLS")
    mail_from_address: str = Field("no-reply@veritas.edu.ng", alias="MAIL_FROM_ADDRESS")
    exeat_oversight_email: Optional[str] = Field(None, alias="EXEAT_OVERSIGHT_EMAIL")

    parent_consent_ttl_hours: int = Field(24, alias="PARENT_CONSENT_TTL_HOURS")
    parent_consent_sms_enabled: bool = Field(False, alias="PARENT_CONSENT_SMS_ENABLED")
    twilio_account_sid: Optional[str] = Field(None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: Optional[str] = Field(None, alias="TWILIO_AUTH_TOKEN")
    twilio_sms_from: Optional[str] = Field(None, alias="TWILIO_SMS_FROM")
    twilio_whatsapp_from: Optional[str] = Field(None, alias="TWILIO_WHATSAPP_FROM")

    payment_verify_min_age_minutes: int = Field(5, alias="PAYMENT_VERIFY_MIN_AGE_MINUTES")
    payment_verify_max_age_days: int = Field(7, alias="PAYMENT_VERIFY_MAX_AGE_DAYS")
    payment_verify_delay_seconds: float = Field(0.3, alias="PAYMENT_VERIFY_DELAY_SECONDS")
    payment_job_timeout_seconds: float = Field(300.0, alias="PAYMENT_JOB_TIMEOUT_SECONDS")
    payment_job_max_attempts: int = Field(3, alias="PAYMENT_JOB_MAX_ATTEMPTS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
