"""
Application configuration using pydantic-settings.
All config is validated at startup - fail fast if anything is missing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database
    database_url: str
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # reCAPTCHA v3 (anti-spam gate). Both keys must be set for the gate to run.
    recaptcha_site_key: str = ""
    recaptcha_secret_key: str = ""
    recaptcha_v3_threshold: float = 0.3
    recaptcha_bypass_token: str = "dev-bypass"  # honoured outside production only

    # One-time passcode gate
    otp_submission_window_minutes: int = 30

    # SendGrid (new lead notifications)
    sendgrid_api_key: str = ""
    from_email: str = "noreply@leadcapture.app"
    from_name: str = "LeadCapture"

    # Sentry
    sentry_dsn: str = ""

    # Dashboard
    dashboard_base_url: str = "http://localhost:3000"
    allowed_origins: str = ""  # Comma-separated CORS origins

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def recaptcha_configured(self) -> bool:
        return bool(self.recaptcha_site_key.strip() and self.recaptcha_secret_key.strip())


@lru_cache()
def get_settings() -> Settings:
    return Settings()
