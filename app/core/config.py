from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str
    # asyncpg takes SSL via connect_args instead of sslmode
    database_ssl: bool = False

    # JWT
    secret_key: str
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    email_verify_token_expire_hours: int = 48
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Razorpay
    razorpay_key_id: str = ""
    razorpay_key_secret: str = ""
    razorpay_api_url: str = "https://api.razorpay.com/v1"
    # Fixed fee in the smallest currency unit (49 INR)
    session_fee_amount: int = 4900
    session_fee_currency: str = "INR"

    # Booking business rules
    default_timezone: str = "Asia/Kolkata"
    slot_granularity_minutes: int = 15
    max_times_per_day: int = 3
    max_emotions: int = 10
    join_early_minutes: int = 5
    reminder_lead_minutes: int = 5
    # Pre-paid sessions older than this are listed as abandoned for operators
    abandoned_after_hours: int = 24
    require_verified_email: bool = True

    # Celery (reminder queue)
    celery_broker_url: str = "redis://localhost:6379/0"
    reminder_queue: str = "session-reminders"

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "Unmuted"
    site_name: str = "Unmuted"
    # Frontend base URL used in e-mail links
    frontend_url: str = "http://localhost:3000"
    contact_email: str = "support@unmuted.app"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)

    @property
    def razorpay_configured(self) -> bool:
        return bool(self.razorpay_key_id and self.razorpay_key_secret)


settings = Settings()
