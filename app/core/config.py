from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from backend project root so it loads regardless of cwd
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
    database_ssl: bool = False

    # JWT
    secret_key: str
    access_token_expire_minutes: int = 15
    refresh_token_expire_days: int = 7
    algorithm: str = "HS256"

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Scheduling rules
    timezone: str = "Europe/Warsaw"
    slot_step_minutes: int = 30
    slot_default_duration_minutes: int = 120
    booking_default_duration_minutes: int = 60
    max_booking_duration_minutes: int = 24 * 60
    # Deleting a rule is refused while an active booking falls inside it within this many days
    availability_delete_horizon_days: int = 365
    calendar_weeks_ahead: int = 2
    bookings_per_page: int = 15
    bookings_max_per_page: int = 50

    # Overdue confirmed bookings are auto-completed on startup and then on this interval
    overdue_job_enabled: bool = True
    overdue_job_interval_seconds: int = 60 * 60

    # Env
    env: str = "development"

    # Email (SMTP). Leave smtp_host empty to disable sending.
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    from_email: str = ""
    from_name: str = "Fachowcy"
    site_name: str = "Fachowcy"
    contact_email: str = "kontakt@fachowcy.pl"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_password and self.from_email)


settings = Settings()
