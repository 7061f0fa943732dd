import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        csrf_secret: str,
        budget_warning_cents: int,
        budget_critical_cents: int,
        email_endpoint: str,
        email_api_key: str,
        email_timeout_secs: float,
        notification_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.csrf_secret = csrf_secret
        self.budget_warning_cents = budget_warning_cents
        self.budget_critical_cents = budget_critical_cents
        self.email_endpoint = email_endpoint
        self.email_api_key = email_api_key
        self.email_timeout_secs = email_timeout_secs
        self.notification_hour = notification_hour

    @property
    def email_configured(self) -> bool:
        return bool(self.email_endpoint and self.email_api_key)


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "Asia/Kolkata")
    csrf_secret = os.getenv(
        "FINANCE_CSRF_SECRET",
        "3f0c9d2a6b1e47c88d5a0e9b7f24c61d8a93be05f7c2d41e6b8a0f9c3d2e1b47",
    )
    budget_warning_cents = int(os.getenv("FINANCE_BUDGET_WARNING_CENTS", "3000000"))
    budget_critical_cents = int(
        os.getenv("FINANCE_BUDGET_CRITICAL_CENTS", "4000000")
    )
    email_endpoint = os.getenv("FINANCE_EMAIL_ENDPOINT", "")
    email_api_key = os.getenv("FINANCE_EMAIL_API_KEY", "")
    email_timeout_secs = float(os.getenv("FINANCE_EMAIL_TIMEOUT_SECS", "5"))
    notification_hour = int(os.getenv("FINANCE_NOTIFICATION_HOUR", "8"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        csrf_secret=csrf_secret,
        budget_warning_cents=budget_warning_cents,
        budget_critical_cents=budget_critical_cents,
        email_endpoint=email_endpoint,
        email_api_key=email_api_key,
        email_timeout_secs=email_timeout_secs,
        notification_hour=notification_hour,
    )
