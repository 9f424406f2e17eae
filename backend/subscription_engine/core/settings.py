import os


def _getenv(name: str, default: str | None = None) -> str | None:
    value = os.getenv(name)
    if value is None:
        return default
    value = value.strip()
    return value if value else default


def _getenv_bool(name: str, default: bool = False) -> bool:
    raw = _getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "y", "on"}


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _getenv_csv_set(name: str) -> set[str]:
    raw = _getenv(name)
    if raw is None:
        return set()
    parts = [p.strip().lower() for p in raw.split(",")]
    return {p for p in parts if p}


class Settings:
    def __init__(self) -> None:
        self.environment = (_getenv("ENVIRONMENT", "development") or "development").lower()
        self.database_url = _getenv("DATABASE_URL", "sqlite:///./subscriptions.db") or "sqlite:///./subscriptions.db"
        self.db_auto_create = _getenv_bool("DB_AUTO_CREATE", default=True)
        self.supabase_url = _getenv("SUPABASE_URL") or _getenv("VITE_SUPABASE_URL")
        self.supabase_anon_key = _getenv("SUPABASE_ANON_KEY") or _getenv("VITE_SUPABASE_ANON_KEY")
        self.supabase_service_role_key = _getenv("SUPABASE_SERVICE_ROLE_KEY")
        self.supabase_jwt_audience = _getenv("SUPABASE_JWT_AUD", "authenticated")
        self.supabase_jwt_issuer = _getenv("SUPABASE_JWT_ISSUER")
        self.basic_auth_enabled = _getenv_bool(
            "BASIC_AUTH_ENABLED",
            default=(self.environment == "production"),
        )
        self.basic_auth_username = _getenv("BASIC_AUTH_USERNAME")
        self.basic_auth_password = _getenv("BASIC_AUTH_PASSWORD")
        self.cors_allow_origins = _getenv("CORS_ALLOW_ORIGINS")

        self.twilio_account_sid = _getenv("TWILIO_ACCOUNT_SID")
        self.twilio_auth_token = _getenv("TWILIO_AUTH_TOKEN")
        self.twilio_whatsapp_number = _getenv("TWILIO_WHATSAPP_NUMBER")
        self.twilio_timeout_s = float(_getenv("TWILIO_TIMEOUT_S", "15") or "15")

        self.reminder_transport = (_getenv("REMINDER_TRANSPORT", "log") or "log").lower()
        self.reminder_scheduler_enabled = _getenv_bool("REMINDER_SCHEDULER_ENABLED", default=False)
        self.reminder_sweep_hour_utc = _getenv_int("REMINDER_SWEEP_HOUR_UTC", 6)

        self.claim_max_amount = _getenv_int("CLAIM_MAX_AMOUNT", 100000)
        self.free_upload_limit = _getenv_int("FREE_UPLOAD_LIMIT", 1)
        self.catalog_seed_defaults = _getenv_bool("CATALOG_SEED_DEFAULTS", default=True)
        self.brand_name = _getenv("BRAND_NAME", "Royal Listings") or "Royal Listings"
        self.default_country_code = _getenv("DEFAULT_COUNTRY_CODE", "254") or "254"

        self.admin_emails = _getenv_csv_set("ADMIN_EMAILS")

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def resolved_cors_origins(self) -> list[str]:
        raw = self.cors_allow_origins
        if raw is None:
            return ["http://localhost:5173", "http://localhost:8000"]
        if raw.strip() == "*":
            return ["*"]
        origins = [o.strip() for o in raw.split(",") if o.strip()]
        return origins


settings = Settings()
