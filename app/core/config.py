import os
from decimal import Decimal

from dotenv import load_dotenv
from pydantic import BaseModel

# Load variables from .env
load_dotenv()


class Settings(BaseModel):
    project_name: str = "Casa de Praia"
    database_url: str = "sqlite+aiosqlite:///./rental.db"

    # Identity tokens are issued by the external auth provider, only verified here
    secret_key: str = "change-me"
    jwt_algorithm: str = "HS256"

    # Business rules
    property_timezone: str = "America/Sao_Paulo"
    price_per_night: Decimal = Decimal("500")
    max_guests: int = 10

    # Occupancy feed (ICS)
    feed_source: str = "public/export.ics"
    feed_fetch_timeout_seconds: int = 10
    feed_strict_mode: bool = False

    # Payment provider
    payment_api_url: str = ""
    payment_api_key: str = ""
    payment_timeout_seconds: int = 10

    # Calendar sync: "stamp" = only record last_synced_at, "import" = fetch the feed
    calendar_sync_mode: str = "stamp"

    # Scheduler settings
    enable_compaction_job: bool = True
    compaction_time: str = "03:00"

    # Rate limiting settings
    rate_limit_enabled: bool = True  # Killswitch for quick disable
    rate_limit_booking: str = "10/minute"

    # Logging settings
    log_format: str = "console"  # Options: "console", "json"
    log_slow_request_threshold_ms: int = 500  # Log timing only if duration > threshold


settings = Settings(
    project_name=os.environ.get("PROJECT_NAME", "Casa de Praia"),
    database_url=os.environ.get("DATABASE_URL", "sqlite+aiosqlite:///./rental.db"),
    secret_key=os.environ.get("SECRET_KEY", "change-me"),
    jwt_algorithm=os.environ.get("JWT_ALGORITHM", "HS256"),
    property_timezone=os.environ.get("PROPERTY_TIMEZONE", "America/Sao_Paulo"),
    price_per_night=Decimal(os.environ.get("PRICE_PER_NIGHT", "500")),
    max_guests=int(os.environ.get("MAX_GUESTS", "10")),
    feed_source=os.environ.get("FEED_SOURCE", "public/export.ics"),
    feed_fetch_timeout_seconds=int(os.environ.get("FEED_FETCH_TIMEOUT_SECONDS", "10")),
    feed_strict_mode=os.environ.get("FEED_STRICT_MODE", "false").lower() == "true",
    payment_api_url=os.environ.get("PAYMENT_API_URL", ""),
    payment_api_key=os.environ.get("PAYMENT_API_KEY", ""),
    payment_timeout_seconds=int(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10")),
    calendar_sync_mode=os.environ.get("CALENDAR_SYNC_MODE", "stamp").lower(),
    enable_compaction_job=os.environ.get("ENABLE_COMPACTION_JOB", "true").lower()
    == "true",
    compaction_time=os.environ.get("COMPACTION_TIME", "03:00"),
    rate_limit_enabled=os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true",
    rate_limit_booking=os.environ.get("RATE_LIMIT_BOOKING", "10/minute"),
    log_format=os.environ.get("LOG_FORMAT", "console"),
    log_slow_request_threshold_ms=int(
        os.environ.get("LOG_SLOW_REQUEST_THRESHOLD_MS", "500")
    ),
)
