# backend/app/settings.py
import os


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv(
    "DATABASE_URL",
    "postgresql+psycopg://crewops:devpass@db:5432/crewops",
)
# Optional read replica used when the primary is unreachable
SECONDARY_DATABASE_URL = os.getenv("SECONDARY_DATABASE_URL", "")

DB_CONNECT_TIMEOUT_SECONDS = int(os.getenv("DB_CONNECT_TIMEOUT_SECONDS", "5"))
STORE_RETRY_ATTEMPTS = int(os.getenv("STORE_RETRY_ATTEMPTS", "2"))
STORE_RETRY_DELAY_SECONDS = float(os.getenv("STORE_RETRY_DELAY_SECONDS", "1.0"))

BACKGROUND_POLLERS_ENABLED = _flag("BACKGROUND_POLLERS_ENABLED", "1")
ASSIGNMENT_POLL_SECONDS = float(os.getenv("ASSIGNMENT_POLL_SECONDS", "30"))
EMAIL_SCAN_POLL_SECONDS = float(os.getenv("EMAIL_SCAN_POLL_SECONDS", str(30 * 60)))
VALIDATION_POLL_SECONDS = float(os.getenv("VALIDATION_POLL_SECONDS", str(30 * 60)))
POLLER_STOP_TIMEOUT_SECONDS = float(os.getenv("POLLER_STOP_TIMEOUT_SECONDS", "10"))

URGENT_AFTER_HOURS = int(os.getenv("URGENT_AFTER_HOURS", "8"))
CRITICAL_AFTER_HOURS = int(os.getenv("CRITICAL_AFTER_HOURS", "24"))

REJECTION_REASON_MAX_LENGTH = int(os.getenv("REJECTION_REASON_MAX_LENGTH", "500"))

# last-known mission copies kept for the read fallback
MISSION_CACHE_SIZE = int(os.getenv("MISSION_CACHE_SIZE", "1000"))

FRONTEND_ORIGIN = os.getenv("FRONTEND_ORIGIN", "http://localhost:5173")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
