import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./schedule_ledger.db")

# Security - CRITICAL: No default secret key in production
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

# Owners without a declared zone fall back to this one
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "America/Sao_Paulo")

# Recurrence materialization
MATERIALIZE_WINDOW_DAYS = int(os.getenv("MATERIALIZE_WINDOW_DAYS", "180"))
MAX_WEEKLY_OCCURRENCES = int(os.getenv("MAX_WEEKLY_OCCURRENCES", "100"))
MAX_MONTHLY_OCCURRENCES = int(os.getenv("MAX_MONTHLY_OCCURRENCES", "36"))
MAX_DAILY_OCCURRENCES = int(os.getenv("MAX_DAILY_OCCURRENCES", "366"))

# Orphan reconciliation runs at most once per owner within this period
RECONCILE_COOLDOWN_SECONDS = int(os.getenv("RECONCILE_COOLDOWN_SECONDS", "3600"))

# Serialize materialization runs per owner (PostgreSQL advisory locks)
ADVISORY_LOCKS_ENABLED = os.getenv("ADVISORY_LOCKS_ENABLED", "true").lower() == "true"

# Redis (optional - cooldown cache and ARQ worker)
REDIS_URL = os.getenv("REDIS_URL")
REDIS_HOST = os.getenv("REDIS_HOST")

# Comma-separated list of allowed origins for the dashboard frontend
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]
