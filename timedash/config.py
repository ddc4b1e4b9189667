import os
from pathlib import Path


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


BASE_DIR = Path(__file__).resolve().parent

DB_PATH = os.getenv("DB_PATH", str(BASE_DIR.parent / "timedash.sqlite3"))
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DB_PATH}")

# Pool limits only apply to server backends, SQLite keeps its own pool class
DB_POOL_SIZE = env_int("DB_POOL_SIZE", 20)
DB_POOL_TIMEOUT = env_int("DB_POOL_TIMEOUT", 2)
DB_POOL_RECYCLE = env_int("DB_POOL_RECYCLE", 30)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

OPEN_PROJECT_STATUS = os.getenv("OPEN_PROJECT_STATUS", "Aperto")
DEFAULT_HOURLY_COST = env_float("DEFAULT_HOURLY_COST", 1.0)
UNDER_TIME_HOURS = env_float("UNDER_TIME_HOURS", 8.0)
ANALYSIS_PAGE_SIZE = env_int("ANALYSIS_PAGE_SIZE", 1000)
ORGANIZATION_ID = os.getenv("ORGANIZATION_ID", "")
