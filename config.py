from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent
DB_PATH = Path(os.environ.get("HABITS_DB_PATH", "").strip() or BASE_DIR / "habits.db")
DATABASE_URL = os.environ.get("DATABASE_URL", "").strip()
DB_BACKEND = "postgres" if DATABASE_URL else "sqlite"

SECRET_KEY = os.environ.get("APP_SECRET_KEY", "dev-secret-change-me")
UPLOAD_DIR = Path(os.environ.get("UPLOAD_DIR", "").strip() or BASE_DIR / "uploads")
MAX_IMAGE_BYTES = 5 * 1024 * 1024

GEMINI_API_KEY = os.environ.get("GEMINI_API_KEY", "").strip()
GEMINI_MODEL = os.environ.get("GEMINI_MODEL", "gemini-pro").strip()


def env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, default))
    except (TypeError, ValueError):
        return default


COACH_TIMEOUT = env_int("COACH_TIMEOUT", 15)
STATS_WINDOW_DAYS = max(1, env_int("STATS_WINDOW_DAYS", 30))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
