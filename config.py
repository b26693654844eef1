"""Runtime configuration for the room queue.

Everything is read from environment variables once at import time.  A
``.env`` file next to the code is honoured through `python-dotenv`, so a
local checkout can be configured without exporting variables by hand.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()

PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))
DEFAULT_DB_FILENAME = os.path.join(PROJECT_DIR, "queue.db")

# The clinic has exactly eight consultation rooms, numbered 1..8.
ROOM_COUNT = 8
ROOMS = tuple(range(1, ROOM_COUNT + 1))


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if not url:
        return f"sqlite:///{DEFAULT_DB_FILENAME}"
    # Hosted Postgres providers hand out postgres:// URLs; SQLAlchemy only
    # accepts the postgresql:// scheme.
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def _flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = _database_url()
REDIS_URL = os.getenv("REDIS_URL")

# Opt-in: reject status changes outside the waiting -> in_consultation ->
# completed/cancelled flow.  Off by default.
STRICT_TRANSITIONS = _flag("QUEUE_STRICT_TRANSITIONS")

DISPLAY_CACHE_SECONDS = int(os.getenv("DISPLAY_CACHE_SECONDS", "3"))

# Poll intervals (seconds) used by the HTML views.
BOARD_POLL_SECONDS = int(os.getenv("BOARD_POLL_SECONDS", "3"))
DOCTOR_POLL_SECONDS = int(os.getenv("DOCTOR_POLL_SECONDS", "5"))
SECRETARY_POLL_SECONDS = int(os.getenv("SECRETARY_POLL_SECONDS", "10"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
