"""
Configuration settings for the Daily Word service.
Everything is read from the environment once, at import time.
"""
import os

# Storage settings
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./dailyword.db")

# Clock settings: every "is it a new day yet" decision uses this zone
TIMEZONE = os.getenv("DAILYWORD_TIMEZONE", "America/Los_Angeles")

# Fake "now" for manual testing, e.g. "2026-02-15" or "2026-02-15T23:59:00"
FAKE_NOW = os.getenv("DAILYWORD_FAKE_NOW") or None

# Logging settings
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = os.getenv("LOG_FORMAT", "").lower()
LOG_COLOR = os.getenv("LOG_COLOR", "1").lower() not in ("0", "false", "no")
