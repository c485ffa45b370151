# backend/settings/test.py
"""
PATH: backend/settings/test.py

TEST SETTINGS
- File-backed SQLite unless TEST_DATABASE_URL points elsewhere (CI runs
  Postgres to exercise row locking)
- SQLite transactions start IMMEDIATE so concurrent writers serialize on the
  database lock instead of losing updates; threaded tests run by default
- Fast password hashing
- Throttling off
"""

from __future__ import annotations

from .base import *  # noqa: F403
from .base import BASE_DIR, REST_FRAMEWORK, env  # explicit for Ruff (F405)

DEBUG = False
SECRET_KEY = "test-only-secret-key"

DATABASES = {
    "default": env.db(
        "TEST_DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'test_db.sqlite3'}",
    ),
}

if DATABASES["default"]["ENGINE"] == "django.db.backends.sqlite3":
    # in-memory test databases cannot be shared by worker threads
    DATABASES["default"]["TEST"] = {"NAME": str(BASE_DIR / "test_clinic.sqlite3")}
    DATABASES["default"]["OPTIONS"] = {
        "transaction_mode": "IMMEDIATE",
        "timeout": 30,
    }

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_CLASSES": (),
}

PHARMACY_LOCK_TIMEOUT_MS = 0
PRESCRIPTION_DELIVERY_ATOMIC = True

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "WARNING"},
}
