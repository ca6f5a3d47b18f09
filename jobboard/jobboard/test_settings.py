"""Settings for the test suite: in-memory SQLite and a throwaway media root."""
import tempfile
from pathlib import Path

from .settings import *  # noqa: F401,F403
from .settings import LOGGING

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

MEDIA_ROOT = Path(tempfile.mkdtemp(prefix="jobboard-media-"))
MEDIA_URL = "/media/"
RESUME_STORAGE = {
    "LOCATION": str(MEDIA_ROOT),
    "BASE_URL": MEDIA_URL,
    "FOLDER": "applications",
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

LOGGING = {**LOGGING, "root": {"handlers": ["console"], "level": "WARNING"}}
