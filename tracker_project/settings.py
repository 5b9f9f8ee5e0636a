"""
Django settings for the AI credits & subscription tracker.

Every value can be overridden through a TRACKER_* environment variable.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool) -> bool:
    return os.environ.get(name, str(default)).lower() in {"1", "true", "yes", "on"}


SECRET_KEY = os.environ.get("TRACKER_SECRET_KEY", "insecure-dev-key-change-me")
DEBUG = _env_bool("TRACKER_DEBUG", False)
ALLOWED_HOSTS = os.environ.get("TRACKER_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",")

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "tracker",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "tracker_project.urls"
WSGI_APPLICATION = "tracker_project.wsgi.application"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": os.environ.get("TRACKER_DB_PATH", str(BASE_DIR / "tracker.sqlite3")),
    }
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
# Dates are local wall-clock values; no timezone conversion anywhere.
USE_TZ = False

STATIC_URL = "static/"

SESSION_ENGINE = "django.contrib.sessions.backends.db"
MESSAGE_STORAGE = "django.contrib.messages.storage.session.SessionStorage"

# Tracker
TRACKER_STORAGE_BACKEND = os.environ.get("TRACKER_STORAGE_BACKEND", "database")
# A pre-computed Django password hash wins over the plain passphrase.
TRACKER_PASSPHRASE = os.environ.get("TRACKER_PASSPHRASE", "")
TRACKER_PASSPHRASE_HASH = os.environ.get("TRACKER_PASSPHRASE_HASH", "")
TRACKER_GATE_MAX_ATTEMPTS = int(os.environ.get("TRACKER_GATE_MAX_ATTEMPTS", "5"))
TRACKER_GATE_BLOCK_SECONDS = int(os.environ.get("TRACKER_GATE_BLOCK_SECONDS", "900"))
TRACKER_DUE_SOON_DAYS = int(os.environ.get("TRACKER_DUE_SOON_DAYS", "7"))
TRACKER_LOW_CREDIT_THRESHOLD = float(os.environ.get("TRACKER_LOW_CREDIT_THRESHOLD", "0.2"))
TRACKER_FORECAST_MONTHS = int(os.environ.get("TRACKER_FORECAST_MONTHS", "12"))
BASE_CURRENCY = os.environ.get("TRACKER_BASE_CURRENCY", "EUR")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "loggers": {
        "tracker": {"handlers": ["console"], "level": os.environ.get("TRACKER_LOG_LEVEL", "INFO")},
        "tracker_application": {"handlers": ["console"], "level": os.environ.get("TRACKER_LOG_LEVEL", "INFO")},
    },
}
