import os
from pathlib import Path

import dj_database_url
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")


def env_bool(key: str, default: bool = False) -> bool:
    v = os.getenv(key)
    if v is None:
        return default
    return v.lower() in ("1", "true", "yes", "y", "on")


def env_csv(key: str, default: str = "") -> list[str]:
    raw = os.getenv(key, default)
    return [x.strip() for x in raw.split(",") if x.strip()]


def env_int(key: str, default: int) -> int:
    v = os.getenv(key)
    if v is None or not v.strip():
        return default
    return int(v)


# =========================================
# Base
# =========================================
DEBUG = env_bool("DEBUG", False)

SECRET_KEY = os.getenv("SECRET_KEY", "")
if not SECRET_KEY:
    if DEBUG:
        SECRET_KEY = "dev-secret-key"
    else:
        raise RuntimeError("SECRET_KEY is required")

ALLOWED_HOSTS = env_csv("ALLOWED_HOSTS", "127.0.0.1,localhost")


# =========================================
# Apps
# =========================================
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # third-party
    "django_celery_beat",

    # local apps
    "core",
    "accounts.apps.AccountsConfig",
    "games",
    "betting",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",

    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",

    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
]

ROOT_URLCONF = "numbers_game.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "numbers_game.wsgi.application"


# =========================================
# Database
# =========================================
DATABASE_URL = os.getenv("DATABASE_URL", "")
if DATABASE_URL:
    DATABASES = {"default": dj_database_url.parse(DATABASE_URL, conn_max_age=600)}
else:
    DATABASES = {
        "default": {"ENGINE": "django.db.backends.sqlite3", "NAME": BASE_DIR / "db.sqlite3"}
    }

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_USER_MODEL = "accounts.User"


# =========================================
# Password validation
# =========================================
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]


# =========================================
# i18n / timezone
# =========================================
LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True


# =========================================
# Static files (WhiteNoise, admin only)
# =========================================
STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedStaticFilesStorage"},
}


# =========================================
# HTTPS / CSRF
# =========================================
CSRF_TRUSTED_ORIGINS = env_csv("CSRF_TRUSTED_ORIGINS", "")

SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
USE_X_FORWARDED_HOST = True

if not DEBUG:
    SESSION_COOKIE_SECURE = True
    CSRF_COOKIE_SECURE = True

SESSION_COOKIE_SAMESITE = "Lax"
CSRF_COOKIE_SAMESITE = "Lax"


# =========================================
# Game rules
# =========================================
# All amounts are integers in the currency's smallest unit.
GAME_WINDOW_MINUTES = env_int("GAME_WINDOW_MINUTES", 30)
SETTLEMENT_CUTOFF_MINUTES = env_int("SETTLEMENT_CUTOFF_MINUTES", 25)
SETTLEMENT_BATCH_LIMIT = env_int("SETTLEMENT_BATCH_LIMIT", 200)

# bids are gated on status only unless this is on
BID_WINDOW_ENFORCED = env_bool("BID_WINDOW_ENFORCED", False)

AUTO_PAYOUT_MULTIPLIER = env_int("AUTO_PAYOUT_MULTIPLIER", 2)
OVERRIDE_DEFAULT_MULTIPLIER = env_int("OVERRIDE_DEFAULT_MULTIPLIER", 2)

RECHARGE_MIN_AGENT = env_int("RECHARGE_MIN_AGENT", 1000)
RECHARGE_MIN_USER = env_int("RECHARGE_MIN_USER", 500)

COMMISSION_DEFAULTS = {
    "agent_commission_percentage": env_int("DEFAULT_AGENT_COMMISSION_PCT", 5),
    "winner_payout_percentage": env_int("DEFAULT_WINNER_PAYOUT_PCT", 80),
    "admin_fee_percentage": env_int("DEFAULT_ADMIN_FEE_PCT", 15),
    "min_bet_amount": env_int("DEFAULT_MIN_BET", 10),
    "max_bet_amount": env_int("DEFAULT_MAX_BET", 10000),
}


# =========================================
# Celery
# =========================================
def pick_redis_url() -> str:
    for k in ("REDIS_URL", "REDIS_CONNECTION_STRING", "CELERY_BROKER_URL"):
        v = os.getenv(k)
        if v:
            return v
    return "redis://localhost:6379/0"


CELERY_BROKER_URL = pick_redis_url()
CELERY_RESULT_BACKEND = CELERY_BROKER_URL

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULER = "django_celery_beat.schedulers:DatabaseScheduler"


# =========================================
# Logging
# =========================================
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"},
    },
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "simple"}},
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django.request": {"handlers": ["console"], "level": "ERROR", "propagate": False},
    },
}
