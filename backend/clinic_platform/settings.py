"""
clinic_platform/settings.py
"""

from datetime import timedelta
from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-clinic-core-dev-key")

DEBUG = os.getenv("DJANGO_DEBUG", "true").lower() in ("1", "true", "yes")

ALLOWED_HOSTS = [
    h.strip() for h in os.getenv("DJANGO_ALLOWED_HOSTS", "127.0.0.1,localhost,testserver").split(",") if h.strip()
]

INSTALLED_APPS = [
    "daphne",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "corsheaders",
    "channels",
    "clinic",
    "scheduling",
    "teleconsultation",
    "revenue",
]

MIDDLEWARE = [
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "clinic_platform.urls"

CORS_ALLOW_ALL_ORIGINS = DEBUG
CORS_ALLOWED_ORIGINS = [
    o.strip() for o in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()
]

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
    },
]

ASGI_APPLICATION = "clinic_platform.asgi.application"

# ── Database ──────────────────────────────────────────────────────────────────
# PostgreSQL when POSTGRES_DB is set, otherwise a local SQLite file.
if os.getenv("POSTGRES_DB"):
    DATABASES = {
        "default": {
            "ENGINE"  : "django.db.backends.postgresql",
            "NAME"    : os.getenv("POSTGRES_DB"),
            "USER"    : os.getenv("POSTGRES_USER", "postgres"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", ""),
            "HOST"    : os.getenv("POSTGRES_HOST", "localhost"),
            "PORT"    : os.getenv("POSTGRES_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME"  : BASE_DIR / "db.sqlite3",
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("CLINIC_DEFAULT_TIMEZONE", "Asia/Kolkata")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# ── Django Channels ───────────────────────────────────────────────────────────
CHANNEL_LAYERS = {
    "default": {
        "BACKEND": "channels.layers.InMemoryChannelLayer"
    }
}

# ── DRF + JWT ─────────────────────────────────────────────────────────────────
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticated",
    ),
    "EXCEPTION_HANDLER": "clinic.errors.exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME" : timedelta(hours=5),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=1),
}

# ── Logging ───────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": LOG_LEVEL,
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": os.getenv("DJANGO_LOG_LEVEL", "WARNING").upper(),
            "propagate": False,
        },
    },
}

# ── Clinic hours (defaults for new clinics and for suggestions) ───────────────
CLINIC_OPEN_TIME = os.getenv("CLINIC_OPEN_TIME", "09:00")
CLINIC_CLOSE_TIME = os.getenv("CLINIC_CLOSE_TIME", "18:00")
CLINIC_NAME = os.getenv("CLINIC_NAME", "Healthcare Team")

# ── Teleconsultation / signaling ──────────────────────────────────────────────
# Set via environment variables in production:
#   export MEDIA_SERVER_DOMAIN=meet.example.org
#   export ROLE_TOKEN_SECRET=...
#   export SIGNALING_PORT=3001
MEDIA_SERVER_DOMAIN = os.getenv("MEDIA_SERVER_DOMAIN", "meet.jit.si")
ROLE_TOKEN_SECRET = os.getenv("ROLE_TOKEN_SECRET", SECRET_KEY)
ROLE_TOKEN_ISSUER = os.getenv("ROLE_TOKEN_ISSUER", "teleconsult")
ROLE_TOKEN_AUDIENCE = os.getenv("ROLE_TOKEN_AUDIENCE", "jitsi")

SIGNALING_HOST = os.getenv("SIGNALING_HOST", "0.0.0.0")
SIGNALING_PORT = int(os.getenv("SIGNALING_PORT", "3001"))
SIGNALING_JOIN_TIMEOUT = float(os.getenv("SIGNALING_JOIN_TIMEOUT", "30"))
