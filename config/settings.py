import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")


def env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def env_list(name, default=""):
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "django-insecure-change-me")
DEBUG = env_bool("DJANGO_DEBUG", True)
ALLOWED_HOSTS = env_list("DJANGO_ALLOWED_HOSTS", "localhost,127.0.0.1,testserver")

INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "rest_framework",
    "django_filters",
    "core",
    "rates",
    "offers",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

# Database: sqlite for local work, postgres (psycopg2) when DB_ENGINE=postgres
if os.getenv("DB_ENGINE", "sqlite").lower() == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("DB_NAME", "hostcompare"),
            "USER": os.getenv("DB_USER", "postgres"),
            "PASSWORD": os.getenv("DB_PASSWORD", ""),
            "HOST": os.getenv("DB_HOST", "localhost"),
            "PORT": os.getenv("DB_PORT", "5432"),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": os.getenv("DB_NAME", str(BASE_DIR / "db.sqlite3")),
            # Writers take the database lock at BEGIN and queue on it, so
            # concurrent reference designations run one after another.
            "OPTIONS": {
                "transaction_mode": "IMMEDIATE",
                "timeout": int(os.getenv("DB_SQLITE_TIMEOUT", "20")),
            },
            # File-backed test database; the shared-cache in-memory one fails
            # lock waits immediately instead of honoring the timeout.
            "TEST": {
                "NAME": os.getenv("DB_TEST_NAME", str(BASE_DIR / "test_db.sqlite3")),
            },
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

LANGUAGE_CODE = "en-us"
TIME_ZONE = os.getenv("TIME_ZONE", "Asia/Dhaka")
USE_I18N = True
USE_TZ = True

STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": (
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ),
    "DEFAULT_PERMISSION_CLASSES": (
        "rest_framework.permissions.IsAuthenticatedOrReadOnly",
    ),
    "DEFAULT_FILTER_BACKENDS": (
        "django_filters.rest_framework.DjangoFilterBackend",
    ),
    "DEFAULT_PAGINATION_CLASS": "config.pagination.CustomPageNumberPagination",
    "EXCEPTION_HANDLER": "core.exceptions.api_exception_handler",
    "COERCE_DECIMAL_TO_STRING": False,
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(hours=int(os.getenv("JWT_ACCESS_HOURS", "12"))),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=int(os.getenv("JWT_REFRESH_DAYS", "7"))),
}

# ---- pricing ----
# Every amount is normalized into this currency before comparison.
PRICING_REFERENCE_CURRENCY = os.getenv("PRICING_REFERENCE_CURRENCY", "BDT").upper()

# "CODE:factor" pairs. Defines the accepted foreign currencies and the factors
# used both to seed an empty rate table and as fallback for a missing entry.
PRICING_DEFAULT_RATES = os.getenv("PRICING_DEFAULT_RATES", "USD:124,RMB:17.5")

# Small bandwidth units per large unit (GB per TB).
PRICING_BANDWIDTH_SUBDIVISION = os.getenv("PRICING_BANDWIDTH_SUBDIVISION", "1024")

# Stand-in reference offer used while no offer is designated as reference.
PRICING_DEFAULT_REFERENCE_OFFER = {
    "price": os.getenv("PRICING_DEFAULT_REFERENCE_PRICE", "1000"),
    "currency": os.getenv("PRICING_DEFAULT_REFERENCE_CURRENCY", PRICING_REFERENCE_CURRENCY).upper(),
    "term_months": os.getenv("PRICING_DEFAULT_REFERENCE_TERM_MONTHS", "1"),
    "bandwidth": os.getenv("PRICING_DEFAULT_REFERENCE_BANDWIDTH", "1"),
}

# ---- rate provider ----
CURRENCY_RATE_API_URL = os.getenv("CURRENCY_RATE_API_URL", "https://api.freecurrencyapi.com/v1/latest")
FREECURRENCYAPI_KEY = os.getenv("FREECURRENCYAPI_KEY", "")
CURRENCY_RATE_API_TIMEOUT = int(os.getenv("CURRENCY_RATE_API_TIMEOUT", "20"))

# ---- logging ----
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
        },
    },
    "loggers": {
        "core": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "rates": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "offers": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}
