import os
from pathlib import Path
import dj_database_url
from dotenv import load_dotenv

# --- Paths ----------------------------------------------------
BASE_DIR = Path(__file__).resolve().parent.parent

# --- Load .env ------------------------------------------------
load_dotenv(BASE_DIR / ".env", override=True)

# --- Core -----------------------------------------------------
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-key-change-me")
DEBUG = os.getenv("DJANGO_DEBUG", "True").lower() == "true"

ALLOWED_HOSTS = ["*"] if DEBUG else [h.strip() for h in os.getenv("ALLOWED_HOSTS", "").split(",") if h.strip()]

# CSRF trusted origins (env list) + Render convenience
CSRF_TRUSTED_ORIGINS = [o.strip() for o in os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if o.strip()]
RENDER_EXTERNAL_HOSTNAME = os.getenv("RENDER_EXTERNAL_HOSTNAME")
if RENDER_EXTERNAL_HOSTNAME:
    CSRF_TRUSTED_ORIGINS.append(f"https://{RENDER_EXTERNAL_HOSTNAME}")
SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")

# --- Database -------------------------------------------------
def _is_postgres(url: str | None) -> bool:
    return bool(url) and url.startswith(("postgres://", "postgresql://"))

DB_URL = os.getenv("DATABASE_URL", "").strip()
if _is_postgres(DB_URL):
    DATABASES = {"default": dj_database_url.config(default=DB_URL, conn_max_age=600, ssl_require=True)}
else:
    sqlite_url = DB_URL or f"sqlite:///{BASE_DIR / 'db.sqlite3'}"
    DATABASES = {"default": dj_database_url.parse(sqlite_url, conn_max_age=0)}


# --- Apps / Middleware ---------------------------------------
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "import_export",
    "tutor_project.exams.apps.ExamsConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "tutor_project.urls"

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

WSGI_APPLICATION = "tutor_project.wsgi.application"

# --- I18N -----------------------------------------------------
LANGUAGE_CODE = "en-gb"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# --- Static ---------------------------------------------------
STATIC_URL = "static/"
STATIC_ROOT = BASE_DIR / "staticfiles"
STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "whitenoise.storage.CompressedManifestStaticFilesStorage"},
}

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# --- Auth redirects -------------------------------------------
LOGIN_URL = "/admin/login/"

# --- Exams ----------------------------------------------------
def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, "") or default)
    except (TypeError, ValueError):
        return default

# Used when an exam row has no duration configured
EXAM_DEFAULT_DURATION_MINUTES = _env_int("EXAM_DEFAULT_DURATION_MINUTES", 60)
# Client-side countdown refresh while the app is in the foreground
EXAM_POLL_INTERVAL_SECONDS = _env_int("EXAM_POLL_INTERVAL_SECONDS", 1)
# Compare-and-swap retries for answer writes before giving up
EXAM_ANSWER_WRITE_RETRIES = _env_int("EXAM_ANSWER_WRITE_RETRIES", 5)
# Answers arriving this long after the deadline are still accepted
EXAM_LATE_ANSWER_GRACE_SECONDS = _env_int("EXAM_LATE_ANSWER_GRACE_SECONDS", 0)
# Minutes between overdue-attempt sweeps (APScheduler)
EXAM_SWEEP_INTERVAL_MIN = _env_int("EXAM_SWEEP_INTERVAL_MIN", 1)
EXAM_SCHEDULER_ENABLED = os.getenv("EXAM_SCHEDULER_ENABLED", "true").lower() == "true"
# Default cut-off for the administrative expire command
EXAM_ABANDONED_AFTER_HOURS = _env_int("EXAM_ABANDONED_AFTER_HOURS", 24)

# --- Logging --------------------------------------------------
LOG_LEVEL = os.getenv("DJANGO_LOG_LEVEL", "INFO").upper()

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple": {"format": "[{asctime}] {levelname} {name}: {message}", "style": "{"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "simple"},
    },
    "root": {"handlers": ["console"], "level": LOG_LEVEL},
    "loggers": {
        "django": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
        "tutor_project.exams": {
            "handlers": ["console"],
            "level": os.getenv("EXAM_LOG_LEVEL", LOG_LEVEL).upper(),
            "propagate": False,
        },
        "apscheduler": {"handlers": ["console"], "level": "WARNING", "propagate": False},
    },
}
