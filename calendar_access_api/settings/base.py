import os

from decouple import Csv, config  # type: ignore
from dj_database_url import parse as db_url


BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def base_dir_join(*args):
    return os.path.join(BASE_DIR, *args)


SITE_ID = 1

DEBUG = True

ADMINS = (("Admin", "foo@example.com"),)

AUTH_USER_MODEL = "users.User"

ALLOWED_HOSTS: list[str] = []

DATABASES = {
    "default": config(
        "DATABASE_URL",
        default=f"sqlite:///{base_dir_join('db.sqlite3')}",
        cast=db_url,
    ),
}
INTERNAL_INSTALLED_APPS = [
    "di_core",
    "common",
    "users",
    "audit_logs",
    "calendar_access",
]
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "django.contrib.sites",
    "corsheaders",
    "rest_framework",
    "drf_spectacular",
    "django_guid",
    "django_filters",
    *INTERNAL_INSTALLED_APPS,
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "django_guid.middleware.guid_middleware",
    "audit_logs.middlewares.AuditRequestContextMiddleware",
]

ROOT_URLCONF = "calendar_access_api.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [base_dir_join("templates")],
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

WSGI_APPLICATION = "calendar_access_api.wsgi.application"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.CommonPasswordValidator",
    },
    {
        "NAME": "django.contrib.auth.password_validation.NumericPasswordValidator",
    },
]

REST_FRAMEWORK = {
    "DEFAULT_PAGINATION_CLASS": "rest_framework.pagination.LimitOffsetPagination",
    "PAGE_SIZE": 10,
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticated",
    ],
    "DEFAULT_FILTER_BACKENDS": ("django_filters.rest_framework.DjangoFilterBackend",),
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
}

LANGUAGE_CODE = "en-us"

TIME_ZONE = "UTC"

USE_I18N = True


USE_TZ = True

REDIS_URL = config("REDIS_URL", default="redis://localhost:6379/0")

# Celery
# Recommended settings for reliability: https://gist.github.com/fjsj/da41321ac96cf28a96235cb20e7236f6
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TASK_ACKS_LATE = True
CELERY_TIMEZONE = TIME_ZONE
CELERY_BROKER_TRANSPORT_OPTIONS = {"confirm_publish": True, "confirm_timeout": 5.0}
CELERY_BROKER_POOL_LIMIT = config("CELERY_BROKER_POOL_LIMIT", cast=int, default=1)
CELERY_BROKER_CONNECTION_TIMEOUT = config(
    "CELERY_BROKER_CONNECTION_TIMEOUT", cast=float, default=30.0
)
CELERY_TASK_ACKS_ON_FAILURE_OR_TIMEOUT = config(
    "CELERY_TASK_ACKS_ON_FAILURE_OR_TIMEOUT", cast=bool, default=True
)
CELERY_TASK_REJECT_ON_WORKER_LOST = config(
    "CELERY_TASK_REJECT_ON_WORKER_LOST", cast=bool, default=False
)
CELERY_WORKER_PREFETCH_MULTIPLIER = config("CELERY_WORKER_PREFETCH_MULTIPLIER", cast=int, default=1)
CELERY_WORKER_MAX_TASKS_PER_CHILD = config(
    "CELERY_WORKER_MAX_TASKS_PER_CHILD", cast=int, default=1000
)

# Sentry
SENTRY_DSN = config("SENTRY_DSN", default="")
COMMIT_SHA = config("RENDER_GIT_COMMIT", default="")

# Fix for Safari 12 compatibility issues, please check:
# https://github.com/vintasoftware/safari-samesite-cookie-issue
CSRF_COOKIE_SAMESITE = "Lax"
SESSION_COOKIE_SAMESITE = "Lax"

CORS_ALLOWED_ORIGINS: list[str] = config("CORS_ALLOWED_ORIGINS", default="", cast=Csv())
CORS_ALLOW_CREDENTIALS = True

SPECTACULAR_SETTINGS = {
    "TITLE": "Calendar Access API",
    "DESCRIPTION": "Sharing, guest policy and link-token access for calendars",
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "ENUM_ADD_EXPLICIT_BLANK_NULL_CHOICE": False,
    "ENUM_NAME_OVERRIDES": {
        "PermissionLevelEnum": "calendar_access.constants.PermissionLevel.choices",
        "GuestPermissionEnum": "calendar_access.constants.GuestPermission.choices",
        "AccessTokenPermissionEnum": "calendar_access.constants.AccessTokenPermission.choices",
    },
}

# Calendar access
CALENDAR_ACCESS_TOKEN_HEADER = "X-Calendar-Access-Token"
CALENDAR_ACCESS_TOKEN_PREVIEW_LENGTH = 6
CALENDAR_ACCESS_TOKEN_COOKIE_NAME = "calendar_access_tokens"
CALENDAR_ACCESS_TOKEN_COOKIE_MAX_AGE = config(
    "CALENDAR_ACCESS_TOKEN_COOKIE_MAX_AGE", cast=int, default=60 * 60 * 24 * 30
)
CALENDAR_ACCESS_TOKEN_COOKIE_LIMIT = 20
CALENDAR_ACCESS_ALLOW_ANONYMOUS_GUEST_ACCESS = config(
    "CALENDAR_ACCESS_ALLOW_ANONYMOUS_GUEST_ACCESS", cast=bool, default=True
)

# Rate limiting. Each action kind maps to (limit, window in seconds); a limit of 0 disables it.
CALENDAR_ACCESS_RATE_LIMIT_BACKEND = config("CALENDAR_ACCESS_RATE_LIMIT_BACKEND", default="redis")
CALENDAR_ACCESS_RATE_LIMIT_REDIS_URL = config(
    "CALENDAR_ACCESS_RATE_LIMIT_REDIS_URL", default=REDIS_URL
)
CALENDAR_ACCESS_RATE_LIMIT_KEY_PREFIX = config(
    "CALENDAR_ACCESS_RATE_LIMIT_KEY_PREFIX", default="calendar_access"
)
CALENDAR_ACCESS_RATE_LIMITS = {
    "token-creation": (
        config("TOKEN_CREATION_RATE_LIMIT", cast=int, default=10),
        config("TOKEN_CREATION_RATE_LIMIT_WINDOW", cast=int, default=60 * 60),
    ),
    "share-mutation": (
        config("SHARE_MUTATION_RATE_LIMIT", cast=int, default=60),
        config("SHARE_MUTATION_RATE_LIMIT_WINDOW", cast=int, default=60 * 60),
    ),
    "calendar-creation": (
        config("CALENDAR_CREATION_RATE_LIMIT", cast=int, default=20),
        config("CALENDAR_CREATION_RATE_LIMIT_WINDOW", cast=int, default=60 * 60),
    ),
    "ownership-transfer": (
        config("OWNERSHIP_TRANSFER_RATE_LIMIT", cast=int, default=30),
        config("OWNERSHIP_TRANSFER_RATE_LIMIT_WINDOW", cast=int, default=60 * 60),
    ),
    "bulk-ownership-transfer": (
        config("BULK_OWNERSHIP_TRANSFER_RATE_LIMIT", cast=int, default=5),
        config("BULK_OWNERSHIP_TRANSFER_RATE_LIMIT_WINDOW", cast=int, default=60 * 60),
    ),
}
