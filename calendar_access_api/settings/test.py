from .base import *


SECRET_KEY = "test"  # nosec

DATABASES = {
    "default": config("TEST_DATABASE_URL", default="sqlite://:memory:", cast=db_url),
}

STATIC_ROOT = base_dir_join("staticfiles")
STATIC_URL = "/static/"

MEDIA_ROOT = base_dir_join("mediafiles")
MEDIA_URL = "/media/"

STORAGES = {
    "default": {"BACKEND": "django.core.files.storage.FileSystemStorage"},
    "staticfiles": {"BACKEND": "django.contrib.staticfiles.storage.StaticFilesStorage"},
}

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

# Speed up password hashing
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Celery
CELERY_BROKER_URL = "memory://"
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Rate limit counters live in process memory during tests
CALENDAR_ACCESS_RATE_LIMIT_BACKEND = "memory"
CALENDAR_ACCESS_ALLOW_ANONYMOUS_GUEST_ACCESS = True
