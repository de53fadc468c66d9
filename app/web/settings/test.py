from .base import *  # noqa: F401,F403

SECRET_KEY = "test-secret-key"

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = "memory://"
CELERY_RESULT_BACKEND = "cache+memory://"

WORKFLOW_ENGINE = {
    "INTERNAL_TRIGGER_DETECTION": "start_edge",
    "ENFORCE_TRIGGER_PERMISSIONS": True,
}

LOGGING["loggers"]["workflow_engine"]["level"] = "WARNING"  # noqa: F405
