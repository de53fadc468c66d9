import os

from .base import *  # noqa: F401,F403

DEBUG = True

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure-secret-key")

ALLOWED_HOSTS = ["localhost", "127.0.0.1"]

EMAIL_BACKEND = "django.core.mail.backends.console.EmailBackend"
