"""
Celery application for the web project.

Workers are started with:
    celery -A web worker -l info
"""
import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "web.settings.development")

app = Celery("web")

# All CELERY_* keys in Django settings configure this app
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()
