"""
URL configuration for web project.

The engine's trigger-side API is mounted under /api/workflow/.
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/workflow/", include("workflow_engine.urls")),
]
