"""
Celery application configuration.

This is the main Celery app for the StitchCraft backend.
It delivers notifier emails off the request path and runs the
invitation expiry sweep on a schedule.

Usage:
    # Start worker
    celery -A stitchcraft_backend worker -l INFO

    # Start beat scheduler (for periodic tasks)
    celery -A stitchcraft_backend beat -l INFO

    # Start both (development only)
    celery -A stitchcraft_backend worker -B -l INFO
"""
import os

from celery import Celery

# Set default Django settings
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "stitchcraft_backend.settings")

# Create Celery app
app = Celery("stitchcraft_backend")

# Load config from Django settings
app.config_from_object("django.conf:settings", namespace="CELERY")

# Auto-discover tasks from all installed apps
app.autodiscover_tasks()
