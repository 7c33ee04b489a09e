# invitations/apps.py
"""Invitations app configuration."""

from django.apps import AppConfig


class InvitationsConfig(AppConfig):
    """Configuration for the invitations app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "invitations"
    verbose_name = "Workshop Invitations"
