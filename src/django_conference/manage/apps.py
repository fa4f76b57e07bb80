"""Django app configuration for the conference management app."""

from django.apps import AppConfig


class DjangoConferenceManageConfig(AppConfig):
    """Configuration for the back-office JSON API."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_conference.manage"
    label = "conference_manage"
    verbose_name = "Conference Management"
