"""Django app configuration for the registration app."""

from django.apps import AppConfig


class DjangoConferenceRegistrationConfig(AppConfig):
    """Configuration for the registration app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_conference.registration"
    label = "conference_registration"
    verbose_name = "Registration"
