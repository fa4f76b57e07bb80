"""Django app configuration for the call-for-papers app."""

from django.apps import AppConfig


class DjangoConferenceCFPConfig(AppConfig):
    """Configuration for the CFP app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_conference.cfp"
    label = "conference_cfp"
    verbose_name = "Call for Papers"
