"""Django app configuration for the notifications app."""

from django.apps import AppConfig


class DjangoConferenceNotificationsConfig(AppConfig):
    """Configuration for the notifications app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "django_conference.notifications"
    label = "conference_notifications"
    verbose_name = "Notifications"

    def ready(self) -> None:
        """Connect the ``order_paid`` receivers."""
        import django_conference.notifications.receivers  # noqa: F401, PLC0415
