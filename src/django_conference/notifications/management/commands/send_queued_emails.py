"""Management command to send queued emails whose send time has passed.

Usage::

    # Send up to 100 due emails (default)
    manage.py send_queued_emails

    # Send a larger batch
    manage.py send_queued_emails --limit 500

Intended to run every few minutes from cron or a scheduler. Sends are spaced
by ``DJANGO_CONFERENCE["email"]["send_interval_ms"]``.
"""

from typing import TYPE_CHECKING, Any

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from django_conference.notifications.models import OutboundEmail
from django_conference.notifications.services import EmailService

if TYPE_CHECKING:
    import argparse


class Command(BaseCommand):
    """Send pending queued emails that are due."""

    help = "Send pending queued emails that are due"

    def add_arguments(self, parser: "argparse.ArgumentParser") -> None:
        """Register command-line arguments."""
        parser.add_argument(
            "--limit",
            type=int,
            default=100,
            help="Maximum number of emails to send in this run.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            default=False,
            help="Report how many emails are due without sending them.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        """Execute the send_queued_emails command."""
        limit: int = options["limit"]
        if limit < 1:
            raise CommandError("--limit must be at least 1.")

        if options["dry_run"]:
            due = OutboundEmail.objects.filter(
                status=OutboundEmail.Status.PENDING, send_after__lte=timezone.now()
            ).count()
            self.stdout.write(f"{due} queued email(s) due.")
            return

        summary = EmailService.dispatch_due(limit=limit)
        if summary.total == 0:
            self.stdout.write("No queued emails due.")
            return

        style = self.style.SUCCESS if summary.failed == 0 else self.style.WARNING
        self.stdout.write(style(f"Sent {summary.sent} email(s), {summary.failed} failed."))
