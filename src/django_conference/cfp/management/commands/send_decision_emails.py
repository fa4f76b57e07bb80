"""Management command to send scheduled CFP decision emails.

Usage::

    manage.py send_decision_emails
    manage.py send_decision_emails --dry-run

Run it every few minutes. Emails become due once their cancellation window
(``DJANGO_CONFERENCE["cfp"]["decision_email_delay_minutes"]``) has passed.
"""

from typing import TYPE_CHECKING, Any

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from django_conference.cfp.models import ScheduledDecisionEmail
from django_conference.cfp.services.scheduled_emails import ScheduledEmailService

if TYPE_CHECKING:
    import argparse


class Command(BaseCommand):
    """Send pending acceptance and rejection emails that are due."""

    help = "Send scheduled CFP decision emails that are due"

    def add_arguments(self, parser: "argparse.ArgumentParser") -> None:
        parser.add_argument("--limit", type=int, default=100, help="Maximum number of emails to send.")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            default=False,
            help="List due emails without sending them.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        limit: int = options["limit"]
        if limit < 1:
            raise CommandError("--limit must be at least 1.")

        if options["dry_run"]:
            due = ScheduledDecisionEmail.objects.filter(
                status=ScheduledDecisionEmail.Status.PENDING, scheduled_for__lte=timezone.now()
            ).select_related("submission")[:limit]
            for email in due:
                self.stdout.write(f"  {email.email_type}: {email.recipient_email} ({email.submission.title})")
            self.stdout.write(f"{len(due)} decision email(s) due.")
            return

        summary = ScheduledEmailService.dispatch_due(limit=limit)
        if summary.total == 0:
            self.stdout.write("No decision emails due.")
            return

        style = self.style.SUCCESS if summary.failed == 0 else self.style.WARNING
        self.stdout.write(style(f"Sent {summary.sent} decision email(s), {summary.failed} failed."))
