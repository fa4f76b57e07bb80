"""Template-based email sending with a fixed pause between sends.

Every email is a pair of templates under ``django_conference/emails/``: a
``.txt`` body whose first line is the subject, and an optional ``.html``
alternative. Bulk sends go out one at a time with
``DJANGO_CONFERENCE["email"]["send_interval_ms"]`` between them (600 ms by
default, about 1.67 emails per second) so the upstream provider's rate limit
is never hit. Emails due later are stored as ``OutboundEmail`` rows and
sent by the ``send_queued_emails`` management command.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from django.core.mail import EmailMultiAlternatives
from django.db import IntegrityError, transaction
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils import timezone

from django_conference.api import serialize
from django_conference.notifications.models import OutboundEmail
from django_conference.settings import get_config

logger = logging.getLogger(__name__)

TEMPLATE_DIR = "django_conference/emails"


@dataclass
class OutgoingEmail:
    """An email ready to render and send."""

    to: str
    template: str
    context: dict[str, Any] = field(default_factory=dict)


@dataclass
class SendResult:
    """Outcome of a single send."""

    email: str
    success: bool
    error: str = ""


@dataclass
class RenderedEmail:
    subject: str
    text: str
    html: str | None


@dataclass
class DispatchSummary:
    """Counts from one ``dispatch_due`` run."""

    sent: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed


def pause_between_sends() -> None:
    interval = get_config().email.send_interval_ms
    if interval > 0:
        time.sleep(interval / 1000)


class EmailService:
    """Stateless helpers for rendering, sending and queueing email."""

    @staticmethod
    def render(template: str, context: dict[str, Any]) -> RenderedEmail:
        """Render *template* into subject, text body and optional HTML body.

        Raises:
            TemplateDoesNotExist: If the ``.txt`` template is missing.
        """
        text = render_to_string(f"{TEMPLATE_DIR}/{template}.txt", context)
        subject, _, body = text.lstrip().partition("\n")
        try:
            html = render_to_string(f"{TEMPLATE_DIR}/{template}.html", context)
        except TemplateDoesNotExist:
            html = None
        return RenderedEmail(subject=" ".join(subject.split()), text=body.lstrip("\n"), html=html)

    @staticmethod
    def send(to: str, template: str, context: dict[str, Any]) -> SendResult:
        """Render and send one email. Failures are reported, not raised."""
        config = get_config().email
        try:
            rendered = EmailService.render(template, context)
            message = EmailMultiAlternatives(
                subject=rendered.subject,
                body=rendered.text,
                from_email=config.from_email,
                to=[to],
                reply_to=[config.reply_to] if config.reply_to else None,
            )
            if rendered.html:
                message.attach_alternative(rendered.html, "text/html")
            message.send()
        except Exception as exc:
            logger.exception("Failed to send %s email to %s", template, to)
            return SendResult(email=to, success=False, error=str(exc))
        logger.info("Sent %s email to %s", template, to)
        return SendResult(email=to, success=True)

    @staticmethod
    def send_message(message: OutgoingEmail) -> SendResult:
        return EmailService.send(message.to, message.template, message.context)

    @staticmethod
    def send_batch(messages: list[OutgoingEmail]) -> list[SendResult]:
        """Send *messages* one after another, pausing between sends.

        There is no pause after the last message. Individual failures never
        abort the batch.
        """
        results: list[SendResult] = []
        for index, message in enumerate(messages):
            logger.debug("Sending email %s/%s to %s", index + 1, len(messages), message.to)
            results.append(EmailService.send_message(message))
            if index < len(messages) - 1:
                pause_between_sends()

        succeeded = sum(1 for r in results if r.success)
        if messages:
            logger.info("Email batch complete: %s sent, %s failed", succeeded, len(results) - succeeded)
        return results

    @staticmethod
    def queue(
        *,
        to: str,
        template: str,
        context: dict[str, Any],
        kind: str = OutboundEmail.Kind.GENERIC,
        send_after: datetime | None = None,
        dedupe_key: str = "",
        conference: object | None = None,
    ) -> OutboundEmail:
        """Store an email for later delivery.

        When *dedupe_key* is set and an email with that key already exists,
        the existing row is returned unchanged.
        """
        if dedupe_key:
            existing = OutboundEmail.objects.filter(dedupe_key=dedupe_key).first()
            if existing is not None:
                return existing
        try:
            with transaction.atomic():
                return OutboundEmail.objects.create(
                    conference=conference,
                    kind=kind,
                    to=to,
                    template=template,
                    context=serialize(context),
                    send_after=send_after or timezone.now(),
                    dedupe_key=dedupe_key,
                )
        except IntegrityError:
            return OutboundEmail.objects.get(dedupe_key=dedupe_key)

    @staticmethod
    def cancel_pending(to: str, kind: str, conference: object | None = None) -> int:
        """Cancel pending emails of *kind* addressed to *to*; return the count."""
        qs = OutboundEmail.objects.filter(to__iexact=to, kind=kind, status=OutboundEmail.Status.PENDING)
        if conference is not None:
            qs = qs.filter(conference=conference)
        cancelled = qs.update(status=OutboundEmail.Status.CANCELLED, updated_at=timezone.now())
        if cancelled:
            logger.info("Cancelled %s pending %s emails to %s", cancelled, kind, to)
        return cancelled

    @staticmethod
    def dispatch_due(now: datetime | None = None, limit: int = 100) -> DispatchSummary:
        """Send up to *limit* pending emails whose ``send_after`` has passed."""
        now = now or timezone.now()
        due = list(
            OutboundEmail.objects.filter(status=OutboundEmail.Status.PENDING, send_after__lte=now).order_by(
                "send_after", "id"
            )[:limit]
        )
        summary = DispatchSummary()
        for index, email in enumerate(due):
            result = EmailService.send(email.to, email.template, email.context)
            email.attempts += 1
            if result.success:
                email.status = OutboundEmail.Status.SENT
                email.sent_at = timezone.now()
                email.error = ""
                summary.sent += 1
            else:
                email.status = OutboundEmail.Status.FAILED
                email.error = result.error
                summary.failed += 1
            email.save(update_fields=["status", "sent_at", "attempts", "error", "updated_at"])
            if index < len(due) - 1:
                pause_between_sends()

        if due:
            logger.info("Dispatched queued emails: %s sent, %s failed", summary.sent, summary.failed)
        return summary
