"""Delayed acceptance and rejection emails.

Decision emails are held for ``decision_email_delay_minutes`` so the
committee can cancel a mistake before the speaker hears about it. The
``send_decision_emails`` management command sends whatever has come due.
"""

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_conference.cfp.models import DecisionEvent, ScheduledDecisionEmail, SpeakerAttendance, Submission
from django_conference.cfp.services.decisions import DecisionService, log_decision_event
from django_conference.notifications.services import DispatchSummary, EmailService, pause_between_sends
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)

_TEMPLATES = {
    ScheduledDecisionEmail.EmailType.ACCEPTANCE: "cfp_acceptance",
    ScheduledDecisionEmail.EmailType.REJECTION: "cfp_rejection",
}
_REQUIRED_DECISION = {
    ScheduledDecisionEmail.EmailType.ACCEPTANCE: Submission.DecisionStatus.ACCEPTED,
    ScheduledDecisionEmail.EmailType.REJECTION: Submission.DecisionStatus.REJECTED,
}


def collect_review_feedback(submission: Submission) -> str:
    """Join the non-empty speaker feedback from all reviews."""
    notes = [
        text.strip()
        for text in submission.reviews.order_by("created_at").values_list("feedback_to_speaker", flat=True)
        if text and text.strip()
    ]
    return "\n\n---\n\n".join(notes)


def email_context(email: ScheduledDecisionEmail) -> dict[str, Any]:
    """Template context for a scheduled decision email."""
    submission = email.submission
    conference = submission.conference
    site_url = get_config().email.site_url.rstrip("/")
    context: dict[str, Any] = {
        "speaker_name": email.recipient_name or email.recipient_email,
        "talk_title": submission.title,
        "submission_type": submission.get_submission_type_display().lower(),
        "conference_name": conference.name,
        "personal_message": email.personal_message,
        "confirmation_url": f"{site_url}/{conference.slug}/speaker/",
        "feedback": email.feedback_text if email.include_feedback else "",
        "coupon_code": email.coupon_code,
        "coupon_discount_percent": email.coupon_discount_percent,
        "coupon_expires_at": (
            timezone.localtime(email.coupon_expires_at).strftime("%B %d, %Y") if email.coupon_expires_at else ""
        ),
    }
    attendance = SpeakerAttendance.objects.filter(submission=submission).first()
    if attendance is not None:
        context["confirmation_url"] = f"{site_url}/{conference.slug}/speaker/attendance/{attendance.token}/"
    return context


class ScheduledEmailService:
    """Stateless scheduling, cancellation and delivery of decision emails."""

    @staticmethod
    @transaction.atomic
    def schedule(
        submission: Submission,
        email_type: str,
        actor: "AbstractBaseUser | None" = None,
        *,
        personal_message: str = "",
        coupon_discount_percent: int | None = None,
        coupon_validity_days: int | None = None,
        include_feedback: bool = False,
        feedback_text: str = "",
    ) -> ScheduledDecisionEmail:
        """Queue the decision email for *submission*.

        Raises:
            ValidationError: If an email of the same type is already pending
                or the submission's decision does not match *email_type*.
            stripe.StripeError: If a rejection coupon cannot be created.
        """
        if email_type not in _TEMPLATES:
            raise ValidationError(f"Unknown email type: {email_type}")

        submission = Submission.objects.select_for_update().select_related("speaker", "conference").get(
            pk=submission.pk
        )
        pending = ScheduledDecisionEmail.objects.filter(
            submission=submission,
            email_type=email_type,
            status=ScheduledDecisionEmail.Status.PENDING,
        )
        if pending.exists():
            article = "An acceptance" if email_type == ScheduledDecisionEmail.EmailType.ACCEPTANCE else "A rejection"
            raise ValidationError(f"{article} email is already scheduled for this submission")
        if submission.decision_status != _REQUIRED_DECISION[email_type]:
            raise ValidationError(f"Submission must be {_REQUIRED_DECISION[email_type]} to send this email")

        speaker = submission.speaker
        email = ScheduledDecisionEmail(
            submission=submission,
            email_type=email_type,
            recipient_email=speaker.email,
            recipient_name=speaker.full_name,
            personal_message=personal_message,
            scheduled_for=timezone.now() + timedelta(minutes=get_config().cfp.decision_email_delay_minutes),
            scheduled_by=actor if actor is not None and actor.is_authenticated else None,
        )

        if email_type == ScheduledDecisionEmail.EmailType.ACCEPTANCE:
            SpeakerAttendance.objects.get_or_create(submission=submission, defaults={"speaker": speaker})
        else:
            if coupon_discount_percent:
                coupon = DecisionService.generate_rejection_coupon(
                    submission, coupon_discount_percent, coupon_validity_days, actor=actor
                )
                email.coupon_code = coupon.code
                email.coupon_discount_percent = coupon.discount_percent
                email.coupon_expires_at = coupon.expires_at
            if include_feedback:
                email.include_feedback = True
                email.feedback_text = feedback_text or collect_review_feedback(submission)

        email.save()
        submission.decision_email_scheduled_for = email.scheduled_for
        submission.save(update_fields=["decision_email_scheduled_for", "updated_at"])
        logger.info(
            "Scheduled %s email for submission %s at %s", email_type, submission.pk, email.scheduled_for.isoformat()
        )
        return email

    @staticmethod
    @transaction.atomic
    def cancel(email: ScheduledDecisionEmail, actor: "AbstractBaseUser | None" = None) -> ScheduledDecisionEmail:
        if email.status != ScheduledDecisionEmail.Status.PENDING:
            raise ValidationError(f"Cannot cancel email with status: {email.status}")
        email.status = ScheduledDecisionEmail.Status.CANCELLED
        email.save(update_fields=["status"])

        submission = email.submission
        submission.decision_email_scheduled_for = None
        submission.decision_email_sent_at = None
        submission.save(update_fields=["decision_email_scheduled_for", "decision_email_sent_at", "updated_at"])
        log_decision_event(
            submission,
            DecisionEvent.EventType.EMAIL_CANCELLED,
            actor=actor,
            metadata={"email_id": email.pk, "email_type": email.email_type},
        )
        logger.info("Cancelled %s email %s for submission %s", email.email_type, email.pk, submission.pk)
        return email

    @staticmethod
    def mark_sent(email: ScheduledDecisionEmail) -> None:
        now = timezone.now()
        with transaction.atomic():
            email.status = ScheduledDecisionEmail.Status.SENT
            email.sent_at = now
            email.failure_reason = ""
            email.save(update_fields=["status", "sent_at", "failure_reason"])
            submission = email.submission
            submission.decision_email_sent_at = now
            submission.save(update_fields=["decision_email_sent_at", "updated_at"])
            log_decision_event(
                submission,
                DecisionEvent.EventType.EMAIL_SENT,
                metadata={"email_id": email.pk, "email_type": email.email_type},
            )

    @staticmethod
    def mark_failed(email: ScheduledDecisionEmail, reason: str) -> None:
        email.status = ScheduledDecisionEmail.Status.FAILED
        email.failure_reason = reason
        email.save(update_fields=["status", "failure_reason"])
        logger.warning("Decision email %s failed: %s", email.pk, reason)

    @staticmethod
    def send_now(email: ScheduledDecisionEmail) -> bool:
        """Render and send *email* immediately, recording the outcome."""
        if email.status != ScheduledDecisionEmail.Status.PENDING:
            raise ValidationError(f"Cannot send email with status: {email.status}")
        result = EmailService.send(email.recipient_email, _TEMPLATES[email.email_type], email_context(email))
        if result.success:
            ScheduledEmailService.mark_sent(email)
        else:
            ScheduledEmailService.mark_failed(email, result.error or "Unknown error")
        return result.success

    @staticmethod
    def dispatch_due(now: datetime | None = None, limit: int = 100) -> DispatchSummary:
        """Send every pending decision email whose time has come."""
        now = now or timezone.now()
        due = list(
            ScheduledDecisionEmail.objects.filter(
                status=ScheduledDecisionEmail.Status.PENDING,
                scheduled_for__lte=now,
            )
            .select_related("submission__conference")
            .order_by("scheduled_for", "pk")[:limit]
        )
        summary = DispatchSummary()
        for index, email in enumerate(due):
            if ScheduledEmailService.send_now(email):
                summary.sent += 1
            else:
                summary.failed += 1
            if index < len(due) - 1:
                pause_between_sends()
        if due:
            logger.info("Decision emails dispatched: %s sent, %s failed", summary.sent, summary.failed)
        return summary
