"""Tests for scheduled decision emails, speaker attendance and the send command."""

from datetime import date, datetime, timedelta
from io import StringIO
from unittest.mock import MagicMock, patch

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from django_conference.cfp.models import (
    DecisionEvent,
    Review,
    Reviewer,
    ScheduledDecisionEmail,
    Speaker,
    SpeakerAttendance,
    Submission,
)
from django_conference.cfp.services import attendance
from django_conference.cfp.services.scheduled_emails import (
    ScheduledEmailService,
    collect_review_feedback,
    email_context,
)
from django_conference.conference.models import Conference

User = get_user_model()


@pytest.fixture
def conference():
    return Conference.objects.create(
        name="MailCon", slug="mailcon", start_date=date(2027, 9, 11), end_date=date(2027, 9, 11)
    )


@pytest.fixture
def speaker(conference):
    user = User.objects.create_user(username="spk", email="spk@example.com", password="pw")
    return Speaker.objects.create(
        user=user, conference=conference, first_name="Ada", last_name="Lovelace", email="spk@example.com"
    )


def _decided(conference, speaker, decision):
    status = Submission.Status.ACCEPTED if decision == "accepted" else Submission.Status.REJECTED
    return Submission.objects.create(
        conference=conference,
        speaker=speaker,
        title="Analytical engines",
        abstract="x" * 120,
        status=status,
        decision_status=decision,
    )


@pytest.fixture
def accepted(conference, speaker):
    return _decided(conference, speaker, "accepted")


@pytest.fixture
def rejected(conference, speaker):
    return _decided(conference, speaker, "rejected")


def _make_due(email):
    ScheduledDecisionEmail.objects.filter(pk=email.pk).update(scheduled_for=timezone.now() - timedelta(minutes=1))
    email.refresh_from_db()
    return email


# =============================================================================
# Scheduling
# =============================================================================


@pytest.mark.django_db
class TestSchedule:
    def test_acceptance_creates_attendance(self, accepted):
        before = timezone.now()

        email = ScheduledEmailService.schedule(accepted, "acceptance", personal_message="See you there")

        assert email.status == ScheduledDecisionEmail.Status.PENDING
        assert email.recipient_email == "spk@example.com"
        assert email.recipient_name == "Ada Lovelace"
        assert email.scheduled_for >= before + timedelta(minutes=30)
        assert SpeakerAttendance.objects.get(submission=accepted).status == SpeakerAttendance.Status.PENDING
        accepted.refresh_from_db()
        assert accepted.decision_email_scheduled_for == email.scheduled_for

    def test_unknown_type(self, accepted):
        with pytest.raises(ValidationError, match="Unknown email type"):
            ScheduledEmailService.schedule(accepted, "maybe")

    def test_decision_must_match(self, rejected):
        with pytest.raises(ValidationError, match="must be accepted"):
            ScheduledEmailService.schedule(rejected, "acceptance")

    def test_duplicate_pending(self, accepted):
        ScheduledEmailService.schedule(accepted, "acceptance")
        with pytest.raises(ValidationError, match="An acceptance email is already scheduled"):
            ScheduledEmailService.schedule(accepted, "acceptance")

    def test_reschedule_after_cancel(self, accepted):
        ScheduledEmailService.cancel(ScheduledEmailService.schedule(accepted, "acceptance"))
        ScheduledEmailService.schedule(accepted, "acceptance")
        assert ScheduledDecisionEmail.objects.filter(status="pending").count() == 1

    def test_rejection_with_coupon_and_feedback(self, conference, rejected):
        for name, text in (("r1", "Tighten the outline."), ("r2", ""), ("r3", "More demos.")):
            reviewer = Reviewer.objects.create(user=User.objects.create_user(username=name), conference=conference)
            Review.objects.create(submission=rejected, reviewer=reviewer, score_overall=2, feedback_to_speaker=text)
        coupon = MagicMock(code="CFPTHXABC123", discount_percent=20, expires_at=timezone.now() + timedelta(days=60))

        with patch(
            "django_conference.cfp.services.scheduled_emails.DecisionService.generate_rejection_coupon",
            return_value=coupon,
        ) as mock_generate:
            email = ScheduledEmailService.schedule(
                rejected, "rejection", coupon_discount_percent=20, coupon_validity_days=60, include_feedback=True
            )

        mock_generate.assert_called_once_with(rejected, 20, 60, actor=None)
        assert email.coupon_code == "CFPTHXABC123"
        assert email.coupon_discount_percent == 20
        assert email.feedback_text == "Tighten the outline.\n\n---\n\nMore demos."
        assert not SpeakerAttendance.objects.exists()

    def test_rejection_explicit_feedback(self, rejected):
        email = ScheduledEmailService.schedule(rejected, "rejection", include_feedback=True, feedback_text="Hi")
        assert email.feedback_text == "Hi"
        assert email.coupon_code == ""

    def test_collect_feedback_empty(self, rejected):
        assert collect_review_feedback(rejected) == ""


@pytest.mark.django_db
class TestCancel:
    def test_cancel_clears_schedule(self, accepted):
        email = ScheduledEmailService.schedule(accepted, "acceptance")

        ScheduledEmailService.cancel(email)

        assert email.status == ScheduledDecisionEmail.Status.CANCELLED
        accepted.refresh_from_db()
        assert accepted.decision_email_scheduled_for is None
        assert DecisionEvent.objects.filter(event_type=DecisionEvent.EventType.EMAIL_CANCELLED).exists()

    def test_cannot_cancel_twice(self, accepted):
        email = ScheduledEmailService.cancel(ScheduledEmailService.schedule(accepted, "acceptance"))
        with pytest.raises(ValidationError, match="Cannot cancel email with status: cancelled"):
            ScheduledEmailService.cancel(email)


# =============================================================================
# Sending
# =============================================================================


@pytest.mark.django_db
class TestSend:
    def test_email_context_links_attendance(self, accepted):
        email = ScheduledEmailService.schedule(accepted, "acceptance")
        token = SpeakerAttendance.objects.get(submission=accepted).token

        context = email_context(email)

        assert context["confirmation_url"] == f"https://tickets.example.com/mailcon/speaker/attendance/{token}/"
        assert context["speaker_name"] == "Ada Lovelace"
        assert context["feedback"] == ""

    def test_email_context_coupon_expiry(self, rejected):
        email = ScheduledEmailService.schedule(rejected, "rejection")
        email.coupon_code = "CFPTHXABC123"
        email.coupon_expires_at = timezone.make_aware(datetime(2027, 3, 5, 12, 0))

        context = email_context(email)

        assert context["coupon_expires_at"] == "March 05, 2027"
        assert context["confirmation_url"] == "https://tickets.example.com/mailcon/speaker/"

    def test_send_now(self, accepted, mailoutbox):
        email = ScheduledEmailService.schedule(accepted, "acceptance")

        assert ScheduledEmailService.send_now(email)

        assert len(mailoutbox) == 1
        assert mailoutbox[0].to == ["spk@example.com"]
        assert "has been accepted to MailCon" in mailoutbox[0].subject
        email.refresh_from_db()
        assert email.status == ScheduledDecisionEmail.Status.SENT
        accepted.refresh_from_db()
        assert accepted.decision_email_sent_at is not None
        assert DecisionEvent.objects.filter(event_type=DecisionEvent.EventType.EMAIL_SENT).exists()

    def test_send_failure_marks_failed(self, accepted):
        email = ScheduledEmailService.schedule(accepted, "acceptance")
        with patch("django.core.mail.EmailMultiAlternatives.send", side_effect=OSError("smtp down")):
            assert not ScheduledEmailService.send_now(email)
        email.refresh_from_db()
        assert email.status == ScheduledDecisionEmail.Status.FAILED
        assert email.failure_reason == "smtp down"

    def test_send_now_requires_pending(self, accepted):
        email = ScheduledEmailService.cancel(ScheduledEmailService.schedule(accepted, "acceptance"))
        with pytest.raises(ValidationError, match="Cannot send email with status"):
            ScheduledEmailService.send_now(email)

    def test_dispatch_due_skips_future(self, accepted, rejected, mailoutbox):
        due = _make_due(ScheduledEmailService.schedule(accepted, "acceptance"))
        ScheduledEmailService.schedule(rejected, "rejection")

        summary = ScheduledEmailService.dispatch_due()

        assert summary.sent == 1
        assert summary.failed == 0
        assert len(mailoutbox) == 1
        due.refresh_from_db()
        assert due.status == ScheduledDecisionEmail.Status.SENT


# =============================================================================
# Attendance
# =============================================================================


@pytest.mark.django_db
class TestAttendance:
    def test_confirm(self, speaker, accepted):
        record = attendance.respond(speaker, accepted, "confirmed")
        assert record.status == SpeakerAttendance.Status.CONFIRMED
        assert record.responded_at is not None

    def test_decline_requires_reason(self, speaker, accepted):
        with pytest.raises(ValidationError, match="reason is required"):
            attendance.respond(speaker, accepted, "declined")
        record = attendance.respond(speaker, accepted, "declined", "schedule_conflict", "Sorry")
        assert record.decline_reason == "schedule_conflict"
        assert record.decline_notes == "Sorry"

    def test_only_once(self, speaker, accepted):
        attendance.respond(speaker, accepted, "confirmed")
        with pytest.raises(ValidationError, match="already responded"):
            attendance.respond(speaker, accepted, "declined", "other")

    def test_other_speaker(self, conference, accepted):
        other = Speaker.objects.create(
            user=User.objects.create_user(username="other"), conference=conference, email="o@example.com"
        )
        with pytest.raises(PermissionDenied, match="Access denied"):
            attendance.respond(other, accepted, "confirmed")

    def test_only_accepted(self, speaker, rejected):
        with pytest.raises(ValidationError, match="Only accepted submissions"):
            attendance.respond(speaker, rejected, "confirmed")


# =============================================================================
# send_decision_emails command
# =============================================================================


@pytest.mark.django_db
class TestSendDecisionEmailsCommand:
    def test_nothing_due(self):
        out = StringIO()
        call_command("send_decision_emails", stdout=out)
        assert "No decision emails due." in out.getvalue()

    def test_dry_run(self, accepted, mailoutbox):
        _make_due(ScheduledEmailService.schedule(accepted, "acceptance"))
        out = StringIO()

        call_command("send_decision_emails", "--dry-run", stdout=out)

        assert "acceptance: spk@example.com (Analytical engines)" in out.getvalue()
        assert "1 decision email(s) due." in out.getvalue()
        assert mailoutbox == []

    def test_sends(self, accepted, mailoutbox):
        _make_due(ScheduledEmailService.schedule(accepted, "acceptance"))
        out = StringIO()

        call_command("send_decision_emails", stdout=out)

        assert "Sent 1 decision email(s), 0 failed." in out.getvalue()
        assert len(mailoutbox) == 1

    def test_invalid_limit(self):
        with pytest.raises(CommandError, match="--limit"):
            call_command("send_decision_emails", "--limit", "0")
