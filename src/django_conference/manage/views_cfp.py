"""CFP back-office: triage, decisions, decision emails and reviewers.

Reached by conference managers and by active reviewers with the
``super_admin`` role.
"""

import logging
from typing import TYPE_CHECKING, Any

import stripe
from django.contrib.auth import get_user_model
from django.db import transaction
from django.db.models import Count, Prefetch
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_conference.api import ApiError, JsonApiMixin, serialize
from django_conference.cfp.forms import BulkDecisionForm, DecisionForm, ReviewerInviteForm, ScheduleEmailForm
from django_conference.cfp.models import Review, Reviewer, ScheduledDecisionEmail, Speaker, Submission
from django_conference.cfp.services import scoring
from django_conference.cfp.services.decisions import DecisionService
from django_conference.cfp.services.reviews import review_payload, submission_summary
from django_conference.cfp.services.scheduled_emails import ScheduledEmailService
from django_conference.manage.views import ManagePermissionMixin, is_manager
from django_conference.registration.stripe_client import StripeNotConfiguredError

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)

_LIST_FILTERS = ("status", "decision_status", "submission_type")
_COMPUTED_FILTERS = ("classification", "score_bucket", "coverage_bucket")


class CFPAdminPermissionMixin(ManagePermissionMixin):
    """Managers, plus active reviewers with the ``super_admin`` role."""

    def has_permission(self, user: object) -> bool:
        if is_manager(user):
            return True
        return Reviewer.objects.filter(
            user=user,
            conference=self.conference,
            is_active=True,
            role=Reviewer.Role.SUPER_ADMIN,
        ).exists()


class CFPAdminView(JsonApiMixin, CFPAdminPermissionMixin, View):
    """Base for CFP back-office endpoints."""

    def get_submission(self, submission_id: int) -> Submission:
        return get_object_or_404(
            Submission.objects.select_related("speaker", "conference"),
            pk=submission_id,
            conference=self.conference,
        )

    def pending_email(self, submission_id: int) -> ScheduledDecisionEmail:
        submission = self.get_submission(submission_id)
        email = (
            submission.scheduled_emails.filter(status=ScheduledDecisionEmail.Status.PENDING)
            .order_by("-created_at")
            .first()
        )
        if email is None:
            raise ApiError("No pending email for this submission", 404)
        email.submission = submission
        return email

    def reviewer_count(self) -> int:
        """Reviewers who can score submissions; the base for coverage."""
        return (
            Reviewer.objects.filter(conference=self.conference, is_active=True)
            .exclude(role=Reviewer.Role.READONLY)
            .count()
        )


def triage(submission: Submission, total_reviewers: int) -> dict[str, Any]:
    """Stats, classification and buckets for a submission with prefetched reviews."""
    stats = scoring.compute_stats(submission.reviews.all(), total_reviewers)
    return {
        "stats": stats.as_dict(),
        "classification": scoring.classify(stats),
        "score_bucket": scoring.score_bucket(stats.avg_overall),
        "coverage_bucket": scoring.coverage_bucket(stats.coverage_percent),
    }


def decision_fields(submission: Submission) -> dict[str, Any]:
    return {
        "decision_status": submission.decision_status,
        "decision_at": submission.decision_at,
        "decision_notes": submission.decision_notes,
        "coupon_code": submission.coupon_code,
        "decision_email_scheduled_for": submission.decision_email_scheduled_for,
        "decision_email_sent_at": submission.decision_email_sent_at,
    }


def scheduled_email_payload(email: ScheduledDecisionEmail) -> dict[str, Any]:
    return serialize(
        {
            "id": email.pk,
            "email_type": email.email_type,
            "status": email.status,
            "recipient_email": email.recipient_email,
            "recipient_name": email.recipient_name,
            "personal_message": email.personal_message,
            "coupon_code": email.coupon_code,
            "coupon_discount_percent": email.coupon_discount_percent,
            "coupon_expires_at": email.coupon_expires_at,
            "include_feedback": email.include_feedback,
            "scheduled_for": email.scheduled_for,
            "sent_at": email.sent_at,
            "failure_reason": email.failure_reason,
        }
    )


class SubmissionTriageListView(CFPAdminView):
    """Every non-draft submission with review stats and triage class.

    Filters: ``status``, ``decision_status``, ``submission_type``,
    ``classification``, ``score_bucket`` and ``coverage_bucket``.
    """

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        submissions = (
            Submission.objects.filter(conference=self.conference)
            .exclude(status=Submission.Status.DRAFT)
            .select_related("speaker")
            .prefetch_related("tags", "reviews")
            .order_by("submitted_at", "pk")
        )
        for name in _LIST_FILTERS:
            value = request.GET.get(name, "").strip()
            if value:
                submissions = submissions.filter(**{name: value})

        total_reviewers = self.reviewer_count()
        wanted = {name: request.GET.get(name, "").strip() for name in _COMPUTED_FILTERS}
        rows = []
        for submission in submissions:
            computed = triage(submission, total_reviewers)
            if any(value and computed[name] != value for name, value in wanted.items()):
                continue
            row = submission_summary(submission, show_speaker=True)
            row.update(decision_fields(submission))
            row.update(computed)
            rows.append(row)
        return JsonResponse(serialize({"count": len(rows), "total_reviewers": total_reviewers, "submissions": rows}))


class SubmissionTriageDetailView(CFPAdminView):
    """One submission with every review and its decision history."""

    def get(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        submission = get_object_or_404(
            Submission.objects.select_related("speaker").prefetch_related(
                "tags",
                Prefetch("reviews", queryset=Review.objects.select_related("reviewer__user")),
            ),
            pk=submission_id,
            conference=self.conference,
        )
        data = submission_summary(submission, show_speaker=True)
        data.update(decision_fields(submission))
        data.update(triage(submission, self.reviewer_count()))
        data["workshop_expected_compensation"] = submission.workshop_expected_compensation
        data["workshop_special_requirements"] = submission.workshop_special_requirements
        data["reviews"] = [
            {**review_payload(review), "reviewer": review.reviewer.user.get_username()}
            for review in submission.reviews.all()
        ]
        data["decision_events"] = list(
            submission.decision_events.values(
                "event_type", "previous_status", "new_status", "actor_id", "notes", "metadata", "created_at"
            )
        )
        data["scheduled_emails"] = [scheduled_email_payload(e) for e in submission.scheduled_emails.all()]
        return JsonResponse(serialize(data))


class SubmissionDecisionView(CFPAdminView):
    def post(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(DecisionForm)
        submission = self.get_submission(submission_id)
        try:
            result = DecisionService.make_decision(
                submission,
                data["decision"],
                request.user,
                data["notes"],
                generate_coupon=data["generate_coupon"],
                coupon_discount_percent=data["coupon_discount_percent"],
            )
        except StripeNotConfiguredError:
            raise ApiError("Stripe is not configured. The decision was not saved.", 503) from None
        except stripe.StripeError:
            logger.exception("Coupon creation failed for submission %s", submission.pk)
            raise ApiError("Payment provider error. The decision was not saved.", 502) from None

        payload: dict[str, Any] = {"id": submission.pk, "changed": result.changed, "status": submission.status}
        payload.update(decision_fields(result.submission))
        return JsonResponse(serialize(payload))


class BulkDecisionView(CFPAdminView):
    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(BulkDecisionForm)
        result = DecisionService.bulk_decide(
            data["submission_ids"], data["decision"], request.user, conference=self.conference
        )
        return JsonResponse({"success": result.success, "failed": result.failed, "errors": result.errors})


class ScheduleEmailView(CFPAdminView):
    """List (GET), schedule (POST) or cancel (DELETE) decision emails."""

    def get(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        submission = self.get_submission(submission_id)
        emails = submission.scheduled_emails.order_by("-created_at")
        return JsonResponse({"emails": [scheduled_email_payload(e) for e in emails]})

    def post(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(ScheduleEmailForm)
        submission = self.get_submission(submission_id)
        try:
            email = ScheduledEmailService.schedule(
                submission,
                data["email_type"],
                request.user,
                personal_message=data["personal_message"],
                coupon_discount_percent=data["coupon_discount_percent"],
                coupon_validity_days=data["coupon_validity_days"],
                include_feedback=data["include_feedback"],
                feedback_text=data["feedback_text"],
            )
        except StripeNotConfiguredError:
            raise ApiError("Stripe is not configured. The email was not scheduled.", 503) from None
        except stripe.StripeError:
            logger.exception("Coupon creation failed for submission %s", submission.pk)
            raise ApiError("Payment provider error. The email was not scheduled.", 502) from None
        return JsonResponse(scheduled_email_payload(email), status=201)

    def delete(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        email = self.pending_email(submission_id)
        ScheduledEmailService.cancel(email, actor=request.user)
        return JsonResponse(scheduled_email_payload(email))


class SendEmailNowView(CFPAdminView):
    """Skip the cancellation window and send the pending email."""

    def post(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        email = self.pending_email(submission_id)
        sent = ScheduledEmailService.send_now(email)
        return JsonResponse({"sent": sent, "email": scheduled_email_payload(email)}, status=200 if sent else 502)


def reviewer_payload(reviewer: Reviewer) -> dict[str, Any]:
    user = reviewer.user
    return serialize(
        {
            "id": reviewer.pk,
            "email": user.email,
            "name": user.get_full_name(),
            "role": reviewer.role,
            "can_see_speaker_identity": reviewer.can_see_speaker_identity,
            "is_active": reviewer.is_active,
            "accepted_at": reviewer.accepted_at,
            "review_count": getattr(reviewer, "review_count", None),
        }
    )


class ReviewerListView(CFPAdminView):
    """List reviewers (GET) or invite one by email (POST)."""

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewers = (
            Reviewer.objects.filter(conference=self.conference)
            .select_related("user")
            .annotate(review_count=Count("reviews"))
            .order_by("-is_active", "user__email")
        )
        return JsonResponse({"reviewers": [reviewer_payload(r) for r in reviewers]})

    @transaction.atomic
    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(ReviewerInviteForm)
        email = data["email"].lower()
        user_model = get_user_model()
        user = user_model.objects.filter(email__iexact=email).first()
        if user is None:
            first, _, last = data["name"].strip().partition(" ")
            user = user_model.objects.create_user(
                username=email, email=email, password=None, first_name=first, last_name=last
            )
        elif Reviewer.objects.filter(user=user, conference=self.conference).exists():
            raise ApiError("Reviewer with this email already exists", 409)

        reviewer = Reviewer.objects.create(
            user=user,
            conference=self.conference,
            role=data["role"] or Reviewer.Role.REVIEWER,
            can_see_speaker_identity=data["can_see_speaker_identity"],
            invited_by=request.user,
        )
        logger.info("User %s invited %s as %s reviewer", request.user.pk, email, reviewer.role)
        return JsonResponse(reviewer_payload(reviewer), status=201)


class ReviewerDeactivateView(CFPAdminView):
    def post(self, request: "HttpRequest", reviewer_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewers = Reviewer.objects.select_related("user")
        reviewer = get_object_or_404(reviewers, pk=reviewer_id, conference=self.conference)
        reviewer.is_active = False
        reviewer.save(update_fields=["is_active"])
        logger.info("Reviewer %s deactivated by user %s", reviewer.pk, request.user.pk)
        return JsonResponse(reviewer_payload(reviewer))


class SpeakerListView(CFPAdminView):
    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        speakers = (
            Speaker.objects.filter(conference=self.conference)
            .annotate(submission_count=Count("submissions"))
            .order_by("last_name", "first_name")
        )
        rows = [
            {
                "id": speaker.pk,
                "name": speaker.full_name,
                "email": speaker.email,
                "company": speaker.company,
                "job_title": speaker.job_title,
                "is_profile_complete": speaker.is_profile_complete,
                "submission_count": speaker.submission_count,
            }
            for speaker in speakers
        ]
        return JsonResponse({"speakers": rows})
