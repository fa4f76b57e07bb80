"""JSON endpoints for speakers and reviewers.

Speaker endpoints act on the requesting user's speaker profile for the
conference, created on first access. Reviewer endpoints require an active
``Reviewer`` record.
"""

from typing import TYPE_CHECKING, Any

from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_conference.api import JsonApiMixin, serialize
from django_conference.cfp.forms import (
    AttendanceForm,
    ReviewForm,
    SpeakerProfileForm,
    SubmissionForm,
    SubmissionStatusForm,
)
from django_conference.cfp.models import Review, Reviewer, Speaker, Submission, Tag
from django_conference.cfp.services import attendance
from django_conference.cfp.services.reviews import ReviewService, review_payload, submission_summary
from django_conference.cfp.services.submissions import SubmissionService, get_or_create_speaker
from django_conference.conference.views import ConferenceMixin
from django_conference.features import FeatureRequiredMixin

if TYPE_CHECKING:
    from django.http import HttpRequest

_PROFILE_FIELDS = (
    "first_name",
    "last_name",
    "email",
    "job_title",
    "company",
    "bio",
    "linkedin_url",
    "github_url",
    "twitter_url",
    "bluesky_url",
    "mastodon_url",
    "profile_image_url",
)


def speaker_payload(speaker: Speaker) -> dict[str, Any]:
    data: dict[str, Any] = {name: getattr(speaker, name) for name in _PROFILE_FIELDS}
    data["id"] = speaker.pk
    data["is_profile_complete"] = speaker.is_profile_complete
    return data


def submission_payload(submission: Submission) -> dict[str, Any]:
    """The speaker's own view of a submission."""
    return serialize(
        {
            "id": submission.pk,
            "title": submission.title,
            "abstract": submission.abstract,
            "submission_type": submission.submission_type,
            "talk_level": submission.talk_level,
            "additional_notes": submission.additional_notes,
            "outline": submission.outline,
            "slides_url": submission.slides_url,
            "tags": [tag.name for tag in submission.tags.all()],
            "workshop_duration_hours": submission.workshop_duration_hours,
            "workshop_expected_compensation": submission.workshop_expected_compensation,
            "workshop_special_requirements": submission.workshop_special_requirements,
            "workshop_max_participants": submission.workshop_max_participants,
            "status": submission.status,
            "submitted_at": submission.submitted_at,
            "withdrawn_at": submission.withdrawn_at,
            "created_at": submission.created_at,
            "updated_at": submission.updated_at,
        }
    )


class CFPView(JsonApiMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Base for speaker endpoints."""

    required_feature = "cfp"

    def get_speaker(self) -> Speaker:
        return get_or_create_speaker(self.request.user, self.conference)

    def get_submission(self, submission_id: int) -> Submission:
        return get_object_or_404(
            Submission.objects.select_related("speaker", "conference").prefetch_related("tags"),
            pk=submission_id,
            speaker=self.get_speaker(),
        )


class SpeakerProfileView(CFPView):
    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        return JsonResponse(speaker_payload(self.get_speaker()))

    def put(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        """Update the fields present in the body; others are left alone."""
        body = self.parse_body()
        data = self.bind_form(SpeakerProfileForm, data=body)
        speaker = self.get_speaker()
        for name in _PROFILE_FIELDS:
            if name in body and not (name == "email" and not data[name]):
                setattr(speaker, name, data[name])
        speaker.save()
        return JsonResponse(speaker_payload(speaker))


class SubmissionListView(CFPView):
    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        submissions = self.get_speaker().submissions.prefetch_related("tags").order_by("-created_at")
        return JsonResponse({"submissions": [submission_payload(s) for s in submissions]})

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(SubmissionForm)
        submission = SubmissionService.create(self.get_speaker(), data)
        return JsonResponse(submission_payload(submission), status=201)


class SubmissionDetailView(CFPView):
    def get(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        return JsonResponse(submission_payload(self.get_submission(submission_id)))

    def put(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        submission = self.get_submission(submission_id)
        data = self.bind_form(SubmissionForm)
        SubmissionService.update(submission, data)
        return JsonResponse(submission_payload(submission))

    def delete(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        SubmissionService.delete(self.get_submission(submission_id))
        return JsonResponse({"deleted": True})


class SubmissionStatusView(CFPView):
    """Submit, withdraw or reopen a submission."""

    def post(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        action = self.bind_form(SubmissionStatusForm)["action"]
        submission = self.get_submission(submission_id)
        getattr(SubmissionService, action)(submission)
        return JsonResponse(submission_payload(submission))


class AttendanceView(CFPView):
    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(AttendanceForm)
        speaker = self.get_speaker()
        submission = get_object_or_404(Submission, pk=data["submission_id"], conference=self.conference)
        record = attendance.respond(
            speaker,
            submission,
            data["response"],
            decline_reason=data["decline_reason"],
            decline_notes=data["decline_notes"],
        )
        return JsonResponse(
            serialize({"submission_id": submission.pk, "status": record.status, "responded_at": record.responded_at})
        )


class TagListView(CFPView):
    login_required = False

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        tags = Tag.objects.order_by("-is_suggested", "name").values("name", "is_suggested")
        return JsonResponse({"tags": list(tags)})


class ReviewerView(JsonApiMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Base for reviewer endpoints. Non-reviewers get a 403."""

    required_feature = ("cfp", "reviews")

    def get_reviewer(self) -> Reviewer:
        return ReviewService.require_reviewer(self.request.user, self.conference)

    def get_submission(self, submission_id: int) -> Submission:
        return get_object_or_404(ReviewService.reviewable_submissions(self.conference), pk=submission_id)


class ReviewerDashboardView(ReviewerView):
    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewer = self.get_reviewer()
        dashboard = ReviewService.dashboard(reviewer)
        return JsonResponse(
            serialize(
                {
                    "reviewer": {"role": reviewer.role, "can_see_speaker_identity": reviewer.can_see_speaker_identity},
                    "submissions": dashboard.submissions,
                    "reviewed_count": dashboard.reviewed_count,
                    "pending_count": dashboard.pending_count,
                }
            )
        )


class ReviewerSubmissionView(ReviewerView):
    def get(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewer = self.get_reviewer()
        submission = self.get_submission(submission_id)
        data = submission_summary(submission, show_speaker=reviewer.can_see_speaker_identity)
        data["review_count"] = submission.review_count
        mine = Review.objects.filter(submission=submission, reviewer=reviewer).first()
        data["my_review"] = review_payload(mine) if mine is not None else None
        return JsonResponse(serialize(data))


class ReviewView(ReviewerView):
    """Create (POST) or replace (PUT) the reviewer's review."""

    def post(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewer = self.get_reviewer()
        submission = self.get_submission(submission_id)
        review = ReviewService.submit_review(reviewer, submission, self.bind_form(ReviewForm))
        return JsonResponse(serialize(review_payload(review)), status=201)

    def put(self, request: "HttpRequest", submission_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        reviewer = self.get_reviewer()
        submission = self.get_submission(submission_id)
        review = ReviewService.update_review(reviewer, submission, self.bind_form(ReviewForm))
        return JsonResponse(serialize(review_payload(review)))
