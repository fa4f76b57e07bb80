"""Reviewer-side operations: dashboard listing and scoring submissions."""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from django.core.exceptions import PermissionDenied, ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Count

from django_conference.cfp.forms import SCORE_FIELDS
from django_conference.cfp.models import Review, Reviewer, Submission

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser
    from django.db.models import QuerySet

    from django_conference.conference.models import Conference

logger = logging.getLogger(__name__)

REVIEWABLE_STATUSES = (Submission.Status.SUBMITTED, Submission.Status.UNDER_REVIEW)
_REVIEW_FIELDS = (*SCORE_FIELDS, "private_notes", "feedback_to_speaker")


@dataclass
class ReviewDashboard:
    """Submissions awaiting review, annotated for one reviewer."""

    submissions: list[dict[str, Any]] = field(default_factory=list)
    reviewed_count: int = 0
    pending_count: int = 0


def review_payload(review: Review) -> dict[str, Any]:
    data: dict[str, Any] = {name: getattr(review, name) for name in _REVIEW_FIELDS}
    data["id"] = review.pk
    data["updated_at"] = review.updated_at
    return data


def submission_summary(submission: Submission, *, show_speaker: bool) -> dict[str, Any]:
    """Public-to-reviewers view of a submission, optionally anonymized."""
    data: dict[str, Any] = {
        "id": submission.pk,
        "title": submission.title,
        "abstract": submission.abstract,
        "submission_type": submission.submission_type,
        "talk_level": submission.talk_level,
        "outline": submission.outline,
        "additional_notes": submission.additional_notes,
        "slides_url": submission.slides_url,
        "status": submission.status,
        "submitted_at": submission.submitted_at,
        "tags": [tag.name for tag in submission.tags.all()],
        "workshop_duration_hours": submission.workshop_duration_hours,
        "workshop_max_participants": submission.workshop_max_participants,
        "speaker": None,
    }
    if show_speaker:
        speaker = submission.speaker
        data["speaker"] = {
            "name": speaker.full_name,
            "email": speaker.email,
            "job_title": speaker.job_title,
            "company": speaker.company,
            "bio": speaker.bio,
        }
    return data


class ReviewService:
    """Stateless review operations for committee members."""

    @staticmethod
    def reviewer_for(user: "AbstractBaseUser", conference: "Conference") -> Reviewer | None:
        """Return the user's active reviewer record for *conference*, if any."""
        if not user.is_authenticated:
            return None
        return Reviewer.objects.filter(user=user, conference=conference, is_active=True).first()

    @staticmethod
    def require_reviewer(user: "AbstractBaseUser", conference: "Conference") -> Reviewer:
        reviewer = ReviewService.reviewer_for(user, conference)
        if reviewer is None:
            raise PermissionDenied("Not authorized as a reviewer")
        return reviewer

    @staticmethod
    def reviewable_submissions(conference: "Conference") -> "QuerySet[Submission]":
        return (
            Submission.objects.filter(conference=conference, status__in=REVIEWABLE_STATUSES)
            .select_related("speaker")
            .prefetch_related("tags")
            .annotate(review_count=Count("reviews"))
            .order_by("submitted_at", "pk")
        )

    @staticmethod
    def dashboard(reviewer: Reviewer) -> ReviewDashboard:
        """List reviewable submissions with the reviewer's own review attached."""
        own_reviews = {r.submission_id: r for r in Review.objects.filter(reviewer=reviewer)}
        result = ReviewDashboard()
        for submission in ReviewService.reviewable_submissions(reviewer.conference):
            mine = own_reviews.get(submission.pk)
            row = submission_summary(submission, show_speaker=reviewer.can_see_speaker_identity)
            row["review_count"] = submission.review_count
            row["my_review"] = review_payload(mine) if mine is not None else None
            result.submissions.append(row)
            if mine is None:
                result.pending_count += 1
            else:
                result.reviewed_count += 1
        return result

    @staticmethod
    def _check_can_review(reviewer: Reviewer, submission: Submission) -> None:
        if not reviewer.is_active:
            raise PermissionDenied("Not a reviewer")
        if reviewer.role == Reviewer.Role.READONLY:
            raise PermissionDenied("Readonly reviewers cannot submit reviews")
        if submission.conference_id != reviewer.conference_id or submission.status not in REVIEWABLE_STATUSES:
            raise ValidationError("This submission is not open for review.")

    @staticmethod
    @transaction.atomic
    def submit_review(reviewer: Reviewer, submission: Submission, data: dict[str, Any]) -> Review:
        """Record a new review and move the submission into review.

        Raises:
            PermissionDenied: For read-only or inactive reviewers.
            ValidationError: If the reviewer already reviewed the submission.
        """
        ReviewService._check_can_review(reviewer, submission)
        if Review.objects.filter(submission=submission, reviewer=reviewer).exists():
            raise ValidationError("You have already reviewed this submission")

        values = {name: data[name] for name in _REVIEW_FIELDS if name in data}
        for name in ("private_notes", "feedback_to_speaker"):
            if values.get(name) is None:
                values[name] = ""
        try:
            with transaction.atomic():
                review = Review.objects.create(submission=submission, reviewer=reviewer, **values)
        except IntegrityError:
            raise ValidationError("You have already reviewed this submission") from None

        Submission.objects.filter(pk=submission.pk, status=Submission.Status.SUBMITTED).update(
            status=Submission.Status.UNDER_REVIEW
        )
        logger.info("Reviewer %s reviewed submission %s (%s)", reviewer.pk, submission.pk, review.score_overall)
        return review

    @staticmethod
    def update_review(reviewer: Reviewer, submission: Submission, data: dict[str, Any]) -> Review:
        """Replace the scores and notes of the reviewer's existing review."""
        ReviewService._check_can_review(reviewer, submission)
        review = Review.objects.filter(submission=submission, reviewer=reviewer).first()
        if review is None:
            raise ValidationError("Review not found")
        for name in _REVIEW_FIELDS:
            if name in data:
                value = data[name]
                if value is None and name in {"private_notes", "feedback_to_speaker"}:
                    value = ""
                setattr(review, name, value)
        review.save()
        return review
