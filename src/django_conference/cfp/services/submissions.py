"""Speaker-side submission lifecycle: draft, submit, withdraw, reopen."""

import logging
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_conference.cfp.models import Speaker, Submission, Tag
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from django_conference.conference.models import Conference

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "title",
    "abstract",
    "submission_type",
    "talk_level",
    "additional_notes",
    "outline",
    "slides_url",
    "workshop_duration_hours",
    "workshop_expected_compensation",
    "workshop_special_requirements",
    "workshop_max_participants",
)


def get_or_create_speaker(user: "AbstractBaseUser", conference: "Conference") -> Speaker:
    """Return the user's speaker profile, seeding it from the account."""
    speaker, _ = Speaker.objects.get_or_create(
        user=user,
        conference=conference,
        defaults={
            "email": getattr(user, "email", "") or "",
            "first_name": getattr(user, "first_name", "") or "",
            "last_name": getattr(user, "last_name", "") or "",
        },
    )
    return speaker


def _require_cfp_open(conference: "Conference") -> None:
    if not conference.is_cfp_open:
        raise ValidationError("The call for papers is closed.")


def _require_below_limit(speaker: Speaker) -> None:
    limit = get_config().cfp.max_submissions_per_speaker
    active = (
        Submission.objects.select_for_update()
        .filter(speaker=speaker)
        .exclude(status=Submission.Status.WITHDRAWN)
        .count()
    )
    if active >= limit:
        raise ValidationError(f"You can have at most {limit} submissions.")


def _set_tags(submission: Submission, names: list[str]) -> None:
    tags = []
    for name in names:
        tag = Tag.objects.filter(name__iexact=name).first()
        if tag is None:
            tag = Tag.objects.create(name=name)
        tags.append(tag)
    submission.tags.set(tags)


class SubmissionService:
    """Stateless operations on a speaker's own submissions.

    All methods raise :class:`~django.core.exceptions.ValidationError` when
    the submission is not in a state that allows the change.
    """

    @staticmethod
    @transaction.atomic
    def create(speaker: Speaker, data: dict[str, Any]) -> Submission:
        """Create a draft from validated form data.

        Raises:
            ValidationError: If the CFP is closed or the speaker has reached
                the submission limit.
        """
        conference = speaker.conference
        _require_cfp_open(conference)
        _require_below_limit(speaker)

        submission = Submission.objects.create(
            conference=conference,
            speaker=speaker,
            **{field: data[field] for field in _EDITABLE_FIELDS if field in data and data[field] is not None},
        )
        _set_tags(submission, data.get("tags", []))
        logger.info("Speaker %s created submission %s for %s", speaker.pk, submission.pk, conference.slug)
        return submission

    @staticmethod
    @transaction.atomic
    def update(submission: Submission, data: dict[str, Any]) -> Submission:
        """Apply validated form data to a draft and replace its tags."""
        if submission.status != Submission.Status.DRAFT:
            raise ValidationError("Only draft submissions can be edited")
        for field in _EDITABLE_FIELDS:
            if field in data:
                value = data[field]
                if value is None and field not in {"workshop_duration_hours", "workshop_max_participants"}:
                    value = ""
                setattr(submission, field, value)
        submission.save()
        if "tags" in data:
            _set_tags(submission, data["tags"])
        return submission

    @staticmethod
    def submit(submission: Submission) -> Submission:
        """Move a draft into the review queue."""
        if submission.status != Submission.Status.DRAFT:
            raise ValidationError("Submission has already been submitted")
        if not submission.speaker.is_profile_complete:
            raise ValidationError("Complete your speaker profile before submitting.")
        _require_cfp_open(submission.conference)

        submission.status = Submission.Status.SUBMITTED
        submission.submitted_at = timezone.now()
        submission.save(update_fields=["status", "submitted_at", "updated_at"])
        logger.info("Submission %s submitted", submission.pk)
        return submission

    @staticmethod
    def withdraw(submission: Submission) -> Submission:
        if submission.status not in {Submission.Status.SUBMITTED, Submission.Status.UNDER_REVIEW}:
            raise ValidationError("Cannot withdraw submission in current status")
        submission.status = Submission.Status.WITHDRAWN
        submission.withdrawn_at = timezone.now()
        submission.save(update_fields=["status", "withdrawn_at", "updated_at"])
        logger.info("Submission %s withdrawn", submission.pk)
        return submission

    @staticmethod
    @transaction.atomic
    def reopen(submission: Submission) -> Submission:
        """Turn a withdrawn submission back into an editable draft.

        Reopening counts against the per-speaker submission limit again.
        """
        if submission.status != Submission.Status.WITHDRAWN:
            raise ValidationError("Only withdrawn submissions can be reopened")
        _require_cfp_open(submission.conference)
        _require_below_limit(submission.speaker)
        submission.status = Submission.Status.DRAFT
        submission.submitted_at = None
        submission.withdrawn_at = None
        submission.save(update_fields=["status", "submitted_at", "withdrawn_at", "updated_at"])
        return submission

    @staticmethod
    def delete(submission: Submission) -> None:
        if submission.status != Submission.Status.DRAFT:
            raise ValidationError("Only draft submissions can be deleted")
        logger.info("Deleting draft submission %s", submission.pk)
        submission.delete()
