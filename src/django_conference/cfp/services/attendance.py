"""Accepted speakers confirming or declining their slot."""

import logging

from django.core.exceptions import PermissionDenied, ValidationError
from django.utils import timezone

from django_conference.cfp.models import Speaker, SpeakerAttendance, Submission

logger = logging.getLogger(__name__)


def respond(
    speaker: Speaker,
    submission: Submission,
    response: str,
    decline_reason: str = "",
    decline_notes: str = "",
) -> SpeakerAttendance:
    """Record the speaker's answer for an accepted submission.

    Raises:
        PermissionDenied: If the submission belongs to another speaker.
        ValidationError: If the submission is not accepted, the response is
            unknown, or a decline has no reason.
    """
    if submission.speaker_id != speaker.pk:
        raise PermissionDenied("Access denied")
    if submission.decision_status != Submission.DecisionStatus.ACCEPTED:
        raise ValidationError("Only accepted submissions can be confirmed")
    if response not in {SpeakerAttendance.Status.CONFIRMED, SpeakerAttendance.Status.DECLINED}:
        raise ValidationError(f"Unknown response: {response}")
    if response == SpeakerAttendance.Status.DECLINED and not decline_reason:
        raise ValidationError("A reason is required when declining")

    attendance, _ = SpeakerAttendance.objects.get_or_create(submission=submission, defaults={"speaker": speaker})
    if attendance.status != SpeakerAttendance.Status.PENDING:
        raise ValidationError("You have already responded to this invitation")

    attendance.status = response
    attendance.responded_at = timezone.now()
    if response == SpeakerAttendance.Status.DECLINED:
        attendance.decline_reason = decline_reason
        attendance.decline_notes = decline_notes
    attendance.save()
    logger.info("Speaker %s %s submission %s", speaker.pk, response, submission.pk)
    return attendance
