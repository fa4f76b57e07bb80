"""Tests for the speaker-side submission lifecycle."""

from datetime import date, timedelta

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import override_settings
from django.utils import timezone

from django_conference.cfp.models import Speaker, Submission, Tag
from django_conference.cfp.services.submissions import SubmissionService, get_or_create_speaker
from django_conference.conference.models import Conference

User = get_user_model()

ABSTRACT = "An abstract long enough to pass validation. " * 4


@pytest.fixture
def conference():
    return Conference.objects.create(
        name="CfpCon", slug="cfpcon", start_date=date(2027, 9, 11), end_date=date(2027, 9, 11)
    )


@pytest.fixture
def speaker(conference):
    user = User.objects.create_user(
        username="speaker", email="speaker@example.com", first_name="Grace", last_name="Hopper", password="pw"
    )
    speaker = get_or_create_speaker(user, conference)
    speaker.bio = "Compiler pioneer."
    speaker.job_title = "Rear Admiral"
    speaker.save()
    return speaker


def _data(**overrides):
    data = {
        "title": "Compilers for everyone",
        "abstract": ABSTRACT,
        "submission_type": Submission.SubmissionType.STANDARD,
        "talk_level": Submission.TalkLevel.BEGINNER,
        "tags": ["compilers", "History"],
        "workshop_duration_hours": None,
        "workshop_max_participants": None,
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestGetOrCreateSpeaker:
    def test_seeds_from_user(self, speaker):
        assert speaker.email == "speaker@example.com"
        assert speaker.full_name == "Grace Hopper"
        assert speaker.is_profile_complete

    def test_returns_existing(self, speaker, conference):
        assert get_or_create_speaker(speaker.user, conference) == speaker
        assert Speaker.objects.count() == 1

    def test_incomplete_profile(self, conference):
        user = User.objects.create_user(username="anon", email="a@example.com", password="pw")
        assert not get_or_create_speaker(user, conference).is_profile_complete


@pytest.mark.django_db
class TestCreate:
    def test_creates_draft_with_tags(self, speaker):
        Tag.objects.create(name="History", is_suggested=True)

        submission = SubmissionService.create(speaker, _data())

        assert submission.status == Submission.Status.DRAFT
        assert sorted(t.name for t in submission.tags.all()) == ["History", "compilers"]
        assert Tag.objects.count() == 2

    def test_tags_match_case_insensitively(self, speaker):
        Tag.objects.create(name="history")
        submission = SubmissionService.create(speaker, _data())
        assert "history" in {t.name for t in submission.tags.all()}

    def test_closed_cfp(self, speaker, conference):
        conference.cfp_closes_at = timezone.now() - timedelta(days=1)
        conference.save()
        with pytest.raises(ValidationError, match="call for papers is closed"):
            SubmissionService.create(speaker, _data())

    @override_settings(DJANGO_CONFERENCE={"cfp": {"max_submissions_per_speaker": 2}})
    def test_submission_limit_ignores_withdrawn(self, speaker):
        first = SubmissionService.create(speaker, _data())
        SubmissionService.create(speaker, _data())
        with pytest.raises(ValidationError, match="at most 2 submissions"):
            SubmissionService.create(speaker, _data())

        Submission.objects.filter(pk=first.pk).update(status=Submission.Status.WITHDRAWN)
        SubmissionService.create(speaker, _data())


@pytest.mark.django_db
class TestLifecycle:
    @pytest.fixture
    def draft(self, speaker):
        return SubmissionService.create(speaker, _data())

    def test_update_draft(self, draft):
        SubmissionService.update(draft, _data(title="Compilers revisited", tags=["python"], outline=None))
        draft.refresh_from_db()
        assert draft.title == "Compilers revisited"
        assert draft.outline == ""
        assert [t.name for t in draft.tags.all()] == ["python"]

    def test_submit(self, draft):
        SubmissionService.submit(draft)
        draft.refresh_from_db()
        assert draft.status == Submission.Status.SUBMITTED
        assert draft.submitted_at is not None

    def test_submit_twice(self, draft):
        SubmissionService.submit(draft)
        with pytest.raises(ValidationError, match="already been submitted"):
            SubmissionService.submit(draft)

    def test_submit_requires_complete_profile(self, draft):
        draft.speaker.bio = ""
        draft.speaker.save()
        with pytest.raises(ValidationError, match="Complete your speaker profile"):
            SubmissionService.submit(draft)

    def test_submitted_cannot_be_edited_or_deleted(self, draft):
        SubmissionService.submit(draft)
        with pytest.raises(ValidationError, match="Only draft submissions can be edited"):
            SubmissionService.update(draft, _data())
        with pytest.raises(ValidationError, match="Only draft submissions can be deleted"):
            SubmissionService.delete(draft)

    def test_withdraw_and_reopen(self, draft):
        with pytest.raises(ValidationError, match="Cannot withdraw"):
            SubmissionService.withdraw(draft)

        SubmissionService.submit(draft)
        SubmissionService.withdraw(draft)
        assert draft.status == Submission.Status.WITHDRAWN
        assert draft.withdrawn_at is not None

        SubmissionService.reopen(draft)
        draft.refresh_from_db()
        assert draft.status == Submission.Status.DRAFT
        assert draft.submitted_at is None
        assert draft.withdrawn_at is None

    @override_settings(DJANGO_CONFERENCE={"cfp": {"max_submissions_per_speaker": 1}})
    def test_reopen_respects_submission_limit(self, draft, speaker):
        SubmissionService.submit(draft)
        SubmissionService.withdraw(draft)
        replacement = SubmissionService.create(speaker, _data())

        with pytest.raises(ValidationError, match="at most 1 submissions"):
            SubmissionService.reopen(draft)
        draft.refresh_from_db()
        assert draft.status == Submission.Status.WITHDRAWN

        SubmissionService.delete(replacement)
        SubmissionService.reopen(draft)
        assert draft.status == Submission.Status.DRAFT

    def test_reopen_requires_withdrawn(self, draft):
        with pytest.raises(ValidationError, match="Only withdrawn submissions"):
            SubmissionService.reopen(draft)

    def test_delete_draft(self, draft):
        SubmissionService.delete(draft)
        assert not Submission.objects.exists()
