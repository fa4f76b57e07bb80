"""Tests for CFP form validation."""

import pytest

from django_conference.cfp.forms import (
    AttendanceForm,
    BulkDecisionForm,
    ReviewForm,
    SpeakerProfileForm,
    SubmissionForm,
)

ABSTRACT = "A thorough look at building reliable data pipelines with Python, covering testing and deployment. " * 2


def _submission(**overrides):
    data = {
        "title": "Reliable pipelines",
        "abstract": ABSTRACT,
        "submission_type": "standard",
        "talk_level": "intermediate",
        "tags": ["python"],
    }
    data.update(overrides)
    return data


class TestSpeakerProfileForm:
    def test_bio_word_limit(self):
        form = SpeakerProfileForm(data={"bio": "word " * 251})
        assert not form.is_valid()
        assert form.errors["bio"] == ["Bio must be 250 words or less"]

    def test_bio_at_limit(self):
        assert SpeakerProfileForm(data={"bio": "word " * 250}).is_valid()

    def test_urls_default_to_https(self):
        form = SpeakerProfileForm(data={"github_url": "github.com/ada"})
        assert form.is_valid()
        assert form.cleaned_data["github_url"] == "https://github.com/ada"


class TestSubmissionForm:
    def test_valid_standard_talk_drops_workshop_fields(self):
        form = SubmissionForm(data=_submission(workshop_duration_hours=3, workshop_max_participants=20))
        assert form.is_valid(), form.errors
        assert form.cleaned_data["workshop_duration_hours"] is None
        assert form.cleaned_data["workshop_max_participants"] is None

    def test_title_min_length(self):
        form = SubmissionForm(data=_submission(title="Hey"))
        assert form.errors["title"] == ["Title must be at least 5 characters"]

    def test_abstract_min_length(self):
        form = SubmissionForm(data=_submission(abstract="short"))
        assert form.errors["abstract"] == ["Abstract must be at least 100 characters"]

    @pytest.mark.parametrize(
        ("tags", "message"),
        [
            ([], "At least one tag is required"),
            (["a", "b", "c", "d", "e", "f"], "Maximum 5 tags allowed"),
            ({"python": 1}, "Tags must be a list of names"),
        ],
    )
    def test_tag_rules(self, tags, message):
        form = SubmissionForm(data=_submission(tags=tags))
        assert form.errors["tags"] == [message]

    def test_duplicate_tags_collapse(self):
        form = SubmissionForm(data=_submission(tags=["Python", "python ", "Django"]))
        assert form.is_valid()
        assert form.cleaned_data["tags"] == ["Python", "Django"]

    def test_workshop_requires_duration(self):
        form = SubmissionForm(data=_submission(submission_type="workshop"))
        assert form.errors["workshop_duration_hours"] == ["Workshop duration is required"]

    @pytest.mark.parametrize(
        ("hours", "message"),
        [(1, "Minimum duration is 2 hours"), (9, "Maximum duration is 8 hours")],
    )
    def test_workshop_duration_bounds(self, hours, message):
        form = SubmissionForm(data=_submission(submission_type="workshop", workshop_duration_hours=hours))
        assert form.errors["workshop_duration_hours"] == [message]


class TestReviewForm:
    def test_overall_required_and_bounded(self):
        assert "score_overall" in ReviewForm(data={}).errors
        form = ReviewForm(data={"score_overall": 6})
        assert form.errors["score_overall"] == ["Overall score must be between 1 and 5"]

    def test_optional_scores(self):
        form = ReviewForm(data={"score_overall": 4, "score_clarity": 0})
        assert form.errors["score_clarity"] == ["Score must be between 1 and 5"]


class TestAttendanceForm:
    def test_decline_needs_reason(self):
        form = AttendanceForm(data={"submission_id": 1, "response": "declined"})
        assert form.errors["decline_reason"] == ["A reason is required when declining"]

    def test_confirm(self):
        assert AttendanceForm(data={"submission_id": 1, "response": "confirmed"}).is_valid()


class TestBulkDecisionForm:
    def test_ids_must_be_non_empty_list(self):
        form = BulkDecisionForm(data={"submission_ids": {"id": 1}, "decision": "accepted"})
        assert form.errors["submission_ids"] == ["submission_ids must be a non-empty list."]

    def test_ids_coerced(self):
        form = BulkDecisionForm(data={"submission_ids": ["1", 2], "decision": "rejected"})
        assert form.is_valid()
        assert form.cleaned_data["submission_ids"] == [1, 2]
