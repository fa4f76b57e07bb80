"""Tests for reviewer operations."""

from datetime import date

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied, ValidationError

from django_conference.cfp.models import Review, Reviewer, Speaker, Submission, Tag
from django_conference.cfp.services.reviews import ReviewService, submission_summary
from django_conference.conference.models import Conference

User = get_user_model()


@pytest.fixture
def conference():
    return Conference.objects.create(
        name="ReviewCon", slug="reviewcon", start_date=date(2027, 9, 11), end_date=date(2027, 9, 11)
    )


@pytest.fixture
def submission(conference):
    user = User.objects.create_user(username="spk", email="spk@example.com", password="pw")
    speaker = Speaker.objects.create(
        user=user, conference=conference, first_name="Ada", last_name="Lovelace", email="spk@example.com"
    )
    submission = Submission.objects.create(
        conference=conference,
        speaker=speaker,
        title="Engines",
        abstract="x" * 120,
        status=Submission.Status.SUBMITTED,
    )
    submission.tags.add(Tag.objects.create(name="history"))
    return submission


def _reviewer(conference, username, **kwargs):
    user = User.objects.create_user(username=username, password="pw")
    return Reviewer.objects.create(user=user, conference=conference, **kwargs)


@pytest.mark.django_db
class TestReviewerLookup:
    def test_require_reviewer(self, conference):
        reviewer = _reviewer(conference, "rev")
        assert ReviewService.require_reviewer(reviewer.user, conference) == reviewer

    def test_inactive_reviewer_denied(self, conference):
        reviewer = _reviewer(conference, "rev", is_active=False)
        with pytest.raises(PermissionDenied, match="Not authorized as a reviewer"):
            ReviewService.require_reviewer(reviewer.user, conference)


@pytest.mark.django_db
class TestSubmitReview:
    def test_creates_review_and_moves_to_under_review(self, conference, submission):
        reviewer = _reviewer(conference, "rev")

        review = ReviewService.submit_review(
            reviewer, submission, {"score_overall": 4, "score_clarity": 5, "private_notes": None}
        )

        assert review.score_overall == 4
        assert review.private_notes == ""
        submission.refresh_from_db()
        assert submission.status == Submission.Status.UNDER_REVIEW

    def test_one_review_per_reviewer(self, conference, submission):
        reviewer = _reviewer(conference, "rev")
        ReviewService.submit_review(reviewer, submission, {"score_overall": 4})
        with pytest.raises(ValidationError, match="already reviewed"):
            ReviewService.submit_review(reviewer, submission, {"score_overall": 2})

    def test_readonly_reviewer(self, conference, submission):
        reviewer = _reviewer(conference, "ro", role=Reviewer.Role.READONLY)
        with pytest.raises(PermissionDenied, match="Readonly reviewers"):
            ReviewService.submit_review(reviewer, submission, {"score_overall": 4})

    def test_draft_not_reviewable(self, conference, submission):
        submission.status = Submission.Status.DRAFT
        submission.save()
        with pytest.raises(ValidationError, match="not open for review"):
            ReviewService.submit_review(_reviewer(conference, "rev"), submission, {"score_overall": 3})

    def test_update_review(self, conference, submission):
        reviewer = _reviewer(conference, "rev")
        with pytest.raises(ValidationError, match="Review not found"):
            ReviewService.update_review(reviewer, submission, {"score_overall": 2})

        ReviewService.submit_review(reviewer, submission, {"score_overall": 4, "feedback_to_speaker": "Nice"})
        review = ReviewService.update_review(reviewer, submission, {"score_overall": 2, "feedback_to_speaker": None})

        assert review.score_overall == 2
        assert review.feedback_to_speaker == ""
        assert Review.objects.count() == 1


@pytest.mark.django_db
class TestDashboard:
    def test_lists_reviewable_with_own_review(self, conference, submission):
        reviewer = _reviewer(conference, "rev")
        other = _reviewer(conference, "other")
        ReviewService.submit_review(other, submission, {"score_overall": 3})

        dashboard = ReviewService.dashboard(reviewer)

        assert dashboard.pending_count == 1
        assert dashboard.reviewed_count == 0
        row = dashboard.submissions[0]
        assert row["review_count"] == 1
        assert row["my_review"] is None
        assert row["speaker"] is None
        assert row["tags"] == ["history"]

        ReviewService.submit_review(reviewer, submission, {"score_overall": 5})
        dashboard = ReviewService.dashboard(reviewer)
        assert dashboard.reviewed_count == 1
        assert dashboard.submissions[0]["my_review"]["score_overall"] == 5

    def test_excludes_drafts_and_withdrawn(self, conference, submission):
        submission.status = Submission.Status.WITHDRAWN
        submission.save()
        assert ReviewService.dashboard(_reviewer(conference, "rev")).submissions == []

    def test_speaker_identity(self, submission):
        data = submission_summary(submission, show_speaker=True)
        assert data["speaker"]["name"] == "Ada Lovelace"
        assert data["speaker"]["email"] == "spk@example.com"
