"""Forms for speaker profiles, submissions, reviews and attendance."""

from django import forms

from django_conference.cfp.models import Reviewer, Submission

MAX_BIO_WORDS = 250
MIN_TAGS = 1
MAX_TAGS = 5
SCORE_FIELDS = (
    "score_overall",
    "score_relevance",
    "score_technical_depth",
    "score_clarity",
    "score_diversity",
)


def _url_field() -> forms.URLField:
    return forms.URLField(required=False, assume_scheme="https")


class SpeakerProfileForm(forms.Form):
    """Speaker details. Bio is limited to 250 whitespace-separated words."""

    first_name = forms.CharField(max_length=100, required=False)
    last_name = forms.CharField(max_length=100, required=False)
    email = forms.EmailField(required=False)
    job_title = forms.CharField(max_length=200, required=False)
    company = forms.CharField(max_length=200, required=False)
    bio = forms.CharField(required=False)
    linkedin_url = _url_field()
    github_url = _url_field()
    twitter_url = _url_field()
    bluesky_url = _url_field()
    mastodon_url = _url_field()
    profile_image_url = _url_field()

    def clean_bio(self) -> str:
        bio = self.cleaned_data.get("bio", "")
        if len(bio.split()) > MAX_BIO_WORDS:
            raise forms.ValidationError("Bio must be 250 words or less")
        return bio


class SubmissionForm(forms.Form):
    """A talk or workshop proposal.

    Tags are given as a list of names. Workshop fields are required only
    when ``submission_type`` is ``workshop`` and ignored otherwise.
    """

    title = forms.CharField(
        max_length=200,
        min_length=5,
        error_messages={"min_length": "Title must be at least 5 characters"},
    )
    abstract = forms.CharField(
        min_length=100,
        max_length=3000,
        error_messages={
            "min_length": "Abstract must be at least 100 characters",
            "max_length": "Abstract is too long",
        },
    )
    submission_type = forms.ChoiceField(choices=Submission.SubmissionType.choices)
    talk_level = forms.ChoiceField(choices=Submission.TalkLevel.choices)
    additional_notes = forms.CharField(max_length=2000, required=False)
    outline = forms.CharField(max_length=5000, required=False)
    slides_url = _url_field()
    tags = forms.JSONField(required=False)

    workshop_duration_hours = forms.IntegerField(
        required=False,
        min_value=2,
        max_value=8,
        error_messages={
            "min_value": "Minimum duration is 2 hours",
            "max_value": "Maximum duration is 8 hours",
        },
    )
    workshop_expected_compensation = forms.CharField(max_length=200, required=False)
    workshop_special_requirements = forms.CharField(max_length=1000, required=False)
    workshop_max_participants = forms.IntegerField(required=False, min_value=5, max_value=100)

    def clean_tags(self) -> list[str]:
        value = self.cleaned_data.get("tags")
        if value in (None, ""):
            value = []
        if not isinstance(value, list):
            raise forms.ValidationError("Tags must be a list of names")
        names: list[str] = []
        for item in value:
            name = str(item).strip()
            if name and name.lower() not in {n.lower() for n in names}:
                names.append(name[:50])
        if len(names) < MIN_TAGS:
            raise forms.ValidationError("At least one tag is required")
        if len(names) > MAX_TAGS:
            raise forms.ValidationError("Maximum 5 tags allowed")
        return names

    def clean(self) -> dict:
        cleaned = super().clean()
        if cleaned.get("submission_type") == Submission.SubmissionType.WORKSHOP:
            if cleaned.get("workshop_duration_hours") is None and "workshop_duration_hours" not in self.errors:
                self.add_error("workshop_duration_hours", "Workshop duration is required")
        else:
            cleaned["workshop_duration_hours"] = None
            cleaned["workshop_expected_compensation"] = ""
            cleaned["workshop_special_requirements"] = ""
            cleaned["workshop_max_participants"] = None
        return cleaned


class SubmissionStatusForm(forms.Form):
    action = forms.ChoiceField(choices=[("submit", "Submit"), ("withdraw", "Withdraw"), ("reopen", "Reopen")])


def _score_field(required: bool = False) -> forms.IntegerField:
    label = "Overall score" if required else "Score"
    message = f"{label} must be between 1 and 5"
    return forms.IntegerField(
        required=required,
        min_value=1,
        max_value=5,
        error_messages={"min_value": message, "max_value": message},
    )


class ReviewForm(forms.Form):
    """Scores on a 1-5 scale plus notes for the committee and the speaker."""

    score_overall = _score_field(required=True)
    score_relevance = _score_field()
    score_technical_depth = _score_field()
    score_clarity = _score_field()
    score_diversity = _score_field()
    private_notes = forms.CharField(
        max_length=5000,
        required=False,
        error_messages={"max_length": "Notes are too long"},
    )
    feedback_to_speaker = forms.CharField(
        max_length=2000,
        required=False,
        error_messages={"max_length": "Feedback is too long"},
    )


class AttendanceForm(forms.Form):
    submission_id = forms.IntegerField()
    response = forms.ChoiceField(choices=[("confirmed", "Confirmed"), ("declined", "Declined")])
    decline_reason = forms.CharField(max_length=100, required=False)
    decline_notes = forms.CharField(max_length=2000, required=False)

    def clean(self) -> dict:
        cleaned = super().clean()
        if cleaned.get("response") == "declined" and not cleaned.get("decline_reason"):
            self.add_error("decline_reason", "A reason is required when declining")
        return cleaned


class DecisionForm(forms.Form):
    """Committee decision on a single submission."""

    decision = forms.ChoiceField(
        choices=[
            (Submission.DecisionStatus.ACCEPTED, "Accept"),
            (Submission.DecisionStatus.REJECTED, "Reject"),
        ]
    )
    notes = forms.CharField(max_length=5000, required=False)
    generate_coupon = forms.BooleanField(required=False)
    coupon_discount_percent = forms.IntegerField(required=False, min_value=1, max_value=100)


class BulkDecisionForm(forms.Form):
    submission_ids = forms.JSONField()
    decision = forms.ChoiceField(
        choices=[
            (Submission.DecisionStatus.ACCEPTED, "Accept"),
            (Submission.DecisionStatus.REJECTED, "Reject"),
        ]
    )

    def clean_submission_ids(self) -> list[int]:
        value = self.cleaned_data.get("submission_ids")
        if not isinstance(value, list) or not value:
            raise forms.ValidationError("submission_ids must be a non-empty list.")
        try:
            return [int(pk) for pk in value]
        except (TypeError, ValueError):
            raise forms.ValidationError("submission_ids must contain integers.") from None


class ScheduleEmailForm(forms.Form):
    """Options for a scheduled acceptance or rejection email."""

    email_type = forms.ChoiceField(choices=[("acceptance", "Acceptance"), ("rejection", "Rejection")])
    personal_message = forms.CharField(max_length=5000, required=False)
    coupon_discount_percent = forms.IntegerField(required=False, min_value=1, max_value=100)
    coupon_validity_days = forms.IntegerField(required=False, min_value=1, max_value=365)
    include_feedback = forms.BooleanField(required=False)
    feedback_text = forms.CharField(max_length=5000, required=False)


class ReviewerInviteForm(forms.Form):
    email = forms.EmailField()
    name = forms.CharField(max_length=200, required=False)
    role = forms.ChoiceField(choices=Reviewer.Role.choices, required=False)
    can_see_speaker_identity = forms.BooleanField(required=False)
