"""Call-for-papers models: speakers, submissions, reviews and decisions."""

import secrets

from django.conf import settings
from django.core.validators import MaxValueValidator, MinLengthValidator, MinValueValidator
from django.db import models

SCORE_VALIDATORS = [MinValueValidator(1), MaxValueValidator(5)]


def _attendance_token() -> str:
    return secrets.token_urlsafe(32)


class Speaker(models.Model):
    """A user's speaker profile for one conference."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="speaker_profiles",
    )
    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="speakers",
    )
    first_name = models.CharField(max_length=100, blank=True, default="")
    last_name = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField()
    job_title = models.CharField(max_length=200, blank=True, default="")
    company = models.CharField(max_length=200, blank=True, default="")
    bio = models.TextField(blank=True, default="", help_text="At most 250 words.")
    linkedin_url = models.URLField(blank=True, default="")
    github_url = models.URLField(blank=True, default="")
    twitter_url = models.URLField(blank=True, default="")
    bluesky_url = models.URLField(blank=True, default="")
    mastodon_url = models.URLField(blank=True, default="")
    profile_image_url = models.URLField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [("user", "conference")]
        ordering = ["last_name", "first_name"]

    def __str__(self) -> str:
        return self.full_name or self.email

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_profile_complete(self) -> bool:
        """Whether the profile has enough detail to submit talks."""
        return bool(self.first_name and self.last_name and self.bio.strip() and self.job_title)


class Tag(models.Model):
    """A topic label attached to submissions."""

    name = models.CharField(max_length=50, unique=True)
    is_suggested = models.BooleanField(default=False)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class Submission(models.Model):
    """A talk or workshop proposal.

    Speakers edit drafts freely and then submit them for review. Reviews move
    a submitted proposal to ``under_review``; the committee's decision sets
    both ``decision_status`` and ``status``.
    """

    class SubmissionType(models.TextChoices):
        LIGHTNING = "lightning", "Lightning talk"
        STANDARD = "standard", "Standard talk"
        WORKSHOP = "workshop", "Workshop"

    class TalkLevel(models.TextChoices):
        BEGINNER = "beginner", "Beginner"
        INTERMEDIATE = "intermediate", "Intermediate"
        ADVANCED = "advanced", "Advanced"

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        SUBMITTED = "submitted", "Submitted"
        UNDER_REVIEW = "under_review", "Under review"
        WAITLISTED = "waitlisted", "Waitlisted"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"
        WITHDRAWN = "withdrawn", "Withdrawn"

    class DecisionStatus(models.TextChoices):
        UNDECIDED = "undecided", "Undecided"
        ACCEPTED = "accepted", "Accepted"
        REJECTED = "rejected", "Rejected"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="submissions",
    )
    speaker = models.ForeignKey(Speaker, on_delete=models.CASCADE, related_name="submissions")
    title = models.CharField(max_length=200, validators=[MinLengthValidator(5)])
    abstract = models.TextField(validators=[MinLengthValidator(100)])
    submission_type = models.CharField(max_length=20, choices=SubmissionType.choices, default=SubmissionType.STANDARD)
    talk_level = models.CharField(max_length=20, choices=TalkLevel.choices, default=TalkLevel.INTERMEDIATE)
    additional_notes = models.TextField(blank=True, default="")
    outline = models.TextField(blank=True, default="")
    slides_url = models.URLField(blank=True, default="")
    tags = models.ManyToManyField(Tag, blank=True, related_name="submissions")

    workshop_duration_hours = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(2), MaxValueValidator(8)],
    )
    workshop_expected_compensation = models.CharField(max_length=200, blank=True, default="")
    workshop_special_requirements = models.TextField(blank=True, default="")
    workshop_max_participants = models.PositiveSmallIntegerField(
        null=True,
        blank=True,
        validators=[MinValueValidator(5), MaxValueValidator(100)],
    )

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    submitted_at = models.DateTimeField(null=True, blank=True)
    withdrawn_at = models.DateTimeField(null=True, blank=True)

    decision_status = models.CharField(
        max_length=20,
        choices=DecisionStatus.choices,
        default=DecisionStatus.UNDECIDED,
    )
    decision_at = models.DateTimeField(null=True, blank=True)
    decision_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cfp_decisions",
    )
    decision_notes = models.TextField(blank=True, default="")
    coupon_code = models.CharField(max_length=50, blank=True, default="")
    coupon_generated_at = models.DateTimeField(null=True, blank=True)
    decision_email_scheduled_for = models.DateTimeField(null=True, blank=True)
    decision_email_sent_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return self.title


class Reviewer(models.Model):
    """A committee member allowed to review a conference's submissions."""

    class Role(models.TextChoices):
        SUPER_ADMIN = "super_admin", "Super admin"
        REVIEWER = "reviewer", "Reviewer"
        READONLY = "readonly", "Read only"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="cfp_reviewer_roles",
    )
    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="reviewers",
    )
    role = models.CharField(max_length=20, choices=Role.choices, default=Role.REVIEWER)
    can_see_speaker_identity = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    invited_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invited_cfp_reviewers",
    )
    accepted_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("user", "conference")]

    def __str__(self) -> str:
        return f"{self.user} ({self.get_role_display()})"


class Review(models.Model):
    """One reviewer's scores and notes for one submission."""

    submission = models.ForeignKey(Submission, on_delete=models.CASCADE, related_name="reviews")
    reviewer = models.ForeignKey(Reviewer, on_delete=models.CASCADE, related_name="reviews")
    score_overall = models.PositiveSmallIntegerField(validators=SCORE_VALIDATORS)
    score_relevance = models.PositiveSmallIntegerField(null=True, blank=True, validators=SCORE_VALIDATORS)
    score_technical_depth = models.PositiveSmallIntegerField(null=True, blank=True, validators=SCORE_VALIDATORS)
    score_clarity = models.PositiveSmallIntegerField(null=True, blank=True, validators=SCORE_VALIDATORS)
    score_diversity = models.PositiveSmallIntegerField(null=True, blank=True, validators=SCORE_VALIDATORS)
    private_notes = models.TextField(blank=True, default="")
    feedback_to_speaker = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(fields=["submission", "reviewer"], name="conference_cfp_one_review_per_reviewer"),
        ]

    def __str__(self) -> str:
        return f"{self.reviewer} on {self.submission}: {self.score_overall}"


class DecisionEvent(models.Model):
    """Audit trail entry for the decision workflow."""

    class EventType(models.TextChoices):
        DECISION_MADE = "decision_made", "Decision made"
        DECISION_CHANGED = "decision_changed", "Decision changed"
        EMAIL_SENT = "email_sent", "Email sent"
        EMAIL_CANCELLED = "email_cancelled", "Email cancelled"
        COUPON_GENERATED = "coupon_generated", "Coupon generated"

    submission = models.ForeignKey(Submission, on_delete=models.CASCADE, related_name="decision_events")
    event_type = models.CharField(max_length=30, choices=EventType.choices)
    previous_status = models.CharField(max_length=20, blank=True, default="")
    new_status = models.CharField(max_length=20, blank=True, default="")
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    notes = models.TextField(blank=True, default="")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self) -> str:
        return f"{self.get_event_type_display()} ({self.submission_id})"


class ScheduledDecisionEmail(models.Model):
    """An acceptance or rejection email held back for a cancellation window.

    Recipient and coupon details are snapshotted when the email is scheduled.
    """

    class EmailType(models.TextChoices):
        ACCEPTANCE = "acceptance", "Acceptance"
        REJECTION = "rejection", "Rejection"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SENT = "sent", "Sent"
        CANCELLED = "cancelled", "Cancelled"
        FAILED = "failed", "Failed"

    submission = models.ForeignKey(Submission, on_delete=models.CASCADE, related_name="scheduled_emails")
    email_type = models.CharField(max_length=20, choices=EmailType.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    recipient_email = models.EmailField()
    recipient_name = models.CharField(max_length=200, blank=True, default="")
    personal_message = models.TextField(blank=True, default="")
    coupon_code = models.CharField(max_length=50, blank=True, default="")
    coupon_discount_percent = models.PositiveSmallIntegerField(null=True, blank=True)
    coupon_expires_at = models.DateTimeField(null=True, blank=True)
    include_feedback = models.BooleanField(default=False)
    feedback_text = models.TextField(blank=True, default="")
    scheduled_for = models.DateTimeField()
    scheduled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    sent_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["scheduled_for", "id"]
        indexes = [models.Index(fields=["status", "scheduled_for"])]

    def __str__(self) -> str:
        return f"{self.get_email_type_display()} to {self.recipient_email} ({self.status})"


class SpeakerAttendance(models.Model):
    """An accepted speaker's confirmation that they will present."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        DECLINED = "declined", "Declined"

    submission = models.OneToOneField(Submission, on_delete=models.CASCADE, related_name="attendance")
    speaker = models.ForeignKey(Speaker, on_delete=models.CASCADE, related_name="attendance")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    decline_reason = models.CharField(max_length=100, blank=True, default="")
    decline_notes = models.TextField(blank=True, default="")
    token = models.CharField(max_length=64, unique=True, default=_attendance_token)
    responded_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "speaker attendance"

    def __str__(self) -> str:
        return f"{self.speaker} / {self.submission} ({self.status})"
