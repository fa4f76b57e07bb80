"""Django admin configuration for the call-for-papers app."""

from typing import TYPE_CHECKING

from django.contrib import admin, messages
from django.core.exceptions import ValidationError

from django_conference.cfp.models import (
    DecisionEvent,
    Review,
    Reviewer,
    ScheduledDecisionEmail,
    Speaker,
    SpeakerAttendance,
    Submission,
    Tag,
)
from django_conference.cfp.services.scheduled_emails import ScheduledEmailService

if TYPE_CHECKING:
    from django.db.models import QuerySet
    from django.http import HttpRequest


@admin.register(Speaker)
class SpeakerAdmin(admin.ModelAdmin):
    list_display = ("__str__", "email", "company", "conference", "created_at")
    list_filter = ("conference",)
    search_fields = ("first_name", "last_name", "email", "company")


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ("name", "is_suggested")
    list_filter = ("is_suggested",)
    search_fields = ("name",)


class ReviewInline(admin.TabularInline):
    model = Review
    extra = 0
    fields = ("reviewer", "score_overall", "feedback_to_speaker")
    readonly_fields = ("reviewer",)


class DecisionEventInline(admin.TabularInline):
    """Audit trail; entries are never edited."""

    model = DecisionEvent
    extra = 0
    can_delete = False
    readonly_fields = ("event_type", "previous_status", "new_status", "actor", "notes", "metadata", "created_at")

    def has_add_permission(self, request: "HttpRequest", obj: object = None) -> bool:  # noqa: ARG002
        return False


@admin.register(Submission)
class SubmissionAdmin(admin.ModelAdmin):
    """Submissions with their reviews and decision history inline."""

    list_display = ("title", "speaker", "conference", "submission_type", "status", "decision_status", "submitted_at")
    list_filter = ("conference", "status", "decision_status", "submission_type", "talk_level")
    search_fields = ("title", "speaker__first_name", "speaker__last_name", "speaker__email")
    filter_horizontal = ("tags",)
    readonly_fields = (
        "submitted_at",
        "withdrawn_at",
        "decision_at",
        "decision_by",
        "coupon_code",
        "coupon_generated_at",
        "decision_email_scheduled_for",
        "decision_email_sent_at",
    )
    inlines = (ReviewInline, DecisionEventInline)


@admin.register(Reviewer)
class ReviewerAdmin(admin.ModelAdmin):
    list_display = ("user", "conference", "role", "can_see_speaker_identity", "is_active")
    list_filter = ("conference", "role", "is_active")
    search_fields = ("user__email", "user__username")


@admin.register(Review)
class ReviewAdmin(admin.ModelAdmin):
    list_display = ("submission", "reviewer", "score_overall", "created_at")
    list_filter = ("submission__conference", "score_overall")
    search_fields = ("submission__title",)


@admin.register(ScheduledDecisionEmail)
class ScheduledDecisionEmailAdmin(admin.ModelAdmin):
    """Pending decision emails can be cancelled from the changelist."""

    list_display = ("submission", "email_type", "recipient_email", "status", "scheduled_for", "sent_at")
    list_filter = ("status", "email_type", "submission__conference")
    search_fields = ("recipient_email", "submission__title", "coupon_code")
    readonly_fields = ("sent_at", "failure_reason", "scheduled_by", "created_at")
    actions = ("cancel_emails",)

    @admin.action(description="Cancel selected pending emails")
    def cancel_emails(self, request: "HttpRequest", queryset: "QuerySet[ScheduledDecisionEmail]") -> None:
        cancelled = 0
        for email in queryset.select_related("submission"):
            try:
                ScheduledEmailService.cancel(email, actor=request.user)
            except ValidationError:
                continue
            cancelled += 1
        self.message_user(request, f"Cancelled {cancelled} email(s).", messages.SUCCESS)


@admin.register(SpeakerAttendance)
class SpeakerAttendanceAdmin(admin.ModelAdmin):
    list_display = ("speaker", "submission", "status", "responded_at")
    list_filter = ("status", "submission__conference")
    readonly_fields = ("token", "responded_at")
