"""Django admin configuration for queued emails."""

from django.contrib import admin, messages
from django.db.models import QuerySet
from django.http import HttpRequest
from django.utils import timezone

from django_conference.notifications.models import OutboundEmail


@admin.register(OutboundEmail)
class OutboundEmailAdmin(admin.ModelAdmin):
    """Admin for the outbound email queue."""

    list_display = ("to", "kind", "template", "status", "send_after", "sent_at", "attempts")
    list_filter = ("status", "kind", "conference")
    search_fields = ("to", "dedupe_key")
    readonly_fields = ("sent_at", "attempts", "error", "created_at", "updated_at")
    date_hierarchy = "send_after"
    actions = ("cancel_selected", "retry_selected")

    @admin.action(description="Cancel selected pending emails")
    def cancel_selected(self, request: HttpRequest, queryset: QuerySet[OutboundEmail]) -> None:
        count = queryset.filter(status=OutboundEmail.Status.PENDING).update(
            status=OutboundEmail.Status.CANCELLED, updated_at=timezone.now()
        )
        self.message_user(request, f"Cancelled {count} email(s).", messages.SUCCESS)

    @admin.action(description="Retry selected failed emails")
    def retry_selected(self, request: HttpRequest, queryset: QuerySet[OutboundEmail]) -> None:
        count = queryset.filter(status=OutboundEmail.Status.FAILED).update(
            status=OutboundEmail.Status.PENDING, send_after=timezone.now(), updated_at=timezone.now()
        )
        self.message_user(request, f"Re-queued {count} email(s).", messages.SUCCESS)
