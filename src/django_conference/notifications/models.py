"""Queued outbound email for django-conference."""

from django.db import models


class OutboundEmail(models.Model):
    """An email waiting to be sent (or already sent) by the dispatcher.

    The ``template`` names a pair of ``django_conference/emails/<name>.txt``
    and ``.html`` templates; ``context`` holds the JSON-safe values they are
    rendered with. ``dedupe_key`` keeps repeated queue requests from
    producing duplicate emails.
    """

    class Kind(models.TextChoices):
        TICKET_CONFIRMATION = "ticket_confirmation", "Ticket confirmation"
        CART_ABANDONMENT = "cart_abandonment", "Cart abandonment"
        GENERIC = "generic", "Generic"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SENT = "sent", "Sent"
        FAILED = "failed", "Failed"
        CANCELLED = "cancelled", "Cancelled"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="outbound_emails",
    )
    kind = models.CharField(max_length=30, choices=Kind.choices, default=Kind.GENERIC)
    to = models.EmailField()
    subject = models.CharField(max_length=300, blank=True, default="")
    template = models.CharField(max_length=100)
    context = models.JSONField(default=dict, blank=True)
    send_after = models.DateTimeField()
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    sent_at = models.DateTimeField(null=True, blank=True)
    attempts = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True, default="")
    dedupe_key = models.CharField(max_length=200, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["send_after", "id"]
        indexes = [models.Index(fields=["status", "send_after"])]
        constraints = [
            models.UniqueConstraint(
                fields=["dedupe_key"],
                condition=~models.Q(dedupe_key=""),
                name="conference_notifications_unique_dedupe_key",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()} to {self.to} ({self.status})"
