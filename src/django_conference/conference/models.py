"""Conference, feature flag and pricing stage models for django-conference."""

import datetime

from django.apps import apps
from django.db import models
from django.utils import timezone
from encrypted_fields import EncryptedCharField


class Conference(models.Model):
    """A conference event with dates, venue, CFP window and Stripe settings.

    The central model that all other apps reference. Stripe keys are stored
    encrypted so each conference can bill through its own account.
    """

    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    start_date = models.DateField()
    end_date = models.DateField()
    timezone = models.CharField(max_length=100, default="UTC")
    venue = models.CharField(max_length=300, blank=True, default="")
    address = models.CharField(max_length=500, blank=True, default="")
    website_url = models.URLField(blank=True, default="")
    contact_email = models.EmailField(blank=True, default="")

    cfp_opens_at = models.DateTimeField(null=True, blank=True)
    cfp_closes_at = models.DateTimeField(null=True, blank=True)

    stripe_secret_key = EncryptedCharField(max_length=200, blank=True, null=True, default=None)
    stripe_publishable_key = EncryptedCharField(max_length=200, blank=True, null=True, default=None)
    stripe_webhook_secret = EncryptedCharField(max_length=200, blank=True, null=True, default=None)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-start_date"]

    def __str__(self) -> str:
        return self.name

    @property
    def is_cfp_open(self) -> bool:
        """Whether speakers can currently create or reopen submissions.

        An unset bound leaves that side of the window open.
        """
        now = timezone.now()
        if self.cfp_opens_at and now < self.cfp_opens_at:
            return False
        return not (self.cfp_closes_at and now >= self.cfp_closes_at)


class FeatureFlags(models.Model):
    """Per-conference overrides for the settings-level feature toggles.

    Each field is a nullable boolean: ``None`` defers to
    ``DJANGO_CONFERENCE["features"]``, ``True``/``False`` force the value.
    """

    conference = models.OneToOneField(
        Conference,
        on_delete=models.CASCADE,
        related_name="feature_flags",
    )
    registration_enabled = models.BooleanField(null=True, blank=True, default=None)
    cfp_enabled = models.BooleanField(null=True, blank=True, default=None)
    reviews_enabled = models.BooleanField(null=True, blank=True, default=None)
    public_ui_enabled = models.BooleanField(null=True, blank=True, default=None)
    manage_ui_enabled = models.BooleanField(null=True, blank=True, default=None)
    all_ui_enabled = models.BooleanField(null=True, blank=True, default=None)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "feature flags"
        verbose_name_plural = "feature flags"

    def __str__(self) -> str:
        return f"Feature flags ({self.conference.slug})"


class PricingStageQuerySet(models.QuerySet):
    """Query helpers for resolving the active pricing stage."""

    def current(self, conference: Conference, now: datetime.datetime | None = None) -> "PricingStage | None":
        """Return the cheapest stage that is open at *now* and not sold out.

        Stages are tried in ``priority`` order. A stage whose date window
        contains *now* but whose stock limit is exhausted hands over to the
        next stage by priority, even before its scheduled start.
        """
        now = now or timezone.now()
        stages = list(self.filter(conference=conference).order_by("priority"))
        for index, stage in enumerate(stages):
            if not stage.starts_at <= now < stage.ends_at:
                continue
            if not stage.is_stock_exhausted:
                return stage
            for later in stages[index + 1 :]:
                if now < later.ends_at and not later.is_stock_exhausted:
                    return later
            return None
        return None


class PricingStage(models.Model):
    """A date-bounded pricing phase (blind bird, early bird, ...).

    Ticket types bound to a stage are only sold while that stage is the
    conference's current stage.  An optional ``stock_limit`` ends the stage
    early once that many tickets of ``limited_categories`` are confirmed.
    """

    class Stage(models.TextChoices):
        """Known pricing phases, cheapest first."""

        BLIND_BIRD = "blind_bird", "Blind Bird"
        EARLY_BIRD = "early_bird", "Early Bird"
        STANDARD = "standard", "General Admission"
        LATE_BIRD = "late_bird", "Late Bird"

    conference = models.ForeignKey(
        Conference,
        on_delete=models.CASCADE,
        related_name="pricing_stages",
    )
    stage = models.CharField(max_length=20, choices=Stage.choices)
    display_name = models.CharField(max_length=100, blank=True, default="")
    description = models.CharField(max_length=300, blank=True, default="")
    starts_at = models.DateTimeField()
    ends_at = models.DateTimeField(help_text="Exclusive end of the stage.")
    priority = models.PositiveIntegerField(default=0, help_text="Lower values are earlier and cheaper.")
    stock_limit = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Confirmed tickets after which the stage closes. Empty means unlimited.",
    )
    limited_categories = models.JSONField(
        default=list,
        blank=True,
        help_text="Ticket categories counted against the stock limit. Empty means all.",
    )

    objects = PricingStageQuerySet.as_manager()

    class Meta:
        ordering = ["priority", "starts_at"]
        unique_together = [("conference", "stage")]

    def __str__(self) -> str:
        return f"{self.label} ({self.conference.slug})"

    @property
    def label(self) -> str:
        """Display name, falling back to the stage choice label."""
        return self.display_name or self.get_stage_display()

    def sold_count(self) -> int:
        """Return confirmed tickets counted against this stage's stock limit."""
        ticket_model = apps.get_model("conference_registration", "Ticket")
        qs = ticket_model.objects.filter(
            ticket_type__stage=self,
            status=ticket_model.Status.CONFIRMED,
        )
        if self.limited_categories:
            qs = qs.filter(ticket_type__category__in=self.limited_categories)
        return qs.count()

    @property
    def remaining_stock(self) -> int | None:
        """Tickets left before the stage sells out, or ``None`` when unlimited."""
        if self.stock_limit is None:
            return None
        return max(0, self.stock_limit - self.sold_count())

    @property
    def is_stock_exhausted(self) -> bool:
        """Whether the stage's stock limit has been reached."""
        remaining = self.remaining_stock
        return remaining is not None and remaining <= 0
