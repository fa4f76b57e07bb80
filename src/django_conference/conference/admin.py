"""Django admin configuration for the conference app."""

from django import forms
from django.contrib import admin

from django_conference.conference.models import Conference, FeatureFlags, PricingStage

SECRET_PLACEHOLDER = "•" * 12


class SecretInput(forms.PasswordInput):
    """Password widget that renders a placeholder when a secret is stored.

    The decrypted value never reaches the HTML source. Submitting the
    placeholder (or an empty string) keeps the stored value.
    """

    def format_value(self, value: str | None) -> str:
        """Return a dot placeholder when a value exists, empty string otherwise."""
        return SECRET_PLACEHOLDER if value else ""


class SecretField(forms.CharField):
    """Char field that keeps the stored secret when left blank or unchanged."""

    widget = SecretInput

    def __init__(self, **kwargs: object) -> None:
        """Default to optional and disable browser autocomplete."""
        kwargs.setdefault("required", False)
        super().__init__(**kwargs)
        self.widget.attrs.setdefault("autocomplete", "off")

    def has_changed(self, initial: str | None, data: str | None) -> bool:
        """Treat placeholder or blank submissions as unchanged."""
        if not data or data == SECRET_PLACEHOLDER:
            return False
        return super().has_changed(initial, data)

    def clean(self, value: str | None) -> str | None:
        """Return the stored value when the field is left blank or unchanged."""
        if not value or value == SECRET_PLACEHOLDER:
            return self.initial
        return super().clean(value)


class ConferenceForm(forms.ModelForm):
    """Conference admin form with masked Stripe credentials."""

    stripe_secret_key = SecretField()
    stripe_publishable_key = SecretField()
    stripe_webhook_secret = SecretField()

    class Meta:
        model = Conference
        exclude: list[str] = []

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Seed each secret field's ``initial`` with the stored value."""
        super().__init__(*args, **kwargs)
        for name in ("stripe_secret_key", "stripe_publishable_key", "stripe_webhook_secret"):
            self.fields[name].initial = getattr(self.instance, name, None)


class FeatureFlagsForm(forms.ModelForm):
    """FeatureFlags form whose null choice reads "Default (settings)"."""

    class Meta:
        model = FeatureFlags
        exclude: list[str] = []

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Relabel the nullable boolean choices."""
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            if isinstance(field.widget, forms.NullBooleanSelect):
                field.widget.choices = [
                    ("unknown", "Default (settings)"),
                    ("true", "Force on"),
                    ("false", "Force off"),
                ]


_FLAG_FIELDSETS = (
    ("Modules", {"fields": ("registration_enabled", "cfp_enabled", "reviews_enabled")}),
    ("UI", {"fields": ("public_ui_enabled", "manage_ui_enabled", "all_ui_enabled")}),
)


class FeatureFlagsInline(admin.StackedInline):
    """Per-conference feature overrides, edited on the conference page."""

    model = FeatureFlags
    form = FeatureFlagsForm
    extra = 0
    max_num = 1
    fieldsets = _FLAG_FIELDSETS


class PricingStageInline(admin.TabularInline):
    """Pricing stages edited on the conference page."""

    model = PricingStage
    extra = 0
    fields = ("stage", "display_name", "starts_at", "ends_at", "priority", "stock_limit", "limited_categories")


@admin.register(Conference)
class ConferenceAdmin(admin.ModelAdmin):
    """Admin for conferences, with stages and feature flags inline."""

    form = ConferenceForm
    list_display = ("name", "slug", "start_date", "end_date", "is_cfp_open", "is_active")
    list_filter = ("is_active",)
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    inlines = (PricingStageInline, FeatureFlagsInline)

    fieldsets = (
        (None, {"fields": ("name", "slug", "venue", "address", "website_url", "contact_email")}),
        ("Dates", {"fields": ("start_date", "end_date", "timezone")}),
        ("Call for papers", {"fields": ("cfp_opens_at", "cfp_closes_at")}),
        (
            "Stripe",
            {
                "fields": ("stripe_secret_key", "stripe_publishable_key", "stripe_webhook_secret"),
                "classes": ("collapse",),
            },
        ),
        ("Status", {"fields": ("is_active",)}),
    )

    @admin.display(boolean=True, description="CFP open")
    def is_cfp_open(self, obj: Conference) -> bool:
        return obj.is_cfp_open


@admin.register(PricingStage)
class PricingStageAdmin(admin.ModelAdmin):
    list_display = ("__str__", "conference", "starts_at", "ends_at", "priority", "stock_limit")
    list_filter = ("conference", "stage")


@admin.register(FeatureFlags)
class FeatureFlagsAdmin(admin.ModelAdmin):
    """Standalone list of feature overrides across conferences."""

    form = FeatureFlagsForm
    list_display = ("conference", "registration_enabled", "cfp_enabled", "reviews_enabled", "updated_at")
    list_filter = ("conference",)
    fieldsets = (("Conference", {"fields": ("conference",)}), *_FLAG_FIELDSETS)
