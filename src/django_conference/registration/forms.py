"""Forms for the registration app.

The JSON endpoints bind request bodies to these forms for validation, so
every error message here can end up in an API response.
"""

import re
from decimal import Decimal

from django import forms
from django.conf import settings
from django.utils.http import url_has_allowed_host_and_scheme

from django_conference.registration.models import Cart, TicketType, VerificationRequest, Voucher

LINKEDIN_URL = re.compile(r"^https?://(www\.)?linkedin\.com/.+", re.IGNORECASE)


class CartItemForm(forms.Form):
    """Form for adding an item to the cart.

    Validates that exactly one of ``ticket_type_id`` or ``addon_id`` is
    provided so each cart line references a single purchasable item.
    """

    ticket_type_id = forms.IntegerField(required=False)
    addon_id = forms.IntegerField(required=False)
    quantity = forms.IntegerField(min_value=1, initial=1, required=False)

    def clean(self) -> dict:
        """Ensure exactly one of ticket_type_id or addon_id is supplied."""
        cleaned = super().clean()
        has_ticket = cleaned.get("ticket_type_id") is not None
        has_addon = cleaned.get("addon_id") is not None

        if has_ticket == has_addon:
            raise forms.ValidationError("Provide exactly one of ticket_type_id or addon_id, not both or neither.")

        if cleaned.get("quantity") is None:
            cleaned["quantity"] = 1
        return cleaned


class CartQuantityForm(forms.Form):
    """New quantity for a cart line; zero or less removes it."""

    quantity = forms.IntegerField()


class VoucherApplyForm(forms.Form):
    """Form for applying a voucher code to the current cart."""

    code = forms.CharField(max_length=100, strip=True)


class VoucherValidateForm(forms.Form):
    """Voucher lookup without touching the cart."""

    code = forms.CharField(max_length=100, strip=True)
    ticket_type_ids = forms.JSONField(required=False)

    def clean_ticket_type_ids(self) -> list[int] | None:
        value = self.cleaned_data.get("ticket_type_ids")
        if value in (None, ""):
            return None
        if not isinstance(value, list):
            raise forms.ValidationError("ticket_type_ids must be a list.")
        try:
            return [int(pk) for pk in value]
        except (TypeError, ValueError):
            raise forms.ValidationError("ticket_type_ids must contain integers.") from None


class CartStepForm(forms.Form):
    step = forms.ChoiceField(choices=Cart.Step.choices)


class AbandonedCartForm(forms.Form):
    email = forms.EmailField()


class CheckoutForm(forms.Form):
    """Billing information collected at checkout.

    ``success_url`` and ``cancel_url`` are where Stripe sends the buyer back
    to, so they must point at one of *allowed_hosts*. HTTPS is required
    unless ``DEBUG`` is on.
    """

    billing_name = forms.CharField(max_length=200)
    billing_email = forms.EmailField()
    billing_company = forms.CharField(max_length=200, required=False)
    success_url = forms.URLField(required=False)
    cancel_url = forms.URLField(required=False)

    def __init__(self, *args: object, allowed_hosts: set[str] | None = None, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)
        self.allowed_hosts = allowed_hosts or set()

    def _clean_return_url(self, name: str) -> str:
        url = self.cleaned_data[name]
        if url and not url_has_allowed_host_and_scheme(
            url, allowed_hosts=self.allowed_hosts, require_https=not settings.DEBUG
        ):
            raise forms.ValidationError("Return URLs must point at this site.")
        return url

    def clean_success_url(self) -> str:
        return self._clean_return_url("success_url")

    def clean_cancel_url(self) -> str:
        return self._clean_return_url("cancel_url")


class IssueTicketForm(forms.Form):
    """Staff form for issuing a ticket outside checkout."""

    ticket_type_id = forms.IntegerField()
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)
    email = forms.EmailField()
    company = forms.CharField(max_length=200, required=False)
    job_title = forms.CharField(max_length=200, required=False)
    amount_paid = forms.DecimalField(max_digits=10, decimal_places=2, min_value=Decimal("0.00"), required=False)
    send_email = forms.BooleanField(required=False, initial=True)

    def __init__(self, *args: object, conference: object = None, **kwargs: object) -> None:
        """Scope ticket type lookups to *conference*."""
        super().__init__(*args, **kwargs)
        self.conference = conference

    def clean_ticket_type_id(self) -> TicketType:
        ticket_type = TicketType.objects.filter(
            pk=self.cleaned_data["ticket_type_id"], conference=self.conference
        ).first()
        if ticket_type is None:
            raise forms.ValidationError("Unknown ticket type.")
        return ticket_type

    def clean(self) -> dict:
        cleaned = super().clean()
        if cleaned.get("amount_paid") is None:
            cleaned["amount_paid"] = Decimal("0.00")
        if "send_email" not in self.data:
            cleaned["send_email"] = True
        return cleaned


class ReassignTicketForm(forms.Form):
    first_name = forms.CharField(max_length=100)
    last_name = forms.CharField(max_length=100)
    email = forms.EmailField()
    company = forms.CharField(max_length=200, required=False)
    job_title = forms.CharField(max_length=200, required=False)
    send_email = forms.BooleanField(required=False)

    def clean(self) -> dict:
        cleaned = super().clean()
        if "send_email" not in self.data:
            cleaned["send_email"] = True
        return cleaned


class VoucherBulkGenerateForm(forms.Form):
    """Form for bulk-generating a batch of voucher codes.

    Collects the shared configuration for a batch: prefix, count, discount
    type and value, usage limits, validity window, and whether the codes
    should be mirrored to Stripe as coupons.
    """

    prefix = forms.CharField(
        max_length=20,
        initial="",
        help_text="Fixed prefix for generated codes (e.g. SPEAKER-, SPONSOR-).",
    )
    count = forms.IntegerField(
        min_value=1,
        max_value=500,
        help_text="Number of voucher codes to generate (1-500).",
    )
    voucher_type = forms.ChoiceField(choices=Voucher.VoucherType.choices)
    discount_value = forms.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.00"),
        initial=Decimal("0.00"),
        required=False,
        help_text="Percentage (0-100) or fixed amount. Ignored for comp vouchers.",
    )
    max_uses = forms.IntegerField(min_value=1, initial=1, required=False)
    valid_from = forms.DateTimeField(required=False)
    valid_until = forms.DateTimeField(required=False)
    unlocks_hidden_tickets = forms.BooleanField(required=False)
    source = forms.ChoiceField(choices=Voucher.Source.choices, required=False)
    applicable_ticket_type_ids = forms.JSONField(required=False)
    sync_to_stripe = forms.BooleanField(required=False)

    def clean(self) -> dict:
        """Validate discount value, dates and fill defaults."""
        cleaned = super().clean()
        voucher_type = cleaned.get("voucher_type")
        discount = cleaned.get("discount_value") or Decimal("0.00")
        if voucher_type == Voucher.VoucherType.PERCENTAGE and discount > 100:
            raise forms.ValidationError("Percentage discount cannot exceed 100.")
        if voucher_type in (Voucher.VoucherType.PERCENTAGE, Voucher.VoucherType.FIXED_AMOUNT) and discount <= 0:
            raise forms.ValidationError("Discount value must be greater than zero.")
        cleaned["discount_value"] = discount

        valid_from = cleaned.get("valid_from")
        valid_until = cleaned.get("valid_until")
        if valid_from and valid_until and valid_from >= valid_until:
            raise forms.ValidationError("valid_from must be before valid_until.")

        cleaned["max_uses"] = cleaned.get("max_uses") or 1
        cleaned["source"] = cleaned.get("source") or Voucher.Source.BULK

        ids = cleaned.get("applicable_ticket_type_ids")
        if ids in (None, ""):
            cleaned["applicable_ticket_type_ids"] = []
        elif not isinstance(ids, list) or not all(isinstance(pk, int) for pk in ids):
            raise forms.ValidationError("applicable_ticket_type_ids must be a list of integers.")
        return cleaned


class VerificationRequestForm(forms.Form):
    """Proof of eligibility for a student or unemployed ticket.

    Students give their student id and school; unemployed applicants give
    a LinkedIn profile URL.
    """

    ticket_type_id = forms.IntegerField()
    kind = forms.ChoiceField(choices=VerificationRequest.Kind.choices)
    name = forms.CharField(max_length=200)
    email = forms.EmailField()
    student_id = forms.CharField(max_length=100, required=False)
    university = forms.CharField(max_length=200, required=False)
    linkedin_url = forms.URLField(required=False)
    rav_registration_date = forms.DateField(required=False)
    additional_info = forms.CharField(max_length=2000, required=False)

    def __init__(self, *args: object, conference: object = None, **kwargs: object) -> None:
        super().__init__(*args, **kwargs)
        self.conference = conference

    def clean_ticket_type_id(self) -> TicketType:
        ticket_type = TicketType.objects.filter(
            pk=self.cleaned_data["ticket_type_id"],
            conference=self.conference,
            is_active=True,
            requires_verification=True,
        ).first()
        if ticket_type is None:
            raise forms.ValidationError("This ticket type does not take verification requests.")
        return ticket_type

    def clean(self) -> dict:
        cleaned = super().clean()
        kind = cleaned.get("kind")
        if kind == VerificationRequest.Kind.STUDENT:
            if not cleaned.get("student_id", "").strip():
                self.add_error("student_id", "Student ID is required.")
            if not cleaned.get("university", "").strip():
                self.add_error("university", "University name is required.")
        elif kind == VerificationRequest.Kind.UNEMPLOYED:
            url = cleaned.get("linkedin_url", "")
            if not url:
                self.add_error("linkedin_url", "LinkedIn profile URL is required.")
            elif not LINKEDIN_URL.match(url):
                self.add_error("linkedin_url", "Invalid LinkedIn profile URL.")
        return cleaned


class VerificationDecisionForm(forms.Form):
    decision = forms.ChoiceField(choices=[("approve", "Approve"), ("reject", "Reject")])
    note = forms.CharField(max_length=2000, required=False)
