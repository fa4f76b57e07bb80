"""Django admin configuration for the registration app."""

from typing import TYPE_CHECKING

from django.contrib import admin, messages
from django.core.exceptions import ValidationError

from django_conference.registration.models import (
    AddOn,
    Cart,
    CartAttendee,
    CartItem,
    EventProcessingException,
    Order,
    OrderLineItem,
    Payment,
    StripeCustomer,
    StripeEvent,
    Ticket,
    TicketType,
    VerificationRequest,
    Voucher,
)
from django_conference.registration.services.tickets import TicketService
from django_conference.registration.services.verification import VerificationService

if TYPE_CHECKING:
    from collections.abc import Callable

    from django.db.models import QuerySet
    from django.http import HttpRequest


class ReadOnlyAdminMixin:
    """Disable add, change and delete for records written by Stripe."""

    def has_add_permission(self, request: "HttpRequest") -> bool:  # noqa: ARG002
        return False

    def has_change_permission(self, request: "HttpRequest", obj: object = None) -> bool:  # noqa: ARG002
        return False

    def has_delete_permission(self, request: "HttpRequest", obj: object = None) -> bool:  # noqa: ARG002
        return False


@admin.register(TicketType)
class TicketTypeAdmin(admin.ModelAdmin):
    """Admin interface for managing ticket types.

    Provides filtering by conference, category, stage and active status, and
    auto-population of the slug from the ticket name.
    """

    list_display = ("name", "conference", "category", "stage", "price", "total_quantity", "is_active", "order")
    list_filter = ("conference", "category", "stage", "is_active", "requires_voucher")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}


@admin.register(AddOn)
class AddOnAdmin(admin.ModelAdmin):
    list_display = ("name", "conference", "kind", "price", "is_active")
    list_filter = ("conference", "kind", "is_active")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    filter_horizontal = ("requires_ticket_types",)


@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    """Admin interface for managing vouchers.

    Displays usage counts alongside the voucher configuration and the
    Stripe coupon it is mirrored to, if any.
    """

    list_display = (
        "code",
        "conference",
        "voucher_type",
        "discount_value",
        "source",
        "times_used",
        "max_uses",
        "is_active",
    )
    list_filter = ("conference", "voucher_type", "source", "is_active")
    search_fields = ("code", "stripe_coupon_id")
    readonly_fields = ("times_used", "stripe_coupon_id", "stripe_promotion_code_id")
    filter_horizontal = ("applicable_ticket_types", "applicable_addons")


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    readonly_fields = ("ticket_type", "addon", "quantity")


class CartAttendeeInline(admin.TabularInline):
    model = CartAttendee
    extra = 0
    readonly_fields = ("position", "first_name", "last_name", "email", "company", "job_title")


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    """Read-oriented view of carts; the storefront manages their contents."""

    list_display = ("user", "conference", "status", "step", "voucher", "expires_at")
    list_filter = ("conference", "status", "step")
    search_fields = ("user__email", "contact_email")
    inlines = (CartItemInline, CartAttendeeInline)


class OrderLineItemInline(admin.TabularInline):
    """Line items are immutable snapshots from checkout."""

    model = OrderLineItem
    extra = 0
    readonly_fields = (
        "description",
        "quantity",
        "unit_price",
        "discount_amount",
        "line_total",
        "ticket_type",
        "addon",
    )


class PaymentInline(admin.TabularInline):
    model = Payment
    extra = 0
    fk_name = "order"


class TicketInline(admin.TabularInline):
    model = Ticket
    extra = 0
    fields = ("code", "ticket_type", "first_name", "last_name", "email", "status", "amount_paid")
    readonly_fields = ("code", "ticket_type", "amount_paid")
    fk_name = "order"


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Admin interface for managing orders.

    Money fields are read-only; changes flow through the payment and refund
    workflows instead.
    """

    list_display = ("reference", "user", "conference", "status", "total", "created_at")
    list_filter = ("conference", "status")
    search_fields = ("reference", "user__email", "billing_email")
    readonly_fields = (
        "subtotal",
        "discount_amount",
        "total",
        "amount_refunded",
        "stripe_checkout_session_id",
        "paid_at",
    )
    inlines = (OrderLineItemInline, PaymentInline, TicketInline)


@admin.register(Ticket)
class TicketAdmin(admin.ModelAdmin):
    """Issued tickets, searchable by code and attendee."""

    list_display = ("code", "attendee_name", "email", "ticket_type", "status", "source", "amount_paid")
    list_filter = ("conference", "status", "source", "ticket_type__category")
    search_fields = ("code", "email", "first_name", "last_name", "order__reference")
    readonly_fields = ("code", "order", "amount_paid", "currency", "reassigned_from_email", "issued_by")
    actions = ("cancel_tickets",)

    @admin.action(description="Cancel selected tickets")
    def cancel_tickets(self, request: "HttpRequest", queryset: "QuerySet[Ticket]") -> None:
        cancelled = 0
        for ticket in queryset:
            try:
                TicketService.cancel(ticket)
            except ValidationError:
                continue
            cancelled += 1
        self.message_user(request, f"Cancelled {cancelled} ticket(s).", messages.SUCCESS)


@admin.register(VerificationRequest)
class VerificationRequestAdmin(admin.ModelAdmin):
    list_display = ("reference", "name", "email", "kind", "ticket_type", "status", "created_at")
    list_filter = ("conference", "kind", "status")
    search_fields = ("reference", "name", "email", "university")
    readonly_fields = ("reference", "voucher", "reviewed_by", "reviewed_at", "created_at", "updated_at")
    actions = ["approve_requests", "reject_requests"]

    def _decide(
        self,
        request: "HttpRequest",
        queryset: "QuerySet[VerificationRequest]",
        decide: "Callable[..., VerificationRequest]",
    ) -> int:
        decided = 0
        for item in queryset.filter(status=VerificationRequest.Status.PENDING):
            try:
                decide(item, actor=request.user)
            except ValidationError:
                continue
            decided += 1
        return decided

    @admin.action(description="Approve selected requests and email a voucher")
    def approve_requests(self, request: "HttpRequest", queryset: "QuerySet[VerificationRequest]") -> None:
        approved = self._decide(request, queryset, VerificationService.approve)
        self.message_user(request, f"Approved {approved} request(s).", messages.SUCCESS)

    @admin.action(description="Reject selected requests")
    def reject_requests(self, request: "HttpRequest", queryset: "QuerySet[VerificationRequest]") -> None:
        rejected = self._decide(request, queryset, VerificationService.reject)
        self.message_user(request, f"Rejected {rejected} request(s).", messages.SUCCESS)


@admin.register(StripeCustomer)
class StripeCustomerAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = ("user", "conference", "stripe_customer_id", "created_at")
    list_filter = ("conference",)
    search_fields = ("user__email", "stripe_customer_id")


@admin.register(StripeEvent)
class StripeEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Read-only admin for Stripe webhook events."""

    list_display = ("stripe_id", "kind", "processed", "livemode", "created_at")
    list_filter = ("kind", "processed", "livemode")
    search_fields = ("stripe_id", "customer_id")


@admin.register(EventProcessingException)
class EventProcessingExceptionAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Read-only admin for webhook processing errors."""

    list_display = ("message", "event", "created_at")
    list_filter = ("created_at",)
    search_fields = ("message",)
