"""Ticketing, cart, order, payment and Stripe models for django-conference."""

import secrets
import string
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_conference.conference.models import PricingStage

TICKET_CODE_ALPHABET = string.ascii_uppercase + string.digits


def _generate_ticket_code() -> str:
    return "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(10))


def _generate_verification_reference() -> str:
    return "VER-" + "".join(secrets.choice(TICKET_CODE_ALPHABET) for _ in range(10))


def _reserved_order_filter(prefix: str = "") -> models.Q:
    """Match orders that hold inventory: paid, or pending with a live hold."""
    now = timezone.now()
    return models.Q(**{f"{prefix}status__in": [Order.Status.PAID, Order.Status.PARTIALLY_REFUNDED]}) | models.Q(
        **{f"{prefix}status": Order.Status.PENDING, f"{prefix}hold_expires_at__gt": now}
    )


class TicketType(models.Model):
    """A purchasable ticket for a conference.

    Each ticket type belongs to a category (standard, student/unemployed,
    VIP) and optionally to a pricing stage. A ticket bound to a stage is
    only on sale while that stage is the conference's current stage.
    Ticket types flagged with ``requires_voucher`` are hidden from the
    public catalog until unlocked by a matching voucher code.
    """

    class Category(models.TextChoices):
        """Audience categories, each priced per stage."""

        STANDARD = "standard", "Standard"
        STUDENT_UNEMPLOYED = "student_unemployed", "Student / Unemployed"
        VIP = "vip", "VIP"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="ticket_types",
    )
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=30, choices=Category.choices, default=Category.STANDARD)
    stage = models.ForeignKey(
        PricingStage,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="ticket_types",
        help_text="Pricing stage this ticket is sold in. Empty means every stage.",
    )
    price = models.DecimalField(max_digits=10, decimal_places=2)
    stripe_price_id = models.CharField(max_length=200, blank=True, default="")
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)
    total_quantity = models.PositiveIntegerField(
        default=0,
        help_text="Maximum number of tickets available. 0 means unlimited.",
    )
    limit_per_user = models.PositiveIntegerField(default=10)
    requires_voucher = models.BooleanField(
        default=False,
        help_text="When True, this ticket type is hidden unless unlocked by a voucher.",
    )
    requires_verification = models.BooleanField(
        default=False,
        help_text="Holders must show proof of eligibility (student card, unemployment letter).",
    )
    is_active = models.BooleanField(default=True)
    order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["order", "name"]
        unique_together = [("conference", "slug")]

    def __str__(self) -> str:
        return f"{self.name} ({self.conference.slug})"

    @property
    def remaining_quantity(self) -> int | None:
        """Return the number of tickets still available for purchase.

        Paid orders and pending orders whose hold has not expired both
        reserve stock.

        Returns:
            The remaining count, or ``None`` if this ticket type has unlimited
            quantity (``total_quantity == 0``).
        """
        if self.total_quantity == 0:
            return None
        sold = (
            self.order_line_items.filter(_reserved_order_filter("order__")).aggregate(total=models.Sum("quantity"))[
                "total"
            ]
            or 0
        )
        return max(0, self.total_quantity - sold)

    @property
    def is_sold_out(self) -> bool:
        remaining = self.remaining_quantity
        return remaining is not None and remaining <= 0

    def is_in_current_stage(self, current_stage: PricingStage | None = None) -> bool:
        """Whether the ticket's stage (if any) is the conference's current stage."""
        if self.stage_id is None:
            return True
        if current_stage is None:
            current_stage = PricingStage.objects.current(self.conference)
        return current_stage is not None and current_stage.pk == self.stage_id

    @property
    def is_available(self) -> bool:
        """Check whether this ticket type can currently be purchased.

        A ticket is available when all of the following are true:

        * ``is_active`` is ``True``
        * The current time is within the ``available_from`` / ``available_until``
          window (if set)
        * Its pricing stage, when set, is the current stage
        * There is remaining quantity (or quantity is unlimited)
        """
        if not self.is_active:
            return False
        now = timezone.now()
        if self.available_from and now < self.available_from:
            return False
        if self.available_until and now > self.available_until:
            return False
        if not self.is_in_current_stage():
            return False
        return not self.is_sold_out


class AddOn(models.Model):
    """An upsell attached to a ticket (workshop seat, merch, ...).

    Add-ons can be restricted to specific ticket types via the
    ``requires_ticket_types`` relation. When that relation is empty the add-on
    is available to holders of any ticket type.
    """

    class Kind(models.TextChoices):
        WORKSHOP = "workshop", "Workshop"
        MERCH = "merch", "Merchandise"
        OTHER = "other", "Other"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="addons",
    )
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200)
    description = models.TextField(blank=True, default="")
    kind = models.CharField(max_length=20, choices=Kind.choices, default=Kind.OTHER)
    price = models.DecimalField(max_digits=10, decimal_places=2)
    stripe_price_id = models.CharField(max_length=200, blank=True, default="")
    requires_ticket_types = models.ManyToManyField(
        TicketType,
        blank=True,
        related_name="available_addons",
        help_text="Ticket types this add-on is available for. Empty means all.",
    )
    available_from = models.DateTimeField(null=True, blank=True)
    available_until = models.DateTimeField(null=True, blank=True)
    total_quantity = models.PositiveIntegerField(
        default=0,
        help_text="Maximum number available. 0 means unlimited.",
    )
    is_active = models.BooleanField(default=True)
    order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["order", "name"]
        unique_together = [("conference", "slug")]

    def __str__(self) -> str:
        return f"{self.name} ({self.conference.slug})"

    @property
    def remaining_quantity(self) -> int | None:
        """Remaining add-on stock, or ``None`` when unlimited."""
        if self.total_quantity == 0:
            return None
        sold = (
            self.order_line_items.filter(_reserved_order_filter("order__")).aggregate(total=models.Sum("quantity"))[
                "total"
            ]
            or 0
        )
        return max(0, self.total_quantity - sold)

    @property
    def is_available(self) -> bool:
        if not self.is_active:
            return False
        now = timezone.now()
        if self.available_from and now < self.available_from:
            return False
        if self.available_until and now > self.available_until:
            return False
        remaining = self.remaining_quantity
        return not (remaining is not None and remaining <= 0)


class Voucher(models.Model):
    """A discount or access code for tickets and add-ons.

    Vouchers can provide a percentage discount, a fixed amount off, or full
    complimentary access (100% off). They can also unlock hidden ticket types
    that require a voucher to purchase. Vouchers synced to Stripe carry the
    coupon and promotion code ids so Checkout can apply the same discount.
    """

    class VoucherType(models.TextChoices):
        """The type of discount a voucher provides."""

        COMP = "comp", "Complimentary (100% off)"
        PERCENTAGE = "percentage", "Percentage discount"
        FIXED_AMOUNT = "fixed_amount", "Fixed amount discount"

    class Source(models.TextChoices):
        """Where the voucher came from."""

        MANUAL = "manual", "Manual"
        BULK = "bulk", "Bulk generated"
        CFP_REJECTION = "cfp_rejection", "CFP rejection coupon"
        PARTNERSHIP = "partnership", "Partnership"
        VERIFICATION = "verification", "Eligibility verification"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="vouchers",
    )
    code = models.CharField(max_length=100)
    voucher_type = models.CharField(
        max_length=20,
        choices=VoucherType.choices,
        default=VoucherType.COMP,
    )
    discount_value = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=0,
        help_text="Percentage (0-100) or fixed amount depending on voucher_type.",
    )
    applicable_ticket_types = models.ManyToManyField(
        TicketType,
        blank=True,
        related_name="vouchers",
        help_text="Ticket types this voucher applies to. Empty means all.",
    )
    applicable_addons = models.ManyToManyField(
        AddOn,
        blank=True,
        related_name="vouchers",
        help_text="Add-ons this voucher applies to. Empty means all.",
    )
    max_uses = models.PositiveIntegerField(default=1)
    times_used = models.PositiveIntegerField(default=0)
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    unlocks_hidden_tickets = models.BooleanField(
        default=False,
        help_text="When True, reveals ticket types that require a voucher.",
    )
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.MANUAL)
    stripe_coupon_id = models.CharField(max_length=200, blank=True, default="")
    stripe_promotion_code_id = models.CharField(max_length=200, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [("conference", "code")]

    def __str__(self) -> str:
        return f"{self.code} ({self.conference.slug})"

    @property
    def is_expired(self) -> bool:
        """Whether the current time falls outside the validity window."""
        now = timezone.now()
        if self.valid_from and now < self.valid_from:
            return True
        return bool(self.valid_until and now > self.valid_until)

    @property
    def is_exhausted(self) -> bool:
        return self.times_used >= self.max_uses

    @property
    def is_valid(self) -> bool:
        """Check whether this voucher can currently be redeemed.

        A voucher is valid when it is active, has remaining uses, and the
        current time falls within the optional validity window.
        """
        return self.is_active and not self.is_exhausted and not self.is_expired


class Cart(models.Model):
    """A user's shopping cart for a conference.

    Carts hold ticket and add-on selections before checkout and walk
    through the ``step`` sequence review, attendees, upsells, checkout.
    They move from ``OPEN`` to ``CHECKED_OUT`` once an order is created,
    or to ``EXPIRED`` / ``ABANDONED`` when the session times out.
    """

    class Status(models.TextChoices):
        """Lifecycle states for a shopping cart."""

        OPEN = "open", "Open"
        CHECKED_OUT = "checked_out", "Checked Out"
        EXPIRED = "expired", "Expired"
        ABANDONED = "abandoned", "Abandoned"

    class Step(models.TextChoices):
        """Checkout wizard steps, in order."""

        REVIEW = "review", "Review cart"
        ATTENDEES = "attendees", "Attendee details"
        UPSELLS = "upsells", "Upsells"
        CHECKOUT = "checkout", "Checkout"

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="carts",
    )
    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="carts",
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.OPEN,
    )
    step = models.CharField(max_length=20, choices=Step.choices, default=Step.REVIEW)
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="carts",
    )
    contact_email = models.EmailField(blank=True, default="")
    abandonment_email_scheduled_at = models.DateTimeField(null=True, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Cart {self.pk} ({self.user}, {self.status})"

    @property
    def ticket_seat_count(self) -> int:
        """Total ticket quantity in the cart (one attendee per seat)."""
        return (
            self.items.filter(ticket_type__isnull=False).aggregate(total=models.Sum("quantity"))["total"] or 0
        )


class CartItem(models.Model):
    """A single item (ticket or add-on) in a cart.

    Each cart item references exactly one of ``ticket_type`` or ``addon``,
    enforced by a database-level check constraint.
    """

    cart = models.ForeignKey(
        Cart,
        on_delete=models.CASCADE,
        related_name="items",
    )
    ticket_type = models.ForeignKey(
        TicketType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cart_items",
    )
    addon = models.ForeignKey(
        AddOn,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cart_items",
    )
    quantity = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(ticket_type__isnull=False, addon__isnull=True)
                    | models.Q(ticket_type__isnull=True, addon__isnull=False)
                ),
                name="conference_registration_cartitem_exactly_one_type",
            ),
        ]

    def __str__(self) -> str:
        item = self.ticket_type or self.addon
        return f"{self.quantity}x {item}"

    @property
    def unit_price(self) -> Decimal:
        """Return the per-unit price of this cart item."""
        if self.ticket_type is not None:
            return self.ticket_type.price
        if self.addon is not None:
            return self.addon.price
        return Decimal("0.00")

    @property
    def line_total(self) -> Decimal:
        """Return the total price for this line (unit_price * quantity)."""
        return self.unit_price * self.quantity


class CartAttendee(models.Model):
    """Attendee details for one ticket seat in a cart, kept in seat order."""

    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="attendees")
    position = models.PositiveIntegerField(default=0)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField()
    company = models.CharField(max_length=200, blank=True, default="")
    job_title = models.CharField(max_length=200, blank=True, default="")

    class Meta:
        ordering = ["position", "id"]

    def __str__(self) -> str:
        return f"{self.first_name} {self.last_name} <{self.email}>"


class Order(models.Model):
    """A checkout with billing and payment info.

    Orders are created when a cart is checked out. They capture a snapshot of
    the pricing, discounts, and billing details at the time of purchase. A
    pending order reserves stock until ``hold_expires_at``.
    """

    class Status(models.TextChoices):
        """Lifecycle states for an order."""

        PENDING = "pending", "Pending"
        PAID = "paid", "Paid"
        REFUNDED = "refunded", "Refunded"
        PARTIALLY_REFUNDED = "partially_refunded", "Partially Refunded"
        CANCELLED = "cancelled", "Cancelled"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="orders",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="orders",
    )
    cart = models.ForeignKey(
        Cart,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    status = models.CharField(
        max_length=25,
        choices=Status.choices,
        default=Status.PENDING,
    )
    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    amount_refunded = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="CHF")
    voucher = models.ForeignKey(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    voucher_code = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Snapshot of the voucher code applied at checkout.",
    )
    voucher_details = models.TextField(
        blank=True,
        default="",
        help_text="JSON snapshot of the voucher state at checkout time.",
    )
    billing_name = models.CharField(max_length=200, blank=True, default="")
    billing_email = models.EmailField(blank=True, default="")
    billing_company = models.CharField(max_length=200, blank=True, default="")
    reference = models.CharField(
        max_length=100,
        unique=True,
        help_text='Unique order reference, e.g. "ORD-A1B2C3D4".',
    )
    hold_expires_at = models.DateTimeField(null=True, blank=True)
    stripe_checkout_session_id = models.CharField(max_length=200, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.reference} ({self.status})"


class OrderLineItem(models.Model):
    """A snapshot of a purchased item at checkout time.

    Line items are immutable records of what was purchased, including the price
    and description at the time of checkout. They may reference the original
    ``TicketType`` or ``AddOn`` for traceability, but those links are optional
    since the source item could be deleted after the order is placed.
    """

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="line_items",
    )
    description = models.CharField(max_length=300)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    discount_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    line_total = models.DecimalField(max_digits=10, decimal_places=2)
    ticket_type = models.ForeignKey(
        TicketType,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_line_items",
    )
    addon = models.ForeignKey(
        AddOn,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="order_line_items",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.quantity}x {self.description}"


class Payment(models.Model):
    """A payment record against an order.

    Each payment represents a single financial transaction (Stripe Checkout,
    complimentary comp, or manual entry).
    """

    class Method(models.TextChoices):
        """Supported payment methods."""

        STRIPE = "stripe", "Stripe"
        COMP = "comp", "Complimentary"
        MANUAL = "manual", "Manual"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"
        REFUNDED = "refunded", "Refunded"

    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name="payments",
    )
    method = models.CharField(
        max_length=20,
        choices=Method.choices,
        default=Method.STRIPE,
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    amount = models.DecimalField(max_digits=10, decimal_places=2)
    stripe_checkout_session_id = models.CharField(max_length=200, blank=True, default="")
    stripe_payment_intent_id = models.CharField(max_length=200, blank=True, default="")
    stripe_charge_id = models.CharField(max_length=200, blank=True, default="")
    reference = models.CharField(max_length=200, blank=True, default="")
    note = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_payments",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.method} {self.amount} for {self.order.reference}"


class Ticket(models.Model):
    """An issued attendee ticket.

    Tickets come from paid orders (one per seat), from staff issuing them
    directly, or from complimentary grants. The short ``code`` is what the
    door scans.
    """

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        CONFIRMED = "confirmed", "Confirmed"
        CANCELLED = "cancelled", "Cancelled"
        REFUNDED = "refunded", "Refunded"

    class Source(models.TextChoices):
        PURCHASE = "purchase", "Purchase"
        ADMIN_ISSUED = "admin_issued", "Issued by staff"
        COMPLIMENTARY = "complimentary", "Complimentary"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="tickets",
    )
    order = models.ForeignKey(
        Order,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="tickets",
    )
    ticket_type = models.ForeignKey(
        TicketType,
        on_delete=models.PROTECT,
        related_name="tickets",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conference_tickets",
    )
    code = models.CharField(max_length=20, unique=True, default=_generate_ticket_code)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    email = models.EmailField()
    company = models.CharField(max_length=200, blank=True, default="")
    job_title = models.CharField(max_length=200, blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.CONFIRMED)
    source = models.CharField(max_length=20, choices=Source.choices, default=Source.PURCHASE)
    amount_paid = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    currency = models.CharField(max_length=3, default="CHF")
    reassigned_from_email = models.EmailField(blank=True, default="")
    issued_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="issued_conference_tickets",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.code} {self.first_name} {self.last_name} ({self.status})"

    @property
    def attendee_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class StripeCustomer(models.Model):
    """Links a user to their Stripe customer id for one conference."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="stripe_customers",
    )
    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="stripe_customers",
    )
    stripe_customer_id = models.CharField(max_length=200)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = [("user", "conference")]

    def __str__(self) -> str:
        return f"{self.stripe_customer_id} ({self.user})"


class StripeEvent(models.Model):
    """A raw Stripe webhook event, stored once per Stripe event id."""

    stripe_id = models.CharField(max_length=200, unique=True)
    kind = models.CharField(max_length=200)
    livemode = models.BooleanField(default=False)
    payload = models.JSONField(default=dict)
    customer_id = models.CharField(max_length=200, blank=True, default="")
    api_version = models.CharField(max_length=50, blank=True, default="")
    processed = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.kind} ({self.stripe_id})"


class EventProcessingException(models.Model):
    """A captured failure while handling a Stripe webhook event."""

    event = models.ForeignKey(
        StripeEvent,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="exceptions",
    )
    data = models.TextField(blank=True, default="")
    message = models.CharField(max_length=500)
    traceback = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"<{self.message}, pk={self.pk}, Event={self.event}>"


class VerificationRequest(models.Model):
    """Proof of eligibility for a discounted student or unemployed ticket.

    Staff review each request. Approval issues a single-use voucher that
    unlocks the requested ticket type; the requester receives the code by
    email and buys the ticket through the normal cart.
    """

    class Kind(models.TextChoices):
        STUDENT = "student", "Student"
        UNEMPLOYED = "unemployed", "Unemployed"

    class Status(models.TextChoices):
        PENDING = "pending", "Pending review"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    conference = models.ForeignKey(
        "conference_core.Conference",
        on_delete=models.CASCADE,
        related_name="verification_requests",
    )
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="conference_verification_requests",
    )
    ticket_type = models.ForeignKey(
        TicketType,
        on_delete=models.PROTECT,
        related_name="verification_requests",
    )
    reference = models.CharField(max_length=20, unique=True, default=_generate_verification_reference)
    kind = models.CharField(max_length=20, choices=Kind.choices)
    name = models.CharField(max_length=200)
    email = models.EmailField()
    student_id = models.CharField(max_length=100, blank=True, default="")
    university = models.CharField(max_length=200, blank=True, default="")
    linkedin_url = models.URLField(blank=True, default="")
    rav_registration_date = models.DateField(
        null=True,
        blank=True,
        help_text="Swiss unemployment office (RAV) registration date, when applicable.",
    )
    additional_info = models.TextField(blank=True, default="")
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    voucher = models.OneToOneField(
        Voucher,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="verification_request",
    )
    review_note = models.TextField(blank=True, default="")
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.reference} ({self.email}, {self.get_status_display()})"
