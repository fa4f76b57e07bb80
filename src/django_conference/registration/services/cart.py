"""Cart management service for conference registration.

Handles cart lifecycle, item management, voucher application, attendee
details, the checkout wizard steps and pricing summary computation. All
methods are stateless and operate on Cart model instances directly.
"""

from dataclasses import dataclass
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import models, transaction
from django.utils import timezone

from django_conference.registration.models import (
    AddOn,
    Cart,
    CartAttendee,
    CartItem,
    Order,
    OrderLineItem,
    TicketType,
    Voucher,
)
from django_conference.registration.services.vouchers import validate_code
from django_conference.settings import get_config

_STEP_ORDER: list[str] = [
    Cart.Step.REVIEW,
    Cart.Step.ATTENDEES,
    Cart.Step.UPSELLS,
    Cart.Step.CHECKOUT,
]

_ATTENDEE_FIELDS = ("first_name", "last_name", "email", "company", "job_title")


@dataclass
class LineItemSummary:
    """Pricing breakdown for a single cart item."""

    item_id: int
    description: str
    quantity: int
    unit_price: Decimal
    discount: Decimal
    line_total: Decimal
    ticket_type_id: int | None = None
    addon_id: int | None = None


@dataclass
class CartSummary:
    """Full pricing summary of a cart including voucher discounts."""

    items: list[LineItemSummary]
    subtotal: Decimal
    discount: Decimal
    total: Decimal


class CartService:
    """Stateless service for cart operations.

    All methods are static and enforce business rules around ticket
    availability, quantity limits, voucher validation, add-on
    prerequisites and wizard step progression.
    """

    @staticmethod
    def get_or_create_cart(user: object, conference: object) -> Cart:
        """Return the user's open cart, creating one if none exists.

        Expires any stale open carts for this user and conference before
        looking up or creating a fresh cart.
        """
        now = timezone.now()
        config = get_config()

        Cart.objects.filter(
            user=user,
            conference=conference,
            status=Cart.Status.OPEN,
            expires_at__lt=now,
        ).update(status=Cart.Status.EXPIRED)

        cart = Cart.objects.filter(
            user=user,
            conference=conference,
            status=Cart.Status.OPEN,
        ).first()

        if cart is not None:
            if cart.expires_at is None:
                cart.expires_at = now + timedelta(minutes=config.cart_expiry_minutes)
                cart.save(update_fields=["expires_at", "updated_at"])
            return cart

        return Cart.objects.create(
            user=user,
            conference=conference,
            status=Cart.Status.OPEN,
            contact_email=getattr(user, "email", "") or "",
            expires_at=now + timedelta(minutes=config.cart_expiry_minutes),
        )

    @staticmethod
    @transaction.atomic
    def add_ticket(cart: Cart, ticket_type: TicketType, qty: int = 1) -> CartItem:
        """Add a ticket to the cart or increase its quantity.

        Validates availability (including the pricing stage), stock limits,
        per-user limits, and voucher requirements before modifying the cart.

        Raises:
            ValidationError: If the ticket cannot be added.
        """
        _assert_cart_open(cart)

        if qty < 1:
            raise ValidationError("Quantity must be at least 1.")

        if ticket_type.conference_id != cart.conference_id:
            raise ValidationError("Ticket type does not belong to this cart's conference.")

        if not ticket_type.is_available:
            raise ValidationError(f"Ticket type '{ticket_type.name}' is not available.")

        item = cart.items.select_for_update().filter(ticket_type=ticket_type).first()
        existing_in_cart = item.quantity if item is not None else 0
        existing_in_orders = _ticket_order_quantity(cart, ticket_type)
        _validate_ticket_stock_and_limit(
            ticket_type=ticket_type,
            qty=qty,
            existing_in_cart=existing_in_cart,
            existing_in_orders=existing_in_orders,
        )

        if ticket_type.requires_voucher:
            voucher = cart.voucher
            if voucher is None or not voucher.unlocks_hidden_tickets:
                raise ValidationError(
                    f"Ticket type '{ticket_type.name}' requires a voucher that unlocks hidden tickets."
                )
            applicable_ids = set(voucher.applicable_ticket_types.values_list("pk", flat=True))
            if applicable_ids and ticket_type.pk not in applicable_ids:
                raise ValidationError(f"The applied voucher does not cover ticket type '{ticket_type.name}'.")

        if item is not None:
            item.quantity += qty
            item.save(update_fields=["quantity"])
        else:
            item = CartItem.objects.create(cart=cart, ticket_type=ticket_type, quantity=qty)

        _extend_cart_expiry(cart)
        return item

    @staticmethod
    @transaction.atomic
    def add_addon(cart: Cart, addon: AddOn, qty: int = 1) -> CartItem:
        """Add an add-on to the cart or increase its quantity.

        Validates availability, stock, and ticket-type prerequisites before
        modifying the cart.

        Raises:
            ValidationError: If the add-on cannot be added.
        """
        _assert_cart_open(cart)

        if qty < 1:
            raise ValidationError("Quantity must be at least 1.")

        if addon.conference_id != cart.conference_id:
            raise ValidationError("Add-on does not belong to this cart's conference.")

        _validate_addon_available(addon)

        required_ticket_ids = set(addon.requires_ticket_types.values_list("pk", flat=True))
        if required_ticket_ids:
            ticket_ids_in_cart = set(
                cart.items.filter(ticket_type__isnull=False).values_list("ticket_type_id", flat=True)
            )
            if not required_ticket_ids & ticket_ids_in_cart:
                names = ", ".join(addon.requires_ticket_types.order_by("name").values_list("name", flat=True))
                raise ValidationError(f"Add-on '{addon.name}' requires one of these tickets in your cart: {names}.")

        item = cart.items.select_for_update().filter(addon=addon).first()
        existing_in_cart = item.quantity if item is not None else 0
        _validate_addon_quantity(addon, existing_in_cart + qty)

        if item is not None:
            item.quantity += qty
            item.save(update_fields=["quantity"])
        else:
            item = CartItem.objects.create(cart=cart, addon=addon, quantity=qty)

        _extend_cart_expiry(cart)
        return item

    @staticmethod
    @transaction.atomic
    def remove_item(cart: Cart, item_id: int) -> None:
        """Remove an item from the cart, cascading add-on removals if needed.

        When removing a ticket type, any add-ons that require that ticket type
        (and no other qualifying ticket type remains in the cart) are also
        removed.

        Raises:
            ValidationError: If the item does not belong to this cart.
        """
        _assert_cart_open(cart)

        try:
            item = cart.items.get(pk=item_id)
        except CartItem.DoesNotExist:
            raise ValidationError("Cart item not found.") from None

        if item.ticket_type_id is not None:
            _cascade_remove_orphaned_addons(cart, removing_ticket_type_id=item.ticket_type_id)

        item.delete()

    @staticmethod
    @transaction.atomic
    def update_quantity(cart: Cart, item_id: int, qty: int) -> CartItem | None:
        """Update the quantity of a cart item.

        If the new quantity is zero or negative the item is removed instead.
        Re-validates stock and per-user limits for the new quantity.

        Returns:
            The updated CartItem, or ``None`` if the item was removed.
        """
        _assert_cart_open(cart)

        if qty <= 0:
            CartService.remove_item(cart, item_id)
            return None

        try:
            item = cart.items.select_related("ticket_type", "addon").get(pk=item_id)
        except CartItem.DoesNotExist:
            raise ValidationError("Cart item not found.") from None

        if item.ticket_type is not None:
            _validate_ticket_stock_and_limit(
                ticket_type=item.ticket_type,
                qty=qty,
                existing_in_cart=0,
                existing_in_orders=_ticket_order_quantity(cart, item.ticket_type),
            )
        elif item.addon is not None:
            _validate_addon_quantity(item.addon, qty)

        item.quantity = qty
        item.save(update_fields=["quantity"])
        _extend_cart_expiry(cart)
        return item

    @staticmethod
    def apply_voucher(cart: Cart, code: str) -> Voucher:
        """Validate *code* against the cart's tickets and attach it.

        Raises:
            ValidationError: With the validation message when the code is
                unknown, inactive, expired, used up or out of scope.
        """
        _assert_cart_open(cart)

        ticket_ids = list(cart.items.filter(ticket_type__isnull=False).values_list("ticket_type_id", flat=True))
        result = validate_code(cart.conference, code, ticket_ids or None)
        if not result.valid or result.voucher is None:
            raise ValidationError(result.error)

        cart.voucher = result.voucher
        cart.save(update_fields=["voucher", "updated_at"])
        return result.voucher

    @staticmethod
    @transaction.atomic
    def remove_voucher(cart: Cart) -> None:
        """Detach the voucher and drop hidden tickets it had unlocked."""
        _assert_cart_open(cart)
        if cart.voucher_id is None:
            return
        for item in cart.items.filter(ticket_type__requires_voucher=True):
            _cascade_remove_orphaned_addons(cart, removing_ticket_type_id=item.ticket_type_id)
            item.delete()
        cart.voucher = None
        cart.save(update_fields=["voucher", "updated_at"])

    @staticmethod
    @transaction.atomic
    def set_attendees(cart: Cart, attendees: list[dict[str, Any]]) -> list[CartAttendee]:
        """Replace the cart's attendee list.

        One attendee is required per ticket seat. Each needs a first name,
        last name and a valid email; emails must be unique within the cart.

        Raises:
            ValidationError: On a count mismatch or invalid attendee data.
        """
        _assert_cart_open(cart)

        seats = cart.ticket_seat_count
        if len(attendees) != seats:
            raise ValidationError(f"Expected {seats} attendees, got {len(attendees)}.")

        seen: set[str] = set()
        rows: list[CartAttendee] = []
        for position, raw in enumerate(attendees):
            if not isinstance(raw, dict):
                raise ValidationError(f"Attendee {position + 1} must be an object.")
            data = {key: str(raw.get(key) or "").strip() for key in _ATTENDEE_FIELDS}
            if not data["first_name"] or not data["last_name"]:
                raise ValidationError(f"Attendee {position + 1} needs a first and last name.")
            try:
                validate_email(data["email"])
            except ValidationError:
                raise ValidationError(f"Attendee {position + 1} has an invalid email address.") from None
            email_key = data["email"].lower()
            if email_key in seen:
                raise ValidationError(f"Attendee email '{data['email']}' is used more than once.")
            seen.add(email_key)
            rows.append(CartAttendee(cart=cart, position=position, **data))

        cart.attendees.all().delete()
        created = CartAttendee.objects.bulk_create(rows)
        _extend_cart_expiry(cart)
        return created

    @staticmethod
    def attendees_complete(cart: Cart) -> bool:
        """Whether every ticket seat has attendee details."""
        seats = cart.ticket_seat_count
        return seats > 0 and cart.attendees.count() == seats

    @staticmethod
    def advance_step(cart: Cart, step: str) -> Cart:
        """Move the cart to *step* of the checkout wizard.

        Moving backwards is always allowed. Moving forward requires items
        for ``attendees``, complete attendee details for ``upsells``, and
        both for ``checkout``.

        Raises:
            ValidationError: If *step* is unknown or its preconditions fail.
        """
        _assert_cart_open(cart)
        if step not in _STEP_ORDER:
            raise ValidationError(f"Unknown checkout step '{step}'.")

        if _STEP_ORDER.index(step) > _STEP_ORDER.index(cart.step):
            if step in (Cart.Step.ATTENDEES, Cart.Step.UPSELLS, Cart.Step.CHECKOUT) and not cart.items.exists():
                raise ValidationError("Your cart is empty.")
            if step in (Cart.Step.UPSELLS, Cart.Step.CHECKOUT) and not CartService.attendees_complete(cart):
                raise ValidationError("Please provide details for every attendee.")

        cart.step = step
        cart.save(update_fields=["step", "updated_at"])
        return cart

    @staticmethod
    def get_summary(cart: Cart) -> CartSummary:
        """Compute a full pricing summary of the cart.

        Applies any voucher discounts and returns per-item and aggregate
        totals. Comp vouchers zero the applicable lines, percentage vouchers
        round each line half up, and fixed-amount vouchers are spread
        proportionally with the last line absorbing the remainder.
        """
        items = list(cart.items.select_related("ticket_type", "addon"))
        voucher = cart.voucher

        applicable_ticket_ids, applicable_addon_ids = _resolve_voucher_scope(voucher)

        line_summaries: list[LineItemSummary] = []
        subtotal = Decimal("0.00")
        applicable_line_totals: list[tuple[int, Decimal]] = []

        for item in items:
            line_total = item.line_total
            subtotal += line_total
            if voucher is not None and _item_is_voucher_applicable(item, applicable_ticket_ids, applicable_addon_ids):
                applicable_line_totals.append((len(line_summaries), line_total))
            line_summaries.append(
                LineItemSummary(
                    item_id=item.pk,
                    description=_cart_item_description(item),
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    discount=Decimal("0.00"),
                    line_total=line_total,
                    ticket_type_id=item.ticket_type_id,
                    addon_id=item.addon_id,
                )
            )

        total_discount = _apply_voucher_discounts(voucher, line_summaries, applicable_line_totals)

        for summary in line_summaries:
            summary.line_total = summary.line_total - summary.discount

        return CartSummary(
            items=line_summaries,
            subtotal=subtotal,
            discount=total_discount,
            total=max(subtotal - total_discount, Decimal("0.00")),
        )


def _assert_cart_open(cart: Cart) -> None:
    """Raise ValidationError when the cart cannot be modified."""
    now = timezone.now()
    if cart.expires_at and cart.expires_at < now:
        raise ValidationError("Cart has expired.")

    if cart.status != Cart.Status.OPEN:
        raise ValidationError("Only open carts can be modified.")


def _ticket_order_quantity(cart: Cart, ticket_type: TicketType) -> int:
    """Return quantity already purchased by this user for this ticket."""
    return (
        OrderLineItem.objects.filter(
            order__user=cart.user,
            order__conference=cart.conference,
            ticket_type=ticket_type,
            order__status__in=[Order.Status.PAID, Order.Status.PARTIALLY_REFUNDED],
        ).aggregate(total=models.Sum("quantity"))["total"]
        or 0
    )


def _validate_ticket_stock_and_limit(
    *,
    ticket_type: TicketType,
    qty: int,
    existing_in_cart: int,
    existing_in_orders: int,
) -> None:
    """Validate ticket stock and per-user limits for a desired quantity."""
    remaining = ticket_type.remaining_quantity
    if remaining is not None and remaining < existing_in_cart + qty:
        raise ValidationError(f"Only {remaining} tickets of type '{ticket_type.name}' remaining.")

    if existing_in_cart + existing_in_orders + qty > ticket_type.limit_per_user:
        raise ValidationError(
            f"That would exceed the per-user limit of {ticket_type.limit_per_user} for '{ticket_type.name}'."
        )


def _validate_addon_available(addon: AddOn) -> None:
    """Raise ValidationError if the add-on is not currently purchasable."""
    if not addon.is_active:
        raise ValidationError(f"Add-on '{addon.name}' is not active.")
    now = timezone.now()
    if addon.available_from and now < addon.available_from:
        raise ValidationError(f"Add-on '{addon.name}' is not yet available.")
    if addon.available_until and now > addon.available_until:
        raise ValidationError(f"Add-on '{addon.name}' is no longer available.")


def _validate_addon_quantity(addon: AddOn, desired_total_qty: int) -> None:
    """Validate add-on stock against the desired in-cart quantity."""
    remaining = addon.remaining_quantity
    if remaining is not None and remaining < desired_total_qty:
        raise ValidationError(f"Only {remaining} of add-on '{addon.name}' remaining.")


def _cascade_remove_orphaned_addons(cart: Cart, removing_ticket_type_id: int) -> None:
    """Remove add-on items whose ticket prerequisite is no longer satisfied."""
    remaining_ticket_ids = set(
        cart.items.filter(ticket_type__isnull=False)
        .exclude(ticket_type_id=removing_ticket_type_id)
        .values_list("ticket_type_id", flat=True)
    )

    for addon_item in cart.items.filter(addon__isnull=False).select_related("addon"):
        required_ids = set(addon_item.addon.requires_ticket_types.values_list("pk", flat=True))
        if required_ids and not required_ids & remaining_ticket_ids:
            addon_item.delete()


def _extend_cart_expiry(cart: Cart) -> None:
    """Push the cart expiry out to now + configured expiry minutes."""
    config = get_config()
    cart.expires_at = timezone.now() + timedelta(minutes=config.cart_expiry_minutes)
    cart.save(update_fields=["expires_at", "updated_at"])


def _resolve_voucher_scope(voucher: Voucher | None) -> tuple[set[int] | None, set[int] | None]:
    """Extract the ticket/addon IDs a voucher applies to.

    A ``None`` set means the voucher applies to all items of that type.
    """
    if voucher is None:
        return None, None

    ticket_ids = set(voucher.applicable_ticket_types.values_list("pk", flat=True))
    addon_ids = set(voucher.applicable_addons.values_list("pk", flat=True))
    return (ticket_ids or None), (addon_ids or None)


def _cart_item_description(item: CartItem) -> str:
    if item.ticket_type is not None:
        return item.ticket_type.name
    if item.addon is not None:
        return item.addon.name
    return "Unknown item"


def _item_is_voucher_applicable(
    item: CartItem,
    applicable_ticket_ids: set[int] | None,
    applicable_addon_ids: set[int] | None,
) -> bool:
    if item.ticket_type_id is not None:
        return applicable_ticket_ids is None or item.ticket_type_id in applicable_ticket_ids
    if item.addon_id is not None:
        return applicable_addon_ids is None or item.addon_id in applicable_addon_ids
    return False


def _apply_voucher_discounts(
    voucher: Voucher | None,
    line_summaries: list[LineItemSummary],
    applicable_line_totals: list[tuple[int, Decimal]],
) -> Decimal:
    """Apply voucher discounts to the applicable line summaries in-place."""
    if voucher is None or not applicable_line_totals:
        return Decimal("0.00")

    total_discount = Decimal("0.00")

    if voucher.voucher_type == Voucher.VoucherType.COMP:
        for idx, line_total in applicable_line_totals:
            line_summaries[idx].discount = line_total
            total_discount += line_total

    elif voucher.voucher_type == Voucher.VoucherType.PERCENTAGE:
        pct = min(voucher.discount_value, Decimal(100)) / Decimal(100)
        for idx, line_total in applicable_line_totals:
            discount = (line_total * pct).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
            line_summaries[idx].discount = discount
            total_discount += discount

    elif voucher.voucher_type == Voucher.VoucherType.FIXED_AMOUNT:
        applicable_subtotal = sum((lt for _, lt in applicable_line_totals), Decimal("0.00"))
        budget = min(voucher.discount_value, applicable_subtotal)
        remaining_budget = budget
        for i, (idx, line_total) in enumerate(applicable_line_totals):
            if i == len(applicable_line_totals) - 1 or applicable_subtotal == 0:
                share = remaining_budget
            else:
                share = (budget * line_total / applicable_subtotal).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
                share = min(share, remaining_budget)
            line_summaries[idx].discount = share
            total_discount += share
            remaining_budget -= share

    return total_discount
