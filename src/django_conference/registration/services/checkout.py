"""Checkout service for converting carts into orders.

Handles the atomic checkout flow, order cancellation and the release of
expired inventory holds. All methods are stateless and operate on model
instances directly.
"""

import json
import logging
import secrets
import string
from datetime import datetime, timedelta

from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.utils import timezone

from django_conference.registration.models import (
    Cart,
    CartItem,
    Order,
    OrderLineItem,
    Payment,
    Voucher,
)
from django_conference.registration.services.cart import CartService
from django_conference.settings import get_config

logger = logging.getLogger(__name__)


def _generate_reference() -> str:
    """Generate an order reference using the configured prefix.

    The prefix is set via ``DJANGO_CONFERENCE["order_reference_prefix"]``
    (default ``"ORD"``), producing references like ``ORD-A1B2C3D4``.
    """
    config = get_config()
    chars = string.ascii_uppercase + string.digits
    suffix = "".join(secrets.choice(chars) for _ in range(8))
    return f"{config.order_reference_prefix}-{suffix}"


def _snapshot_voucher(voucher: Voucher) -> str:
    """Serialize voucher state at checkout time as JSON."""
    return json.dumps(
        {
            "code": voucher.code,
            "voucher_type": voucher.voucher_type,
            "discount_value": str(voucher.discount_value),
            "unlocks_hidden_tickets": voucher.unlocks_hidden_tickets,
            "source": voucher.source,
        }
    )


class CheckoutService:
    """Stateless service for checkout operations."""

    @staticmethod
    @transaction.atomic
    def checkout(
        cart: Cart,
        *,
        billing_name: str = "",
        billing_email: str = "",
        billing_company: str = "",
    ) -> Order:
        """Convert a cart into a pending order atomically.

        The cart must be on the ``checkout`` step with complete attendee
        details. Stock and voucher validity are re-checked under row locks,
        then a PENDING order is created with an inventory hold, each cart
        item is snapshotted into an ``OrderLineItem``, voucher usage is
        incremented, and the cart is marked CHECKED_OUT.

        Raises:
            ValidationError: If the cart is empty, expired, not open, on the
                wrong step, or if stock/voucher validation fails.
        """
        now = timezone.now()
        expire_stale_pending_orders(conference_id=cart.conference_id, now=now)
        cart = Cart.objects.select_for_update().select_related("voucher", "conference", "user").get(pk=cart.pk)

        if cart.status != Cart.Status.OPEN:
            raise ValidationError("Only open carts can be checked out.")

        if cart.expires_at and cart.expires_at < now:
            raise ValidationError("Cart has expired.")

        items = list(cart.items.select_for_update().select_related("ticket_type", "addon"))
        if not items:
            raise ValidationError("Cannot check out an empty cart.")

        if cart.step != Cart.Step.CHECKOUT:
            raise ValidationError("Please complete the previous checkout steps first.")

        if not CartService.attendees_complete(cart):
            raise ValidationError("Please provide details for every attendee.")

        _revalidate_stock(items)

        summary = CartService.get_summary(cart)

        voucher = cart.voucher
        if voucher is not None and not voucher.is_valid:
            raise ValidationError(f"Voucher code '{voucher.code}' is no longer valid.")

        config = get_config()
        hold_expires_at = now + timedelta(minutes=config.pending_order_expiry_minutes)
        billing_email = billing_email or cart.contact_email or getattr(cart.user, "email", "")
        while True:
            try:
                with transaction.atomic():
                    order = Order.objects.create(
                        conference=cart.conference,
                        user=cart.user,
                        cart=cart,
                        status=Order.Status.PENDING,
                        subtotal=summary.subtotal,
                        discount_amount=summary.discount,
                        total=summary.total,
                        currency=config.currency,
                        voucher=voucher,
                        voucher_code=voucher.code if voucher else "",
                        voucher_details=_snapshot_voucher(voucher) if voucher else "",
                        billing_name=billing_name,
                        billing_email=billing_email,
                        billing_company=billing_company,
                        reference=_generate_reference(),
                        hold_expires_at=hold_expires_at,
                    )
                break
            except IntegrityError:
                continue

        items_by_pk = {item.pk: item for item in items}
        OrderLineItem.objects.bulk_create(
            [
                OrderLineItem(
                    order=order,
                    description=line.description,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount_amount=line.discount,
                    line_total=line.line_total,
                    ticket_type=items_by_pk[line.item_id].ticket_type,
                    addon=items_by_pk[line.item_id].addon,
                )
                for line in summary.items
            ]
        )

        cart.status = Cart.Status.CHECKED_OUT
        cart.save(update_fields=["status", "updated_at"])

        _increment_voucher_usage(voucher=voucher, now=now)

        logger.info("Created order %s (total %s %s)", order.reference, order.total, order.currency)
        return order

    @staticmethod
    @transaction.atomic
    def cancel_order(order: Order) -> Order:
        """Cancel a pending order and release its hold and voucher use.

        Raises:
            ValidationError: If the order is not PENDING.
        """
        order = Order.objects.select_for_update().get(pk=order.pk)

        if order.status != Order.Status.PENDING:
            raise ValidationError(
                f"Only pending orders can be cancelled. This order is '{order.get_status_display()}'."
            )

        order.status = Order.Status.CANCELLED
        order.hold_expires_at = None
        order.save(update_fields=["status", "hold_expires_at", "updated_at"])

        order.payments.filter(status=Payment.Status.PENDING).update(status=Payment.Status.FAILED)
        release_voucher_usage(order)

        logger.info("Cancelled order %s", order.reference)
        return order

    @staticmethod
    @transaction.atomic
    def revert_checkout(order: Order) -> Order:
        """Undo a checkout whose payment could not be started.

        Cancels the still pending order, releasing its hold and voucher use,
        and reopens its cart for another attempt with a fresh expiry.
        """
        order = CheckoutService.cancel_order(order)
        if order.cart_id is not None:
            Cart.objects.filter(pk=order.cart_id, status=Cart.Status.CHECKED_OUT).update(
                status=Cart.Status.OPEN,
                expires_at=timezone.now() + timedelta(minutes=get_config().cart_expiry_minutes),
                updated_at=timezone.now(),
            )
        logger.info("Reopened cart for order %s after payment setup failed", order.reference)
        return order

    @staticmethod
    def expire_stale_pending_orders(conference_id: int | None = None) -> int:
        """Cancel pending orders whose hold has lapsed; return how many."""
        return expire_stale_pending_orders(conference_id=conference_id, now=timezone.now())


def expire_stale_pending_orders(*, conference_id: int | None, now: datetime) -> int:
    """Mark stale pending orders as cancelled so holds no longer reserve stock."""
    qs = Order.objects.filter(
        status=Order.Status.PENDING,
        hold_expires_at__isnull=False,
        hold_expires_at__lte=now,
    )
    if conference_id is not None:
        qs = qs.filter(conference_id=conference_id)

    expired = 0
    for order in qs.select_for_update(skip_locked=True):
        order.status = Order.Status.CANCELLED
        order.hold_expires_at = None
        order.save(update_fields=["status", "hold_expires_at", "updated_at"])
        release_voucher_usage(order)
        expired += 1
    if expired:
        logger.info("Expired %s stale pending orders", expired)
    return expired


def reinstate_lapsed_order(order: Order) -> None:
    """Take back the stock and voucher use of an order whose hold lapsed.

    Called with *order* locked, when a payment arrives for an order that was
    cancelled or whose hold ran out. The order no longer counts against
    stock, so every line must still fit in what remains. A cancelled order
    released its voucher use and must win it back under ``max_uses``.

    Raises:
        ValidationError: If stock or the voucher no longer allow the order.
    """
    for line in order.line_items.select_related("ticket_type", "addon"):
        item = line.ticket_type or line.addon
        if item is None:
            continue
        remaining = item.remaining_quantity
        if remaining is not None and remaining < line.quantity:
            raise ValidationError(f"Only {remaining} of '{item.name}' remaining, but {line.quantity} were paid for.")

    if order.status == Order.Status.CANCELLED and order.voucher_id is not None:
        reclaimed = Voucher.objects.filter(pk=order.voucher_id, times_used__lt=models.F("max_uses")).update(
            times_used=models.F("times_used") + 1
        )
        if reclaimed != 1:
            raise ValidationError(f"Voucher code '{order.voucher_code}' has been used up since the order lapsed.")


def release_voucher_usage(order: Order) -> None:
    if order.voucher_id is not None:
        Voucher.objects.filter(pk=order.voucher_id, times_used__gt=0).update(times_used=models.F("times_used") - 1)


def _increment_voucher_usage(*, voucher: Voucher | None, now: datetime) -> None:
    """Atomically increment voucher usage, enforcing validity constraints."""
    if voucher is None:
        return

    voucher_updated = (
        Voucher.objects.filter(
            pk=voucher.pk,
            is_active=True,
            times_used__lt=models.F("max_uses"),
        )
        .filter(models.Q(valid_from__isnull=True) | models.Q(valid_from__lte=now))
        .filter(models.Q(valid_until__isnull=True) | models.Q(valid_until__gte=now))
        .update(times_used=models.F("times_used") + 1)
    )
    if voucher_updated != 1:
        raise ValidationError(f"Voucher code '{voucher.code}' is no longer valid.")


def _revalidate_stock(items: list[CartItem]) -> None:
    """Re-validate availability and stock for all cart items at checkout time."""
    for item in items:
        if item.ticket_type is not None:
            tt = item.ticket_type
            if not tt.is_available:
                raise ValidationError(f"Ticket type '{tt.name}' is no longer available.")
            remaining = tt.remaining_quantity
            if remaining is not None and remaining < item.quantity:
                raise ValidationError(
                    f"Only {remaining} tickets of type '{tt.name}' remaining, but {item.quantity} requested."
                )
        elif item.addon is not None:
            addon = item.addon
            if not addon.is_available:
                raise ValidationError(f"Add-on '{addon.name}' is no longer available.")
            remaining = addon.remaining_quantity
            if remaining is not None and remaining < item.quantity:
                raise ValidationError(
                    f"Only {remaining} of add-on '{addon.name}' remaining, but {item.quantity} requested."
                )
