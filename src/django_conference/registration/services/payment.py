"""Payment service for processing order payments.

Handles Stripe Checkout Session creation, settling paid orders (from the
webhook or for zero-total orders), and manual staff-entered payments. All
methods are stateless and operate on model instances directly.
"""

import logging
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from django_conference.registration.models import Order, OrderLineItem, Payment
from django_conference.registration.services.checkout import reinstate_lapsed_order, release_voucher_usage
from django_conference.registration.services.tickets import TicketService
from django_conference.registration.signals import order_paid
from django_conference.registration.stripe_client import StripeClient
from django_conference.registration.stripe_utils import convert_amount_for_api

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)


def _line_item_params(line: OrderLineItem, currency: str, *, discounted: bool) -> dict[str, Any]:
    """Build a Checkout Session ``line_items`` entry for *line*.

    Undiscounted lines use the catalog's Stripe price when one is set.
    Discounted lines are sent as a single inline-priced row carrying the
    already-discounted total.
    """
    catalog_item = line.ticket_type or line.addon
    price_id = getattr(catalog_item, "stripe_price_id", "")
    if not discounted:
        if price_id:
            return {"price": price_id, "quantity": line.quantity}
        return {
            "price_data": {
                "currency": currency.lower(),
                "unit_amount": convert_amount_for_api(line.unit_price, currency),
                "product_data": {"name": line.description},
            },
            "quantity": line.quantity,
        }
    name = line.description if line.quantity == 1 else f"{line.quantity} x {line.description}"
    return {
        "price_data": {
            "currency": currency.lower(),
            "unit_amount": convert_amount_for_api(line.line_total, currency),
            "product_data": {"name": name},
        },
        "quantity": 1,
    }


class PaymentService:
    """Stateless service for payment operations."""

    @staticmethod
    @transaction.atomic
    def start_checkout_session(order: Order, *, success_url: str, cancel_url: str) -> dict[str, str]:
        """Start paying for *order*.

        Zero-total orders are settled on the spot with a comp payment and
        return the success URL. Otherwise a Stripe customer is found or
        created, a hosted Checkout Session is opened, and a pending Payment
        records the session id.

        Returns:
            ``{"url": ..., "session_id": ...}``; ``session_id`` is empty for
            comp orders.

        Raises:
            ValidationError: If the order is not PENDING.
            stripe.StripeError: If a Stripe call fails.
        """
        if order.status != Order.Status.PENDING:
            raise ValidationError("Payment can only be started for pending orders.")

        if order.total <= Decimal("0.00"):
            PaymentService.record_comp(order)
            return {"url": success_url, "session_id": ""}

        client = StripeClient(order.conference)
        customer = client.get_or_create_customer(order.user, email=order.billing_email, name=order.billing_name)

        voucher = order.voucher
        use_coupon = bool(voucher is not None and voucher.stripe_coupon_id and order.discount_amount > 0)
        lines = list(order.line_items.select_related("ticket_type", "addon"))
        line_items = [
            _line_item_params(line, order.currency, discounted=order.discount_amount > 0 and not use_coupon)
            for line in lines
            if use_coupon or order.discount_amount == 0 or line.line_total > 0
        ]
        discounts = [{"coupon": voucher.stripe_coupon_id}] if use_coupon else None

        attendee_emails = ",".join(order.cart.attendees.values_list("email", flat=True)) if order.cart_id else ""
        session = client.create_checkout_session(
            order,
            customer.stripe_customer_id,
            line_items,
            success_url=success_url,
            cancel_url=cancel_url,
            discounts=discounts,
            metadata={"attendees": attendee_emails[:500], "voucher_code": order.voucher_code},
        )

        order.stripe_checkout_session_id = session.id
        order.save(update_fields=["stripe_checkout_session_id", "updated_at"])
        Payment.objects.create(
            order=order,
            method=Payment.Method.STRIPE,
            status=Payment.Status.PENDING,
            amount=order.total,
            stripe_checkout_session_id=session.id,
        )

        logger.info("Opened Stripe Checkout Session %s for order %s", session.id, order.reference)
        return {"url": session.url or "", "session_id": session.id}

    @staticmethod
    @transaction.atomic
    def mark_paid(
        order: Order,
        *,
        amount: Decimal | None = None,
        session_id: str = "",
        payment_intent_id: str = "",
        method: str = Payment.Method.STRIPE,
    ) -> bool:
        """Settle *order*: record the payment, issue tickets, fire ``order_paid``.

        Idempotent: an order that is already PAID is left untouched. A
        payment for an order whose hold lapsed (cancelled, or pending past
        ``hold_expires_at``) settles it only if its stock and voucher use can
        be taken back. Otherwise the money is recorded against the still
        cancelled order with a refund note and no tickets are issued.

        Returns:
            ``True`` when the order transitioned to PAID by this call.
        """
        order = Order.objects.select_for_update().get(pk=order.pk)
        if order.status == Order.Status.PAID:
            logger.info("Order %s already paid, skipping", order.reference)
            return False
        if order.status not in (Order.Status.PENDING, Order.Status.CANCELLED):
            logger.warning("Ignoring payment for order %s in status %s", order.reference, order.status)
            return False

        amount = order.total if amount is None else amount
        hold_lapsed = order.status == Order.Status.CANCELLED or (
            order.hold_expires_at is not None and order.hold_expires_at <= timezone.now()
        )
        if hold_lapsed:
            try:
                reinstate_lapsed_order(order)
            except ValidationError as exc:
                if order.status == Order.Status.PENDING:
                    order.status = Order.Status.CANCELLED
                    order.hold_expires_at = None
                    order.save(update_fields=["status", "hold_expires_at", "updated_at"])
                    release_voucher_usage(order)
                _record_payment(
                    order,
                    amount=amount,
                    session_id=session_id,
                    payment_intent_id=payment_intent_id,
                    method=method,
                    note=f"Paid after the order lapsed; refund required. {exc.messages[0]}",
                )
                logger.error(
                    "Payment for lapsed order %s cannot be fulfilled and needs a refund: %s",
                    order.reference,
                    exc.messages[0],
                )
                return False
            logger.info("Reinstated lapsed order %s on late payment", order.reference)

        _record_payment(
            order, amount=amount, session_id=session_id, payment_intent_id=payment_intent_id, method=method
        )

        order.status = Order.Status.PAID
        order.hold_expires_at = None
        order.paid_at = timezone.now()
        order.save(update_fields=["status", "hold_expires_at", "paid_at", "updated_at"])

        TicketService.issue_for_order(order)
        order_paid.send(sender=Order, order=order, user=order.user)

        logger.info("Order %s marked PAID (%s %s)", order.reference, amount, order.currency)
        return True

    @staticmethod
    @transaction.atomic
    def record_comp(order: Order) -> Payment:
        """Record a complimentary payment for a zero-total order.

        Raises:
            ValidationError: If the order is not PENDING or has a non-zero total.
        """
        if order.status != Order.Status.PENDING:
            raise ValidationError("Comp payments can only be recorded for pending orders.")

        if order.total > Decimal("0.00"):
            raise ValidationError("Comp payments are only valid for orders with a zero total.")

        PaymentService.mark_paid(order, amount=Decimal("0.00"), method=Payment.Method.COMP)
        logger.info("Recorded comp payment for order %s", order.reference)
        return order.payments.get(method=Payment.Method.COMP)

    @staticmethod
    @transaction.atomic
    def record_manual(
        order: Order,
        *,
        amount: Decimal,
        reference: str = "",
        note: str = "",
        staff_user: "AbstractBaseUser | None" = None,
    ) -> Payment:
        """Record a manual payment entered by staff.

        If the cumulative succeeded payments meet or exceed the order total,
        the order is settled.

        Raises:
            ValidationError: If the order is not PENDING or the amount is not
                positive.
        """
        if order.status != Order.Status.PENDING:
            raise ValidationError("Manual payments can only be recorded for pending orders.")

        if amount <= Decimal("0.00"):
            raise ValidationError("Payment amount must be greater than zero.")

        payment = Payment.objects.create(
            order=order,
            method=Payment.Method.MANUAL,
            status=Payment.Status.SUCCEEDED,
            amount=amount,
            reference=reference,
            note=note,
            created_by=staff_user,
        )

        paid_total = order.payments.filter(status=Payment.Status.SUCCEEDED).aggregate(total=models.Sum("amount"))[
            "total"
        ] or Decimal("0.00")

        if paid_total >= order.total:
            _settle_without_new_payment(order)

        logger.info(
            "Recorded manual payment of %s for order %s (paid %s / %s)",
            amount,
            order.reference,
            paid_total,
            order.total,
        )
        return payment


def _record_payment(
    order: Order,
    *,
    amount: Decimal,
    session_id: str,
    payment_intent_id: str,
    method: str,
    note: str = "",
) -> Payment:
    """Mark the order's matching payment SUCCEEDED, creating it if missing."""
    payment = None
    if session_id:
        payment = order.payments.filter(stripe_checkout_session_id=session_id).first()
    if payment is None:
        payment = order.payments.filter(method=method, status=Payment.Status.PENDING).first()

    if payment is None:
        return Payment.objects.create(
            order=order,
            method=method,
            status=Payment.Status.SUCCEEDED,
            amount=amount,
            stripe_checkout_session_id=session_id,
            stripe_payment_intent_id=payment_intent_id,
            note=note,
        )

    payment.status = Payment.Status.SUCCEEDED
    payment.amount = amount
    payment.stripe_payment_intent_id = payment_intent_id or payment.stripe_payment_intent_id
    payment.note = note or payment.note
    payment.save(update_fields=["status", "amount", "stripe_payment_intent_id", "note"])
    return payment


def _settle_without_new_payment(order: Order) -> None:
    """Transition a fully paid order, issue tickets and fire the signal."""
    order.status = Order.Status.PAID
    order.hold_expires_at = None
    order.paid_at = timezone.now()
    order.save(update_fields=["status", "hold_expires_at", "paid_at", "updated_at"])
    TicketService.issue_for_order(order)
    order_paid.send(sender=Order, order=order, user=order.user)
