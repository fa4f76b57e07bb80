"""Stripe webhook handling for the registration app.

Provides a registry-based dispatch system for processing Stripe webhook events.
Each event kind (e.g. ``checkout.session.completed``) maps to a handler class
that encapsulates idempotent processing and error capture.

The ``stripe_webhook`` view verifies event signatures per-conference, deduplicates
by Stripe event ID, and delegates to the appropriate handler.

Usage in URL configuration::

    from django_conference.registration.webhooks import stripe_webhook

    urlpatterns = [
        path("<slug:conference_slug>/api/webhooks/stripe/", stripe_webhook),
    ]
"""

import logging
import traceback
from typing import TYPE_CHECKING

import stripe
from django.db import transaction
from django.http import HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from django_conference.conference.models import Conference
from django_conference.registration.models import (
    EventProcessingException,
    Order,
    Payment,
    StripeEvent,
    Ticket,
)
from django_conference.registration.services.checkout import CheckoutService
from django_conference.registration.services.payment import PaymentService
from django_conference.registration.stripe_utils import convert_amount_for_db
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class WebhookRegistry:
    """Registry mapping Stripe event kinds to handler classes."""

    def __init__(self) -> None:
        self._registry: dict[str, type[Webhook]] = {}

    def register(self, handler_class: "type[Webhook]") -> "type[Webhook]":
        """Register *handler_class* under its ``name``; usable as a decorator."""
        self._registry[handler_class.name] = handler_class
        return handler_class

    def get(self, kind: str) -> "type[Webhook] | None":
        return self._registry.get(kind)

    def keys(self) -> list[str]:
        return list(self._registry.keys())


registry = WebhookRegistry()


# ---------------------------------------------------------------------------
# Base handler
# ---------------------------------------------------------------------------


class Webhook:
    """Base class for Stripe webhook event handlers.

    Subclasses set ``name`` to the Stripe event kind they handle and
    implement ``process_webhook()``. ``process()`` skips already processed
    events and captures failures to ``EventProcessingException``.
    """

    name: str = ""

    def __init__(self, event: StripeEvent) -> None:
        self.event = event

    def process(self) -> None:
        """Run the handler once, marking the event processed on success.

        Raises:
            Exception: Whatever ``process_webhook`` raised, after it has been
                recorded.
        """
        if self.event.processed:
            logger.info("Event %s already processed, skipping", self.event.stripe_id)
            return

        try:
            self.process_webhook()
            self.event.processed = True
            self.event.save(update_fields=["processed"])
        except Exception:
            self.log_exception()
            raise

    def process_webhook(self) -> None:
        raise NotImplementedError

    def log_exception(self) -> None:
        """Capture the current exception to ``EventProcessingException``."""
        tb = traceback.format_exc()
        logger.error("Error processing webhook %s (event %s): %s", self.name, self.event.stripe_id, tb)
        EventProcessingException.objects.create(
            event=self.event,
            data=str(self.event.payload),
            message=str(tb)[:500],
            traceback=tb,
        )

    @property
    def data_object(self) -> dict[str, object]:
        return _event_data_object(self.event)


def _event_data_object(event: StripeEvent) -> dict[str, object]:
    """Extract the ``data.object`` dict from a StripeEvent payload."""
    payload = event.payload
    if isinstance(payload, dict):
        data = payload.get("data")
        if isinstance(data, dict):
            obj = data.get("object")
            if isinstance(obj, dict):
                return obj
    return {}


def _order_for_session(session: dict[str, object]) -> Order | None:
    """Find the order a Checkout Session was opened for.

    Looks at ``metadata.order_id`` first, then ``client_reference_id``
    (the order reference) and finally the stored session id.
    """
    metadata = session.get("metadata")
    if isinstance(metadata, dict) and metadata.get("order_id"):
        order = Order.objects.filter(pk=metadata["order_id"]).first()
        if order is not None:
            return order
    reference = session.get("client_reference_id")
    if reference:
        order = Order.objects.filter(reference=str(reference)).first()
        if order is not None:
            return order
    session_id = session.get("id")
    if session_id:
        return Order.objects.filter(stripe_checkout_session_id=str(session_id)).first()
    return None


# ---------------------------------------------------------------------------
# Concrete handlers
# ---------------------------------------------------------------------------


class CheckoutSessionPaidWebhook(Webhook):
    """Settle the order once Stripe reports the session as paid.

    Card payments arrive paid on ``checkout.session.completed``; delayed
    methods complete with ``payment_status == "unpaid"`` and settle later
    through ``checkout.session.async_payment_succeeded``.
    """

    def process_webhook(self) -> None:
        session = self.data_object
        order = _order_for_session(session)
        if order is None:
            logger.warning("No order found for checkout session %s", session.get("id"))
            return

        if session.get("payment_status") not in ("paid", "no_payment_required"):
            logger.info(
                "Checkout session %s for order %s not paid yet (%s)",
                session.get("id"),
                order.reference,
                session.get("payment_status"),
            )
            return

        amount = None
        if session.get("amount_total") is not None:
            currency = str(session.get("currency") or order.currency)
            amount = convert_amount_for_db(int(session["amount_total"]), currency)

        PaymentService.mark_paid(
            order,
            amount=amount,
            session_id=str(session.get("id", "")),
            payment_intent_id=str(session.get("payment_intent") or ""),
        )


@registry.register
class CheckoutSessionCompletedWebhook(CheckoutSessionPaidWebhook):
    name = "checkout.session.completed"


@registry.register
class CheckoutSessionAsyncPaymentSucceededWebhook(CheckoutSessionPaidWebhook):
    name = "checkout.session.async_payment_succeeded"


class CheckoutSessionFailedWebhook(Webhook):
    """Cancel the pending order when its session fails or expires."""

    @transaction.atomic
    def process_webhook(self) -> None:
        session = self.data_object
        order = _order_for_session(session)
        if order is None:
            logger.warning("No order found for checkout session %s", session.get("id"))
            return

        if order.status != Order.Status.PENDING:
            logger.info("Order %s is %s, ignoring %s", order.reference, order.status, self.name)
            return

        order.payments.filter(
            stripe_checkout_session_id=str(session.get("id", "")),
            status=Payment.Status.PENDING,
        ).update(status=Payment.Status.FAILED)
        CheckoutService.cancel_order(order)
        logger.warning("Order %s cancelled after %s", order.reference, self.name)


@registry.register
class CheckoutSessionAsyncPaymentFailedWebhook(CheckoutSessionFailedWebhook):
    name = "checkout.session.async_payment_failed"


@registry.register
class CheckoutSessionExpiredWebhook(CheckoutSessionFailedWebhook):
    name = "checkout.session.expired"


@registry.register
class ChargeRefundedWebhook(Webhook):
    """Handles ``charge.refunded`` events.

    Compares ``amount_refunded`` to ``amount`` to tell full from partial
    refunds. A full refund also refunds every ticket of the order.
    """

    name = "charge.refunded"

    @transaction.atomic
    def process_webhook(self) -> None:
        charge = self.data_object
        intent_id = str(charge.get("payment_intent") or "")

        payment = None
        if intent_id:
            payment = Payment.objects.select_for_update().filter(stripe_payment_intent_id=intent_id).first()
        if payment is None:
            logger.warning("No payment found for payment_intent %s during refund processing", intent_id)
            return

        currency = str(charge.get("currency") or get_config().currency)
        amount_refunded = convert_amount_for_db(int(charge["amount_refunded"]), currency)
        amount_total = convert_amount_for_db(int(charge["amount"]), currency)
        is_full_refund = amount_refunded >= amount_total

        order = Order.objects.select_for_update().get(pk=payment.order_id)
        if charge.get("id") and not payment.stripe_charge_id:
            payment.stripe_charge_id = str(charge["id"])
            payment.save(update_fields=["stripe_charge_id"])

        if is_full_refund:
            payment.status = Payment.Status.REFUNDED
            payment.save(update_fields=["status"])
            order.status = Order.Status.REFUNDED
            refunded = order.tickets.exclude(status=Ticket.Status.REFUNDED).update(status=Ticket.Status.REFUNDED)
            logger.info("Refunded %s tickets for order %s", refunded, order.reference)
        else:
            order.status = Order.Status.PARTIALLY_REFUNDED

        order.amount_refunded = min(amount_refunded, order.total)
        order.save(update_fields=["status", "amount_refunded", "updated_at"])
        logger.info(
            "%s refund processed for payment_intent %s (order %s)",
            "Full" if is_full_refund else "Partial",
            intent_id,
            order.reference,
        )


@registry.register
class ChargeDisputeCreatedWebhook(Webhook):
    """Log new disputes for manual review."""

    name = "charge.dispute.created"

    def process_webhook(self) -> None:
        dispute = self.data_object
        logger.warning(
            "Stripe dispute created: id=%s, charge=%s, amount=%s, reason=%s",
            dispute.get("id"),
            dispute.get("charge"),
            dispute.get("amount"),
            dispute.get("reason"),
        )


# ---------------------------------------------------------------------------
# Webhook endpoint view
# ---------------------------------------------------------------------------


@csrf_exempt
@require_POST
def stripe_webhook(request: "HttpRequest", conference_slug: str) -> HttpResponse:
    """Receive and process Stripe webhook events for a specific conference.

    Verifies the event signature against the conference's webhook secret
    (falling back to ``DJANGO_CONFERENCE["stripe"]["webhook_secret"]``),
    deduplicates by Stripe event ID, persists the raw event, and dispatches
    to the registered handler.

    Always returns HTTP 200 so Stripe does not retry events that can never
    succeed. Failures are logged and captured to ``EventProcessingException``.
    """
    payload = request.body
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")

    try:
        conference = Conference.objects.get(slug=conference_slug, is_active=True)
    except Conference.DoesNotExist:
        logger.warning("Webhook received for unknown conference slug: %s", conference_slug)
        return HttpResponse(status=200)

    config = get_config()
    webhook_secret = conference.stripe_webhook_secret or config.stripe.webhook_secret
    if not webhook_secret:
        logger.error("Conference '%s' has no webhook secret configured", conference_slug)
        return HttpResponse(status=200)

    try:
        event = stripe.Webhook.construct_event(
            payload,
            sig_header,
            str(webhook_secret),
            tolerance=config.stripe.webhook_tolerance,
        )
    except (stripe.SignatureVerificationError, ValueError):
        logger.warning("Invalid Stripe webhook payload or signature for conference '%s'", conference_slug)
        return HttpResponse(status=200)

    stripe_id = event["id"]
    kind = event["type"]

    if StripeEvent.objects.filter(stripe_id=stripe_id).exists():
        logger.info("Duplicate Stripe event %s, returning 200", stripe_id)
        return HttpResponse(status=200)

    event_data = event.to_dict() if hasattr(event, "to_dict") else dict(event)
    customer_id = ""
    data_object = event_data.get("data", {}).get("object", {})
    if isinstance(data_object, dict):
        customer_id = data_object.get("customer", "") or ""

    stripe_event = StripeEvent.objects.create(
        stripe_id=stripe_id,
        kind=kind,
        livemode=event_data.get("livemode", False),
        payload=event_data,
        customer_id=str(customer_id),
        api_version=event_data.get("api_version", "") or "",
    )

    handler_class = registry.get(kind)
    if handler_class is None:
        logger.info("No handler registered for event kind '%s'", kind)
        return HttpResponse(status=200)

    try:
        handler_class(stripe_event).process()
    except Exception:
        logger.exception("Error processing Stripe event %s (kind=%s)", stripe_id, kind)

    return HttpResponse(status=200)
