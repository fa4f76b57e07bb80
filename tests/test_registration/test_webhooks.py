"""Tests for Stripe webhook handling."""

import json
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest
import stripe as _stripe
from django.contrib.auth import get_user_model
from django.utils import timezone

from django_conference.conference.models import Conference
from django_conference.registration.models import (
    EventProcessingException,
    Order,
    OrderLineItem,
    Payment,
    StripeEvent,
    Ticket,
    TicketType,
    Voucher,
)
from django_conference.registration.services.checkout import CheckoutService
from django_conference.registration.webhooks import (
    ChargeRefundedWebhook,
    CheckoutSessionCompletedWebhook,
    Webhook,
    WebhookRegistry,
    _event_data_object,
    registry,
)

User = get_user_model()

URL = "/whcon/api/webhooks/stripe/"
CONSTRUCT = "django_conference.registration.webhooks.stripe.Webhook.construct_event"


# -- Fixtures -----------------------------------------------------------------


@pytest.fixture
def conference(db):
    return Conference.objects.create(
        name="WebhookCon",
        slug="whcon",
        start_date="2027-06-01",
        end_date="2027-06-03",
        stripe_secret_key="sk_test_abc123",
        stripe_webhook_secret="whsec_test_secret",
    )


@pytest.fixture
def user(db):
    return User.objects.create_user(username="whuser", email="wh@example.com", password="pw")


@pytest.fixture
def order(conference, user):
    ticket_type = TicketType.objects.create(
        conference=conference, name="Standard", slug="standard", price=Decimal("100.00")
    )
    order = Order.objects.create(
        conference=conference,
        user=user,
        status=Order.Status.PENDING,
        subtotal=Decimal("100.00"),
        total=Decimal("100.00"),
        billing_name="Web Hook",
        billing_email="wh@example.com",
        reference="ORD-WH001",
        stripe_checkout_session_id="cs_test_1",
    )
    OrderLineItem.objects.create(
        order=order,
        description="Standard",
        quantity=1,
        unit_price=Decimal("100.00"),
        line_total=Decimal("100.00"),
        ticket_type=ticket_type,
    )
    Payment.objects.create(order=order, amount=Decimal("100.00"), stripe_checkout_session_id="cs_test_1")
    return order


def _event(kind, obj, event_id="evt_1"):
    return {"id": event_id, "type": kind, "livemode": False, "api_version": "2025-10-29", "data": {"object": obj}}


def _session(order, **overrides):
    session = {
        "id": "cs_test_1",
        "client_reference_id": order.reference,
        "metadata": {"order_id": str(order.pk)},
        "payment_status": "paid",
        "amount_total": 10000,
        "currency": "chf",
        "payment_intent": "pi_test_1",
        "customer": "cus_1",
    }
    session.update(overrides)
    return session


def _post(client, event):
    with patch(CONSTRUCT, return_value=event) as construct:
        response = client.post(
            URL, data=json.dumps(event), content_type="application/json", HTTP_STRIPE_SIGNATURE="t=1,v1=sig"
        )
    return response, construct


# =============================================================================
# Registry and base handler
# =============================================================================


class TestRegistry:
    def test_registered_kinds(self):
        assert set(registry.keys()) == {
            "checkout.session.completed",
            "checkout.session.async_payment_succeeded",
            "checkout.session.async_payment_failed",
            "checkout.session.expired",
            "charge.refunded",
            "charge.dispute.created",
        }
        assert registry.get("checkout.session.completed") is CheckoutSessionCompletedWebhook
        assert registry.get("payment_intent.succeeded") is None

    def test_register_returns_class(self):
        local = WebhookRegistry()

        @local.register
        class Custom(Webhook):
            name = "custom.kind"

        assert local.get("custom.kind") is Custom


@pytest.mark.django_db
class TestBaseWebhook:
    def test_data_object_extraction(self):
        event = StripeEvent(stripe_id="evt_x", kind="x", payload={"data": {"object": {"id": "obj"}}})
        assert _event_data_object(event) == {"id": "obj"}
        assert _event_data_object(StripeEvent(stripe_id="evt_y", kind="x", payload={"data": []})) == {}

    def test_failure_is_recorded_and_reraised(self):
        event = StripeEvent.objects.create(stripe_id="evt_fail", kind="x", payload={})

        class Boom(Webhook):
            name = "boom"

            def process_webhook(self):
                raise RuntimeError("kaboom")

        with pytest.raises(RuntimeError):
            Boom(event).process()

        event.refresh_from_db()
        assert event.processed is False
        assert "kaboom" in EventProcessingException.objects.get(event=event).traceback

    def test_processed_event_is_skipped(self):
        event = StripeEvent.objects.create(stripe_id="evt_done", kind="x", payload={}, processed=True)
        Webhook(event).process()


# =============================================================================
# Endpoint
# =============================================================================


@pytest.mark.django_db
class TestEndpoint:
    def test_get_not_allowed(self, client, conference):
        assert client.get(URL).status_code == 405

    def test_unknown_conference_returns_200(self, client, db):
        with patch(CONSTRUCT) as construct:
            response = client.post("/nope/api/webhooks/stripe/", data="{}", content_type="application/json")
        assert response.status_code == 200
        construct.assert_not_called()

    def test_invalid_signature_returns_200(self, client, conference):
        error = _stripe.SignatureVerificationError("bad", "sig")
        with patch(CONSTRUCT, side_effect=error):
            response = client.post(URL, data="{}", content_type="application/json", HTTP_STRIPE_SIGNATURE="x")
        assert response.status_code == 200
        assert not StripeEvent.objects.exists()

    def test_verifies_with_conference_secret(self, client, conference, order):
        _, construct = _post(client, _event("charge.dispute.created", {"id": "dp_1"}))
        args, kwargs = construct.call_args
        assert args[1] == "t=1,v1=sig"
        assert args[2] == "whsec_test_secret"
        assert kwargs == {"tolerance": 300}

    def test_unhandled_kind_is_stored(self, client, conference):
        response, _ = _post(client, _event("customer.created", {"id": "cus_1", "customer": "cus_1"}))
        assert response.status_code == 200
        stored = StripeEvent.objects.get(stripe_id="evt_1")
        assert stored.kind == "customer.created"
        assert stored.processed is False

    def test_duplicate_event_is_ignored(self, client, conference, order):
        event = _event("checkout.session.completed", _session(order))
        _post(client, event)
        with patch("django_conference.registration.webhooks.PaymentService.mark_paid") as mark_paid:
            _post(client, event)
        mark_paid.assert_not_called()
        assert StripeEvent.objects.count() == 1

    def test_handler_error_still_returns_200(self, client, conference, order):
        with patch(
            "django_conference.registration.webhooks.PaymentService.mark_paid", side_effect=RuntimeError("db down")
        ):
            response, _ = _post(client, _event("checkout.session.completed", _session(order)))
        assert response.status_code == 200
        assert EventProcessingException.objects.count() == 1


# =============================================================================
# Checkout session handlers
# =============================================================================


@pytest.mark.django_db
class TestCheckoutSessionEvents:
    def test_completed_marks_order_paid(self, client, conference, order):
        _post(client, _event("checkout.session.completed", _session(order)))

        order.refresh_from_db()
        assert order.status == Order.Status.PAID
        payment = order.payments.get()
        assert payment.status == Payment.Status.SUCCEEDED
        assert payment.stripe_payment_intent_id == "pi_test_1"
        assert order.tickets.count() == 1
        assert StripeEvent.objects.get(stripe_id="evt_1").processed is True

    def test_completed_but_unpaid_waits(self, client, conference, order):
        _post(client, _event("checkout.session.completed", _session(order, payment_status="unpaid")))
        order.refresh_from_db()
        assert order.status == Order.Status.PENDING

    def test_async_success_settles(self, client, conference, order):
        _post(client, _event("checkout.session.async_payment_succeeded", _session(order, metadata={})))
        order.refresh_from_db()
        assert order.status == Order.Status.PAID

    def test_session_without_order_is_ignored(self, client, conference, order):
        session = {"id": "cs_other", "payment_status": "paid", "metadata": {}}
        response, _ = _post(client, _event("checkout.session.completed", session))
        assert response.status_code == 200
        order.refresh_from_db()
        assert order.status == Order.Status.PENDING

    @pytest.mark.parametrize("kind", ["checkout.session.expired", "checkout.session.async_payment_failed"])
    def test_failure_cancels_pending_order(self, client, conference, order, kind):
        _post(client, _event(kind, _session(order, payment_status="unpaid")))

        order.refresh_from_db()
        assert order.status == Order.Status.CANCELLED
        assert order.payments.get().status == Payment.Status.FAILED

    def test_completion_after_expiry_does_not_overuse_voucher(self, client, conference, order, user):
        voucher = Voucher.objects.create(conference=conference, code="SOLO", max_uses=1, times_used=1)
        Order.objects.filter(pk=order.pk).update(
            voucher=voucher, voucher_code="SOLO", hold_expires_at=timezone.now() - timedelta(minutes=1)
        )
        assert CheckoutService.expire_stale_pending_orders(conference.pk) == 1
        voucher.refresh_from_db()
        assert voucher.times_used == 0

        Order.objects.create(
            conference=conference,
            user=user,
            status=Order.Status.PENDING,
            subtotal=Decimal("100.00"),
            total=Decimal("100.00"),
            voucher=voucher,
            voucher_code="SOLO",
            reference="ORD-WH002",
            hold_expires_at=timezone.now() + timedelta(minutes=30),
        )
        Voucher.objects.filter(pk=voucher.pk).update(times_used=1)

        response, _ = _post(client, _event("checkout.session.completed", _session(order)))

        assert response.status_code == 200
        order.refresh_from_db()
        voucher.refresh_from_db()
        assert order.status == Order.Status.CANCELLED
        assert not order.tickets.exists()
        assert voucher.times_used == 1
        live = Order.objects.filter(voucher=voucher, status__in=[Order.Status.PENDING, Order.Status.PAID])
        assert live.count() == 1
        payment = order.payments.get(stripe_checkout_session_id="cs_test_1")
        assert payment.status == Payment.Status.SUCCEEDED
        assert "refund required" in payment.note

    def test_completion_after_expiry_reinstates_order_when_possible(self, client, conference, order):
        Order.objects.filter(pk=order.pk).update(hold_expires_at=timezone.now() - timedelta(minutes=1))
        CheckoutService.expire_stale_pending_orders(conference.pk)

        _post(client, _event("checkout.session.completed", _session(order)))

        order.refresh_from_db()
        assert order.status == Order.Status.PAID
        assert order.tickets.count() == 1

    def test_expiry_leaves_paid_order_alone(self, client, conference, order):
        order.status = Order.Status.PAID
        order.save()
        _post(client, _event("checkout.session.expired", _session(order)))
        order.refresh_from_db()
        assert order.status == Order.Status.PAID


# =============================================================================
# Refunds
# =============================================================================


@pytest.mark.django_db
class TestChargeRefunded:
    @pytest.fixture
    def paid(self, order):
        from django_conference.registration.services.payment import PaymentService  # noqa: PLC0415

        PaymentService.mark_paid(order, session_id="cs_test_1", payment_intent_id="pi_test_1")
        order.refresh_from_db()
        return order

    def _charge(self, refunded):
        return {
            "id": "ch_1",
            "payment_intent": "pi_test_1",
            "amount": 10000,
            "amount_refunded": refunded,
            "currency": "chf",
        }

    def test_full_refund(self, client, conference, paid):
        _post(client, _event("charge.refunded", self._charge(10000)))

        paid.refresh_from_db()
        assert paid.status == Order.Status.REFUNDED
        assert paid.amount_refunded == Decimal("100.00")
        payment = paid.payments.get()
        assert payment.status == Payment.Status.REFUNDED
        assert payment.stripe_charge_id == "ch_1"
        assert set(paid.tickets.values_list("status", flat=True)) == {Ticket.Status.REFUNDED}

    def test_partial_refund(self, client, conference, paid):
        _post(client, _event("charge.refunded", self._charge(2500)))

        paid.refresh_from_db()
        assert paid.status == Order.Status.PARTIALLY_REFUNDED
        assert paid.amount_refunded == Decimal("25.00")
        assert set(paid.tickets.values_list("status", flat=True)) == {Ticket.Status.CONFIRMED}

    def test_unknown_payment_intent(self, conference):
        event = StripeEvent.objects.create(
            stripe_id="evt_r", kind="charge.refunded", payload=_event("charge.refunded", {"payment_intent": "pi_x"})
        )
        ChargeRefundedWebhook(event).process()
        event.refresh_from_db()
        assert event.processed is True
