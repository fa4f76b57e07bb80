"""Tests for CheckoutService."""

import json
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import override_settings
from django.utils import timezone

from django_conference.conference.models import Conference
from django_conference.registration.models import Cart, Order, Payment, TicketType, Voucher
from django_conference.registration.services.cart import CartService
from django_conference.registration.services.checkout import CheckoutService

User = get_user_model()


@pytest.fixture
def conference():
    return Conference.objects.create(
        name="CheckoutCon",
        slug="checkoutcon",
        start_date=date(2027, 9, 11),
        end_date=date(2027, 9, 11),
    )


@pytest.fixture
def user():
    return User.objects.create_user(username="buyer", email="buyer@example.com", password="pw")


@pytest.fixture
def standard(conference):
    return TicketType.objects.create(conference=conference, name="Standard", slug="standard", price=Decimal("195.00"))


def _ready_cart(user, conference, ticket_type, qty=1, voucher_code=None):
    cart = CartService.get_or_create_cart(user, conference)
    CartService.add_ticket(cart, ticket_type, qty=qty)
    if voucher_code:
        CartService.apply_voucher(cart, voucher_code)
    CartService.set_attendees(
        cart,
        [{"first_name": "Grace", "last_name": f"Hopper{i}", "email": f"grace{i}@example.com"} for i in range(qty)],
    )
    CartService.advance_step(cart, Cart.Step.CHECKOUT)
    return cart


@pytest.mark.django_db
class TestCheckout:
    def test_creates_pending_order_with_hold(self, user, conference, standard):
        cart = _ready_cart(user, conference, standard, qty=2)

        order = CheckoutService.checkout(cart, billing_name="Grace Hopper", billing_email="billing@example.com")

        assert order.status == Order.Status.PENDING
        assert order.reference.startswith("ORD-")
        assert len(order.reference) == 12
        assert order.subtotal == Decimal("390.00")
        assert order.total == Decimal("390.00")
        assert order.currency == "CHF"
        assert order.billing_email == "billing@example.com"
        assert order.hold_expires_at > timezone.now() + timedelta(minutes=34)
        line = order.line_items.get()
        assert line.quantity == 2
        assert line.ticket_type == standard
        cart.refresh_from_db()
        assert cart.status == Cart.Status.CHECKED_OUT

    @override_settings(DJANGO_CONFERENCE={"order_reference_prefix": "ZJS"})
    def test_reference_prefix_is_configurable(self, user, conference, standard):
        order = CheckoutService.checkout(_ready_cart(user, conference, standard))
        assert order.reference.startswith("ZJS-")

    def test_billing_email_falls_back_to_cart_contact(self, user, conference, standard):
        order = CheckoutService.checkout(_ready_cart(user, conference, standard))
        assert order.billing_email == "buyer@example.com"

    def test_voucher_is_snapshotted_and_used(self, user, conference, standard):
        voucher = Voucher.objects.create(
            conference=conference, code="P20", voucher_type=Voucher.VoucherType.PERCENTAGE, discount_value=20
        )
        cart = _ready_cart(user, conference, standard, voucher_code="P20")

        order = CheckoutService.checkout(cart)

        assert order.discount_amount == Decimal("39.00")
        assert order.total == Decimal("156.00")
        assert order.voucher_code == "P20"
        assert json.loads(order.voucher_details)["voucher_type"] == "percentage"
        voucher.refresh_from_db()
        assert voucher.times_used == 1

    def test_empty_cart(self, user, conference):
        cart = CartService.get_or_create_cart(user, conference)
        with pytest.raises(ValidationError, match="empty cart"):
            CheckoutService.checkout(cart)

    def test_requires_checkout_step(self, user, conference, standard):
        cart = CartService.get_or_create_cart(user, conference)
        CartService.add_ticket(cart, standard)
        with pytest.raises(ValidationError, match="previous checkout steps"):
            CheckoutService.checkout(cart)

    def test_rejects_closed_cart(self, user, conference, standard):
        cart = _ready_cart(user, conference, standard)
        CheckoutService.checkout(cart)
        with pytest.raises(ValidationError, match="Only open carts"):
            CheckoutService.checkout(cart)

    def test_revalidates_stock(self, user, conference, standard):
        cart = _ready_cart(user, conference, standard, qty=2)
        standard.total_quantity = 1
        standard.save()
        with pytest.raises(ValidationError, match="Only 1 tickets"):
            CheckoutService.checkout(cart)

    def test_voucher_used_up_since_applied(self, user, conference, standard):
        voucher = Voucher.objects.create(conference=conference, code="ONCE", max_uses=1)
        cart = _ready_cart(user, conference, standard, voucher_code="ONCE")
        Voucher.objects.filter(pk=voucher.pk).update(times_used=1)

        with pytest.raises(ValidationError, match="no longer valid"):
            CheckoutService.checkout(cart)
        assert not Order.objects.exists()

    def test_pending_hold_reserves_stock(self, user, conference, standard):
        standard.total_quantity = 1
        standard.save()
        CheckoutService.checkout(_ready_cart(user, conference, standard))
        other = User.objects.create_user(username="other", email="other@example.com", password="pw")

        cart = CartService.get_or_create_cart(other, conference)
        with pytest.raises(ValidationError, match="not available"):
            CartService.add_ticket(cart, standard)


@pytest.mark.django_db
class TestCancelAndExpire:
    def test_cancel_releases_voucher_and_fails_payments(self, user, conference, standard):
        voucher = Voucher.objects.create(conference=conference, code="ONCE", max_uses=1)
        order = CheckoutService.checkout(_ready_cart(user, conference, standard, voucher_code="ONCE"))
        Payment.objects.create(order=order, amount=order.total, status=Payment.Status.PENDING)

        CheckoutService.cancel_order(order)

        order.refresh_from_db()
        voucher.refresh_from_db()
        assert order.status == Order.Status.CANCELLED
        assert order.hold_expires_at is None
        assert voucher.times_used == 0
        assert order.payments.get().status == Payment.Status.FAILED

    def test_cancel_requires_pending(self, user, conference, standard):
        order = CheckoutService.checkout(_ready_cart(user, conference, standard))
        Order.objects.filter(pk=order.pk).update(status=Order.Status.PAID)
        with pytest.raises(ValidationError, match="Only pending orders can be cancelled"):
            CheckoutService.cancel_order(order)

    def test_revert_checkout_reopens_cart_and_frees_voucher(self, user, conference, standard):
        voucher = Voucher.objects.create(conference=conference, code="ONCE", max_uses=1)
        cart = _ready_cart(user, conference, standard, voucher_code="ONCE")
        order = CheckoutService.checkout(cart)

        CheckoutService.revert_checkout(order)

        order.refresh_from_db()
        cart.refresh_from_db()
        voucher.refresh_from_db()
        assert order.status == Order.Status.CANCELLED
        assert cart.status == Cart.Status.OPEN
        assert cart.step == Cart.Step.CHECKOUT
        assert cart.expires_at > timezone.now()
        assert voucher.times_used == 0
        assert CartService.get_or_create_cart(user, conference) == cart

    def test_expire_stale_pending_orders(self, user, conference, standard):
        order = CheckoutService.checkout(_ready_cart(user, conference, standard))
        Order.objects.filter(pk=order.pk).update(hold_expires_at=timezone.now() - timedelta(seconds=1))

        assert CheckoutService.expire_stale_pending_orders(conference.pk) == 1

        order.refresh_from_db()
        assert order.status == Order.Status.CANCELLED
        assert CheckoutService.expire_stale_pending_orders(conference.pk) == 0
