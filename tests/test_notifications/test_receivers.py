"""Tests for the order_paid email receiver."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from django_conference.conference.models import Conference
from django_conference.notifications.models import OutboundEmail
from django_conference.notifications.receivers import send_order_ticket_emails
from django_conference.notifications.services import EmailService
from django_conference.registration.models import Order, OrderLineItem, Ticket, TicketType
from django_conference.registration.services.payment import PaymentService

User = get_user_model()


@pytest.fixture
def conference():
    return Conference.objects.create(
        name="HookCon", slug="hookcon", start_date=date(2027, 9, 11), end_date=date(2027, 9, 11)
    )


@pytest.fixture
def order(conference):
    user = User.objects.create_user(username="buyer", email="buyer@example.com", password="pw")
    ticket_type = TicketType.objects.create(conference=conference, name="Standard", slug="std", price=Decimal("80.00"))
    order = Order.objects.create(
        conference=conference,
        user=user,
        subtotal=Decimal("160.00"),
        total=Decimal("160.00"),
        billing_name="Bill Payer",
        billing_email="billing@example.com",
        reference="ORD-HOOK0001",
    )
    OrderLineItem.objects.create(
        order=order,
        description="Standard",
        quantity=2,
        unit_price=Decimal("80.00"),
        line_total=Decimal("160.00"),
        ticket_type=ticket_type,
    )
    return order


def _reminder(to, conference):
    return EmailService.queue(
        to=to,
        template="cart_abandonment",
        context={},
        kind=OutboundEmail.Kind.CART_ABANDONMENT,
        conference=conference,
        send_after=timezone.now() + timedelta(hours=24),
    )


@pytest.mark.django_db
class TestHandleOrderPaid:
    def test_paid_order_sends_ticket_emails_after_commit(self, order, mailoutbox, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks(execute=True):
            PaymentService.mark_paid(order)

        assert len(mailoutbox) == 2
        assert {m.subject for m in mailoutbox} == {"Your Standard ticket for HookCon"}
        codes = set(Ticket.objects.filter(order=order).values_list("code", flat=True))
        assert {code for code in codes if any(code in m.body for m in mailoutbox)} == codes

    def test_no_emails_before_commit(self, order, mailoutbox, django_capture_on_commit_callbacks):
        with django_capture_on_commit_callbacks() as callbacks:
            PaymentService.mark_paid(order)
        assert mailoutbox == []
        assert len(callbacks) == 1

    def test_cancels_pending_cart_reminders(self, order, conference):
        for_billing = _reminder("billing@example.com", conference)
        for_user = _reminder("BUYER@example.com", conference)
        unrelated = _reminder("someone@example.com", conference)

        PaymentService.mark_paid(order)

        statuses = dict(OutboundEmail.objects.values_list("pk", "status"))
        assert statuses[for_billing.pk] == OutboundEmail.Status.CANCELLED
        assert statuses[for_user.pk] == OutboundEmail.Status.CANCELLED
        assert statuses[unrelated.pk] == OutboundEmail.Status.PENDING


@pytest.mark.django_db
class TestSendOrderTicketEmails:
    def test_skips_cancelled_tickets(self, order, mailoutbox):
        order.status = Order.Status.PAID
        order.save()
        from django_conference.registration.services.tickets import TicketService  # noqa: PLC0415

        first, second = TicketService.issue_for_order(order)
        TicketService.cancel(second)

        send_order_ticket_emails(order.pk)

        assert [m.to for m in mailoutbox] == [[first.email]]

    def test_order_without_tickets(self, order, mailoutbox):
        send_order_ticket_emails(order.pk)
        assert mailoutbox == []
