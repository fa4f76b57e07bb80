"""Tests for the financial overview endpoint."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.test import Client
from django.urls import reverse
from django.utils import timezone

from django_conference.conference.management.commands.setup_groups import FINANCE_GROUP
from django_conference.conference.models import Conference, PricingStage
from django_conference.registration.models import Cart, Order, Ticket, TicketType, Voucher

User = get_user_model()


@pytest.fixture
def conference(db):
    return Conference.objects.create(
        name="Money Conf", slug="money-conf", start_date=date(2027, 5, 1), end_date=date(2027, 5, 3)
    )


@pytest.fixture
def buyer(db):
    return User.objects.create_user(username="buyer", password="password")


@pytest.fixture
def admin_client(db):
    c = Client()
    c.force_login(User.objects.create_superuser(username="admin", password="password", email="admin@test.com"))
    return c


def _url(conference: Conference) -> str:
    return reverse("manage:financials", kwargs={"conference_slug": conference.slug})


def _order(conference, user, reference, status, total, refunded="0.00"):
    return Order.objects.create(
        conference=conference,
        user=user,
        reference=reference,
        status=status,
        subtotal=Decimal(total),
        total=Decimal(total),
        amount_refunded=Decimal(refunded),
    )


@pytest.mark.django_db
class TestFinancialsView:
    def test_empty_conference(self, admin_client, conference):
        data = admin_client.get(_url(conference)).json()

        assert data["currency"] == "CHF"
        assert data["revenue"] == {"gross": "0.00", "refunded": "0.00", "net": "0.00"}
        assert data["total_orders"] == 0
        assert data["tickets_sold"]["by_category"] == {"standard": 0, "student_unemployed": 0, "vip": 0}
        assert data["vouchers"]["redemptions"] == 0

    def test_revenue_and_breakdowns(self, admin_client, conference, buyer):
        _order(conference, buyer, "ORD-1", Order.Status.PAID, "390.00")
        _order(conference, buyer, "ORD-2", Order.Status.PARTIALLY_REFUNDED, "200.00", refunded="50.00")
        _order(conference, buyer, "ORD-3", Order.Status.PENDING, "999.00")
        _order(conference, buyer, "ORD-4", Order.Status.CANCELLED, "10.00")

        now = timezone.now()
        early = PricingStage.objects.create(
            conference=conference,
            stage=PricingStage.Stage.EARLY_BIRD,
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=1),
        )
        standard = TicketType.objects.create(
            conference=conference, name="Standard", slug="standard", price=Decimal("195.00"), stage=early
        )
        vip = TicketType.objects.create(
            conference=conference, name="VIP", slug="vip", price=Decimal("500.00"), category=TicketType.Category.VIP
        )
        sold = ((standard, "confirmed"), (standard, "confirmed"), (vip, "confirmed"), (vip, "cancelled"))
        for ticket_type, status in sold:
            Ticket.objects.create(
                conference=conference,
                ticket_type=ticket_type,
                first_name="A",
                last_name="B",
                email="a@example.com",
                status=status,
            )

        Voucher.objects.create(conference=conference, code="USED", times_used=2, source=Voucher.Source.BULK)
        Voucher.objects.create(conference=conference, code="FRESH")
        Cart.objects.create(user=buyer, conference=conference)
        Cart.objects.create(user=buyer, conference=conference, expires_at=now - timedelta(minutes=1))

        data = admin_client.get(_url(conference)).json()

        assert data["revenue"] == {"gross": "590.00", "refunded": "50.00", "net": "540.00"}
        assert data["orders_by_status"]["paid"] == 1
        assert data["orders_by_status"]["pending"] == 1
        assert data["total_orders"] == 4
        assert data["tickets_sold"]["total"] == 3
        assert data["tickets_sold"]["by_category"]["vip"] == 1
        assert data["tickets_sold"]["by_stage"] == {"early_bird": 2, "any": 1}
        assert data["vouchers"] == {
            "total": 2,
            "redeemed": 1,
            "redemptions": 2,
            "redemptions_by_source": {"bulk": 2, "manual": 0},
        }
        assert data["active_carts"] == 1

    def test_finance_group_member_allowed(self, client, conference):
        user = User.objects.create_user(username="finance", password="password")
        user.groups.add(Group.objects.create(name=FINANCE_GROUP))
        client.force_login(user)
        assert client.get(_url(conference)).status_code == 200

    def test_regular_user_forbidden(self, client, conference, buyer):
        client.force_login(buyer)
        assert client.get(_url(conference)).status_code == 403
