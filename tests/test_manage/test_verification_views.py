"""Tests for the verification review endpoints."""

import json
from datetime import date
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.test import Client
from django.urls import reverse

from django_conference.conference.models import Conference
from django_conference.registration.models import TicketType, VerificationRequest

User = get_user_model()


@pytest.fixture
def conference(db):
    return Conference.objects.create(
        name="Review Conf",
        slug="review-conf",
        start_date=date(2027, 5, 1),
        end_date=date(2027, 5, 3),
    )


@pytest.fixture
def admin_client(db):
    c = Client()
    c.force_login(User.objects.create_superuser(username="admin", password="password", email="admin@test.com"))
    return c


@pytest.fixture
def verification(conference):
    ticket_type = TicketType.objects.create(
        conference=conference,
        name="Student",
        slug="student",
        price=Decimal("50.00"),
        requires_voucher=True,
        requires_verification=True,
    )
    return VerificationRequest.objects.create(
        conference=conference,
        ticket_type=ticket_type,
        kind=VerificationRequest.Kind.UNEMPLOYED,
        name="Grace Hopper",
        email="grace@example.com",
        linkedin_url="https://www.linkedin.com/in/grace",
    )


def _decide(client, conference, verification, payload):
    url = reverse(
        "manage:verification-decision",
        kwargs={"conference_slug": conference.slug, "request_id": verification.pk},
    )
    return client.post(url, data=json.dumps(payload), content_type="application/json")


@pytest.mark.django_db
class TestVerificationViews:
    def test_lists_pending_requests(self, admin_client, conference, verification):
        VerificationRequest.objects.create(
            conference=conference,
            ticket_type=verification.ticket_type,
            kind=VerificationRequest.Kind.STUDENT,
            name="Old",
            email="old@example.com",
            status=VerificationRequest.Status.REJECTED,
        )
        url = reverse("manage:verification-list", kwargs={"conference_slug": conference.slug})

        pending = admin_client.get(url).json()["requests"]
        everything = admin_client.get(url, {"status": "all"}).json()["requests"]

        assert [item["reference"] for item in pending] == [verification.reference]
        assert pending[0]["linkedin_url"] == "https://www.linkedin.com/in/grace"
        assert len(everything) == 2

    def test_approve_returns_voucher_code(self, admin_client, conference, verification):
        response = _decide(admin_client, conference, verification, {"decision": "approve"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "approved"
        assert data["voucher_code"].startswith("VERIFIED-")
        verification.refresh_from_db()
        assert verification.reviewed_by.username == "admin"

    def test_second_decision_is_refused(self, admin_client, conference, verification):
        _decide(admin_client, conference, verification, {"decision": "reject", "note": "No proof."})

        response = _decide(admin_client, conference, verification, {"decision": "approve"})

        assert response.status_code == 400
        assert response.json()["error"] == "Verification request is already rejected."
        verification.refresh_from_db()
        assert verification.voucher is None

    def test_requires_manager(self, client, conference, verification):
        user = User.objects.create_user(username="plain", password="pw")
        client.force_login(user)

        response = _decide(client, conference, verification, {"decision": "approve"})

        assert response.status_code == 403
