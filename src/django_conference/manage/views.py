"""Back-office JSON endpoints for conference staff.

Every view here resolves the conference from the ``conference_slug`` URL
kwarg and enforces staff permissions before running. Unlike the public
endpoints, inactive conferences are still reachable.
"""

import logging
from typing import TYPE_CHECKING

from django.core.exceptions import PermissionDenied
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_conference.api import JsonApiMixin
from django_conference.conference.models import Conference
from django_conference.registration.forms import IssueTicketForm, ReassignTicketForm, VerificationDecisionForm
from django_conference.registration.models import Ticket, VerificationRequest
from django_conference.registration.services.tickets import TicketService
from django_conference.registration.services.verification import VerificationService
from django_conference.registration.views import ticket_payload, verification_payload

if TYPE_CHECKING:
    from django.http import HttpRequest, HttpResponse

logger = logging.getLogger(__name__)

MANAGE_PERMISSION = "conference_core.change_conference"
TICKET_PAGE_SIZE = 100


def is_manager(user: object) -> bool:
    """Superusers and holders of ``conference_core.change_conference``."""
    return bool(user.is_superuser or user.has_perm(MANAGE_PERMISSION))  # type: ignore[attr-defined]


class ManagePermissionMixin:
    """Permission mixin for conference-scoped management views.

    Resolves the conference from the ``conference_slug`` URL kwarg and
    checks that the authenticated user is a superuser or holds the
    ``conference_core.change_conference`` permission. Stores the resolved
    conference on ``self.conference``.

    Raises:
        PermissionDenied: If the user lacks the required permission.
    """

    conference: Conference
    kwargs: dict[str, str]

    def has_permission(self, user: object) -> bool:
        return is_manager(user)

    def dispatch(self, request: "HttpRequest", *args: str, **kwargs: str) -> "HttpResponse":
        """Resolve the conference and enforce permissions before dispatch."""
        self.kwargs = kwargs
        self.conference = get_object_or_404(Conference, slug=kwargs.get("conference_slug", ""))
        if not self.has_permission(request.user):
            raise PermissionDenied
        return super().dispatch(request, *args, **kwargs)  # type: ignore[misc]


class ManageView(JsonApiMixin, ManagePermissionMixin, View):
    """Base for manager-only endpoints."""


class TicketListView(ManageView):
    """Issued tickets, filterable by ``status`` and a free-text ``q``."""

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        tickets = Ticket.objects.filter(conference=self.conference).select_related("ticket_type", "order")
        status = request.GET.get("status", "").strip()
        if status:
            tickets = tickets.filter(status=status)
        query = request.GET.get("q", "").strip()
        if query:
            tickets = tickets.filter(
                Q(code__iexact=query)
                | Q(email__icontains=query)
                | Q(first_name__icontains=query)
                | Q(last_name__icontains=query)
                | Q(order__reference__iexact=query)
            )
        total = tickets.count()
        rows = []
        for ticket in tickets.order_by("-created_at")[:TICKET_PAGE_SIZE]:
            row = ticket_payload(ticket)
            row["source"] = ticket.source
            row["order"] = ticket.order.reference if ticket.order_id else None
            row["reassigned_from_email"] = ticket.reassigned_from_email
            rows.append(row)
        return JsonResponse({"count": total, "tickets": rows})


class TicketIssueView(ManageView):
    """Issue a ticket outside checkout (speakers, sponsors, comps)."""

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(IssueTicketForm, conference=self.conference)
        ticket = TicketService.issue_ticket(
            self.conference,
            data["ticket_type_id"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=data["email"],
            company=data["company"],
            job_title=data["job_title"],
            issued_by=request.user,
            amount_paid=data["amount_paid"],
            send_email=data["send_email"],
        )
        logger.info("User %s issued ticket %s", request.user.pk, ticket.code)
        return JsonResponse(ticket_payload(ticket), status=201)


class TicketReassignView(ManageView):
    def post(self, request: "HttpRequest", ticket_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        ticket = get_object_or_404(Ticket, pk=ticket_id, conference=self.conference)
        data = self.bind_form(ReassignTicketForm)
        ticket = TicketService.reassign(ticket, **data)
        return JsonResponse(ticket_payload(ticket))


class TicketCancelView(ManageView):
    def post(self, request: "HttpRequest", ticket_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        ticket = get_object_or_404(Ticket, pk=ticket_id, conference=self.conference)
        TicketService.cancel(ticket)
        return JsonResponse(ticket_payload(ticket))


class VerificationListView(ManageView):
    """Eligibility verification requests, pending first by default."""

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        requests = VerificationRequest.objects.filter(conference=self.conference).select_related("ticket_type")
        status = request.GET.get("status", VerificationRequest.Status.PENDING).strip()
        if status != "all":
            requests = requests.filter(status=status)
        return JsonResponse({"requests": [verification_payload(item) for item in requests.order_by("created_at")]})


class VerificationDecisionView(ManageView):
    """Approve or reject a verification request."""

    def post(self, request: "HttpRequest", request_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        verification = get_object_or_404(VerificationRequest, pk=request_id, conference=self.conference)
        data = self.bind_form(VerificationDecisionForm)
        if data["decision"] == "approve":
            verification = VerificationService.approve(verification, actor=request.user, note=data["note"])
        else:
            verification = VerificationService.reject(verification, actor=request.user, note=data["note"])
        payload = verification_payload(verification)
        payload["voucher_code"] = verification.voucher.code if verification.voucher_id else None
        return JsonResponse(payload)
