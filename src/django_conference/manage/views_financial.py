"""Financial overview endpoint for conference management.

Revenue totals, order and cart breakdowns, ticket sales by category and
by pricing stage, and voucher redemptions, all scoped to the current
conference.
"""

from decimal import Decimal
from typing import TYPE_CHECKING

from django.db.models import Count, Q, Sum
from django.http import JsonResponse
from django.utils import timezone
from django.views import View

from django_conference.api import JsonApiMixin, serialize
from django_conference.conference.management.commands.setup_groups import FINANCE_GROUP
from django_conference.manage.views import ManagePermissionMixin, is_manager
from django_conference.registration.models import Cart, Order, Ticket, TicketType, Voucher
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.http import HttpRequest

_ZERO = Decimal("0.00")

_REVENUE_STATUSES = (Order.Status.PAID, Order.Status.PARTIALLY_REFUNDED, Order.Status.REFUNDED)


class FinancePermissionMixin(ManagePermissionMixin):
    """Permission mixin for finance-scoped management views.

    Allows everyone :class:`ManagePermissionMixin` allows, plus members of
    the "Conference: Finance" group.
    """

    def has_permission(self, user: object) -> bool:
        return is_manager(user) or user.groups.filter(name=FINANCE_GROUP).exists()  # type: ignore[attr-defined]


class FinancialsView(JsonApiMixin, FinancePermissionMixin, View):
    """Revenue, order, ticket and voucher figures for the dashboard."""

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        conference = self.conference
        now = timezone.now()

        # --- Revenue ---
        orders = Order.objects.filter(conference=conference)
        revenue = orders.filter(status__in=_REVENUE_STATUSES).aggregate(
            gross=Sum("total"),
            refunded=Sum("amount_refunded"),
        )
        gross = revenue["gross"] or _ZERO
        refunded = revenue["refunded"] or _ZERO

        # --- Orders by status ---
        orders_by_status: dict[str, int] = {value: 0 for value, _label in Order.Status.choices}
        for row in orders.values("status").annotate(count=Count("id")):
            orders_by_status[row["status"]] = row["count"]

        # --- Tickets sold ---
        sold = Ticket.objects.filter(conference=conference, status=Ticket.Status.CONFIRMED)
        by_category: dict[str, int] = {value: 0 for value, _label in TicketType.Category.choices}
        for row in sold.values("ticket_type__category").annotate(count=Count("id")):
            by_category[row["ticket_type__category"]] = row["count"]

        by_stage: dict[str, int] = {}
        for row in sold.values("ticket_type__stage__stage").annotate(count=Count("id")):
            by_stage[row["ticket_type__stage__stage"] or "any"] = row["count"]

        # --- Vouchers ---
        vouchers = Voucher.objects.filter(conference=conference)
        voucher_totals = vouchers.aggregate(
            total=Count("id"),
            redemptions=Sum("times_used"),
            redeemed=Count("id", filter=Q(times_used__gt=0)),
        )
        redemptions_by_source: dict[str, int] = {}
        for row in vouchers.values("source").annotate(used=Sum("times_used")):
            redemptions_by_source[row["source"]] = row["used"] or 0

        # --- Carts ---
        active_carts = Cart.objects.filter(
            Q(expires_at__isnull=True) | Q(expires_at__gt=now),
            conference=conference,
            status=Cart.Status.OPEN,
        ).count()

        data = {
            "currency": get_config().currency,
            "revenue": {"gross": gross, "refunded": refunded, "net": gross - refunded},
            "orders_by_status": orders_by_status,
            "total_orders": sum(orders_by_status.values()),
            "tickets_sold": {
                "total": sum(by_category.values()),
                "by_category": by_category,
                "by_stage": by_stage,
            },
            "vouchers": {
                "total": voucher_totals["total"],
                "redeemed": voucher_totals["redeemed"],
                "redemptions": voucher_totals["redemptions"] or 0,
                "redemptions_by_source": redemptions_by_source,
            },
            "active_carts": active_carts,
        }
        return JsonResponse(serialize(data))
