"""Stage-aware ticket pricing.

Resolves the conference's current pricing stage and builds the public ticket
catalog: the ticket types on sale right now, grouped by category, with stock
information for each.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import models
from django.utils import timezone

from django_conference.conference.models import PricingStage
from django_conference.registration.models import TicketType

if TYPE_CHECKING:
    from django_conference.conference.models import Conference
    from django_conference.registration.models import Voucher


@dataclass
class CatalogEntry:
    """One purchasable ticket type as shown in the catalog."""

    ticket_type_id: int
    name: str
    slug: str
    description: str
    category: str
    price: Decimal
    remaining: int | None
    sold_out: bool
    requires_verification: bool
    stage: str | None


@dataclass
class TicketCatalog:
    """Tickets on sale for a conference at one point in time."""

    stage: PricingStage | None
    categories: dict[str, list[CatalogEntry]] = field(default_factory=dict)

    @property
    def entries(self) -> list[CatalogEntry]:
        return [entry for group in self.categories.values() for entry in group]

    def as_dict(self) -> dict[str, object]:
        """Return a JSON-friendly representation."""
        stage = self.stage
        return {
            "stage": (
                {
                    "stage": stage.stage,
                    "name": stage.label,
                    "ends_at": stage.ends_at,
                    "remaining_stock": stage.remaining_stock,
                }
                if stage is not None
                else None
            ),
            "categories": {
                category: [entry.__dict__ for entry in entries] for category, entries in self.categories.items()
            },
        }


def current_stage(conference: "Conference") -> PricingStage | None:
    """Return the conference's current pricing stage, if any."""
    return PricingStage.objects.current(conference)


def ticket_catalog(conference: "Conference", *, voucher: "Voucher | None" = None) -> TicketCatalog:
    """Build the ticket catalog for *conference*.

    Includes active ticket types whose availability window contains now and
    whose stage is either unset or the current stage. Ticket types that
    require a voucher are only listed when *voucher* unlocks hidden tickets
    (and, if the voucher is scoped, covers them). Sold-out ticket types stay
    in the list flagged as ``sold_out``.
    """
    now = timezone.now()
    stage = current_stage(conference)

    qs = (
        TicketType.objects.filter(conference=conference, is_active=True)
        .filter(models.Q(available_from__isnull=True) | models.Q(available_from__lte=now))
        .filter(models.Q(available_until__isnull=True) | models.Q(available_until__gte=now))
        .select_related("stage")
    )
    if stage is not None:
        qs = qs.filter(models.Q(stage__isnull=True) | models.Q(stage=stage))
    else:
        qs = qs.filter(stage__isnull=True)

    unlocked: set[int] | None = set()
    if voucher is not None and voucher.is_valid and voucher.unlocks_hidden_tickets:
        scoped = set(voucher.applicable_ticket_types.values_list("pk", flat=True))
        unlocked = scoped or None

    catalog = TicketCatalog(stage=stage)
    for category in TicketType.Category.values:
        catalog.categories[category] = []

    for ticket_type in qs:
        if ticket_type.requires_voucher and unlocked is not None and ticket_type.pk not in unlocked:
            continue
        remaining = ticket_type.remaining_quantity
        catalog.categories[ticket_type.category].append(
            CatalogEntry(
                ticket_type_id=ticket_type.pk,
                name=ticket_type.name,
                slug=ticket_type.slug,
                description=ticket_type.description,
                category=ticket_type.category,
                price=ticket_type.price,
                remaining=remaining,
                sold_out=remaining is not None and remaining <= 0,
                requires_verification=ticket_type.requires_verification,
                stage=ticket_type.stage.stage if ticket_type.stage else None,
            )
        )
    return catalog
