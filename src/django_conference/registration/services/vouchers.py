"""Voucher validation and bulk generation.

``validate_code`` answers "would this code work for these tickets?" without
attaching anything to a cart. ``generate_voucher_codes`` creates batches of
unique, cryptographically random codes within a single database transaction,
optionally mirroring each one to Stripe as a coupon plus promotion code.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from django.db import transaction

from django_conference.registration.models import Voucher
from django_conference.registration.stripe_client import StripeClient

if TYPE_CHECKING:
    import datetime
    from collections.abc import Iterable

    from django.db.models import QuerySet

    from django_conference.conference.models import Conference
    from django_conference.registration.models import AddOn, TicketType

logger = logging.getLogger(__name__)

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_LENGTH = 8
_MAX_COUNT = 500

INVALID_CODE = "Invalid voucher code"
INACTIVE_CODE = "This voucher code is no longer active"
EXPIRED_CODE = "This voucher code has expired"
EXHAUSTED_CODE = "This voucher code has reached its maximum number of uses"
NOT_APPLICABLE = "This voucher is not applicable to the items in your cart"


@dataclass
class VoucherValidation:
    """Outcome of a voucher check."""

    valid: bool
    code: str = ""
    error: str = ""
    voucher_type: str = ""
    value: Decimal | None = None
    voucher: Voucher | None = field(default=None, repr=False)

    def as_dict(self) -> dict[str, object]:
        if not self.valid:
            return {"valid": False, "error": self.error}
        return {"valid": True, "code": self.code, "type": self.voucher_type, "value": self.value}


def validate_code(
    conference: "Conference",
    code: str,
    ticket_type_ids: "Iterable[int] | None" = None,
) -> VoucherValidation:
    """Check whether *code* is redeemable for the given ticket types.

    Codes are matched exactly after trimming surrounding whitespace. A scoped
    voucher must cover at least one of *ticket_type_ids*; an unscoped voucher
    applies to everything.
    """
    code = (code or "").strip()
    voucher = Voucher.objects.filter(conference=conference, code=code).first() if code else None
    if voucher is None:
        return VoucherValidation(valid=False, error=INVALID_CODE)
    if not voucher.is_active:
        return VoucherValidation(valid=False, error=INACTIVE_CODE)
    if voucher.is_expired:
        return VoucherValidation(valid=False, error=EXPIRED_CODE)
    if voucher.is_exhausted:
        return VoucherValidation(valid=False, error=EXHAUSTED_CODE)

    scoped = set(voucher.applicable_ticket_types.values_list("pk", flat=True))
    if scoped and ticket_type_ids is not None and not scoped & {int(pk) for pk in ticket_type_ids}:
        return VoucherValidation(valid=False, error=NOT_APPLICABLE)

    return VoucherValidation(
        valid=True,
        code=voucher.code,
        voucher_type=voucher.voucher_type,
        value=voucher.discount_value,
        voucher=voucher,
    )


@dataclass
class VoucherBulkConfig:
    """Configuration for a bulk voucher generation request.

    Attributes:
        conference: The conference to create vouchers for.
        prefix: Fixed string prepended to each generated code.
        count: Number of voucher codes to generate (1-500).
        voucher_type: One of the ``Voucher.VoucherType`` values.
        discount_value: Percentage (0-100) or fixed amount depending on type.
        max_uses: Maximum number of times each voucher can be redeemed.
        valid_from: Optional start of the validity window.
        valid_until: Optional end of the validity window.
        unlocks_hidden_tickets: Whether the vouchers reveal hidden ticket types.
        applicable_ticket_types: Optional queryset of ticket types to restrict to.
        applicable_addons: Optional queryset of add-ons to restrict to.
        source: Recorded ``Voucher.Source``.
        sync_to_stripe: Create a Stripe coupon and promotion code per voucher.
    """

    conference: "Conference"
    prefix: str
    count: int
    voucher_type: str
    discount_value: Decimal
    max_uses: int = 1
    valid_from: "datetime.datetime | None" = None
    valid_until: "datetime.datetime | None" = None
    unlocks_hidden_tickets: bool = field(default=False)
    applicable_ticket_types: "QuerySet[TicketType] | None" = None
    applicable_addons: "QuerySet[AddOn] | None" = None
    source: str = Voucher.Source.BULK
    sync_to_stripe: bool = False


def generate_code(prefix: str, existing_codes: set[str], length: int = _CODE_LENGTH) -> str:
    """Generate a single code that does not collide with *existing_codes*.

    Produces ``{prefix}{random}`` where the random part uses uppercase
    alphanumerics. Retries up to 100 times on collision.

    Raises:
        RuntimeError: If a unique code cannot be generated after 100 attempts.
    """
    for _ in range(100):
        random_part = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))
        code = f"{prefix}{random_part}"
        if code not in existing_codes:
            return code
    msg = f"Failed to generate a unique voucher code with prefix '{prefix}' after 100 attempts"
    raise RuntimeError(msg)


def generate_voucher_codes(config: VoucherBulkConfig) -> list[Voucher]:
    """Generate a batch of unique voucher codes for a conference.

    Creates ``config.count`` vouchers sharing the same configuration in one
    ``bulk_create`` inside a transaction. M2M scope relations are set via a
    single ``bulk_create`` on the through tables. When
    ``config.sync_to_stripe`` is set, each voucher is mirrored to Stripe and
    a Stripe failure rolls back the whole batch.

    Raises:
        ValueError: If ``config.count`` is less than 1 or greater than 500.
        RuntimeError: If unique code generation fails after retries.
        stripe.StripeError: If Stripe sync fails.
    """
    if config.count < 1 or config.count > _MAX_COUNT:
        msg = f"count must be between 1 and {_MAX_COUNT}, got {config.count}"
        raise ValueError(msg)

    qs = Voucher.objects.filter(conference=config.conference)
    if config.prefix:
        qs = qs.filter(code__startswith=config.prefix)
    existing_codes: set[str] = set(qs.values_list("code", flat=True))

    vouchers_to_create: list[Voucher] = []
    for _ in range(config.count):
        code = generate_code(config.prefix, existing_codes)
        existing_codes.add(code)
        vouchers_to_create.append(
            Voucher(
                conference=config.conference,
                code=code,
                voucher_type=config.voucher_type,
                discount_value=config.discount_value,
                max_uses=config.max_uses,
                valid_from=config.valid_from,
                valid_until=config.valid_until,
                unlocks_hidden_tickets=config.unlocks_hidden_tickets,
                source=config.source,
            )
        )

    with transaction.atomic():
        created = Voucher.objects.bulk_create(vouchers_to_create)

        if config.applicable_ticket_types is not None and config.applicable_ticket_types.exists():
            ticket_type_ids = list(config.applicable_ticket_types.values_list("pk", flat=True))
            ThroughModel = Voucher.applicable_ticket_types.through  # noqa: N806
            ThroughModel.objects.bulk_create(
                [ThroughModel(voucher_id=v.pk, tickettype_id=tt_id) for v in created for tt_id in ticket_type_ids]
            )

        if config.applicable_addons is not None and config.applicable_addons.exists():
            addon_ids = list(config.applicable_addons.values_list("pk", flat=True))
            ThroughModel = Voucher.applicable_addons.through  # noqa: N806
            ThroughModel.objects.bulk_create(
                [ThroughModel(voucher_id=v.pk, addon_id=addon_id) for v in created for addon_id in addon_ids]
            )

        if config.sync_to_stripe:
            client = StripeClient(config.conference)
            for voucher in created:
                sync_voucher_to_stripe(voucher, client)

    logger.info("Generated %s vouchers with prefix '%s' for %s", len(created), config.prefix, config.conference.slug)
    return created


def sync_voucher_to_stripe(voucher: Voucher, client: StripeClient | None = None) -> Voucher:
    """Create the Stripe coupon and promotion code mirroring *voucher*."""
    client = client or StripeClient(voucher.conference)
    if voucher.voucher_type == Voucher.VoucherType.FIXED_AMOUNT:
        coupon = client.create_amount_coupon(voucher.discount_value, name=voucher.code)
    else:
        percent = Decimal(100) if voucher.voucher_type == Voucher.VoucherType.COMP else voucher.discount_value
        coupon = client.create_coupon(percent, name=voucher.code, redeem_by=voucher.valid_until)
    promotion = client.create_promotion_code(
        coupon.id,
        voucher.code,
        max_redemptions=voucher.max_uses,
        expires_at=voucher.valid_until,
    )
    voucher.stripe_coupon_id = coupon.id
    voucher.stripe_promotion_code_id = promotion.id
    voucher.save(update_fields=["stripe_coupon_id", "stripe_promotion_code_id", "updated_at"])
    return voucher
