"""Bulk voucher generation endpoint for conference management."""

import logging
from typing import TYPE_CHECKING

import stripe
from django.db import IntegrityError
from django.http import JsonResponse

from django_conference.api import ApiError, serialize
from django_conference.manage.views import ManageView
from django_conference.registration.forms import VoucherBulkGenerateForm
from django_conference.registration.models import TicketType
from django_conference.registration.services.vouchers import VoucherBulkConfig, generate_voucher_codes
from django_conference.registration.stripe_client import StripeNotConfiguredError

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)


class VoucherBulkGenerateView(ManageView):
    """Bulk-generate a batch of voucher codes for the current conference.

    Validates the batch parameters (prefix, count, discount type, etc.) and
    delegates to the voucher service. With ``sync_to_stripe`` each code is
    mirrored as a Stripe coupon; a Stripe failure rolls back the batch.
    """

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(VoucherBulkGenerateForm)
        ticket_type_ids = data["applicable_ticket_type_ids"]
        ticket_types = TicketType.objects.filter(conference=self.conference, pk__in=ticket_type_ids)
        if ticket_type_ids and ticket_types.count() != len(set(ticket_type_ids)):
            raise ApiError("Unknown ticket type in applicable_ticket_type_ids", 400)

        config = VoucherBulkConfig(
            conference=self.conference,
            prefix=data["prefix"],
            count=data["count"],
            voucher_type=data["voucher_type"],
            discount_value=data["discount_value"],
            max_uses=data["max_uses"],
            valid_from=data.get("valid_from"),
            valid_until=data.get("valid_until"),
            unlocks_hidden_tickets=data.get("unlocks_hidden_tickets", False),
            applicable_ticket_types=ticket_types if ticket_type_ids else None,
            source=data["source"],
            sync_to_stripe=data["sync_to_stripe"],
        )
        try:
            created = generate_voucher_codes(config)
        except (RuntimeError, IntegrityError):
            logger.exception("Voucher bulk generation failed")
            raise ApiError("Failed to generate voucher codes. Please try again.", 500) from None
        except StripeNotConfiguredError:
            raise ApiError("Stripe is not configured. No vouchers were created.", 503) from None
        except ValueError as exc:
            raise ApiError(str(exc), 400) from None
        except stripe.StripeError:
            logger.exception("Stripe sync failed during voucher bulk generation")
            raise ApiError("Payment provider error. No vouchers were created.", 502) from None

        return JsonResponse(
            serialize(
                {
                    "count": len(created),
                    "prefix": data["prefix"],
                    "codes": [voucher.code for voucher in created],
                }
            ),
            status=201,
        )
