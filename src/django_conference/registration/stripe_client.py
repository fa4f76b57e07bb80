"""Stripe client wrapper for per-conference Stripe API operations.

Each conference has its own Stripe account keys, so the client is initialized
with a Conference instance and uses the ``stripe.StripeClient`` pattern
(v1 namespace) for all API calls.
"""

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

import stripe
from django.db import IntegrityError, transaction

from django_conference.registration.models import StripeCustomer
from django_conference.registration.stripe_utils import convert_amount_for_api, obfuscate_key
from django_conference.settings import get_config

if TYPE_CHECKING:
    from decimal import Decimal

    from django.contrib.auth.models import AbstractBaseUser

    from django_conference.conference.models import Conference
    from django_conference.registration.models import Order

logger = logging.getLogger(__name__)


class StripeNotConfiguredError(ValueError):
    """No Stripe secret key is set for the conference or globally."""


class StripeClient:
    """Per-conference Stripe API client.

    Wraps ``stripe.StripeClient`` (v1 namespace) and binds every call to the
    conference's secret key and the globally configured API version.  When
    the conference has no key of its own, ``DJANGO_CONFERENCE["stripe"]
    ["secret_key"]`` is used.

    Raises:
        StripeNotConfiguredError: If no Stripe secret key is configured at all.
    """

    def __init__(self, conference: "Conference") -> None:
        """Initialize the client with per-conference Stripe credentials."""
        config = get_config()
        raw_key = conference.stripe_secret_key or config.stripe.secret_key
        if not raw_key:
            msg = (
                f"Conference '{conference.slug}' does not have a Stripe secret key configured. "
                f"Set 'stripe_secret_key' on the Conference record before initializing StripeClient."
            )
            raise StripeNotConfiguredError(msg)

        secret_key = str(raw_key)
        self.conference = conference
        self.client = stripe.StripeClient(
            secret_key,
            stripe_version=config.stripe.api_version,
        )

        logger.debug("Initialized StripeClient for conference '%s' (%s)", conference.slug, obfuscate_key(secret_key))

    def get_or_create_customer(self, user: "AbstractBaseUser", email: str = "", name: str = "") -> StripeCustomer:
        """Return an existing StripeCustomer or find/create one via the Stripe API.

        Looks up the local ``StripeCustomer`` record for this user and
        conference first. Otherwise an existing Stripe customer with the same
        email is reused, and only then is a new customer created.

        Args:
            user: The Django user to map to a Stripe customer.
            email: Billing email; defaults to the user's email.
            name: Billing name; defaults to the user's full name.

        Returns:
            The ``StripeCustomer`` record linking the user to a Stripe customer ID.
        """
        existing = StripeCustomer.objects.filter(
            user=user,
            conference=self.conference,
        ).first()
        if existing is not None:
            return existing

        email = email or getattr(user, "email", "")
        if not name:
            get_name = getattr(user, "get_full_name", None)
            name = get_name() if callable(get_name) else ""

        customer_id = ""
        if email:
            found = self.client.v1.customers.list(params={"email": email, "limit": 1})
            if found.data:
                customer_id = found.data[0].id
                logger.info("Reusing Stripe customer %s for %s", customer_id, email)

        if not customer_id:
            customer = self.client.v1.customers.create(
                params={
                    "email": email,
                    "name": name,
                    "metadata": {
                        "user_id": str(user.pk),
                        "conference_slug": self.conference.slug,
                    },
                },
            )
            customer_id = customer.id

        try:
            with transaction.atomic():
                return StripeCustomer.objects.create(
                    user=user,
                    conference=self.conference,
                    stripe_customer_id=customer_id,
                )
        except IntegrityError:
            return StripeCustomer.objects.get(
                user=user,
                conference=self.conference,
            )

    def create_checkout_session(
        self,
        order: "Order",
        customer_id: str,
        line_items: list[dict[str, Any]],
        *,
        success_url: str,
        cancel_url: str,
        discounts: list[dict[str, str]] | None = None,
        metadata: dict[str, str] | None = None,
    ) -> stripe.checkout.Session:
        """Create a hosted Stripe Checkout Session for *order*.

        The order reference doubles as the idempotency key so a retried
        request returns the same session. The session expires together with
        the order's inventory hold.
        """
        params: dict[str, Any] = {
            "mode": "payment",
            "customer": customer_id,
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": order.reference,
            "metadata": {
                "order_id": str(order.pk),
                "reference": order.reference,
                "conference_slug": self.conference.slug,
                **(metadata or {}),
            },
            "payment_intent_data": {
                "description": f"Order {order.reference} for {self.conference.name}",
                "metadata": {"order_id": str(order.pk), "reference": order.reference},
            },
        }
        if discounts:
            params["discounts"] = discounts
        if order.hold_expires_at is not None:
            params["expires_at"] = int(order.hold_expires_at.timestamp())

        return self.client.v1.checkout.sessions.create(
            params=params,
            options={"idempotency_key": f"checkout-{order.reference}"},
        )

    def create_coupon(
        self,
        percent_off: "Decimal | int",
        name: str,
        *,
        redeem_by: datetime | None = None,
        max_redemptions: int | None = None,
    ) -> stripe.Coupon:
        """Create a one-off percentage coupon."""
        params: dict[str, Any] = {
            "percent_off": float(percent_off),
            "duration": "once",
            "name": name[:40],
            "metadata": {"conference_slug": self.conference.slug},
        }
        if redeem_by is not None:
            params["redeem_by"] = int(redeem_by.timestamp())
        if max_redemptions is not None:
            params["max_redemptions"] = max_redemptions
        return self.client.v1.coupons.create(params=params)

    def create_amount_coupon(self, amount_off: "Decimal", name: str) -> stripe.Coupon:
        """Create a one-off fixed-amount coupon in the configured currency."""
        currency = get_config().currency
        return self.client.v1.coupons.create(
            params={
                "amount_off": convert_amount_for_api(amount_off, currency),
                "currency": currency.lower(),
                "duration": "once",
                "name": name[:40],
                "metadata": {"conference_slug": self.conference.slug},
            },
        )

    def create_promotion_code(
        self,
        coupon_id: str,
        code: str,
        *,
        max_redemptions: int | None = None,
        expires_at: datetime | None = None,
    ) -> stripe.PromotionCode:
        """Create a customer-facing promotion code for *coupon_id*."""
        params: dict[str, Any] = {
            "promotion": {"type": "coupon", "coupon": coupon_id},
            "code": code,
        }
        if max_redemptions is not None:
            params["max_redemptions"] = max_redemptions
        if expires_at is not None:
            params["expires_at"] = int(expires_at.timestamp())
        return self.client.v1.promotion_codes.create(params=params)

    def create_refund(
        self,
        payment_intent_id: str,
        amount: "Decimal | None" = None,
        reason: str = "requested_by_customer",
    ) -> stripe.Refund:
        """Create a full or partial refund for a PaymentIntent.

        Args:
            payment_intent_id: The Stripe PaymentIntent ID to refund.
            amount: Optional partial refund amount as a ``Decimal``. When
                ``None`` the full PaymentIntent amount is refunded.
            reason: The Stripe refund reason string.

        Returns:
            The created ``stripe.Refund`` object.
        """
        params: dict[str, object] = {
            "payment_intent": payment_intent_id,
            "reason": reason,
        }

        if amount is not None:
            config = get_config()
            params["amount"] = convert_amount_for_api(amount, config.currency)

        return self.client.v1.refunds.create(params=params)
