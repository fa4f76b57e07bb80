"""JSON endpoints for ticket pricing, the cart wizard, checkout and orders.

All views are scoped to a conference via the ``conference_slug`` URL kwarg
and answer with JSON. Cart endpoints operate on the requesting user's open
cart, creating it on first use.
"""

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import stripe
from django.db.models import Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views import View

from django_conference.api import ApiError, JsonApiMixin, serialize
from django_conference.conference.views import ConferenceMixin
from django_conference.features import FeatureRequiredMixin
from django_conference.ratelimit import RateLimitMixin
from django_conference.registration.forms import (
    AbandonedCartForm,
    CartItemForm,
    CartQuantityForm,
    CartStepForm,
    CheckoutForm,
    VerificationRequestForm,
    VoucherApplyForm,
    VoucherValidateForm,
)
from django_conference.registration.models import AddOn, Cart, Order, Ticket, TicketType, VerificationRequest
from django_conference.registration.services.abandonment import schedule_abandonment_email
from django_conference.registration.services.cart import CartService
from django_conference.registration.services.checkout import CheckoutService
from django_conference.registration.services.payment import PaymentService
from django_conference.registration.services.pricing import ticket_catalog
from django_conference.registration.services.verification import VerificationService
from django_conference.registration.services.vouchers import validate_code
from django_conference.registration.stripe_client import StripeNotConfiguredError
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.http import HttpRequest

logger = logging.getLogger(__name__)


def cart_payload(cart: Cart) -> dict[str, Any]:
    """Serialize a cart with its pricing summary and attendees."""
    summary = CartService.get_summary(cart)
    return serialize(
        {
            "id": cart.pk,
            "status": cart.status,
            "step": cart.step,
            "expires_at": cart.expires_at,
            "voucher": cart.voucher.code if cart.voucher_id else None,
            "items": [line.__dict__ for line in summary.items],
            "attendees": list(
                cart.attendees.order_by("position").values(
                    "position", "first_name", "last_name", "email", "company", "job_title"
                )
            ),
            "seats": cart.ticket_seat_count,
            "attendees_complete": CartService.attendees_complete(cart),
            "subtotal": summary.subtotal,
            "discount": summary.discount,
            "total": summary.total,
            "currency": get_config().currency,
        }
    )


def order_payload(order: Order) -> dict[str, Any]:
    """Serialize an order with its line items and issued tickets."""
    return serialize(
        {
            "reference": order.reference,
            "status": order.status,
            "subtotal": order.subtotal,
            "discount": order.discount_amount,
            "total": order.total,
            "currency": order.currency,
            "voucher_code": order.voucher_code,
            "billing_name": order.billing_name,
            "billing_email": order.billing_email,
            "billing_company": order.billing_company,
            "hold_expires_at": order.hold_expires_at,
            "paid_at": order.paid_at,
            "created_at": order.created_at,
            "line_items": list(
                order.line_items.values("description", "quantity", "unit_price", "discount_amount", "line_total")
            ),
            "tickets": [ticket_payload(ticket) for ticket in order.tickets.select_related("ticket_type")],
        }
    )


def ticket_payload(ticket: Ticket) -> dict[str, Any]:
    return serialize(
        {
            "id": ticket.pk,
            "code": ticket.code,
            "status": ticket.status,
            "ticket_type": ticket.ticket_type.name,
            "category": ticket.ticket_type.category,
            "requires_verification": ticket.ticket_type.requires_verification,
            "first_name": ticket.first_name,
            "last_name": ticket.last_name,
            "email": ticket.email,
            "company": ticket.company,
            "job_title": ticket.job_title,
            "amount_paid": ticket.amount_paid,
            "currency": ticket.currency,
        }
    )


class RegistrationView(JsonApiMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Base for registration endpoints: login, conference and feature gate."""

    required_feature = "registration"

    def get_cart(self) -> Cart:
        return CartService.get_or_create_cart(self.request.user, self.conference)

    def cart_response(self, cart: Cart, status: int = 200) -> JsonResponse:
        cart.refresh_from_db()
        return JsonResponse(cart_payload(cart), status=status)


class PricingView(RegistrationView):
    """Public ticket catalog for the current pricing stage.

    Pass ``?voucher=CODE`` to include hidden tickets the voucher unlocks.
    """

    login_required = False

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        voucher = None
        code = request.GET.get("voucher", "").strip()
        if code:
            result = validate_code(self.conference, code)
            voucher = result.voucher if result.valid else None
        catalog = ticket_catalog(self.conference, voucher=voucher)
        return JsonResponse(serialize(catalog.as_dict()))


class CartView(RegistrationView):
    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        return self.cart_response(self.get_cart())


class CartItemsView(RegistrationView):
    """Add a ticket or add-on to the cart."""

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(CartItemForm)
        cart = self.get_cart()
        if data["ticket_type_id"] is not None:
            ticket_type = get_object_or_404(TicketType, pk=data["ticket_type_id"], conference=self.conference)
            CartService.add_ticket(cart, ticket_type, qty=data["quantity"])
        else:
            addon = get_object_or_404(AddOn, pk=data["addon_id"], conference=self.conference)
            CartService.add_addon(cart, addon, qty=data["quantity"])
        return self.cart_response(cart, status=201)


class CartItemDetailView(RegistrationView):
    """Change the quantity of, or remove, a cart line."""

    def patch(self, request: "HttpRequest", item_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(CartQuantityForm)
        cart = self.get_cart()
        get_object_or_404(cart.items, pk=item_id)
        CartService.update_quantity(cart, item_id, data["quantity"])
        return self.cart_response(cart)

    def delete(self, request: "HttpRequest", item_id: int, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        cart = self.get_cart()
        get_object_or_404(cart.items, pk=item_id)
        CartService.remove_item(cart, item_id)
        return self.cart_response(cart)


class CartVoucherView(RegistrationView):
    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(VoucherApplyForm)
        cart = self.get_cart()
        CartService.apply_voucher(cart, data["code"])
        return self.cart_response(cart)

    def delete(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        cart = self.get_cart()
        CartService.remove_voucher(cart)
        return self.cart_response(cart)


class CartAttendeesView(RegistrationView):
    """Replace the attendee list: one entry per ticket seat."""

    def put(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        attendees = self.parse_body().get("attendees")
        if not isinstance(attendees, list):
            raise ApiError("attendees must be a list", 400)
        cart = self.get_cart()
        CartService.set_attendees(cart, attendees)
        return self.cart_response(cart)


class CartStepView(RegistrationView):
    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(CartStepForm)
        cart = self.get_cart()
        CartService.advance_step(cart, data["step"])
        return self.cart_response(cart)


class AbandonedCartView(JsonApiMixin, RateLimitMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Schedule a reminder email for the user's unfinished cart."""

    required_feature = "registration"
    rate_limit_scope = "cart-abandoned"

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(AbandonedCartForm)
        cart = CartService.get_or_create_cart(request.user, self.conference)
        queued = schedule_abandonment_email(cart, data["email"])
        return JsonResponse(
            {"scheduled": queued is not None, "send_after": serialize(queued.send_after) if queued else None}
        )


class ValidateVoucherView(JsonApiMixin, RateLimitMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Check a voucher code without applying it.

    Invalid codes answer 200 with ``{"valid": false, "error": ...}`` so
    clients can show the message inline.
    """

    login_required = False
    required_feature = "registration"
    rate_limit_scope = "validate-voucher"

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(VoucherValidateForm)
        result = validate_code(self.conference, data["code"], data["ticket_type_ids"])
        return JsonResponse(serialize(result.as_dict()))


class CheckoutView(RegistrationView):
    """Turn the cart into an order and open a Stripe Checkout Session."""

    def allowed_return_hosts(self) -> set[str]:
        hosts = {self.request.get_host()}
        site_host = urlsplit(get_config().email.site_url).netloc
        if site_host:
            hosts.add(site_host)
        return hosts

    def default_urls(self, order: Order) -> tuple[str, str]:
        base = get_config().email.site_url.rstrip("/") or self.request.build_absolute_uri("/").rstrip("/")
        slug = self.conference.slug
        return (
            f"{base}/{slug}/orders/{order.reference}/?status=success",
            f"{base}/{slug}/cart/?status=cancelled",
        )

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(CheckoutForm, allowed_hosts=self.allowed_return_hosts())
        cart = self.get_cart()
        order = CheckoutService.checkout(
            cart,
            billing_name=data["billing_name"],
            billing_email=data["billing_email"],
            billing_company=data["billing_company"],
        )

        success_url, cancel_url = self.default_urls(order)
        try:
            session = PaymentService.start_checkout_session(
                order,
                success_url=data["success_url"] or success_url,
                cancel_url=data["cancel_url"] or cancel_url,
            )
        except StripeNotConfiguredError:
            logger.exception("Stripe is not configured for conference %s", self.conference.slug)
            CheckoutService.revert_checkout(order)
            raise ApiError("Online payment is not available for this conference.", 503) from None
        except stripe.StripeError:
            logger.exception("Stripe checkout failed for order %s", order.reference)
            CheckoutService.revert_checkout(order)
            raise ApiError("Payment provider error. Please try again.", 502) from None
        except Exception:
            CheckoutService.revert_checkout(order)
            raise

        order.refresh_from_db()
        return JsonResponse(
            {"order": order_payload(order), "url": session["url"], "session_id": session["session_id"]},
            status=201,
        )


class OrderDetailView(RegistrationView):
    """An order, visible to its owner only."""

    def get(self, request: "HttpRequest", reference: str, **kwargs: str) -> JsonResponse:  # noqa: ARG002
        order = get_object_or_404(Order, reference=reference, conference=self.conference, user=request.user)
        return JsonResponse(order_payload(order))


class MyTicketsView(RegistrationView):
    """Confirmed tickets bought by, or issued to, the current user."""

    def get(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        user = request.user
        match = Q(user=user)
        if user.email:
            match |= Q(email__iexact=user.email)
        tickets = (
            Ticket.objects.filter(match, conference=self.conference, status=Ticket.Status.CONFIRMED)
            .select_related("ticket_type")
            .order_by("created_at")
        )
        return JsonResponse({"tickets": [ticket_payload(ticket) for ticket in tickets]})


def verification_payload(request: VerificationRequest) -> dict[str, Any]:
    return serialize(
        {
            "id": request.pk,
            "reference": request.reference,
            "status": request.status,
            "kind": request.kind,
            "ticket_type": request.ticket_type.name,
            "name": request.name,
            "email": request.email,
            "student_id": request.student_id,
            "university": request.university,
            "linkedin_url": request.linkedin_url,
            "rav_registration_date": request.rav_registration_date,
            "additional_info": request.additional_info,
            "review_note": request.review_note,
            "reviewed_at": request.reviewed_at,
            "created_at": request.created_at,
        }
    )


class VerificationRequestView(JsonApiMixin, RateLimitMixin, ConferenceMixin, FeatureRequiredMixin, View):
    """Ask for a student or unemployed ticket; staff review the proof."""

    login_required = False
    required_feature = "registration"
    rate_limit_scope = "verification-request"

    def post(self, request: "HttpRequest", **kwargs: str) -> JsonResponse:  # noqa: ARG002
        data = self.bind_form(VerificationRequestForm, conference=self.conference)
        verification = VerificationService.submit(self.conference, data, user=request.user)
        return JsonResponse(
            {
                "reference": verification.reference,
                "status": verification.status,
                "message": "Verification request received. You will hear from us within 24 hours.",
            },
            status=201,
        )
