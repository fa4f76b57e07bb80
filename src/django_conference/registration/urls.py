"""URL configuration for the registration app.

Includes ticket pricing, cart operations, checkout, order views and the
Stripe webhook endpoint. Mount these under a conference-scoped prefix in
the host project::

    urlpatterns = [
        path(
            "<slug:conference_slug>/api/",
            include("django_conference.registration.urls"),
        ),
    ]
"""

from django.urls import path

from django_conference.registration.views import (
    AbandonedCartView,
    CartAttendeesView,
    CartItemDetailView,
    CartItemsView,
    CartStepView,
    CartView,
    CartVoucherView,
    CheckoutView,
    MyTicketsView,
    OrderDetailView,
    PricingView,
    ValidateVoucherView,
    VerificationRequestView,
)
from django_conference.registration.webhooks import stripe_webhook

app_name = "registration"

urlpatterns = [
    path("tickets/pricing/", PricingView.as_view(), name="pricing"),
    path("tickets/mine/", MyTicketsView.as_view(), name="my-tickets"),
    path("cart/", CartView.as_view(), name="cart"),
    path("cart/items/", CartItemsView.as_view(), name="cart-items"),
    path("cart/items/<int:item_id>/", CartItemDetailView.as_view(), name="cart-item"),
    path("cart/voucher/", CartVoucherView.as_view(), name="cart-voucher"),
    path("cart/attendees/", CartAttendeesView.as_view(), name="cart-attendees"),
    path("cart/step/", CartStepView.as_view(), name="cart-step"),
    path("cart/abandoned/", AbandonedCartView.as_view(), name="cart-abandoned"),
    path("validate-voucher/", ValidateVoucherView.as_view(), name="validate-voucher"),
    path("verification/", VerificationRequestView.as_view(), name="verification-request"),
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    path("orders/<str:reference>/", OrderDetailView.as_view(), name="order-detail"),
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
]
