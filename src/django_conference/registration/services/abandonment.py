"""Cart-recovery emails for carts left without checkout."""

import logging
from datetime import timedelta

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.utils import timezone

from django_conference.notifications.models import OutboundEmail
from django_conference.notifications.services import EmailService
from django_conference.registration.models import Cart
from django_conference.registration.services.cart import CartService
from django_conference.registration.stripe_utils import format_amount
from django_conference.settings import get_config

logger = logging.getLogger(__name__)


def schedule_abandonment_email(cart: Cart, email: str) -> OutboundEmail | None:
    """Queue one recovery email for *cart*, ``abandonment_delay_hours`` from now.

    Repeated calls for the same cart return the already queued email.
    Empty carts are not worth reminding about and return ``None``.

    Raises:
        ValidationError: If *email* is not a valid address.
    """
    validate_email(email)
    if not cart.items.exists():
        return None

    config = get_config()
    now = timezone.now()
    summary = CartService.get_summary(cart)
    conference = cart.conference

    queued = EmailService.queue(
        to=email,
        template="cart_abandonment",
        kind=OutboundEmail.Kind.CART_ABANDONMENT,
        conference=conference,
        send_after=now + timedelta(hours=config.email.abandonment_delay_hours),
        dedupe_key=f"cart-abandonment:{cart.pk}",
        context={
            "conference_name": conference.name,
            "items": [{"description": line.description, "quantity": line.quantity} for line in summary.items],
            "total": format_amount(summary.total, config.currency_symbol),
            "cart_url": f"{config.email.site_url.rstrip('/')}/{conference.slug}/cart/",
        },
    )

    if cart.abandonment_email_scheduled_at is None or cart.contact_email != email:
        cart.contact_email = email
        cart.abandonment_email_scheduled_at = now
        cart.save(update_fields=["contact_email", "abandonment_email_scheduled_at", "updated_at"])
        logger.info("Scheduled cart abandonment email for cart %s", cart.pk)
    return queued


def cancel_abandonment_emails(email: str, conference: object | None = None) -> int:
    """Cancel pending recovery emails addressed to *email*."""
    if not email:
        return 0
    try:
        validate_email(email)
    except ValidationError:
        return 0
    return EmailService.cancel_pending(email, OutboundEmail.Kind.CART_ABANDONMENT, conference=conference)
