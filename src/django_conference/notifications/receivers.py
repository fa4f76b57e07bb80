"""Signal receivers that send email in response to registration events."""

import logging

from django.db import transaction
from django.dispatch import receiver

from django_conference.notifications.models import OutboundEmail
from django_conference.notifications.services import EmailService
from django_conference.registration.models import Order, Ticket
from django_conference.registration.signals import order_paid

logger = logging.getLogger(__name__)


def send_order_ticket_emails(order_id: int) -> None:
    """Send one confirmation per confirmed ticket of the order."""
    from django_conference.registration.services.tickets import ticket_email  # noqa: PLC0415

    tickets = Ticket.objects.filter(order_id=order_id, status=Ticket.Status.CONFIRMED).select_related(
        "conference", "order", "ticket_type"
    )
    messages = [ticket_email(ticket) for ticket in tickets.order_by("id")]
    if messages:
        EmailService.send_batch(messages)


@receiver(order_paid)
def handle_order_paid(sender: type, order: Order, **kwargs: object) -> None:  # noqa: ARG001
    """Queue ticket confirmations and drop pending cart reminders for the buyer."""
    buyer_emails = {e.lower() for e in (order.billing_email, getattr(order.user, "email", "")) if e}
    for email in buyer_emails:
        EmailService.cancel_pending(email, OutboundEmail.Kind.CART_ABANDONMENT, conference=order.conference)

    order_id = order.pk
    transaction.on_commit(lambda: send_order_ticket_emails(order_id))
    logger.info("Ticket emails scheduled for order %s", order.reference)
