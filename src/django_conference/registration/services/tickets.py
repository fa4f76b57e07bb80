"""Attendee ticket issuance, reassignment and cancellation."""

import logging
from decimal import ROUND_DOWN, Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError
from django.core.validators import validate_email
from django.db import transaction

from django_conference.notifications.services import EmailService, OutgoingEmail
from django_conference.registration.models import CartAttendee, Order, Ticket
from django_conference.registration.stripe_utils import format_amount
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from django_conference.conference.models import Conference
    from django_conference.registration.models import TicketType

logger = logging.getLogger(__name__)


def ticket_email(ticket: Ticket) -> OutgoingEmail:
    """Build the confirmation email for *ticket*."""
    config = get_config()
    conference = ticket.conference
    return OutgoingEmail(
        to=ticket.email,
        template="ticket_confirmation",
        context={
            "attendee_name": ticket.attendee_name,
            "first_name": ticket.first_name,
            "ticket_code": ticket.code,
            "ticket_type": ticket.ticket_type.name,
            "category": ticket.ticket_type.get_category_display(),
            "requires_verification": ticket.ticket_type.requires_verification,
            "amount_paid": format_amount(ticket.amount_paid, config.currency_symbol),
            "order_reference": ticket.order.reference if ticket.order_id else "",
            "conference_name": conference.name,
            "conference_date": conference.start_date.isoformat(),
            "venue": conference.venue,
            "address": conference.address,
            "website_url": conference.website_url,
            "site_url": config.email.site_url,
        },
    )


def _split_amount(total: Decimal, seats: int) -> list[Decimal]:
    """Divide *total* across *seats*; the last seat absorbs the remainder."""
    if seats <= 0:
        return []
    share = (total / seats).quantize(Decimal("0.01"), rounding=ROUND_DOWN)
    shares = [share] * seats
    shares[-1] = total - share * (seats - 1)
    return shares


def _split_name(full_name: str) -> tuple[str, str]:
    first, _, last = full_name.strip().partition(" ")
    return first, last.strip()


class TicketService:
    """Stateless service for attendee tickets."""

    @staticmethod
    @transaction.atomic
    def issue_for_order(order: Order) -> list[Ticket]:
        """Create one confirmed ticket per ticket seat in a paid order.

        Attendee details come from the checkout cart, in seat order. Without
        attendee rows the billing contact holds every seat. Each seat's
        ``amount_paid`` is its line's discounted total divided across the
        line's quantity. Calling this twice for the same order returns the
        tickets created the first time.
        """
        existing = list(order.tickets.all())
        if existing:
            return existing

        attendees: list[CartAttendee] = list(order.cart.attendees.all()) if order.cart_id else []
        billing_first, billing_last = _split_name(order.billing_name)

        tickets: list[Ticket] = []
        seat = 0
        for line in order.line_items.filter(ticket_type__isnull=False).select_related("ticket_type"):
            for amount in _split_amount(line.line_total, line.quantity):
                attendee = attendees[seat] if seat < len(attendees) else None
                seat += 1
                tickets.append(
                    Ticket(
                        conference_id=order.conference_id,
                        order=order,
                        ticket_type=line.ticket_type,
                        user=order.user,
                        first_name=attendee.first_name if attendee else billing_first,
                        last_name=attendee.last_name if attendee else billing_last,
                        email=attendee.email if attendee else order.billing_email,
                        company=attendee.company if attendee else order.billing_company,
                        job_title=attendee.job_title if attendee else "",
                        status=Ticket.Status.CONFIRMED,
                        source=Ticket.Source.PURCHASE,
                        amount_paid=amount,
                        currency=order.currency,
                    )
                )
        for ticket in tickets:
            ticket.save()

        logger.info("Issued %s tickets for order %s", len(tickets), order.reference)
        return tickets

    @staticmethod
    def issue_ticket(
        conference: "Conference",
        ticket_type: "TicketType",
        *,
        first_name: str,
        last_name: str,
        email: str,
        company: str = "",
        job_title: str = "",
        issued_by: "AbstractBaseUser | None" = None,
        amount_paid: Decimal = Decimal("0.00"),
        send_email: bool = True,
    ) -> Ticket:
        """Issue a ticket directly, outside the cart and checkout flow.

        Zero-amount tickets are recorded as complimentary, anything else as
        staff-issued.

        Raises:
            ValidationError: If the ticket type belongs to another
                conference or the email is invalid.
        """
        if ticket_type.conference_id != conference.pk:
            raise ValidationError("Ticket type does not belong to this conference.")
        validate_email(email)
        if amount_paid < 0:
            raise ValidationError("Amount paid cannot be negative.")

        ticket = Ticket.objects.create(
            conference=conference,
            ticket_type=ticket_type,
            first_name=first_name,
            last_name=last_name,
            email=email,
            company=company,
            job_title=job_title,
            status=Ticket.Status.CONFIRMED,
            source=Ticket.Source.COMPLIMENTARY if amount_paid == 0 else Ticket.Source.ADMIN_ISSUED,
            amount_paid=amount_paid,
            currency=get_config().currency,
            issued_by=issued_by,
        )
        logger.info("Issued ticket %s (%s) to %s", ticket.code, ticket_type.name, email)

        if send_email:
            transaction.on_commit(lambda: EmailService.send_message(ticket_email(ticket)))
        return ticket

    @staticmethod
    @transaction.atomic
    def reassign(
        ticket: Ticket,
        *,
        first_name: str,
        last_name: str,
        email: str,
        company: str = "",
        job_title: str = "",
        send_email: bool = True,
    ) -> Ticket:
        """Transfer a confirmed ticket to a new attendee.

        The previous holder's email is kept in ``reassigned_from_email``.

        Raises:
            ValidationError: If the ticket is not confirmed or the email is
                invalid.
        """
        ticket = Ticket.objects.select_for_update().get(pk=ticket.pk)
        if ticket.status != Ticket.Status.CONFIRMED:
            raise ValidationError("Only confirmed tickets can be reassigned.")
        validate_email(email)

        previous = ticket.email
        ticket.reassigned_from_email = previous
        ticket.first_name = first_name
        ticket.last_name = last_name
        ticket.email = email
        ticket.company = company
        ticket.job_title = job_title
        ticket.save()
        logger.info("Reassigned ticket %s from %s to %s", ticket.code, previous, email)

        if send_email:
            transaction.on_commit(lambda: EmailService.send_message(ticket_email(ticket)))
        return ticket

    @staticmethod
    def cancel(ticket: Ticket) -> Ticket:
        """Cancel a ticket so it no longer admits.

        The seat stops counting against its pricing stage's stock limit, which
        counts confirmed tickets. Ticket type stock follows the order's line
        items and only returns when the order is refunded.
        """
        if ticket.status in (Ticket.Status.CANCELLED, Ticket.Status.REFUNDED):
            raise ValidationError(f"Ticket is already {ticket.get_status_display().lower()}.")
        ticket.status = Ticket.Status.CANCELLED
        ticket.save(update_fields=["status", "updated_at"])
        logger.info("Cancelled ticket %s", ticket.code)
        return ticket
