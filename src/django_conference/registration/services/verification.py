"""Student and unemployed eligibility checks for discounted tickets.

A requester submits proof of eligibility for a ticket type flagged
``requires_verification``. Staff approve or reject the request. Approval
issues a single-use voucher that unlocks the ticket type, so verified
buyers go through the normal cart and checkout. Give such ticket types
``requires_voucher`` too, otherwise anyone can buy them without a check.
"""

import logging
from typing import TYPE_CHECKING, Any

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_conference.notifications.services import EmailService, OutgoingEmail
from django_conference.registration.models import VerificationRequest, Voucher
from django_conference.registration.services.vouchers import generate_code
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

    from django_conference.conference.models import Conference

logger = logging.getLogger(__name__)

VOUCHER_PREFIX = "VERIFIED-"


def verification_email(request: VerificationRequest, template: str, to: str = "") -> OutgoingEmail:
    """Build one of the ``verification_*`` emails for *request*."""
    config = get_config()
    conference = request.conference
    return OutgoingEmail(
        to=to or request.email,
        template=template,
        context={
            "name": request.name,
            "email": request.email,
            "reference": request.reference,
            "kind": request.get_kind_display(),
            "ticket_type": request.ticket_type.name,
            "student_id": request.student_id,
            "university": request.university,
            "linkedin_url": request.linkedin_url,
            "rav_registration_date": request.rav_registration_date,
            "additional_info": request.additional_info,
            "voucher_code": request.voucher.code if request.voucher_id else "",
            "review_note": request.review_note,
            "conference_name": conference.name,
            "site_url": config.email.site_url,
            "tickets_url": f"{config.email.site_url.rstrip('/')}/{conference.slug}/tickets/",
        },
    )


class VerificationService:
    """Stateless operations on eligibility verification requests."""

    @staticmethod
    @transaction.atomic
    def submit(
        conference: "Conference",
        data: dict[str, Any],
        user: "AbstractBaseUser | None" = None,
    ) -> VerificationRequest:
        """Store a request and acknowledge it by email.

        Staff are notified at ``DJANGO_CONFERENCE["email"]["reply_to"]`` when
        that address is set.

        Raises:
            ValidationError: If the email already has a pending request for
                the same ticket type.
        """
        ticket_type = data["ticket_type_id"]
        email = data["email"].strip().lower()
        duplicate = VerificationRequest.objects.filter(
            conference=conference,
            ticket_type=ticket_type,
            email__iexact=email,
            status=VerificationRequest.Status.PENDING,
        ).exists()
        if duplicate:
            raise ValidationError("A verification request for this email is already waiting for review.")

        request = VerificationRequest.objects.create(
            conference=conference,
            user=user if user is not None and user.is_authenticated else None,
            ticket_type=ticket_type,
            kind=data["kind"],
            name=data["name"].strip(),
            email=email,
            student_id=data.get("student_id", ""),
            university=data.get("university", ""),
            linkedin_url=data.get("linkedin_url", ""),
            rav_registration_date=data.get("rav_registration_date"),
            additional_info=data.get("additional_info", ""),
        )
        logger.info("Verification request %s (%s) received for %s", request.reference, request.kind, conference.slug)

        messages = [verification_email(request, "verification_received")]
        staff_address = get_config().email.reply_to
        if staff_address:
            messages.append(verification_email(request, "verification_staff_notice", to=staff_address))
        transaction.on_commit(lambda: EmailService.send_batch(messages))
        return request

    @staticmethod
    def _lock_pending(request: VerificationRequest) -> VerificationRequest:
        locked = VerificationRequest.objects.select_for_update().get(pk=request.pk)
        if locked.status != VerificationRequest.Status.PENDING:
            raise ValidationError(f"Verification request is already {locked.get_status_display().lower()}.")
        return locked

    @staticmethod
    @transaction.atomic
    def approve(
        request: VerificationRequest,
        actor: "AbstractBaseUser | None" = None,
        note: str = "",
    ) -> VerificationRequest:
        """Approve *request* and email the requester a voucher for the ticket.

        The voucher is single use, gives no discount of its own and only
        unlocks the requested ticket type.
        """
        request = VerificationService._lock_pending(request)
        conference = request.conference
        existing = set(
            Voucher.objects.filter(conference=conference, code__startswith=VOUCHER_PREFIX).values_list(
                "code", flat=True
            )
        )
        voucher = Voucher.objects.create(
            conference=conference,
            code=generate_code(VOUCHER_PREFIX, existing),
            voucher_type=Voucher.VoucherType.PERCENTAGE,
            discount_value=0,
            max_uses=1,
            unlocks_hidden_tickets=True,
            source=Voucher.Source.VERIFICATION,
        )
        voucher.applicable_ticket_types.set([request.ticket_type])

        request.status = VerificationRequest.Status.APPROVED
        request.voucher = voucher
        request.review_note = note
        request.reviewed_by = actor if actor is not None and actor.is_authenticated else None
        request.reviewed_at = timezone.now()
        request.save()
        logger.info("Approved verification request %s with voucher %s", request.reference, voucher.code)

        message = verification_email(request, "verification_approved")
        transaction.on_commit(lambda: EmailService.send_message(message))
        return request

    @staticmethod
    @transaction.atomic
    def reject(
        request: VerificationRequest,
        actor: "AbstractBaseUser | None" = None,
        note: str = "",
    ) -> VerificationRequest:
        """Reject *request*; *note* is passed on to the requester."""
        request = VerificationService._lock_pending(request)
        request.status = VerificationRequest.Status.REJECTED
        request.review_note = note
        request.reviewed_by = actor if actor is not None and actor.is_authenticated else None
        request.reviewed_at = timezone.now()
        request.save()
        logger.info("Rejected verification request %s", request.reference)

        message = verification_email(request, "verification_rejected")
        transaction.on_commit(lambda: EmailService.send_message(message))
        return request
