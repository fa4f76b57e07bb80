"""Committee decisions on submissions and rejection thank-you coupons."""

import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.core.exceptions import ValidationError
from django.db import transaction
from django.utils import timezone

from django_conference.cfp.models import DecisionEvent, Submission
from django_conference.registration.models import Voucher
from django_conference.registration.stripe_client import StripeClient
from django_conference.settings import get_config

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)

_COUPON_ALPHABET = string.ascii_uppercase + string.digits
_COUPON_RANDOM_LENGTH = 6

_STATUS_FOR_DECISION = {
    Submission.DecisionStatus.ACCEPTED: Submission.Status.ACCEPTED,
    Submission.DecisionStatus.REJECTED: Submission.Status.REJECTED,
}


@dataclass(frozen=True, slots=True)
class RejectionCoupon:
    code: str
    discount_percent: int
    expires_at: datetime
    voucher: Voucher


@dataclass(frozen=True, slots=True)
class DecisionResult:
    submission: Submission
    changed: bool
    coupon: RejectionCoupon | None = None


@dataclass
class BulkDecisionResult:
    success: int = 0
    failed: int = 0
    errors: list[dict[str, object]] = field(default_factory=list)


def log_decision_event(
    submission: Submission,
    event_type: str,
    *,
    actor: "AbstractBaseUser | None" = None,
    previous_status: str = "",
    new_status: str = "",
    notes: str = "",
    metadata: dict[str, object] | None = None,
) -> DecisionEvent:
    """Append an entry to the submission's decision audit trail."""
    return DecisionEvent.objects.create(
        submission=submission,
        event_type=event_type,
        actor=actor if actor is not None and actor.is_authenticated else None,
        previous_status=previous_status,
        new_status=new_status,
        notes=notes,
        metadata=metadata or {},
    )


def _coupon_code(prefix: str) -> str:
    suffix = "".join(secrets.choice(_COUPON_ALPHABET) for _ in range(_COUPON_RANDOM_LENGTH))
    return f"{prefix}{suffix}"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class DecisionService:
    """Stateless accept/reject operations for the CFP committee."""

    @staticmethod
    def generate_rejection_coupon(
        submission: Submission,
        discount_percent: int | None = None,
        validity_days: int | None = None,
        actor: "AbstractBaseUser | None" = None,
    ) -> RejectionCoupon:
        """Create a single-use percentage coupon for a rejected speaker.

        The coupon is created in Stripe (coupon plus promotion code) and
        mirrored as a local voucher so the storefront accepts the same code.

        Raises:
            stripe.StripeError: If Stripe rejects the coupon. Nothing is
                written locally in that case.
        """
        cfp = get_config().cfp
        percent = _clamp(
            discount_percent if discount_percent is not None else cfp.rejection_coupon_default_percent,
            1,
            cfp.rejection_coupon_max_percent,
        )
        days = _clamp(
            validity_days if validity_days is not None else cfp.rejection_coupon_default_validity_days,
            1,
            cfp.rejection_coupon_max_validity_days,
        )
        expires_at = timezone.now() + timedelta(days=days)
        conference = submission.conference

        existing = set(Voucher.objects.filter(conference=conference).values_list("code", flat=True))
        code = _coupon_code(cfp.rejection_coupon_prefix)
        while code in existing:
            code = _coupon_code(cfp.rejection_coupon_prefix)

        client = StripeClient(conference)
        coupon = client.create_coupon(
            percent,
            f"CFP thank you {percent}% off",
            redeem_by=expires_at,
        )
        promotion = client.create_promotion_code(coupon.id, code, max_redemptions=1, expires_at=expires_at)
        logger.info("Created rejection coupon %s (%s%% off) for submission %s", code, percent, submission.pk)

        with transaction.atomic():
            voucher = Voucher.objects.create(
                conference=conference,
                code=code,
                voucher_type=Voucher.VoucherType.PERCENTAGE,
                discount_value=Decimal(percent),
                max_uses=1,
                valid_until=expires_at,
                source=Voucher.Source.CFP_REJECTION,
                stripe_coupon_id=coupon.id,
                stripe_promotion_code_id=promotion.id,
            )
            submission.coupon_code = code
            submission.coupon_generated_at = timezone.now()
            submission.save(update_fields=["coupon_code", "coupon_generated_at", "updated_at"])
            log_decision_event(
                submission,
                DecisionEvent.EventType.COUPON_GENERATED,
                actor=actor,
                metadata={
                    "coupon_code": code,
                    "discount_percent": percent,
                    "expires_at": expires_at.isoformat(),
                    "stripe_coupon_id": coupon.id,
                },
            )
        return RejectionCoupon(code=code, discount_percent=percent, expires_at=expires_at, voucher=voucher)

    @staticmethod
    def make_decision(
        submission: Submission,
        decision: str,
        actor: "AbstractBaseUser | None",
        notes: str = "",
        *,
        generate_coupon: bool = False,
        coupon_discount_percent: int | None = None,
    ) -> DecisionResult:
        """Accept or reject *submission*.

        A repeated identical decision is a no-op. Changing an earlier
        decision is recorded as ``decision_changed``.

        Raises:
            ValidationError: For unknown decisions or drafts/withdrawn talks.
            stripe.StripeError: If a requested coupon cannot be created.
        """
        if decision not in _STATUS_FOR_DECISION:
            raise ValidationError(f"Unknown decision: {decision}")
        if submission.status in {Submission.Status.DRAFT, Submission.Status.WITHDRAWN}:
            raise ValidationError("Cannot decide on a submission in current status")
        if submission.decision_status == decision:
            return DecisionResult(submission=submission, changed=False)

        previous = submission.decision_status or Submission.DecisionStatus.UNDECIDED
        coupon = None
        if decision == Submission.DecisionStatus.REJECTED and generate_coupon:
            coupon = DecisionService.generate_rejection_coupon(submission, coupon_discount_percent, actor=actor)

        with transaction.atomic():
            submission.decision_status = decision
            submission.status = _STATUS_FOR_DECISION[decision]
            submission.decision_at = timezone.now()
            submission.decision_by = actor if actor is not None and actor.is_authenticated else None
            submission.decision_notes = notes
            submission.save(
                update_fields=[
                    "decision_status",
                    "status",
                    "decision_at",
                    "decision_by",
                    "decision_notes",
                    "updated_at",
                ]
            )
            event_type = (
                DecisionEvent.EventType.DECISION_MADE
                if previous == Submission.DecisionStatus.UNDECIDED
                else DecisionEvent.EventType.DECISION_CHANGED
            )
            log_decision_event(
                submission,
                event_type,
                actor=actor,
                previous_status=previous,
                new_status=decision,
                notes=notes,
                metadata={"coupon_code": coupon.code} if coupon else None,
            )

        logger.info("Submission %s decision: %s -> %s", submission.pk, previous, decision)
        return DecisionResult(submission=submission, changed=True, coupon=coupon)

    @staticmethod
    def bulk_decide(
        submission_ids: list[int],
        decision: str,
        actor: "AbstractBaseUser | None",
        conference: object | None = None,
    ) -> BulkDecisionResult:
        """Apply one decision to many submissions, collecting per-item errors."""
        result = BulkDecisionResult()
        submissions = Submission.objects.filter(pk__in=submission_ids).select_related("conference")
        if conference is not None:
            submissions = submissions.filter(conference=conference)
        found = {s.pk: s for s in submissions}

        for pk in submission_ids:
            submission = found.get(pk)
            if submission is None:
                result.failed += 1
                result.errors.append({"submission_id": pk, "error": "Submission not found"})
                continue
            try:
                DecisionService.make_decision(submission, decision, actor)
            except ValidationError as exc:
                result.failed += 1
                result.errors.append({"submission_id": pk, "error": " ".join(exc.messages)})
            else:
                result.success += 1

        logger.info("Bulk decision %s: %s succeeded, %s failed", decision, result.success, result.failed)
        return result
