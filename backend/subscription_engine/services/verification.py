from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from sqlalchemy.orm import Session

from subscription_engine.core.database import utcnow
from subscription_engine.models.payment_claim import SUBSCRIPTION_PURPOSES, ClaimPurpose, ClaimState, PaymentClaim
from subscription_engine.models.subscription import Subscription
from subscription_engine.services import ledger
from subscription_engine.services.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationError,
    VerificationIncompleteError,
)
from subscription_engine.services.payment_claims import get_claim, normalize_phone, parse_amount


logger = logging.getLogger(__name__)


PROMOTION_TIER = "vip_elite"
PROMOTION_DURATION = "1_week"


@dataclass(frozen=True)
class VerificationResult:
    claim: PaymentClaim
    subscription: Subscription | None

    @property
    def activated(self) -> bool:
        return self.subscription is not None


def _require_admin_id(admin_id: str | None) -> str:
    value = str(admin_id or "").strip()
    if not value:
        raise ValidationError("invalid_admin")
    return value


def _transition(db: Session, claim_id: int, target: ClaimState, admin_id: str, now: datetime, note: str | None = None) -> None:
    values = {
        PaymentClaim.state: target.value,
        PaymentClaim.verified_at: now,
        PaymentClaim.verified_by: admin_id,
    }
    if note is not None:
        values[PaymentClaim.review_note] = note
    updated = (
        db.query(PaymentClaim)
        .filter(PaymentClaim.id == claim_id, PaymentClaim.state == ClaimState.PENDING.value)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        # Lost the race against a concurrent review of the same claim.
        raise InvalidStateError("claim_not_pending", "Claim was already reviewed")


def verify_claim(db: Session, claim_id: int, admin_id: str, now: datetime | None = None) -> VerificationResult:
    admin_id = _require_admin_id(admin_id)
    now = now or utcnow()

    claim = get_claim(db, claim_id)
    if claim.state != ClaimState.PENDING.value:
        raise InvalidStateError("claim_not_pending", f"Claim is already {claim.state}")

    subject_id = claim.subject_id
    activates = claim.purpose in SUBSCRIPTION_PURPOSES
    if activates and claim.payment_status == "underpaid":
        raise InvalidStateError(
            "claim_underpaid",
            f"Paid {claim.amount} but {claim.expected_amount} was expected; reject and resubmit",
        )

    subscription = None
    try:
        _transition(db, claim.id, ClaimState.VERIFIED, admin_id, now)
        if activates:
            subscription = ledger.upsert(
                db,
                subject_id=claim.subject_id,
                tier=claim.tier,
                duration_type=claim.duration_type,
                start_at=now,
                end_at=ledger.compute_end_at(now, claim.duration_type),
                amount_paid=claim.amount,
                funding_claim_id=claim.id,
                is_active=True,
                commit=False,
            )
        db.commit()
    except InvalidStateError:
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception(
            "verification.verify.incomplete claim_id=%s subject_id=%s admin_id=%s",
            claim_id,
            subject_id,
            admin_id,
        )
        raise VerificationIncompleteError(
            "verification_incomplete",
            "Verification could not be completed and was rolled back; it is safe to retry",
        ) from exc

    db.refresh(claim)
    if subscription is not None:
        db.refresh(subscription)
    logger.info(
        "verification.verify.ok claim_id=%s subject_id=%s admin_id=%s activated=%s",
        claim.id,
        claim.subject_id,
        admin_id,
        subscription is not None,
    )
    return VerificationResult(claim=claim, subscription=subscription)


def reject_claim(
    db: Session,
    claim_id: int,
    admin_id: str,
    note: str | None = None,
    now: datetime | None = None,
) -> PaymentClaim:
    admin_id = _require_admin_id(admin_id)
    now = now or utcnow()

    claim = get_claim(db, claim_id)
    if claim.state != ClaimState.PENDING.value:
        raise InvalidStateError("claim_not_pending", f"Claim is already {claim.state}")

    try:
        _transition(db, claim.id, ClaimState.REJECTED, admin_id, now, note=(note or "").strip() or None)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(claim)
    logger.info("verification.reject claim_id=%s subject_id=%s admin_id=%s", claim.id, claim.subject_id, admin_id)
    return claim


def activate_promotional_offer(
    db: Session,
    subject_id: str,
    admin_id: str,
    amount,
    phone: str | None = None,
    now: datetime | None = None,
) -> VerificationResult:
    """Grant a one-week VIP Elite period backed by an admin-created, pre-verified claim."""
    admin_id = _require_admin_id(admin_id)
    subject_id = str(subject_id or "").strip()
    if not subject_id:
        raise ValidationError("invalid_subject")
    now = now or utcnow()
    offer_amount = Decimal("0.00") if amount in (None, 0, "0") else parse_amount(amount)

    try:
        claim = PaymentClaim(
            subject_id=subject_id,
            amount=offer_amount,
            expected_amount=offer_amount,
            currency_context="local",
            external_reference=f"PROMO{uuid4().hex[:12].upper()}",
            phone_number=(normalize_phone(phone) if phone else None),
            purpose=ClaimPurpose.SUBSCRIPTION.value,
            tier=PROMOTION_TIER,
            duration_type=PROMOTION_DURATION,
            state=ClaimState.VERIFIED.value,
            submitted_at=now,
            verified_at=now,
            verified_by=admin_id,
            review_note="promotional_offer",
        )
        db.add(claim)
        db.flush()
        subscription = ledger.upsert(
            db,
            subject_id=subject_id,
            tier=PROMOTION_TIER,
            duration_type=PROMOTION_DURATION,
            start_at=now,
            end_at=ledger.compute_end_at(now, PROMOTION_DURATION),
            amount_paid=offer_amount,
            funding_claim_id=claim.id,
            is_active=True,
            commit=False,
        )
        db.commit()
    except (NotFoundError, ValidationError):
        db.rollback()
        raise
    except Exception as exc:
        db.rollback()
        logger.exception("verification.promotion.incomplete subject_id=%s admin_id=%s", subject_id, admin_id)
        raise VerificationIncompleteError("verification_incomplete") from exc

    db.refresh(claim)
    db.refresh(subscription)
    logger.info("verification.promotion.ok subject_id=%s admin_id=%s end_at=%s", subject_id, admin_id, subscription.end_at)
    return VerificationResult(claim=claim, subscription=subscription)
