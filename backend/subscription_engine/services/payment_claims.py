from __future__ import annotations

import logging
import re
from datetime import datetime
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from subscription_engine.core.database import utcnow
from subscription_engine.core.settings import settings
from subscription_engine.models.payment_claim import SUBSCRIPTION_PURPOSES, ClaimPurpose, ClaimState, PaymentClaim
from subscription_engine.services import catalog
from subscription_engine.services.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


REFERENCE_RE = re.compile(r"^[A-Z0-9]{10,20}$")
LOCAL_MOBILE_RE = re.compile(r"^[17]\d{8}$")

PURPOSES = {p.value for p in ClaimPurpose}
CURRENCY_CONTEXTS = {"local", "foreign"}


def normalize_reference(raw: str | None) -> str:
    ref = str(raw or "").strip().upper()
    if not REFERENCE_RE.match(ref):
        raise ValidationError(
            "invalid_reference",
            "Transaction code must be 10-20 uppercase letters or digits",
        )
    return ref


def normalize_phone(raw: str | None, country_code: str | None = None) -> str:
    """Return the number as ``+<cc><subscriber>`` or raise ValidationError.

    Accepts ``07XXXXXXXX``, ``01XXXXXXXX``, ``7XXXXXXXX``, ``2547XXXXXXXX`` and
    ``+2547XXXXXXXX`` with any spaces or dashes.
    """
    cc = str(country_code or settings.default_country_code).strip().lstrip("+")
    digits = re.sub(r"[\s\-()]", "", str(raw or ""))
    if digits.startswith("+"):
        digits = digits[1:]
        if not digits.startswith(cc):
            raise ValidationError("invalid_phone", "Phone number must be a local mobile number")
    if digits.startswith(cc):
        subscriber = digits[len(cc):]
    elif digits.startswith("0"):
        subscriber = digits[1:]
    else:
        subscriber = digits
    if not subscriber.isdigit() or not LOCAL_MOBILE_RE.match(subscriber):
        raise ValidationError("invalid_phone", "Phone number must be a local mobile number")
    return f"+{cc}{subscriber}"


def parse_amount(raw) -> Decimal:
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError("invalid_amount", "Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("invalid_amount", "Amount must be positive")
    if amount > Decimal(settings.claim_max_amount):
        raise ValidationError("invalid_amount", f"Amount must not exceed {settings.claim_max_amount}")
    return amount.quantize(Decimal("0.01"))


def _pending_duplicate(db: Session, subject_id: str, purpose: str, reference: str) -> PaymentClaim | None:
    return (
        db.query(PaymentClaim)
        .filter(
            PaymentClaim.subject_id == subject_id,
            PaymentClaim.purpose == purpose,
            PaymentClaim.external_reference == reference,
            PaymentClaim.state == ClaimState.PENDING.value,
        )
        .first()
    )


def submit_claim(
    db: Session,
    subject_id: str,
    amount,
    external_reference: str,
    phone: str,
    purpose: str,
    tier: str | None = None,
    duration_type: str | None = None,
    expected_amount=None,
    currency_context: str = "local",
    now: datetime | None = None,
) -> PaymentClaim:
    subject_id = str(subject_id or "").strip()
    if not subject_id:
        raise ValidationError("invalid_subject")

    purpose = str(purpose or "").strip().lower()
    if purpose not in PURPOSES:
        raise ValidationError("invalid_purpose", f"Unknown purpose: {purpose}")

    currency_context = str(currency_context or "local").strip().lower()
    if currency_context not in CURRENCY_CONTEXTS:
        raise ValidationError("invalid_currency_context")

    reference = normalize_reference(external_reference)
    phone_number = normalize_phone(phone)
    amount = parse_amount(amount)

    tier = catalog.normalize_tier(tier) or None
    duration_type = catalog.normalize_duration(duration_type) or None
    if purpose in SUBSCRIPTION_PURPOSES:
        if not catalog.is_known_tier(tier):
            raise ValidationError("invalid_tier", "A valid tier is required for this purpose")
        if not catalog.is_known_duration(duration_type):
            raise ValidationError("invalid_duration", "A valid duration type is required for this purpose")

    expected: Decimal | None = None
    if expected_amount is not None:
        try:
            expected = Decimal(str(expected_amount)).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            raise ValidationError("invalid_expected_amount")
        if expected < 0:
            raise ValidationError("invalid_expected_amount")
    elif tier and duration_type:
        pkg = catalog.find_canonical(db, tier, duration_type)
        if pkg is not None:
            expected = Decimal(str(pkg.price))

    if _pending_duplicate(db, subject_id, purpose, reference) is not None:
        raise ValidationError("duplicate_reference", "This transaction code is already awaiting review")

    claim = PaymentClaim(
        subject_id=subject_id,
        amount=amount,
        expected_amount=expected,
        currency_context=currency_context,
        external_reference=reference,
        phone_number=phone_number,
        purpose=purpose,
        tier=tier,
        duration_type=duration_type,
        state=ClaimState.PENDING.value,
        submitted_at=now or utcnow(),
    )
    db.add(claim)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("duplicate_reference", "This transaction code is already awaiting review")
    db.refresh(claim)
    logger.info(
        "claims.submit claim_id=%s subject_id=%s purpose=%s amount=%s expected=%s",
        claim.id,
        subject_id,
        purpose,
        amount,
        expected,
    )
    return claim


def get_claim(db: Session, claim_id: int) -> PaymentClaim:
    claim = db.query(PaymentClaim).filter(PaymentClaim.id == claim_id).first()
    if claim is None:
        raise NotFoundError("claim_not_found")
    return claim


def list_claims(
    db: Session,
    subject_id: str | None = None,
    state: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[PaymentClaim]:
    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    q = db.query(PaymentClaim)
    if subject_id:
        q = q.filter(PaymentClaim.subject_id == subject_id)
    if state:
        q = q.filter(PaymentClaim.state == str(state).strip().lower())
    if date_from is not None:
        q = q.filter(PaymentClaim.submitted_at >= date_from)
    if date_to is not None:
        q = q.filter(PaymentClaim.submitted_at < date_to)
    return q.order_by(PaymentClaim.submitted_at.desc(), PaymentClaim.id.desc()).offset(offset).limit(limit).all()


def purge_claim(db: Session, claim_id: int, admin_id: str) -> None:
    claim = get_claim(db, claim_id)
    db.delete(claim)
    db.commit()
    logger.info("claims.purge claim_id=%s admin_id=%s", claim_id, admin_id)
