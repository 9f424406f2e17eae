from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy.orm import Session

from subscription_engine.core.database import utcnow
from subscription_engine.models.subscription import Subscription, new_subscription_id
from subscription_engine.services.catalog import (
    duration_days,
    is_known_duration,
    is_known_tier,
    normalize_duration,
    normalize_tier,
)
from subscription_engine.services.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


def compute_end_at(start_at: datetime, duration_type: str) -> datetime:
    return start_at + timedelta(days=duration_days(duration_type))


def get_active(db: Session, subject_id: str) -> Subscription | None:
    return db.query(Subscription).filter(Subscription.subject_id == subject_id).first()


def is_currently_entitled(subscription: Subscription | None, now: datetime | None = None) -> bool:
    if subscription is None:
        return False
    if not subscription.is_active:
        return False
    now = now or utcnow()
    return now < subscription.end_at


def upsert(
    db: Session,
    subject_id: str,
    tier: str,
    duration_type: str,
    start_at: datetime,
    end_at: datetime,
    amount_paid: Decimal | int | float,
    funding_claim_id: int | None,
    is_active: bool = True,
    commit: bool = True,
) -> Subscription:
    """Replace the subject's subscription row with a fresh one.

    Nothing is merged from the previous row: a new id is minted and every
    field comes from the arguments. With ``commit=False`` the caller owns the
    transaction (verification runs it together with the claim update).
    """
    subject_id = str(subject_id or "").strip()
    if not subject_id:
        raise ValidationError("invalid_subject")
    if not is_known_tier(tier):
        raise ValidationError("invalid_tier", f"Unknown tier: {tier}")
    if not is_known_duration(duration_type):
        raise ValidationError("invalid_duration", f"Unknown duration type: {duration_type}")
    if end_at <= start_at:
        raise ValidationError("invalid_period", "end_at must be after start_at")

    existing = get_active(db, subject_id)
    if existing is not None:
        db.delete(existing)
        # The unique subject_id index requires the delete to hit the store first.
        db.flush()

    sub = Subscription(
        id=new_subscription_id(),
        subject_id=subject_id,
        tier=normalize_tier(tier),
        duration_type=normalize_duration(duration_type),
        start_at=start_at,
        end_at=end_at,
        is_active=bool(is_active),
        amount_paid=Decimal(str(amount_paid)),
        funding_claim_id=funding_claim_id,
    )
    db.add(sub)
    db.flush()
    if commit:
        db.commit()
        db.refresh(sub)
    logger.info(
        "ledger.upsert subject_id=%s tier=%s duration=%s end_at=%s replaced=%s",
        subject_id,
        sub.tier,
        sub.duration_type,
        end_at.isoformat(),
        existing is not None,
    )
    return sub


def set_active_flag(db: Session, subject_id: str, active: bool) -> Subscription:
    sub = get_active(db, subject_id)
    if sub is None:
        raise NotFoundError("subscription_not_found")
    sub.is_active = bool(active)
    db.commit()
    db.refresh(sub)
    logger.info("ledger.set_active subject_id=%s active=%s", subject_id, sub.is_active)
    return sub


def delete(db: Session, subject_id: str) -> None:
    sub = get_active(db, subject_id)
    if sub is None:
        raise NotFoundError("subscription_not_found")
    db.delete(sub)
    db.commit()
    logger.info("ledger.delete subject_id=%s", subject_id)


def force_expire(db: Session, subject_ids: list[str], now: datetime | None = None) -> int:
    """Push end_at into the past and clear the active flag. Returns rows touched."""
    now = now or utcnow()
    ids = [str(s).strip() for s in subject_ids if str(s or "").strip()]
    if not ids:
        raise ValidationError("subject_ids_required")
    rows = db.query(Subscription).filter(Subscription.subject_id.in_(ids)).all()
    expired_at = now - timedelta(hours=1)
    for sub in rows:
        sub.end_at = expired_at
        sub.is_active = False
    db.commit()
    logger.info("ledger.force_expire requested=%s touched=%s", len(ids), len(rows))
    return len(rows)


def days_remaining(subscription: Subscription, now: datetime | None = None) -> int:
    now = now or utcnow()
    seconds = (subscription.end_at - now).total_seconds()
    return max(0, math.ceil(seconds / 86400))


def list_active_subscriptions(db: Session, now: datetime | None = None, limit: int = 100, offset: int = 0) -> list[Subscription]:
    now = now or utcnow()
    return (
        db.query(Subscription)
        .filter(Subscription.is_active.is_(True), Subscription.end_at > now)
        .order_by(Subscription.end_at.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )


def list_expired_subscriptions(db: Session, now: datetime | None = None, limit: int = 100, offset: int = 0) -> list[Subscription]:
    now = now or utcnow()
    return (
        db.query(Subscription)
        .filter(Subscription.end_at <= now)
        .order_by(Subscription.end_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
