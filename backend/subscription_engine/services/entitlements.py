from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from subscription_engine.core.database import utcnow
from subscription_engine.core.settings import settings
from subscription_engine.models.tier_package import UNLIMITED
from subscription_engine.services import catalog, ledger


FREE_TIER = "free"


def upload_limit_for(db: Session, tier: str | None, duration_type: str | None) -> int:
    # No subscription, or a tier the catalog does not price, gets the free
    # allowance. Absence of data never widens the limit.
    if not tier or not duration_type:
        return max(0, int(settings.free_upload_limit))
    pkg = catalog.find_canonical(db, tier, duration_type)
    if pkg is None:
        return max(0, int(settings.free_upload_limit))
    return int(pkg.upload_limit)


def can_upload_media(db: Session, current_count: int, tier: str | None, duration_type: str | None) -> bool:
    limit = upload_limit_for(db, tier, duration_type)
    if limit == UNLIMITED:
        return True
    return max(0, int(current_count or 0)) < limit


def remaining_uploads(db: Session, current_count: int, tier: str | None, duration_type: str | None) -> int:
    """Uploads left, or ``UNLIMITED`` (-1)."""
    limit = upload_limit_for(db, tier, duration_type)
    if limit == UNLIMITED:
        return UNLIMITED
    return max(0, limit - max(0, int(current_count or 0)))


@dataclass(frozen=True)
class EntitlementStatus:
    subject_id: str
    entitled: bool
    tier: str
    duration_type: str | None
    end_at: datetime | None
    is_active: bool
    days_remaining: int
    upload_limit: int
    uploads_remaining: int
    can_upload: bool

    def as_dict(self) -> dict:
        return {
            "subject_id": self.subject_id,
            "entitled": self.entitled,
            "tier": self.tier,
            "duration_type": self.duration_type,
            "end_at": self.end_at.isoformat() if self.end_at else None,
            "is_active": self.is_active,
            "days_remaining": self.days_remaining,
            "upload_limit": "unlimited" if self.upload_limit == UNLIMITED else self.upload_limit,
            "uploads_remaining": "unlimited" if self.uploads_remaining == UNLIMITED else self.uploads_remaining,
            "can_upload": self.can_upload,
        }


def entitlement_status(db: Session, subject_id: str, current_count: int = 0, now: datetime | None = None) -> EntitlementStatus:
    now = now or utcnow()
    sub = ledger.get_active(db, subject_id)
    entitled = ledger.is_currently_entitled(sub, now=now)

    tier = sub.tier if (sub is not None and entitled) else None
    duration_type = sub.duration_type if (sub is not None and entitled) else None

    return EntitlementStatus(
        subject_id=subject_id,
        entitled=entitled,
        tier=tier or FREE_TIER,
        duration_type=duration_type,
        end_at=(sub.end_at if sub is not None else None),
        is_active=bool(sub.is_active) if sub is not None else False,
        days_remaining=(ledger.days_remaining(sub, now=now) if entitled else 0),
        upload_limit=upload_limit_for(db, tier, duration_type),
        uploads_remaining=remaining_uploads(db, current_count, tier, duration_type),
        can_upload=can_upload_media(db, current_count, tier, duration_type),
    )
