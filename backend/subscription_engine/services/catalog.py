from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from subscription_engine.models.tier_package import DURATION_DAYS, TIER_ORDER, UNLIMITED, TierPackage
from subscription_engine.services.errors import NotFoundError, ValidationError


logger = logging.getLogger(__name__)


DEFAULT_PRICES: dict[str, dict[str, int]] = {
    "starter": {"1_week": 400, "2_weeks": 700, "1_month": 1200},
    "basic_pro": {"1_week": 600, "2_weeks": 1100, "1_month": 2000},
    "prime_plus": {"1_week": 800, "2_weeks": 1500, "1_month": 2500},
    "vip_elite": {"1_week": 1000, "2_weeks": 1900, "1_month": 3500},
}

DEFAULT_UPLOAD_LIMITS: dict[str, int] = {
    "starter": 3,
    "basic_pro": 5,
    "prime_plus": 10,
    "vip_elite": UNLIMITED,
}

DEFAULT_FEATURES: dict[str, list[str]] = {
    "starter": ["Basic homepage listing", "Email support", "Up to 3 photos"],
    "basic_pro": ["Standard homepage position", "Basic analytics", "Search optimization", "Up to 5 photos"],
    "prime_plus": [
        "Prominent homepage position",
        "Analytics dashboard",
        "Featured category",
        "Social media promotion",
        "Up to 10 photos",
    ],
    "vip_elite": [
        "Homepage spotlight",
        "Advanced analytics",
        "Profile verification badge",
        "Marketing campaigns",
        "24/7 priority support",
        "Unlimited photos",
    ],
}


def normalize_tier(tier: str | None) -> str:
    return str(tier or "").strip().lower()


def normalize_duration(duration_type: str | None) -> str:
    return str(duration_type or "").strip().lower()


def is_known_tier(tier: str | None) -> bool:
    return normalize_tier(tier) in TIER_ORDER


def is_known_duration(duration_type: str | None) -> bool:
    return normalize_duration(duration_type) in DURATION_DAYS


def duration_days(duration_type: str) -> int:
    key = normalize_duration(duration_type)
    if key not in DURATION_DAYS:
        raise ValidationError("invalid_duration", f"Unknown duration type: {duration_type}")
    return DURATION_DAYS[key]


def tier_rank(tier: str) -> int:
    key = normalize_tier(tier)
    if key not in TIER_ORDER:
        raise ValidationError("invalid_tier", f"Unknown tier: {tier}")
    return TIER_ORDER.index(key)


def find_canonical(db: Session, tier: str, duration_type: str) -> TierPackage | None:
    return (
        db.query(TierPackage)
        .filter(
            TierPackage.tier_name == normalize_tier(tier),
            TierPackage.duration_type == normalize_duration(duration_type),
            TierPackage.is_active.is_(True),
        )
        .order_by(TierPackage.updated_at.desc(), TierPackage.id.desc())
        .first()
    )


def lookup(db: Session, tier: str, duration_type: str) -> TierPackage:
    pkg = find_canonical(db, tier, duration_type)
    if pkg is None:
        raise NotFoundError("package_not_found", f"No active package for {tier}/{duration_type}")
    return pkg


def list_active(db: Session, duration_type: str | None = None) -> list[TierPackage]:
    q = db.query(TierPackage).filter(TierPackage.is_active.is_(True))
    if duration_type:
        q = q.filter(TierPackage.duration_type == normalize_duration(duration_type))
    return q.order_by(TierPackage.display_order.asc(), TierPackage.id.asc()).all()


def _deactivate_siblings(db: Session, tier: str, duration_type: str, keep_id: int | None = None) -> None:
    q = db.query(TierPackage).filter(
        TierPackage.tier_name == tier,
        TierPackage.duration_type == duration_type,
        TierPackage.is_active.is_(True),
    )
    if keep_id is not None:
        q = q.filter(TierPackage.id != keep_id)
    for sibling in q.all():
        sibling.is_active = False
    db.flush()


def create_package(
    db: Session,
    *,
    tier: str,
    duration_type: str,
    price: Decimal | int | float,
    features: list[str] | None = None,
    upload_limit: int = 0,
    display_order: int = 0,
    is_active: bool = True,
) -> TierPackage:
    tier = normalize_tier(tier)
    duration_type = normalize_duration(duration_type)
    if not is_known_tier(tier):
        raise ValidationError("invalid_tier", f"Unknown tier: {tier}")
    if not is_known_duration(duration_type):
        raise ValidationError("invalid_duration", f"Unknown duration type: {duration_type}")
    price = Decimal(str(price))
    if price < 0:
        raise ValidationError("invalid_price", "price must be >= 0")
    if int(upload_limit) < UNLIMITED:
        raise ValidationError("invalid_upload_limit", "upload_limit must be >= 0 or -1 for unlimited")

    try:
        if is_active:
            # A new active row supersedes the previous canonical price.
            _deactivate_siblings(db, tier, duration_type)
        pkg = TierPackage(
            tier_name=tier,
            duration_type=duration_type,
            price=price,
            features=list(features or []),
            upload_limit=int(upload_limit),
            display_order=int(display_order),
            is_active=bool(is_active),
        )
        db.add(pkg)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(pkg)
    logger.info("catalog.create tier=%s duration=%s price=%s", tier, duration_type, price)
    return pkg


def update_package(db: Session, package_id: int, changes: dict[str, Any]) -> TierPackage:
    pkg = db.query(TierPackage).filter(TierPackage.id == package_id).first()
    if pkg is None:
        raise NotFoundError("package_not_found")

    if "price" in changes and changes["price"] is not None:
        price = Decimal(str(changes["price"]))
        if price < 0:
            raise ValidationError("invalid_price", "price must be >= 0")
        pkg.price = price
    if "features" in changes and changes["features"] is not None:
        pkg.features = list(changes["features"])
    if "upload_limit" in changes and changes["upload_limit"] is not None:
        limit = int(changes["upload_limit"])
        if limit < UNLIMITED:
            raise ValidationError("invalid_upload_limit", "upload_limit must be >= 0 or -1 for unlimited")
        pkg.upload_limit = limit
    if "display_order" in changes and changes["display_order"] is not None:
        pkg.display_order = int(changes["display_order"])
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(pkg)
    return pkg


def set_package_active(db: Session, package_id: int, active: bool) -> TierPackage:
    pkg = db.query(TierPackage).filter(TierPackage.id == package_id).first()
    if pkg is None:
        raise NotFoundError("package_not_found")
    try:
        if active:
            _deactivate_siblings(db, pkg.tier_name, pkg.duration_type, keep_id=pkg.id)
        pkg.is_active = bool(active)
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(pkg)
    logger.info("catalog.set_active package_id=%s active=%s", pkg.id, pkg.is_active)
    return pkg


def seed_default_catalog(db: Session) -> int:
    """Insert the stock price list when the catalog is empty. Returns rows added."""
    if db.query(TierPackage.id).first() is not None:
        return 0
    order = 0
    for duration_type in DURATION_DAYS:
        for tier in TIER_ORDER:
            db.add(
                TierPackage(
                    tier_name=tier,
                    duration_type=duration_type,
                    price=Decimal(DEFAULT_PRICES[tier][duration_type]),
                    features=list(DEFAULT_FEATURES[tier]),
                    upload_limit=DEFAULT_UPLOAD_LIMITS[tier],
                    display_order=order,
                    is_active=True,
                )
            )
            order += 1
    db.commit()
    logger.info("catalog.seed rows=%s", order)
    return order
