from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

from sqlalchemy.orm import Session

from subscription_engine.models.subscription import Subscription
from subscription_engine.services import catalog, ledger
from subscription_engine.services.errors import InvalidStateError, NotFoundError, ValidationError


CENT = Decimal("0.01")


def _money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class UpgradeQuote:
    remaining_days: int
    credit_amount: Decimal
    upgrade_cost: Decimal
    target_price: Decimal
    current_tier_price: Decimal

    def as_dict(self) -> dict:
        return {
            "remaining_days": self.remaining_days,
            "credit_amount": float(self.credit_amount),
            "upgrade_cost": float(self.upgrade_cost),
            "target_price": float(self.target_price),
            "current_tier_price": float(self.current_tier_price),
        }


def compute_upgrade_cost(
    current_sub: Subscription,
    target_tier_price,
    current_tier_price=None,
    now: datetime | None = None,
) -> UpgradeQuote:
    """Price a same-subject tier change against the unused part of the current period.

    The unused days only lower the price: the upgraded subscription always
    starts a fresh full-length window, so nothing is carried forward in time.
    ``current_tier_price`` defaults to what was paid for the current period.
    """
    target = Decimal(str(target_tier_price))
    if target < 0:
        raise ValidationError("invalid_price", "target price must be >= 0")
    current_price = Decimal(str(current_tier_price if current_tier_price is not None else current_sub.amount_paid or 0))

    days = ledger.days_remaining(current_sub, now=now)
    period_days = catalog.duration_days(current_sub.duration_type)
    daily_rate = current_price / Decimal(period_days)
    # A ceil'd partial day never credits more than the whole period was worth.
    credit = min(daily_rate * Decimal(days), current_price)
    cost = max(Decimal(0), target - credit)

    return UpgradeQuote(
        remaining_days=days,
        credit_amount=_money(credit),
        upgrade_cost=_money(cost),
        target_price=_money(target),
        current_tier_price=_money(current_price),
    )


def quote_upgrade(
    db: Session,
    subject_id: str,
    target_tier: str,
    target_duration: str,
    now: datetime | None = None,
) -> UpgradeQuote:
    current = ledger.get_active(db, subject_id)
    if current is None:
        raise NotFoundError("subscription_not_found", "No subscription to upgrade from")

    if catalog.tier_rank(target_tier) <= catalog.tier_rank(current.tier):
        raise InvalidStateError("not_an_upgrade", f"{target_tier} is not above {current.tier}")

    target_pkg = catalog.lookup(db, target_tier, target_duration)
    current_pkg = catalog.find_canonical(db, current.tier, current.duration_type)
    current_price = current_pkg.price if current_pkg is not None else current.amount_paid
    if not ledger.is_currently_entitled(current, now=now):
        # Expired or switched off by an admin: nothing left to credit.
        current_price = Decimal(0)

    return compute_upgrade_cost(current, target_pkg.price, current_tier_price=current_price, now=now)
