from datetime import datetime, timedelta, timezone
from decimal import Decimal

from subscription_engine.models.subscription import Subscription
from subscription_engine.services.proration import compute_upgrade_cost


def main() -> None:
    now = datetime.now(timezone.utc)
    sub = Subscription(
        subject_id="subject-1",
        tier="basic_pro",
        duration_type="1_month",
        start_at=now - timedelta(days=20),
        end_at=now + timedelta(days=10),
        is_active=True,
        amount_paid=Decimal("2000"),
    )

    quote = compute_upgrade_cost(sub, 2500, now=now)
    assert quote.remaining_days == 10, quote
    assert quote.credit_amount == Decimal("666.67"), quote
    assert quote.upgrade_cost == Decimal("1833.33"), quote

    previous = None
    for day in range(0, 12):
        q = compute_upgrade_cost(sub, 2500, now=now + timedelta(days=day))
        assert q.upgrade_cost >= 0, q
        if previous is not None:
            assert q.credit_amount <= previous, (day, q)
        previous = q.credit_amount

    expired = compute_upgrade_cost(sub, 2500, now=now + timedelta(days=11))
    assert expired.credit_amount == Decimal("0.00"), expired
    print(quote.as_dict())


if __name__ == "__main__":
    main()
    print("OK")
