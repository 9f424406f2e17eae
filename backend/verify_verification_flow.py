from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from subscription_engine.core.database import Base
from subscription_engine.models.payment_claim import PaymentClaim
from subscription_engine.models.subscription import Subscription
from subscription_engine.services import catalog, ledger, payment_claims, verification
from subscription_engine.services.errors import InvalidStateError


def main() -> None:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        now = datetime.now(timezone.utc)
        catalog.seed_default_catalog(db)

        claim = payment_claims.submit_claim(
            db,
            subject_id="subject-1",
            amount=2000,
            external_reference="QHX7K2M9PL",
            phone="0712345678",
            purpose="subscription",
            tier="basic_pro",
            duration_type="1_month",
        )
        assert claim.state == "pending", claim.state

        result = verification.verify_claim(db, claim.id, admin_id="admin-1", now=now)
        assert result.activated
        sub = ledger.get_active(db, "subject-1")
        assert sub.end_at == now + timedelta(days=30), sub.end_at
        assert ledger.is_currently_entitled(sub, now=now)

        try:
            verification.verify_claim(db, claim.id, admin_id="admin-1", now=now)
            raise AssertionError("second verify should fail")
        except InvalidStateError:
            pass

        bogus = payment_claims.submit_claim(
            db,
            subject_id="subject-1",
            amount=3500,
            external_reference="BOGUS12345",
            phone="0712345678",
            purpose="subscription",
            tier="vip_elite",
            duration_type="1_month",
        )
        verification.reject_claim(db, bogus.id, admin_id="admin-1", note="code not found", now=now)
        after = ledger.get_active(db, "subject-1")
        assert after.id == sub.id and after.tier == "basic_pro", (after.id, after.tier)

        assert db.query(Subscription).count() == 1
        states = sorted(c.state for c in db.query(PaymentClaim).all())
        assert states == ["rejected", "verified"], states
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
