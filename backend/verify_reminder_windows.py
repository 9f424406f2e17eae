from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from subscription_engine.core.database import Base
from subscription_engine.models.profile import Profile
from subscription_engine.models.reminder_log import ReminderLog
from subscription_engine.services import ledger
from subscription_engine.services.messaging import LoggingTransport
from subscription_engine.services.reminders import run_reminder_sweep


def main() -> None:
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    try:
        now = datetime.now(timezone.utc)
        db.add(Profile(id="subject-1", email="a@example.com", display_name="Amina", phone_number="0712345678"))
        db.commit()
        ledger.upsert(
            db,
            subject_id="subject-1",
            tier="prime_plus",
            duration_type="1_week",
            start_at=now - timedelta(days=4),
            end_at=now + timedelta(days=3),
            amount_paid=800,
            funding_claim_id=None,
        )

        transport = LoggingTransport()
        for hours in range(0, 4 * 24 + 1, 6):
            run_reminder_sweep(db, transport, now=now + timedelta(hours=hours))

        types = sorted(r.reminder_type for r in db.query(ReminderLog).all())
        assert types == ["1_day", "3_days", "expiry_day"], types
        assert len(transport.sent) == 3, len(transport.sent)
        for _destination, body in transport.sent:
            assert "PRIME PLUS" in body, body
    finally:
        db.close()


if __name__ == "__main__":
    main()
    print("OK")
