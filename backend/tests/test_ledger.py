import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from subscription_engine.core.database import Base
from subscription_engine.models.subscription import Subscription
from subscription_engine.services import ledger
from subscription_engine.services.errors import NotFoundError, ValidationError


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestLedger(unittest.TestCase):
    def setUp(self):
        engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
        Base.metadata.create_all(bind=engine)
        self.db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    def tearDown(self):
        self.db.close()

    def _upsert(self, subject_id="subject-1", tier="basic_pro", duration="1_month", start=NOW, end=None, active=True):
        return ledger.upsert(
            self.db,
            subject_id=subject_id,
            tier=tier,
            duration_type=duration,
            start_at=start,
            end_at=end or ledger.compute_end_at(start, duration),
            amount_paid=2000,
            funding_claim_id=None,
            is_active=active,
        )

    def test_compute_end_at(self):
        self.assertEqual(ledger.compute_end_at(NOW, "1_week"), NOW + timedelta(days=7))
        self.assertEqual(ledger.compute_end_at(NOW, "2_weeks"), NOW + timedelta(days=14))
        self.assertEqual(ledger.compute_end_at(NOW, "1_month"), NOW + timedelta(days=30))

    def test_upsert_twice_keeps_one_row(self):
        first = self._upsert()
        first_id = first.id
        second = self._upsert(tier="vip_elite", duration="1_week", start=NOW + timedelta(days=3))
        rows = self.db.query(Subscription).filter(Subscription.subject_id == "subject-1").all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].id, second.id)
        self.assertNotEqual(second.id, first_id)
        self.assertEqual(rows[0].tier, "vip_elite")

    def test_upsert_rejects_inverted_period(self):
        with self.assertRaises(ValidationError):
            self._upsert(end=NOW)
        with self.assertRaises(ValidationError):
            self._upsert(subject_id=" ")

    def test_upsert_rejects_unknown_tier_and_duration(self):
        end = NOW + timedelta(days=400)
        with self.assertRaises(ValidationError) as ctx:
            ledger.upsert(
                self.db,
                subject_id="subject-2",
                tier="gold",
                duration_type="1_month",
                start_at=NOW,
                end_at=end,
                amount_paid=0,
                funding_claim_id=None,
            )
        self.assertEqual(ctx.exception.code, "invalid_tier")
        with self.assertRaises(ValidationError) as ctx:
            ledger.upsert(
                self.db,
                subject_id="subject-2",
                tier="basic_pro",
                duration_type="forever",
                start_at=NOW,
                end_at=end,
                amount_paid=0,
                funding_claim_id=None,
            )
        self.assertEqual(ctx.exception.code, "invalid_duration")
        self.assertIsNone(ledger.get_active(self.db, "subject-2"))

        custom = self._upsert(subject_id="subject-2", tier=" VIP_Elite ", duration="1_week", end=end)
        self.assertEqual((custom.tier, custom.duration_type), ("vip_elite", "1_week"))
        self.assertEqual(custom.end_at, end)

    def test_entitlement_depends_on_time_and_flag(self):
        self.assertFalse(ledger.is_currently_entitled(None, now=NOW))

        sub = self._upsert()
        self.assertTrue(ledger.is_currently_entitled(sub, now=NOW))
        self.assertFalse(ledger.is_currently_entitled(sub, now=sub.end_at))
        self.assertFalse(ledger.is_currently_entitled(sub, now=sub.end_at + timedelta(seconds=1)))

        # Flag still set after end_at: not entitled.
        stale = self._upsert(subject_id="subject-2", start=NOW - timedelta(days=40), end=NOW - timedelta(hours=1))
        self.assertTrue(stale.is_active)
        self.assertFalse(ledger.is_currently_entitled(stale, now=NOW))

        # Inside the window but switched off: not entitled.
        off = ledger.set_active_flag(self.db, "subject-1", False)
        self.assertFalse(ledger.is_currently_entitled(off, now=NOW))

    def test_days_remaining_rounds_up(self):
        sub = self._upsert()
        self.assertEqual(ledger.days_remaining(sub, now=NOW), 30)
        self.assertEqual(ledger.days_remaining(sub, now=NOW + timedelta(days=20, hours=1)), 10)
        self.assertEqual(ledger.days_remaining(sub, now=NOW + timedelta(days=31)), 0)

    def test_force_expire(self):
        self._upsert()
        self._upsert(subject_id="subject-2")
        touched = ledger.force_expire(self.db, ["subject-1", "missing"], now=NOW)
        self.assertEqual(touched, 1)
        sub = ledger.get_active(self.db, "subject-1")
        self.assertFalse(sub.is_active)
        self.assertEqual(sub.end_at, NOW - timedelta(hours=1))
        self.assertTrue(ledger.get_active(self.db, "subject-2").is_active)
        with self.assertRaises(ValidationError):
            ledger.force_expire(self.db, [], now=NOW)

    def test_active_and_expired_lists(self):
        self._upsert()
        self._upsert(subject_id="subject-2", start=NOW - timedelta(days=10), end=NOW - timedelta(days=3))
        active = ledger.list_active_subscriptions(self.db, now=NOW)
        expired = ledger.list_expired_subscriptions(self.db, now=NOW)
        self.assertEqual([s.subject_id for s in active], ["subject-1"])
        self.assertEqual([s.subject_id for s in expired], ["subject-2"])

    def test_delete(self):
        self._upsert()
        ledger.delete(self.db, "subject-1")
        self.assertIsNone(ledger.get_active(self.db, "subject-1"))
        with self.assertRaises(NotFoundError):
            ledger.delete(self.db, "subject-1")


if __name__ == "__main__":
    unittest.main()
