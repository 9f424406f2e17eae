import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from subscription_engine.core.database import Base
from subscription_engine.models.profile import Profile
from subscription_engine.models.reminder_log import ReminderLog, ReminderStatus, ReminderType
from subscription_engine.services import ledger
from subscription_engine.services.errors import TransportError
from subscription_engine.services.messaging import LoggingTransport, MessageTransport
from subscription_engine.services.reminders import (
    classify,
    format_reminder_message,
    list_reminder_logs,
    run_reminder_sweep,
)


NOW = datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)


class FlakyTransport(MessageTransport):
    def __init__(self, failing: set[str]):
        self.failing = failing
        self.sent: list[str] = []

    def send(self, destination: str, body: str) -> str:
        if destination in self.failing:
            raise TransportError("transport_rejected", "Twilio error (400): unreachable number")
        self.sent.append(destination)
        return f"SM{len(self.sent):04d}"


class BrokenPipeTransport(MessageTransport):
    def send(self, destination: str, body: str) -> str:
        raise ConnectionResetError("peer reset")


class TestClassify(unittest.TestCase):
    def test_windows(self):
        cases = [
            (timedelta(days=3, seconds=1), None),
            (timedelta(days=3), ReminderType.THREE_DAYS),
            (timedelta(days=2, hours=12), ReminderType.THREE_DAYS),
            (timedelta(days=2), ReminderType.THREE_DAYS),
            (timedelta(days=1, hours=12), None),
            (timedelta(days=1), ReminderType.ONE_DAY),
            (timedelta(seconds=1), ReminderType.ONE_DAY),
            (timedelta(0), ReminderType.EXPIRY_DAY),
            (-timedelta(hours=1), ReminderType.EXPIRY_DAY),
            (-timedelta(days=1), None),
        ]
        for remaining, expected in cases:
            self.assertEqual(classify(NOW + remaining, NOW), expected, remaining)


class TestMessages(unittest.TestCase):
    def test_tone_and_details(self):
        end_at = datetime(2026, 3, 4, 6, 0, tzinfo=timezone.utc)
        friendly = format_reminder_message(ReminderType.THREE_DAYS, "Amina", "prime_plus", end_at)
        urgent = format_reminder_message(ReminderType.ONE_DAY, "Amina", "vip_elite", end_at)
        final = format_reminder_message(ReminderType.EXPIRY_DAY, "Amina", "basic_pro", end_at)

        self.assertIn("Hi Amina!", friendly)
        self.assertIn("PRIME PLUS", friendly)
        self.assertIn("March 4, 2026", friendly)
        self.assertIn("3 DAYS", friendly)
        self.assertTrue(urgent.startswith("URGENT"))
        self.assertIn("VIP ELITE", urgent)
        self.assertIn("TOMORROW", urgent)
        self.assertTrue(final.startswith("FINAL NOTICE"))
        self.assertIn("EXPIRES TODAY", final)


class TestSweep(unittest.TestCase):
    def setUp(self):
        engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
        Base.metadata.create_all(bind=engine)
        self.db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()

    def tearDown(self):
        self.db.close()

    def _subscriber(self, subject_id, end_at, phone="0712345678", active=True):
        self.db.add(Profile(id=subject_id, email=f"{subject_id}@example.com", display_name="Amina", phone_number=phone))
        self.db.commit()
        return ledger.upsert(
            self.db,
            subject_id=subject_id,
            tier="basic_pro",
            duration_type="1_month",
            start_at=end_at - timedelta(days=30),
            end_at=end_at,
            amount_paid=2000,
            funding_claim_id=None,
            is_active=active,
        )

    def test_second_run_sends_nothing(self):
        self._subscriber("subject-1", NOW + timedelta(days=2))
        transport = LoggingTransport()

        first = run_reminder_sweep(self.db, transport, now=NOW)
        second = run_reminder_sweep(self.db, transport, now=NOW)

        self.assertEqual((first.sent, first.failed, first.skipped), (1, 0, 0))
        self.assertEqual((second.sent, second.failed, second.skipped), (0, 0, 1))
        self.assertEqual(len(transport.sent), 1)
        logs = self.db.query(ReminderLog).all()
        self.assertEqual(len(logs), 1)
        self.assertEqual(logs[0].reminder_type, ReminderType.THREE_DAYS.value)
        self.assertEqual(logs[0].status, ReminderStatus.SENT.value)
        self.assertEqual(logs[0].destination, "+254712345678")
        self.assertTrue(logs[0].external_message_id.startswith("log-"))

    def test_each_window_sent_once(self):
        sub = self._subscriber("subject-1", NOW + timedelta(days=3))
        transport = LoggingTransport()
        for offset in (timedelta(0), timedelta(hours=12), timedelta(days=2), timedelta(days=2, hours=6), timedelta(days=3, hours=2)):
            run_reminder_sweep(self.db, transport, now=NOW + offset)
        types = [row.reminder_type for row in list_reminder_logs(self.db, subject_id="subject-1")]
        self.assertEqual(sorted(types), sorted(["3_days", "1_day", "expiry_day"]))
        self.assertTrue(all(row.subscription_id == sub.id for row in list_reminder_logs(self.db)))

    def test_just_expired_gets_final_notice_only(self):
        sub = self._subscriber("subject-1", NOW - timedelta(hours=1))
        self.assertFalse(ledger.is_currently_entitled(sub, now=NOW))

        report = run_reminder_sweep(self.db, LoggingTransport(), now=NOW)

        self.assertEqual(report.sent, 1)
        types = {row.reminder_type for row in self.db.query(ReminderLog).all()}
        self.assertEqual(types, {ReminderType.EXPIRY_DAY.value})

    def test_inactive_and_distant_are_ignored(self):
        self._subscriber("subject-1", NOW + timedelta(days=10))
        self._subscriber("subject-2", NOW + timedelta(days=1), active=False)
        self._subscriber("subject-3", NOW - timedelta(days=2))
        report = run_reminder_sweep(self.db, LoggingTransport(), now=NOW)
        self.assertEqual(report.as_dict(), {"candidates": 0, "sent": 0, "failed": 0, "skipped": 0})

    def test_transport_failure_does_not_stop_batch(self):
        self._subscriber("subject-1", NOW + timedelta(hours=20), phone="0711111111")
        self._subscriber("subject-2", NOW + timedelta(hours=22), phone="0722222222")
        transport = FlakyTransport(failing={"+254711111111"})

        report = run_reminder_sweep(self.db, transport, now=NOW)

        self.assertEqual((report.sent, report.failed), (1, 1))
        self.assertEqual(transport.sent, ["+254722222222"])
        failed = self.db.query(ReminderLog).filter(ReminderLog.subject_id == "subject-1").one()
        self.assertEqual(failed.status, ReminderStatus.FAILED.value)
        self.assertIn("unreachable number", failed.error)

    def test_unexpected_send_error_is_recorded_as_failed(self):
        self._subscriber("subject-1", NOW + timedelta(hours=20))

        report = run_reminder_sweep(self.db, BrokenPipeTransport(), now=NOW)

        self.assertEqual((report.sent, report.failed, report.skipped), (0, 1, 0))
        row = self.db.query(ReminderLog).one()
        self.assertEqual(row.status, ReminderStatus.FAILED.value)
        self.assertEqual(row.error, "peer reset")

        again = run_reminder_sweep(self.db, BrokenPipeTransport(), now=NOW)
        self.assertEqual((again.sent, again.failed, again.skipped), (0, 0, 1))
        self.assertEqual(self.db.query(ReminderLog).one().status, ReminderStatus.FAILED.value)

    def test_missing_phone_recorded_as_failed(self):
        self._subscriber("subject-1", NOW + timedelta(hours=20), phone=None)
        report = run_reminder_sweep(self.db, LoggingTransport(), now=NOW)
        self.assertEqual(report.failed, 1)
        row = self.db.query(ReminderLog).one()
        self.assertEqual(row.status, ReminderStatus.FAILED.value)
        self.assertEqual(row.error, "no_destination")

    def test_renewal_starts_fresh_reminders(self):
        self._subscriber("subject-1", NOW + timedelta(days=2))
        run_reminder_sweep(self.db, LoggingTransport(), now=NOW)
        ledger.upsert(
            self.db,
            subject_id="subject-1",
            tier="basic_pro",
            duration_type="1_week",
            start_at=NOW - timedelta(days=5),
            end_at=NOW + timedelta(days=2),
            amount_paid=600,
            funding_claim_id=None,
        )
        report = run_reminder_sweep(self.db, LoggingTransport(), now=NOW)
        self.assertEqual(report.sent, 1)
        self.assertEqual(self.db.query(ReminderLog).count(), 2)

    def test_unique_constraint_blocks_duplicates(self):
        sub = self._subscriber("subject-1", NOW + timedelta(days=2))
        for _ in range(2):
            self.db.add(
                ReminderLog(
                    subject_id="subject-1",
                    subscription_id=sub.id,
                    reminder_type=ReminderType.ONE_DAY.value,
                    status=ReminderStatus.QUEUED.value,
                    sent_at=NOW,
                )
            )
        with self.assertRaises(IntegrityError):
            self.db.commit()
        self.db.rollback()


if __name__ == "__main__":
    unittest.main()
