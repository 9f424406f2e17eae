import unittest

from subscription_engine.core.settings import settings
from subscription_engine.jobs.scheduler import REMINDER_JOB_ID, build_scheduler, start_scheduler


class TestScheduler(unittest.TestCase):
    def test_daily_job_registered(self):
        scheduler = build_scheduler()
        job = scheduler.get_job(REMINDER_JOB_ID)
        self.assertIsNotNone(job)
        self.assertEqual(job.max_instances, 1)
        self.assertTrue(job.coalesce)
        self.assertIn(f"hour='{settings.reminder_sweep_hour_utc}'", str(job.trigger))

    def test_disabled_by_default(self):
        self.assertFalse(settings.reminder_scheduler_enabled)
        self.assertIsNone(start_scheduler())


if __name__ == "__main__":
    unittest.main()
