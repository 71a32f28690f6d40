import unittest

from republisher.celery_app import (
    REPUBLISH_ALL_TASK,
    build_beat_schedule,
    celery_app,
    parse_cron_schedule,
)
from republisher.config import ScheduleConfig


class ParseCronScheduleTestCase(unittest.TestCase):
    def test_six_field_expression_drops_seconds(self) -> None:
        schedule = parse_cron_schedule("0 0 */25 * * *")

        self.assertEqual(schedule.minute, {0})
        self.assertEqual(schedule.hour, {0})

    def test_five_field_expression(self) -> None:
        schedule = parse_cron_schedule("30 3 * * 1")

        self.assertEqual(schedule.minute, {30})
        self.assertEqual(schedule.hour, {3})
        self.assertEqual(schedule.day_of_week, {1})

    def test_wrong_field_count_raises(self) -> None:
        with self.assertRaises(ValueError):
            parse_cron_schedule("0 0 *")


class BeatScheduleTestCase(unittest.TestCase):
    def test_schedule_points_at_republish_all(self) -> None:
        schedule = build_beat_schedule(ScheduleConfig(cron="0 0 */25 * * *"))

        entry = schedule["republish-all"]
        self.assertEqual(entry["task"], REPUBLISH_ALL_TASK)
        self.assertEqual(entry["kwargs"], {"force_run": False})

    def test_invalid_schedule_disables_beat(self) -> None:
        self.assertEqual(build_beat_schedule(ScheduleConfig(cron="every day")), {})
        self.assertEqual(build_beat_schedule(ScheduleConfig(cron="99 0 * * *")), {})

    def test_worker_uses_thread_pool(self) -> None:
        self.assertEqual(celery_app.conf.worker_pool, "threads")

    def test_app_registers_tasks(self) -> None:
        import republisher.tasks  # noqa: F401

        self.assertIn(REPUBLISH_ALL_TASK, celery_app.tasks)
        self.assertIn("republisher.republish_specific", celery_app.tasks)
        self.assertIn("republisher.status", celery_app.tasks)


if __name__ == "__main__":
    unittest.main()
