"""Tests for the notifier module."""

import datetime
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock, patch

from prayerwidget.notifier import (
    NotificationGate,
    _send_plyer,
    due_prayer,
    notification_key,
    notify_prayer_start,
)

START = datetime.datetime(2024, 5, 1, 18, 50, tzinfo=datetime.timezone.utc)


class TestNotifyPrayerStart(unittest.TestCase):
    @patch("prayerwidget.notifier._send_plyer")
    def test_calls_send_plyer(self, mock_plyer):
        notify_prayer_start("Maghrib")
        mock_plyer.assert_called_once()
        args = mock_plyer.call_args[0]
        self.assertEqual(args[0], "Prayer time")
        self.assertIn("Maghrib has started", args[1])

    @patch("prayerwidget.notifier._send_plyer")
    def test_calls_callback(self, mock_plyer):
        cb = MagicMock()
        notify_prayer_start("Fajr", callback=cb)
        cb.assert_called_once_with("Prayer time", "Fajr has started")


class TestSendPlyer(unittest.TestCase):
    @patch("prayerwidget.notifier.plyer_notification")
    def test_backend_failure_is_not_raised(self, mock_notification):
        mock_notification.notify.side_effect = NotImplementedError("no backend")
        self.assertFalse(_send_plyer("title", "message"))

    @patch("prayerwidget.notifier.plyer_notification")
    def test_sends(self, mock_notification):
        self.assertTrue(_send_plyer("title", "message"))
        kwargs = mock_notification.notify.call_args.kwargs
        self.assertEqual(kwargs["title"], "title")
        self.assertEqual(kwargs["app_name"], "Prayer Widget")


class TestNotificationGate(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self.gate = NotificationGate(self._tmpdir)

    def tearDown(self):
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def test_fires_once_per_key(self):
        self.assertTrue(self.gate.should_fire("Fajr", "2024-05-01"))
        self.assertFalse(self.gate.should_fire("Fajr", "2024-05-01"))

    def test_records_key(self):
        self.gate.should_fire("Fajr", datetime.date(2024, 5, 1))
        self.assertEqual(self.gate.last_fired_key, "2024-05-01-Fajr")

    def test_survives_new_gate_instance(self):
        self.gate.should_fire("Asr", "2024-05-01")
        self.assertFalse(NotificationGate(self._tmpdir).should_fire("Asr", "2024-05-01"))

    def test_next_prayer_or_next_day_fires(self):
        self.assertTrue(self.gate.should_fire("Asr", "2024-05-01"))
        self.assertTrue(self.gate.should_fire("Maghrib", "2024-05-01"))
        self.assertTrue(self.gate.should_fire("Maghrib", "2024-05-02"))

    def test_inside_window(self):
        now = START + datetime.timedelta(seconds=90)
        self.assertTrue(self.gate.should_fire("Maghrib", "2024-05-01", started_at=START, now=now))

    def test_before_start_does_not_fire_or_record(self):
        now = START - datetime.timedelta(seconds=1)
        self.assertFalse(self.gate.should_fire("Maghrib", "2024-05-01", started_at=START, now=now))
        self.assertEqual(self.gate.last_fired_key, "")

    def test_missed_window_is_skipped(self):
        now = START + datetime.timedelta(minutes=2)
        self.assertFalse(self.gate.should_fire("Maghrib", "2024-05-01", started_at=START, now=now))


class TestDuePrayer(unittest.TestCase):
    def setUp(self):
        self.starts = (
            ("Asr", START - datetime.timedelta(hours=3)),
            ("Maghrib", START),
            ("Isha", START + datetime.timedelta(hours=1, minutes=20)),
        )

    def test_inside_window(self):
        self.assertEqual(due_prayer(self.starts, START + datetime.timedelta(seconds=30)), ("Maghrib", START))

    def test_outside_window(self):
        self.assertIsNone(due_prayer(self.starts, START + datetime.timedelta(minutes=5)))

    def test_key_format(self):
        self.assertEqual(notification_key(datetime.date(2024, 5, 1), "Isha"), "2024-05-01-Isha")


if __name__ == "__main__":
    unittest.main()
