"""Tests for the cache module."""

import datetime
import os
import shutil
import tempfile
import threading
import unittest

import pytz

from prayerwidget.cache import RETRY_WINDOW, DailyCache
from prayerwidget.errors import FetchFailed
from prayerwidget.prayer_api import PrayerDay, PrayerTimes
from prayerwidget.settings import Settings

TZ = pytz.timezone("Asia/Karachi")
NOW = TZ.localize(datetime.datetime(2024, 5, 1, 19, 0))
LAHORE = Settings(city="Lahore", country="Pakistan", use_device_location=False)
KARACHI = Settings(city="Karachi", country="Pakistan", use_device_location=False)


def make_day(day: datetime.date, fajr_minute: int = 0) -> PrayerDay:
    return PrayerDay(
        times=PrayerTimes(
            fajr=datetime.time(5, fajr_minute),
            dhuhr=datetime.time(12, 10),
            asr=datetime.time(15, 40),
            maghrib=datetime.time(18, 50),
            isha=datetime.time(20, 10),
            sunrise=datetime.time(6, 20),
        ),
        hijri_label=f"{day.day} Shawwal 1445 AH",
        gregorian_label=f"{day.day:02d} May 2024",
    )


class FakeFetcher:
    """Provider stand-in; fails for any date in fail_dates."""

    def __init__(self, fajr_minute: int = 0):
        self.fail_dates = set()
        self.fail_all = False
        self.fajr_minute = fajr_minute
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, day, location):
        with self._lock:
            self.calls.append((day, location))
        if self.fail_all or day in self.fail_dates:
            raise FetchFailed(f"no data for {day}")
        return make_day(day, self.fajr_minute)


class CacheTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = tempfile.mkdtemp()
        self.now = NOW
        self.settings = LAHORE
        self.fetcher = FakeFetcher()
        self.cache = DailyCache(lambda: self.settings, lambda: self.now, self._tmpdir, self.fetcher)

    def tearDown(self):
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def _cache_file_bytes(self):
        path = os.path.join(self._tmpdir, "cache.json")
        if not os.path.isfile(path):
            return None
        with open(path, "rb") as f:
            return f.read()


class TestSyncNow(CacheTestCase):
    def test_caches_three_days(self):
        self.assertTrue(self.cache.sync_now())
        for offset in range(3):
            day = NOW.date() + datetime.timedelta(days=offset)
            self.assertEqual(self.cache.get(day), make_day(day))
        self.assertIsNone(self.cache.get(NOW.date() + datetime.timedelta(days=3)))
        self.assertEqual(len(self.fetcher.calls), 3)

    def test_third_fetch_failure_persists_nothing(self):
        self.fetcher.fail_dates.add(NOW.date() + datetime.timedelta(days=2))
        self.assertFalse(self.cache.sync_now())
        self.assertIsNone(self.cache.get(NOW.date()))
        self.assertIsNone(self.cache.get(NOW.date() + datetime.timedelta(days=1)))
        self.assertIsNone(self._cache_file_bytes())

    def test_failure_leaves_previous_cache_untouched(self):
        self.assertTrue(self.cache.sync_now())
        before = self._cache_file_bytes()

        self.now = NOW + datetime.timedelta(days=1)
        self.fetcher.fajr_minute = 5
        self.fetcher.fail_dates.add(self.now.date() + datetime.timedelta(days=2))
        self.assertFalse(self.cache.sync_now())

        self.assertEqual(self._cache_file_bytes(), before)
        self.assertEqual(self.cache.get(self.now.date()).times.fajr, datetime.time(5, 0))

    def test_success_replaces_old_days(self):
        self.assertTrue(self.cache.sync_now())
        self.now = NOW + datetime.timedelta(days=1)
        self.assertTrue(self.cache.sync_now())
        self.assertIsNone(self.cache.get(NOW.date()))
        self.assertIsNotNone(self.cache.get(NOW.date() + datetime.timedelta(days=3)))

    def test_success_clears_retry_window(self):
        self.cache.open_retry_window()
        self.assertTrue(self.cache.sync_now())
        self.assertIsNone(self.cache.retry_until())

    def test_without_location_returns_false(self):
        self.settings = Settings()
        self.assertFalse(self.cache.sync_now())
        self.assertEqual(self.fetcher.calls, [])


class TestEnsureCurrentData(CacheTestCase):
    def test_serves_cached_day_without_fetching(self):
        self.cache.sync_now()
        self.fetcher.calls.clear()
        times = self.cache.ensure_current_data()
        self.assertEqual(times.isha, datetime.time(20, 10))
        self.assertEqual(self.fetcher.calls, [])

    def test_syncs_when_today_missing(self):
        times = self.cache.ensure_current_data()
        self.assertEqual(times.fajr, datetime.time(5, 0))
        self.assertEqual(len(self.fetcher.calls), 3)

    def test_failure_opens_three_day_retry_window(self):
        self.fetcher.fail_all = True
        self.assertIsNone(self.cache.ensure_current_data())
        self.assertEqual(self.cache.retry_until(), NOW + RETRY_WINDOW)
        self.assertEqual(RETRY_WINDOW, datetime.timedelta(days=3))

    def test_repeated_failure_keeps_retry_window(self):
        self.fetcher.fail_all = True
        self.cache.ensure_current_data()
        self.now = NOW + datetime.timedelta(hours=5)
        self.assertIsNone(self.cache.ensure_current_data())
        self.assertEqual(self.cache.retry_until(), NOW + RETRY_WINDOW)


class TestRetryPending(CacheTestCase):
    def test_no_window(self):
        self.assertFalse(self.cache.retry_pending(NOW))

    def test_open_window(self):
        self.cache.open_retry_window()
        self.assertTrue(self.cache.retry_pending(NOW + datetime.timedelta(days=2)))

    def test_elapsed_window_is_cleared(self):
        self.cache.open_retry_window()
        self.assertFalse(self.cache.retry_pending(NOW + RETRY_WINDOW))
        self.assertIsNone(self.cache.retry_until())


class TestLocationChange(CacheTestCase):
    def test_days_for_another_location_are_ignored(self):
        self.cache.sync_now()
        self.settings = KARACHI
        self.assertIsNone(self.cache.get(NOW.date()))

    def test_clear_drops_everything(self):
        self.cache.sync_now()
        self.cache.open_retry_window()
        self.cache.clear()
        self.assertIsNone(self.cache.get(NOW.date()))
        self.assertIsNone(self.cache.retry_until())

    def test_corrupt_file_reads_as_empty(self):
        with open(os.path.join(self._tmpdir, "cache.json"), "w") as f:
            f.write("not valid json")
        self.assertIsNone(self.cache.get(NOW.date()))
        self.assertTrue(self.cache.sync_now())
        self.assertIsNotNone(self.cache.get(NOW.date()))


if __name__ == "__main__":
    unittest.main()
