"""Multi-day prayer times cache with all-or-nothing sync and a retry window."""

import datetime
import logging
import os
from concurrent.futures import ThreadPoolExecutor

from prayerwidget import settings as settings_mod
from prayerwidget.errors import ConfigurationError, FetchFailed
from prayerwidget.prayer_api import PrayerDay, PrayerTimes, fetch_prayer_day, parse_time
from prayerwidget.store import JsonStore

logger = logging.getLogger(__name__)

PREFETCH_DAYS = 3  # today, tomorrow, the day after
RETRY_WINDOW = datetime.timedelta(days=3)


def _day_to_json(day: PrayerDay) -> dict:
    times = day.times
    item = {
        "fajr": times.fajr.strftime("%H:%M"),
        "dhuhr": times.dhuhr.strftime("%H:%M"),
        "asr": times.asr.strftime("%H:%M"),
        "maghrib": times.maghrib.strftime("%H:%M"),
        "isha": times.isha.strftime("%H:%M"),
        "hijri": day.hijri_label,
        "gregorian": day.gregorian_label,
    }
    if times.sunrise is not None:
        item["sunrise"] = times.sunrise.strftime("%H:%M")
    return item


def _day_from_json(item: dict) -> PrayerDay:
    return PrayerDay(
        times=PrayerTimes(
            fajr=parse_time(item["fajr"]),
            dhuhr=parse_time(item["dhuhr"]),
            asr=parse_time(item["asr"]),
            maghrib=parse_time(item["maghrib"]),
            isha=parse_time(item["isha"]),
            sunrise=parse_time(item["sunrise"]) if item.get("sunrise") else None,
        ),
        hijri_label=item.get("hijri", ""),
        gregorian_label=item.get("gregorian", ""),
    )


class DailyCache:
    """
    Resolved prayer days keyed by ISO date.

    settings_provider returns the current Settings snapshot; now_provider
    returns an aware "now" in the location's zone. The fetcher is called
    once per date and must raise FetchFailed on any failure.
    """

    def __init__(self, settings_provider, now_provider, state_dir=None, fetcher=fetch_prayer_day):
        state_dir = state_dir or settings_mod.CONFIG_DIR
        self._settings_provider = settings_provider
        self._now = now_provider
        self._fetch = fetcher
        self._days_store = JsonStore(os.path.join(state_dir, "cache.json"))
        self._retry_store = JsonStore(os.path.join(state_dir, "retry.json"))

    def _location_key(self) -> str | None:
        try:
            return settings_mod.resolve_location(self._settings_provider()).key
        except ConfigurationError:
            return None

    def get(self, day: datetime.date) -> PrayerDay | None:
        """Cached day for date, or None. Never touches the network."""
        data = self._days_store.read()
        if data.get("location") != self._location_key():
            return None
        item = data.get("days", {}).get(day.isoformat())
        if item is None:
            return None
        try:
            return _day_from_json(item)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Discarding corrupt cache entry for {day.isoformat()}: {e!r}")
            return None

    def get_today(self) -> PrayerDay | None:
        return self.get(self._now().date())

    def sync_now(self) -> bool:
        """
        Fetch today and the next two days and replace the cache with them.

        Succeeds only if every fetch succeeds; otherwise the stored days
        are left exactly as they were.
        """
        try:
            location = settings_mod.resolve_location(self._settings_provider())
        except ConfigurationError as e:
            logger.info(f"Skipping sync: {e}")
            return False

        today = self._now().date()
        dates = [today + datetime.timedelta(days=i) for i in range(PREFETCH_DAYS)]
        with ThreadPoolExecutor(max_workers=PREFETCH_DAYS) as pool:
            futures = [pool.submit(self._fetch, d, location) for d in dates]
            try:
                days = [f.result() for f in futures]
            except FetchFailed as e:
                logger.warning(f"Sync for {today.isoformat()} failed, keeping previous cache: {e}")
                return False

        self._days_store.write({
            "location": location.key,
            "days": {d.isoformat(): _day_to_json(day) for d, day in zip(dates, days)},
        })
        self._retry_store.clear()
        logger.info(f"Cached prayer times {dates[0].isoformat()} to {dates[-1].isoformat()}")
        return True

    def ensure_current_data(self) -> PrayerTimes | None:
        """Today's times from the cache, syncing first if today is missing."""
        cached = self.get_today()
        if cached is not None:
            logger.debug("Prayer times for today served from cache")
            return cached.times

        if self.sync_now():
            today = self.get_today()
            return today.times if today is not None else None

        self.open_retry_window()
        return None

    def open_retry_window(self) -> None:
        """Start a retry window unless one is already open."""
        if self.retry_until() is not None:
            return
        until = self._now() + RETRY_WINDOW
        self._retry_store.write({"retry_until": until.timestamp()})
        logger.info(f"Retrying prayer times sync until {until.isoformat()}")

    def retry_until(self) -> datetime.datetime | None:
        value = self._retry_store.read().get("retry_until")
        if value is None:
            return None
        return datetime.datetime.fromtimestamp(float(value), tz=datetime.timezone.utc)

    def retry_pending(self, now: datetime.datetime) -> bool:
        """
        True while the retry window is open. An elapsed window is cleared
        and reported as False.
        """
        until = self.retry_until()
        if until is None:
            return False
        if now < until:
            return True
        logger.info("Retry window elapsed, falling back to the daily sync")
        self._retry_store.clear()
        return False

    def clear(self) -> None:
        """Drop every cached day (location changed)."""
        self._days_store.clear()
        self._retry_store.clear()
