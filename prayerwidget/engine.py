"""
Refresh orchestration.

Every cycle hydrates today's prayer times, derives the current window,
renders it, fires at most one prayer notification and arms the next
wake-up. Cycles run one at a time on a single worker thread; triggers
that arrive while a cycle is queued are folded into it.
"""

import datetime
import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor

from prayerwidget import settings as settings_mod
from prayerwidget.cache import DailyCache
from prayerwidget.errors import ConfigurationError
from prayerwidget.notifier import NotificationGate, due_prayer, notify_prayer_start
from prayerwidget.prayer_api import PrayerTimes, fetch_prayer_day
from prayerwidget.prayer_state import BOUNDARY_LEAD, date_footer, derive, next_midnight
from prayerwidget.render import (
    LOCATION_REQUIRED,
    NO_DATE,
    UNABLE_TO_LOAD,
    RenderState,
    live_state,
    next_prayer_label,
    placeholder_state,
)
from prayerwidget.scheduler import WakeScheduler
from prayerwidget.settings import Settings
from prayerwidget.store import JsonStore

logger = logging.getLogger(__name__)

SHORT_RETRY = datetime.timedelta(minutes=5)
# wake slightly before the boundary so the display flips on time
WAKE_LEAD = datetime.timedelta(milliseconds=300)


class RefreshOutcome:
    """Result kind of one refresh cycle."""
    NO_LOCATION = "no_location"
    UNAVAILABLE = "unavailable"
    STALE = "stale"
    FRESH = "fresh"


class PrayerWidgetEngine:
    def __init__(
        self,
        renderer,
        settings: Settings | None = None,
        state_dir: str | None = None,
        now_provider=None,
        fetcher=fetch_prayer_day,
        notifier=notify_prayer_start,
        prayer_scheduler=None,
        sync_scheduler=None,
    ):
        state_dir = state_dir or settings_mod.CONFIG_DIR
        self.settings = settings if settings is not None else settings_mod.load_settings()
        self._renderer = renderer
        self._now_provider = now_provider
        self._notify = notifier

        self.cache = DailyCache(lambda: self.settings, self.now, state_dir, fetcher)
        self.gate = NotificationGate(state_dir)
        self._last_state = JsonStore(os.path.join(state_dir, "last_state.json"))

        self.prayer_wake = prayer_scheduler or WakeScheduler("prayer", self.request_refresh, self.now)
        self.sync_wake = sync_scheduler or WakeScheduler(
            "midnight", lambda: self.request_refresh(sync=True), self.now
        )

        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="prayerwidget")
        self._cycle_lock = threading.RLock()
        self._queue_lock = threading.Lock()
        self._pending: Future | None = None
        self._pending_sync = False
        self._pending_settings: Settings | None = None
        self._stopped = False

    def now(self) -> datetime.datetime:
        if self._now_provider is not None:
            return self._now_provider()
        return datetime.datetime.now(settings_mod.get_timezone(self.settings))

    # ── triggers ────────────────────────────────────────────────────────

    def start(self) -> Future | None:
        """Run the first cycle; it arms every later wake-up."""
        logger.info("Starting prayer widget engine")
        return self.request_refresh()

    def request_refresh(self, sync: bool = False) -> Future | None:
        """
        Queue a refresh cycle on the worker. While one is already queued
        (not yet started) the same future is returned; sync=True makes
        that queued cycle resync the cache first.
        """
        with self._queue_lock:
            return self._enqueue_locked(sync)

    def sync_now(self) -> Future | None:
        """Manual resync followed by a refresh."""
        return self.request_refresh(sync=True)

    def on_time_changed(self) -> Future | None:
        """Boot, clock or time-zone change: re-derive and re-arm everything."""
        return self.request_refresh()

    def update_settings(self, new_settings: Settings) -> Future | None:
        """Persist new settings, drop days cached for an old location and resync."""
        with self._queue_lock:
            self._pending_settings = new_settings
            return self._enqueue_locked(sync=True)

    def stop(self) -> None:
        """Cancel both wake channels; waits for a running cycle to finish."""
        with self._queue_lock:
            self._stopped = True
        self.prayer_wake.cancel()
        self.sync_wake.cancel()
        self._executor.shutdown(wait=True)
        # a cycle that was running may have re-armed a channel
        self.prayer_wake.cancel()
        self.sync_wake.cancel()
        logger.info("Prayer widget engine stopped")

    def _enqueue_locked(self, sync: bool) -> Future | None:
        if self._stopped:
            return None
        self._pending_sync = self._pending_sync or sync
        if self._pending is None:
            self._pending = self._executor.submit(self._run_queued)
        return self._pending

    def _apply_settings(self, new_settings: Settings) -> None:
        with self._cycle_lock:
            old_key = _location_key(self.settings)
            settings_mod.save_settings(new_settings)
            self.settings = new_settings
            if _location_key(new_settings) != old_key:
                logger.info("Location changed, clearing cached prayer times")
                self.cache.clear()

    def _run_queued(self) -> str | None:
        with self._queue_lock:
            sync = self._pending_sync
            new_settings = self._pending_settings
            self._pending_sync = False
            self._pending_settings = None
            self._pending = None
        try:
            if new_settings is not None:
                self._apply_settings(new_settings)
            return self.refresh(sync=sync)
        except Exception:
            logger.exception("Refresh cycle failed")
            self.prayer_wake.arm(self.now() + SHORT_RETRY)
            return None

    # ── one cycle ───────────────────────────────────────────────────────

    def refresh(self, sync: bool = False) -> str:
        """Run one refresh cycle on the calling thread and return its outcome."""
        with self._cycle_lock:
            now = self.now()
            settings = self.settings
            times = None
            try:
                settings_mod.resolve_location(settings)
            except ConfigurationError as e:
                logger.info(f"Refresh skipped: {e}")
                self._render(settings, placeholder_state(LOCATION_REQUIRED))
                self.prayer_wake.arm(now + SHORT_RETRY)
                outcome = RefreshOutcome.NO_LOCATION
            else:
                if sync and not self.cache.sync_now():
                    self.cache.open_retry_window()
                    today = self.cache.get_today()
                    times = today.times if today is not None else None
                else:
                    times = self.cache.ensure_current_data()
                if times is None:
                    outcome = self._refresh_from_fallback(settings, now)
                else:
                    outcome = self._refresh_from_cache(settings, times, now)

            if times is not None and self.cache.retry_pending(now):
                # a sync is still owed: retry it on the midnight channel
                self.sync_wake.arm(now + SHORT_RETRY)
            else:
                self.sync_wake.arm(next_midnight(now))
            logger.info(f"Refresh cycle finished: {outcome}")
            return outcome

    def _refresh_from_cache(self, settings: Settings, times: PrayerTimes, now: datetime.datetime) -> str:
        state = derive(times, now)
        today = self.cache.get(now.date())
        tomorrow = self.cache.get(now.date() + datetime.timedelta(days=1))
        next_label = next_prayer_label(state.next)

        self._save_last_state(state.current, next_label, state.boundary)
        self._render(
            settings,
            live_state(state.current, next_label, date_footer(today, tomorrow, now), state.boundary, now),
        )
        if settings.notifications_enabled:
            self._maybe_notify(state, now)

        self.prayer_wake.arm(state.boundary - WAKE_LEAD)
        return RefreshOutcome.FRESH

    def _refresh_from_fallback(self, settings: Settings, now: datetime.datetime) -> str:
        last = self._load_last_state()
        if last is None:
            self._render(settings, placeholder_state(UNABLE_TO_LOAD))
            outcome = RefreshOutcome.UNAVAILABLE
        else:
            current, next_label, next_at = last
            self._render(settings, live_state(current, next_label, NO_DATE, next_at, now))
            outcome = RefreshOutcome.STALE

        if self.cache.retry_pending(now):
            self.prayer_wake.arm(now + SHORT_RETRY)
        else:
            # retry window used up: only the midnight sync retries now
            self.prayer_wake.cancel()
        return outcome

    def _maybe_notify(self, state, now: datetime.datetime) -> None:
        # same lead as derive: a wake just before a start counts as the start
        effective_now = now + BOUNDARY_LEAD
        due = due_prayer(state.starts, effective_now)
        if due is None:
            return
        name, start = due
        if self.gate.should_fire(name, start.date(), started_at=start, now=effective_now):
            logger.info(f"Notifying start of {name}")
            self._notify(name)

    def _render(self, settings: Settings, frame: RenderState) -> None:
        if not settings.widget_enabled:
            return
        self._renderer(frame)

    # ── last known state ────────────────────────────────────────────────

    def _save_last_state(self, current: str, next_label: str, next_at: datetime.datetime) -> None:
        self._last_state.write({
            "current": current,
            "next": next_label,
            "next_at": next_at.timestamp(),
        })

    def _load_last_state(self) -> tuple | None:
        data = self._last_state.read()
        current = data.get("current")
        next_label = data.get("next")
        next_at = data.get("next_at")
        if not isinstance(current, str) or not isinstance(next_label, str):
            return None
        if not isinstance(next_at, (int, float)) or next_at <= 0:
            return None
        return current, next_label, datetime.datetime.fromtimestamp(next_at, tz=datetime.timezone.utc)


def _location_key(settings: Settings) -> str | None:
    try:
        return settings_mod.resolve_location(settings).key
    except ConfigurationError:
        return None
