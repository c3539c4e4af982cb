"""Wake-up channels: one pending callback per channel, fired at or after an instant."""

import datetime
import logging
import threading

from prayerwidget.errors import ScheduleFailed

logger = logging.getLogger(__name__)

MIN_DELAY = datetime.timedelta(seconds=1)
EXACT_POLL = 30.0  # seconds between wall-clock checks
INEXACT_POLL = 60.0


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class _WakeTimer(threading.Thread):
    """
    Waits for a wall-clock instant in bounded slices so that time spent
    suspended is noticed on the next slice instead of delaying the wake.
    """

    def __init__(self, name: str, when: datetime.datetime, callback, now_provider, poll: float, exact: bool):
        super().__init__(name=f"wake-{name}", daemon=True)
        self.when = when
        self._callback = callback
        self._now = now_provider
        self._poll = poll
        self._exact = exact
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def run(self) -> None:
        while not self._cancelled.is_set():
            remaining = (self.when - self._now()).total_seconds()
            if remaining <= 0:
                break
            # an inexact wake only looks at the clock once per poll slice
            self._cancelled.wait(min(remaining, self._poll) if self._exact else self._poll)
        if self._cancelled.is_set():
            return
        try:
            self._callback()
        except Exception:
            logger.exception(f"Wake-up callback on {self.name} failed")


class WakeScheduler:
    """
    A single wake-up channel.

    arm() replaces any pending wake-up with one at the given instant,
    clamped to at least one second from now. When exact wake-ups are not
    allowed the channel degrades to an inexact one.
    """

    def __init__(self, channel: str, callback, now_provider=_utcnow, allow_exact: bool = True):
        self.channel = channel
        self._callback = callback
        self._now = now_provider
        self.allow_exact = allow_exact
        self._timer = None
        self._lock = threading.Lock()

    @property
    def armed_at(self) -> datetime.datetime | None:
        timer = self._timer
        if timer is None or not timer.is_alive():
            return None
        return timer.when

    def arm(self, when: datetime.datetime) -> datetime.datetime:
        earliest = self._now() + MIN_DELAY
        if when < earliest:
            when = earliest
        with self._lock:
            self._cancel_locked()
            try:
                self._timer = self._start(when, exact=True)
            except ScheduleFailed as e:
                logger.warning(f"Exact wake-up refused on {self.channel} ({e}), using inexact wake-up")
                self._timer = self._start(when, exact=False)
        logger.info(f"Armed {self.channel} wake-up for {when.isoformat()}")
        return when

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _start(self, when: datetime.datetime, exact: bool) -> _WakeTimer:
        if exact and not self.allow_exact:
            raise ScheduleFailed("exact wake-ups are not permitted")
        timer = _WakeTimer(
            self.channel,
            when,
            self._callback,
            self._now,
            EXACT_POLL if exact else INEXACT_POLL,
            exact,
        )
        timer.start()
        return timer
