"""What the engine hands to a display surface."""

import datetime
import logging
import time
from dataclasses import dataclass

from prayerwidget.prayer_state import format_countdown

logger = logging.getLogger(__name__)

NO_NEXT_PRAYER = "next prayer: --"
NO_DATE = "--, --"
NO_COUNTDOWN = "--:--:--"
ZERO_COUNTDOWN = "00:00:00"
LOCATION_REQUIRED = "location required"
UNABLE_TO_LOAD = "unable to load"


def next_prayer_label(prayer_name: str) -> str:
    return f"next prayer: {prayer_name}"


@dataclass(frozen=True)
class RenderState:
    """
    One frame for the display.

    Either countdown_text is a fixed string (or None for no countdown), or
    the countdown is live: countdown_until is the target instant and
    monotonic_base the time.monotonic() value at which it reaches zero.
    """

    current_label: str
    next_label: str
    date_text: str
    countdown_text: str | None = None
    countdown_until: datetime.datetime | None = None
    monotonic_base: float | None = None

    @property
    def is_live(self) -> bool:
        return self.monotonic_base is not None

    def countdown_at(self, monotonic_now: float | None = None) -> str:
        """Countdown text for a display tick; never negative."""
        if self.monotonic_base is None:
            return self.countdown_text or NO_COUNTDOWN
        if monotonic_now is None:
            monotonic_now = time.monotonic()
        return format_countdown(self.monotonic_base - monotonic_now)


def live_state(current_label: str, next_label: str, date_text: str,
               until: datetime.datetime, now: datetime.datetime) -> RenderState:
    """A RenderState counting down to until; pinned at zero once it has passed."""
    remaining = (until - now).total_seconds()
    if remaining <= 0:
        return RenderState(current_label, next_label, date_text, countdown_text=ZERO_COUNTDOWN)
    return RenderState(
        current_label,
        next_label,
        date_text,
        countdown_until=until,
        monotonic_base=time.monotonic() + remaining,
    )


def placeholder_state(label: str) -> RenderState:
    return RenderState(label, NO_NEXT_PRAYER, NO_DATE)


class LogRenderer:
    """Writes each frame to the log; used when no display is attached."""

    def __call__(self, state: RenderState) -> None:
        logger.info(
            f"{state.current_label} | {state.next_label} | "
            f"{state.countdown_at()} | {state.date_text}"
        )
