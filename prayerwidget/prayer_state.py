"""
Current/next prayer derivation.

A pure mapping from a day's prayer times and "now" to the prayer window
that contains now, the next prayer and the instant the window ends. Both
the refresh cycle and the live display read their countdown from here.
"""

import datetime
from dataclasses import dataclass

from prayerwidget.prayer_api import PrayerDay, PrayerTimes

# A boundary closer than this to "now" is treated as already crossed.
BOUNDARY_LEAD = datetime.timedelta(seconds=1)


@dataclass(frozen=True)
class PrayerState:
    current: str
    next: str
    boundary: datetime.datetime
    countdown: datetime.timedelta
    starts: tuple  # ((name, start instant), ...) for the five prayers of today

    @property
    def countdown_text(self) -> str:
        return format_countdown(self.countdown)


def format_countdown(remaining) -> str:
    """Format a timedelta or a number of seconds as HH:MM:SS, floored at zero."""
    if isinstance(remaining, datetime.timedelta):
        remaining = remaining.total_seconds()
    seconds = max(0, int(remaining))
    h = seconds // 3600
    m = (seconds % 3600) // 60
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:02d}"


def combine(day: datetime.date, time_of_day: datetime.time, tz=None) -> datetime.datetime:
    """Build a datetime for day at time_of_day in tz (pytz zones are localized)."""
    naive = datetime.datetime.combine(day, time_of_day)
    if tz is None:
        return naive
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def next_midnight(now: datetime.datetime) -> datetime.datetime:
    """Start of the calendar day after now, in now's time zone."""
    tomorrow = now.date() + datetime.timedelta(days=1)
    return combine(tomorrow, datetime.time(0, 0), now.tzinfo)


def derive(times: PrayerTimes, now: datetime.datetime) -> PrayerState:
    """
    Map now onto the prayer window table.

    Before Fajr the current prayer is (yesterday's) Isha. After Isha the
    boundary is tomorrow's Fajr, built from today's Fajr time-of-day.
    """
    today = now.date()
    tz = now.tzinfo
    starts = tuple((name, combine(today, t, tz)) for name, t in times.starts())
    tomorrow_fajr = combine(today + datetime.timedelta(days=1), times.fajr, tz)

    effective_now = now + BOUNDARY_LEAD
    current, nxt, boundary = "Isha", "Fajr", tomorrow_fajr
    previous = "Isha"
    for name, start in starts:
        if effective_now < start:
            current, nxt, boundary = previous, name, start
            break
        previous = name

    countdown = max(datetime.timedelta(0), boundary - now)
    countdown = datetime.timedelta(seconds=int(countdown.total_seconds()))
    return PrayerState(
        current=current,
        next=nxt,
        boundary=boundary,
        countdown=countdown,
        starts=starts,
    )


def date_footer(today: PrayerDay | None, tomorrow: PrayerDay | None, now: datetime.datetime) -> str:
    """
    '<hijri>, <gregorian>' for the display footer.

    The Hijri day begins at Maghrib, so from Maghrib onward tomorrow's
    Hijri label is shown when it is cached.
    """
    if today is None:
        return "--, --"
    maghrib = combine(now.date(), today.times.maghrib, now.tzinfo)
    hijri = today.hijri_label
    if now >= maghrib and tomorrow is not None:
        hijri = tomorrow.hijri_label
    return f"{hijri}, {today.gregorian_label}"
