"""Fetch daily prayer times and calendar labels from the Aladhan API."""

import datetime
import logging
from dataclasses import dataclass

import requests

from prayerwidget.errors import FetchFailed
from prayerwidget.settings import LocationSpec

logger = logging.getLogger(__name__)

ALADHAN_BASE = "https://api.aladhan.com/v1"
REQUEST_TIMEOUT = 15  # seconds, connect and read

PRAYER_NAMES = ["Fajr", "Dhuhr", "Asr", "Maghrib", "Isha"]


@dataclass(frozen=True)
class PrayerTimes:
    fajr: datetime.time
    dhuhr: datetime.time
    asr: datetime.time
    maghrib: datetime.time
    isha: datetime.time
    sunrise: datetime.time | None = None

    def starts(self) -> list:
        """(name, time-of-day) pairs in prayer order."""
        return [
            ("Fajr", self.fajr),
            ("Dhuhr", self.dhuhr),
            ("Asr", self.asr),
            ("Maghrib", self.maghrib),
            ("Isha", self.isha),
        ]


@dataclass(frozen=True)
class PrayerDay:
    times: PrayerTimes
    hijri_label: str
    gregorian_label: str


def parse_time(value: str) -> datetime.time:
    """Parse an 'H:mm' provider value, dropping any trailing ' (TZ)' text."""
    if not isinstance(value, str):
        raise TypeError(f"Expected a time string, got {value!r}")
    normalized = value.split(" ")[0].strip()
    return datetime.datetime.strptime(normalized, "%H:%M").time()


def build_request(day: datetime.date, location: LocationSpec) -> tuple:
    """Return (url, params) for one provider call."""
    date_str = day.strftime("%d-%m-%Y")
    params = {"method": location.method, "school": location.school}
    if location.uses_coordinates:
        params.update(latitude=location.latitude, longitude=location.longitude)
        return f"{ALADHAN_BASE}/timings/{date_str}", params
    params.update(city=location.city, country=location.country)
    return f"{ALADHAN_BASE}/timingsByCity/{date_str}", params


def parse_prayer_day(body: dict) -> PrayerDay:
    """
    Build a PrayerDay from a decoded Aladhan response.

    Raises KeyError, TypeError or ValueError when a required field is
    missing or malformed.
    """
    if not isinstance(body, dict):
        raise ValueError(f"Expected a JSON object, got {type(body).__name__}")
    if body.get("code", 200) != 200:
        raise ValueError(f"Aladhan API error: {body.get('status')}")

    data = body["data"]
    timings = data["timings"]
    times = PrayerTimes(
        fajr=parse_time(timings["Fajr"]),
        dhuhr=parse_time(timings["Dhuhr"]),
        asr=parse_time(timings["Asr"]),
        maghrib=parse_time(timings["Maghrib"]),
        isha=parse_time(timings["Isha"]),
        sunrise=parse_time(timings["Sunrise"]) if timings.get("Sunrise") else None,
    )

    hijri = data["date"]["hijri"]
    gregorian = data["date"]["gregorian"]
    return PrayerDay(
        times=times,
        hijri_label=f"{hijri['day']} {hijri['month']['en']} {hijri['year']} AH",
        gregorian_label=f"{gregorian['day']} {gregorian['month']['en']} {gregorian['year']}",
    )


def fetch_prayer_day(day: datetime.date, location: LocationSpec, timeout: int = REQUEST_TIMEOUT) -> PrayerDay:
    """
    Fetch prayer times and calendar labels for one date and location.

    Every failure (network, timeout, bad status, malformed payload) is
    raised as FetchFailed; there are no partial results.
    """
    url, params = build_request(day, location)
    try:
        resp = requests.get(url, params=params, timeout=timeout)
        resp.raise_for_status()
        return parse_prayer_day(resp.json())
    except requests.RequestException as e:
        logger.warning(f"Prayer times request for {day.isoformat()} failed: {e}")
        raise FetchFailed(f"Request for {day.isoformat()} failed") from e
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed prayer times for {day.isoformat()}: {e!r}")
        raise FetchFailed(f"Malformed response for {day.isoformat()}") from e
