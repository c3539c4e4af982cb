"""User settings, location resolution and device location detection."""

import dataclasses
import datetime
import json
import logging
import os
from dataclasses import dataclass

import pytz
import requests

from prayerwidget.errors import ConfigurationError

logger = logging.getLogger(__name__)

IPAPI_URL = "http://ip-api.com/json/"

CONFIG_DIR = os.path.join(os.path.expanduser("~"), ".prayerwidget")
SETTINGS_FILE = os.path.join(CONFIG_DIR, "settings.json")

# Aladhan method 1 = University of Islamic Sciences, Karachi
CALCULATION_METHOD = 1

# Aladhan Asr juristic school: 0 = Shafi (standard shadow), 1 = Hanafi
SCHOOLS = ((0, "Shafi"), (1, "Hanafi"))


@dataclass(frozen=True)
class Settings:
    city: str = ""
    country: str = ""
    latitude: float | None = None
    longitude: float | None = None
    use_device_location: bool = True
    school: int = 1
    notifications_enabled: bool = False
    widget_enabled: bool = True
    timezone: str | None = None

    def has_location(self) -> bool:
        has_coordinates = self.latitude is not None and self.longitude is not None
        has_city = bool(self.city.strip()) and bool(self.country.strip())
        return has_coordinates or has_city


@dataclass(frozen=True)
class LocationSpec:
    """A fully resolved provider location: coordinates or city/country."""

    latitude: float | None = None
    longitude: float | None = None
    city: str | None = None
    country: str | None = None
    school: int = 1
    method: int = CALCULATION_METHOD

    @property
    def uses_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def key(self) -> str:
        """Identity used to tie cached days to this location."""
        if self.uses_coordinates:
            place = f"{self.latitude:.4f},{self.longitude:.4f}"
        else:
            place = f"{self.city}|{self.country}".lower()
        return f"{place}|m{self.method}|s{self.school}"


def resolve_location(settings: Settings) -> LocationSpec:
    """
    Pick the authoritative location form for the provider.

    Coordinates are used when device location is enabled and both are known;
    otherwise city/country. Raises ConfigurationError when neither is usable.
    """
    if not settings.has_location():
        raise ConfigurationError("No location configured")
    if settings.use_device_location and settings.latitude is not None and settings.longitude is not None:
        return LocationSpec(
            latitude=float(settings.latitude),
            longitude=float(settings.longitude),
            school=settings.school,
        )
    if settings.city.strip() and settings.country.strip():
        return LocationSpec(
            city=settings.city.strip(),
            country=settings.country.strip(),
            school=settings.school,
        )
    return LocationSpec(
        latitude=float(settings.latitude),
        longitude=float(settings.longitude),
        school=settings.school,
    )


def get_timezone(settings: Settings) -> datetime.tzinfo:
    """Return the configured pytz zone, or the system local zone."""
    if settings.timezone:
        try:
            return pytz.timezone(settings.timezone)
        except pytz.UnknownTimeZoneError:
            logger.warning(f"Unknown timezone {settings.timezone!r}, using system local time")
    return datetime.datetime.now().astimezone().tzinfo


def load_settings() -> Settings:
    """Load settings from the config file; defaults if missing or invalid."""
    if not os.path.isfile(SETTINGS_FILE):
        return Settings()
    try:
        with open(SETTINGS_FILE, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read settings, using defaults: {e}")
        return Settings()
    if not isinstance(data, dict):
        return Settings()
    known = {field.name for field in dataclasses.fields(Settings)}
    settings = Settings(**{k: v for k, v in data.items() if k in known})
    if settings.school not in dict(SCHOOLS):
        logger.warning(f"Unknown Asr school {settings.school!r}, using the default")
        settings = dataclasses.replace(settings, school=Settings.school)
    return settings


def save_settings(settings: Settings) -> None:
    """Save settings to the config file, trimming city and country."""
    settings = dataclasses.replace(
        settings,
        city=settings.city.strip(),
        country=settings.country.strip(),
    )
    if settings.latitude is None or settings.longitude is None:
        settings = dataclasses.replace(settings, latitude=None, longitude=None)
    os.makedirs(CONFIG_DIR, exist_ok=True)
    with open(SETTINGS_FILE, "w", encoding="utf-8") as f:
        json.dump(dataclasses.asdict(settings), f, indent=2)


def detect_device_location(timeout: int = 5) -> dict | None:
    """
    Detect the current location via IP geolocation.

    Returns a dict with: city, country, latitude, longitude, timezone,
    or None when the lookup fails.
    """
    try:
        resp = requests.get(
            IPAPI_URL,
            params={"fields": "city,country,lat,lon,timezone,status,message"},
            timeout=timeout,
        )
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"Device location lookup failed: {e}")
        return None
    if data.get("status") != "success":
        logger.warning(f"Device location lookup refused: {data.get('message')}")
        return None
    try:
        return {
            "city": data.get("city", ""),
            "country": data.get("country", ""),
            "latitude": float(data["lat"]),
            "longitude": float(data["lon"]),
            "timezone": data.get("timezone"),
        }
    except (KeyError, TypeError, ValueError):
        return None


def with_detected_location(settings: Settings) -> Settings:
    """Fill in coordinates from IP geolocation when device location is on."""
    if not settings.use_device_location:
        return settings
    if settings.latitude is not None and settings.longitude is not None:
        return settings
    detected = detect_device_location()
    if detected is None:
        return settings
    return dataclasses.replace(
        settings,
        latitude=detected["latitude"],
        longitude=detected["longitude"],
        city=settings.city or detected["city"],
        country=settings.country or detected["country"],
        timezone=settings.timezone or detected["timezone"],
    )
