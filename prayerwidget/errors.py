"""Error types raised by the prayer widget engine."""


class PrayerWidgetError(Exception):
    """Base class for engine errors."""


class ConfigurationError(PrayerWidgetError):
    """No usable location is configured."""


class FetchFailed(PrayerWidgetError):
    """The provider could not be reached or returned an unusable payload."""


class ScheduleFailed(PrayerWidgetError):
    """The host refused to arm an exact wake-up."""
