"""Prayer-start desktop notifications and the once-per-prayer dedup gate."""

import datetime
import logging
import os

from plyer import notification as plyer_notification

from prayerwidget import settings as settings_mod
from prayerwidget.store import JsonStore

logger = logging.getLogger(__name__)

APP_NAME = "Prayer Widget"
APP_ICON = ""  # Path to icon file; empty = default

NOTIFY_WINDOW = datetime.timedelta(minutes=2)


def _send_plyer(title: str, message: str, timeout: int = 10) -> bool:
    """Send a desktop notification via plyer (cross-platform)."""
    kwargs = dict(
        app_name=APP_NAME,
        title=title,
        message=message,
        timeout=timeout,
    )
    if APP_ICON:
        kwargs["app_icon"] = APP_ICON
    try:
        plyer_notification.notify(**kwargs)
    except Exception as e:
        # plyer raises NotImplementedError or backend errors without a notifier
        logger.warning(f"Desktop notification failed: {e!r}")
        return False
    return True


def notify_prayer_start(prayer_name: str, callback=None) -> None:
    """Notify that a prayer has started. Optionally calls callback(title, message)."""
    title = "Prayer time"
    message = f"{prayer_name} has started"
    _send_plyer(title, message, timeout=30)
    if callback:
        callback(title, message)


def notification_key(day, prayer_name: str) -> str:
    day_str = day.isoformat() if hasattr(day, "isoformat") else str(day)
    return f"{day_str}-{prayer_name}"


def due_prayer(starts, now: datetime.datetime) -> tuple | None:
    """First (name, start) whose notification window contains now."""
    for name, start in starts:
        since_start = now - start
        if datetime.timedelta(0) <= since_start < NOTIFY_WINDOW:
            return name, start
    return None


class NotificationGate:
    """
    Persists the key of the last notification so each prayer fires at
    most once per calendar day, however often the refresh cycle runs.
    """

    def __init__(self, state_dir=None):
        state_dir = state_dir or settings_mod.CONFIG_DIR
        self._store = JsonStore(os.path.join(state_dir, "notification.json"))

    @property
    def last_fired_key(self) -> str:
        return self._store.read().get("last_fired_key", "")

    def should_fire(self, prayer_name: str, day, started_at=None, now=None) -> bool:
        """
        Claim the notification for prayer_name on day.

        Returns True at most once per key; the key is recorded before
        returning True. With started_at, only a now inside the two minutes
        after the start qualifies; a missed window is not fired late.
        """
        if started_at is not None:
            if now is None:
                now = datetime.datetime.now(started_at.tzinfo)
            since_start = now - started_at
            if since_start < datetime.timedelta(0) or since_start >= NOTIFY_WINDOW:
                return False
        key = notification_key(day, prayer_name)
        if key == self.last_fired_key:
            return False
        self._store.write({"last_fired_key": key})
        return True
