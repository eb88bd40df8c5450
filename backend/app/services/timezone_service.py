"""
Centralized timezone handling for private sessions.

Rules:
- A session's date/start/end are wall-clock values in the session timezone
  (the coach's availability timezone).
- Comparisons against "now" happen in UTC.
- Display strings are rendered in the viewer's timezone, never the actor's.
"""

from datetime import date, datetime, time, timezone
from typing import Optional

import pytz

from ..core.config import settings


class TimezoneService:
    """Handles all timezone conversions consistently."""

    DEFAULT_TIMEZONE = "America/Vancouver"

    @staticmethod
    def default_timezone() -> str:
        return settings.default_timezone or TimezoneService.DEFAULT_TIMEZONE

    @staticmethod
    def get_timezone(tz_str: Optional[str]) -> pytz.BaseTzInfo:
        """Get timezone object, with fallback to default."""
        try:
            return pytz.timezone(tz_str or TimezoneService.default_timezone())
        except pytz.UnknownTimeZoneError:
            return pytz.timezone(TimezoneService.default_timezone())

    @staticmethod
    def localize(session_date: date, wall_time: time, timezone_str: Optional[str]) -> datetime:
        """
        Attach a timezone to a wall-clock value using the rules valid on that date.

        Ambiguous times (fall back) take the first occurrence. Nonexistent
        times (spring forward gap) are shifted forward by the gap length.
        """
        tz = TimezoneService.get_timezone(timezone_str)
        naive_dt = datetime.combine(
            session_date, wall_time
        )  # utc-naive-ok: Intentionally naive for pytz.localize()

        try:
            return tz.localize(naive_dt, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            return tz.localize(naive_dt, is_dst=True)
        except pytz.exceptions.NonExistentTimeError:
            # Standard-time offset then normalize: 02:30 in the gap becomes 03:30 DST
            return tz.normalize(tz.localize(naive_dt, is_dst=False))

    @staticmethod
    def local_to_utc(session_date: date, wall_time: time, timezone_str: Optional[str]) -> datetime:
        """Convert local date/time to UTC."""
        return TimezoneService.localize(session_date, wall_time, timezone_str).astimezone(
            timezone.utc
        )

    @staticmethod
    def is_past(
        session_date: date,
        wall_time: time,
        timezone_str: Optional[str],
        now: Optional[datetime] = None,
    ) -> bool:
        """Check if a wall-clock time in ``timezone_str`` is already behind ``now``."""
        now_utc = now or datetime.now(timezone.utc)
        if now_utc.tzinfo is None:
            now_utc = now_utc.replace(tzinfo=timezone.utc)
        return TimezoneService.local_to_utc(session_date, wall_time, timezone_str) < now_utc

    @staticmethod
    def format_session_range(
        session_date: date,
        start_time: time,
        end_time: time,
        source_timezone: Optional[str],
        viewer_timezone: Optional[str],
    ) -> str:
        """
        Render a session range for one viewer.

        Returns: e.g., "2026-01-06 16:00-17:00 PST"

        When source and viewer zones match, the stored wall-clock values are
        printed as-is. Otherwise both ends are converted with the offsets in
        force on ``session_date``, so the output date follows the viewer's
        calendar.
        """
        source_tz = TimezoneService.get_timezone(source_timezone)
        viewer_tz = TimezoneService.get_timezone(viewer_timezone)

        if source_tz.zone == viewer_tz.zone:
            end_local = TimezoneService.localize(session_date, end_time, source_tz.zone)
            return (
                f"{session_date.isoformat()} {start_time.strftime('%H:%M')}-"
                f"{end_time.strftime('%H:%M')} {end_local.strftime('%Z')}"
            )

        start_local = TimezoneService.localize(session_date, start_time, source_tz.zone)
        end_local = TimezoneService.localize(session_date, end_time, source_tz.zone)
        start_viewer = start_local.astimezone(viewer_tz)
        end_viewer = end_local.astimezone(viewer_tz)
        return (
            f"{start_viewer.strftime('%Y-%m-%d %H:%M')}-"
            f"{end_viewer.strftime('%H:%M %Z')}"
        )
