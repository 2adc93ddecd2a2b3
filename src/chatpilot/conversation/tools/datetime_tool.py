"""
Date/time entry point.

Returns the current date and time, optionally in a named IANA timezone. It
needs no external API, which makes it a convenient default entry point for the
command-line client and for trying out function calling against a new model.

``DateTimeTool.as_annotated_function()`` returns an ``AnnotatedFunction``
ready for ``EntryPointRegistry.register()``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from chatpilot.conversation.functions import AnnotatedFunction, ArgumentAnnotation

logger = logging.getLogger(__name__)


class DateTimeTool:
    """Reports the current date and time."""

    NAME = "get_current_datetime"
    DESCRIPTION = (
        "Get the current date and time. "
        "Returns the date, time, day of the week, and Unix timestamp. "
        "Optionally accepts an IANA timezone name such as "
        "'America/New_York' or 'Europe/London'; defaults to UTC."
    )

    def as_annotated_function(self) -> AnnotatedFunction:
        """Return this tool as an ``AnnotatedFunction``."""
        return AnnotatedFunction(
            name=self.NAME,
            description=self.DESCRIPTION,
            argument_annotations=[
                ArgumentAnnotation(
                    name="timezone",
                    required=False,
                    schema={
                        "type": "string",
                        "description": (
                            "IANA timezone name, e.g. 'America/Chicago', "
                            "'Europe/Paris', 'Asia/Tokyo'. Omit for UTC."
                        ),
                    },
                )
            ],
            implementation=self.get_datetime,
        )

    def get_datetime(self, timezone_name: str | None = None) -> dict[str, Any]:
        """Return the current date and time.

        Args:
            timezone_name: IANA timezone name. ``None`` or ``""`` means UTC.

        Returns:
            A dict with ``datetime_iso``, ``date``, ``time``, ``timezone``,
            ``day_of_week`` and ``unix_timestamp``, plus ``error`` when the
            timezone was unknown and UTC was used instead.
        """
        tz, tz_error = self._resolve_timezone(timezone_name)
        now = datetime.now(tz=tz)

        result: dict[str, Any] = {
            "datetime_iso": now.isoformat(timespec="seconds"),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "timezone": str(tz),
            "day_of_week": now.strftime("%A"),
            "unix_timestamp": int(now.timestamp()),
        }
        if tz_error:
            result["error"] = tz_error
        return result

    def _resolve_timezone(self, timezone_name: str | None) -> tuple[Any, str | None]:
        if not timezone_name:
            return timezone.utc, None
        try:
            return ZoneInfo(timezone_name), None
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone: %r; falling back to UTC", timezone_name)
            return timezone.utc, f"Unknown timezone {timezone_name!r}; showing UTC instead."
