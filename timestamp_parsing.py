"""Timestamp normalization for spreadsheet sensor rows.

Sheets hand back timestamps in many shapes: GViz ``Date(y,M,d,h,mi,s)``
literals, ``dd/mm/yyyy hh.mm.ss`` strings typed by hand, spreadsheet serial
numbers, epoch numbers and ISO strings. Everything is converted to an
*instant*: an ``int`` count of milliseconds since 1970-01-01T00:00:00Z.

Values without an explicit offset are read as wall-clock time in the source's
``TimeZoneProfile``. Zones are fixed offsets (WIB, WITA) so no DST rules apply.
"""

from __future__ import annotations

import math
import re
import warnings
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from numbers import Real
from typing import Callable, Optional, Sequence, Tuple

import pandas as pd


@dataclass(frozen=True)
class TimeZoneProfile:
    """A named fixed UTC offset used to read or display local times."""

    name: str
    offset_minutes: int

    @property
    def offset_ms(self) -> int:
        return self.offset_minutes * 60_000

    @property
    def tzinfo(self) -> timezone:
        return timezone(timedelta(minutes=self.offset_minutes), self.name)


UTC = TimeZoneProfile("UTC", 0)
WIB = TimeZoneProfile("WIB", 7 * 60)
WITA = TimeZoneProfile("WITA", 8 * 60)

MS_PER_DAY = 86_400_000
EPOCH_MS_THRESHOLD = 1e11
EPOCH_SECONDS_THRESHOLD = 1e9

_EPOCH = datetime(1970, 1, 1)
_ONE_MS = timedelta(milliseconds=1)
# Spreadsheet day zero (serial 0) is 1899-12-30, not 1900-01-01.
SERIAL_EPOCH_MS = (datetime(1899, 12, 30) - _EPOCH) // _ONE_MS
# Keep a two day margin so any fixed offset still lands inside datetime's range.
MIN_INSTANT = (datetime.min - _EPOCH) // _ONE_MS + 2 * MS_PER_DAY
MAX_INSTANT = (datetime.max - _EPOCH) // _ONE_MS - 2 * MS_PER_DAY

# Appended to otherwise valid cells by a buggy upstream writer.
CORRUPTION_MARKER = "TDate"
TIME_ONLY_MAX_YEAR = 1900

_NUMERIC_TEXT_RE = re.compile(r"^[-+]?(?:\d+\.?\d*|\.\d+)$")
_GVIZ_DATE_RE = re.compile(
    r"Date\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)"
    r"(?:\s*,\s*(\d+))?(?:\s*,\s*(\d+))?(?:\s*,\s*(\d+))?(?:\s*,\s*(\d+))?\s*\)",
    re.IGNORECASE,
)
_DMY_RE = re.compile(
    r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{4}|\d{2})"
    r"(?:[ ,T]+(\d{1,2})[:.](\d{1,2})(?:[:.](\d{1,2}))?)?$"
)
_ISO_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}"
    r"(?:[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?)?"
    r"(?:Z|[+-]\d{2}:?\d{2})?$",
    re.IGNORECASE,
)


def _bounded(instant: Optional[int]) -> Optional[int]:
    if instant is None or instant < MIN_INSTANT or instant > MAX_INSTANT:
        return None
    return instant


def _from_local(moment: datetime, zone: TimeZoneProfile) -> int:
    """Return the instant of a naive wall-clock datetime read in ``zone``."""

    return (moment - _EPOCH) // _ONE_MS - zone.offset_ms


def _to_local(instant: int, zone: TimeZoneProfile) -> datetime:
    """Return the naive wall-clock datetime of ``instant`` in ``zone``."""

    return _EPOCH + timedelta(milliseconds=instant + zone.offset_ms)


def _local_instant(
    zone: TimeZoneProfile,
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0,
    millisecond: int = 0,
) -> Optional[int]:
    try:
        moment = datetime(year, month, day, hour, minute, second, millisecond * 1000)
    except (ValueError, OverflowError):
        return None
    return _from_local(moment, zone)


def _stamp_to_instant(stamp: pd.Timestamp, zone: TimeZoneProfile) -> Optional[int]:
    if stamp is pd.NaT or pd.isna(stamp):
        return None
    if stamp.tzinfo is None:
        return stamp.value // 1_000_000 - zone.offset_ms
    return stamp.tz_convert("UTC").value // 1_000_000


# ---------------------------------------------------------------------------
# Matchers, tried in priority order. Each returns (matched, instant).
# ---------------------------------------------------------------------------


def _from_number(value: float, zone: TimeZoneProfile = UTC) -> Optional[int]:
    if not math.isfinite(value):
        return None
    magnitude = abs(value)
    if magnitude > EPOCH_MS_THRESHOLD:
        return int(round(value))
    if magnitude > EPOCH_SECONDS_THRESHOLD:
        return int(round(value * 1000))
    # Serial days are wall-clock days in the source zone; epoch numbers are not.
    return SERIAL_EPOCH_MS + int(round(value * MS_PER_DAY)) - zone.offset_ms


def _match_numeric_text(text: str, zone: TimeZoneProfile) -> Tuple[bool, Optional[int]]:
    if not _NUMERIC_TEXT_RE.match(text):
        return False, None
    return True, _from_number(float(text), zone)


def _match_gviz_literal(text: str, zone: TimeZoneProfile) -> Tuple[bool, Optional[int]]:
    match = _GVIZ_DATE_RE.search(text)
    if not match:
        return False, None
    year, month0, day, hour, minute, second, millis = (
        int(part) if part is not None else 0 for part in match.groups()
    )
    # The literal's month is zero based.
    return True, _local_instant(zone, year, month0 + 1, day, hour, minute, second, millis)


def _match_day_first(text: str, zone: TimeZoneProfile) -> Tuple[bool, Optional[int]]:
    match = _DMY_RE.match(text)
    if not match:
        return False, None
    day, month, year_text, hour, minute, second = match.groups()
    year = int(year_text)
    if len(year_text) == 2:
        year += 2000
    return True, _local_instant(
        zone,
        year,
        int(month),
        int(day),
        int(hour or 0),
        int(minute or 0),
        int(second or 0),
    )


def _match_iso(text: str, zone: TimeZoneProfile) -> Tuple[bool, Optional[int]]:
    if not _ISO_RE.match(text):
        return False, None
    try:
        stamp = pd.Timestamp(text)
    except (ValueError, OverflowError):
        return True, None
    # ISO strings without an offset are UTC.
    return True, _stamp_to_instant(stamp, UTC)


def _match_native(text: str, zone: TimeZoneProfile) -> Tuple[bool, Optional[int]]:
    # Words like "now" or "today" would otherwise resolve to the fetch time.
    if not any(ch.isdigit() for ch in text):
        return True, None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            stamp = pd.to_datetime(text, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return True, None
    return True, _stamp_to_instant(stamp, zone)


TEXT_MATCHERS: Sequence[Callable[[str, TimeZoneProfile], Tuple[bool, Optional[int]]]] = (
    _match_numeric_text,
    _match_gviz_literal,
    _match_day_first,
    _match_iso,
    _match_native,
)


def strip_corruption(text: str) -> str:
    """Drop a trailing ``TDate...`` fragment left by the upstream writer."""

    index = text.find(CORRUPTION_MARKER)
    if index >= 0:
        text = text[:index]
    return text.strip()


def parse_timestamp(raw: object, source_zone: TimeZoneProfile = UTC) -> Optional[int]:
    """Return the instant (epoch ms) for a raw timestamp cell, or ``None``."""

    if raw is None or raw is pd.NaT or isinstance(raw, bool):
        return None

    if isinstance(raw, datetime):
        if raw.tzinfo is None:
            return _bounded(_from_local(raw, source_zone))
        return _bounded((raw - _EPOCH.replace(tzinfo=timezone.utc)) // _ONE_MS)
    if isinstance(raw, date):
        return _bounded(_local_instant(source_zone, raw.year, raw.month, raw.day))
    if isinstance(raw, Real):
        return _bounded(_from_number(float(raw), source_zone))

    text = strip_corruption(str(raw))
    if not text:
        return None

    for matcher in TEXT_MATCHERS:
        matched, instant = matcher(text, source_zone)
        if matched:
            return _bounded(instant)
    return None


def is_time_only(instant: int, zone: TimeZoneProfile = UTC) -> bool:
    """Return True for the spreadsheet's zero-date artifact (a bare clock time)."""

    return _to_local(instant, zone).year <= TIME_ONLY_MAX_YEAR


def combine_date_and_time(
    date_instant: int, time_instant: int, zone: TimeZoneProfile = UTC
) -> int:
    """Take the calendar day of ``date_instant`` and the clock of ``time_instant``."""

    day = _to_local(date_instant, zone)
    clock = _to_local(time_instant, zone)
    merged = day.replace(
        hour=clock.hour, minute=clock.minute, second=clock.second, microsecond=0
    )
    return _from_local(merged, zone)


def resolve_row_instant(
    date_raw: object, time_raw: object, zone: TimeZoneProfile = UTC
) -> Optional[int]:
    """Resolve a row's instant from a date column and a separate time column.

    When one side is a bare clock time, the full date comes from the other
    side and only hour/minute/second are borrowed. When both are full dates the
    time column wins because it holds the sheet's local reading. A lone bare
    clock time is not an instant.
    """

    date_instant = parse_timestamp(date_raw, zone)
    time_instant = parse_timestamp(time_raw, zone)

    if date_instant is not None and time_instant is not None:
        date_partial = is_time_only(date_instant, zone)
        time_partial = is_time_only(time_instant, zone)
        if date_partial and time_partial:
            return None
        if date_partial:
            return combine_date_and_time(time_instant, date_instant, zone)
        if time_partial:
            return combine_date_and_time(date_instant, time_instant, zone)
        return time_instant

    single = date_instant if date_instant is not None else time_instant
    if single is None or is_time_only(single, zone):
        return None
    return single


def format_instant(instant: int, zone: TimeZoneProfile = UTC) -> str:
    """Return the display string ``D/M/YYYY, HH.MM.SS`` in ``zone``."""

    local = _to_local(instant, zone)
    return f"{local.day}/{local.month}/{local.year}, {local:%H.%M.%S}"


def format_iso(instant: int, zone: TimeZoneProfile = UTC) -> str:
    local = _to_local(instant, zone).replace(tzinfo=zone.tzinfo)
    return local.isoformat(timespec="seconds")


def day_bounds(instant: int, zone: TimeZoneProfile = UTC) -> Tuple[int, int]:
    """Return ``(start, end)`` instants of the local day containing ``instant``."""

    local = _to_local(instant, zone)
    start = _from_local(datetime(local.year, local.month, local.day), zone)
    return start, start + MS_PER_DAY


__all__ = [
    "TimeZoneProfile",
    "UTC",
    "WIB",
    "WITA",
    "MS_PER_DAY",
    "SERIAL_EPOCH_MS",
    "parse_timestamp",
    "strip_corruption",
    "is_time_only",
    "combine_date_and_time",
    "resolve_row_instant",
    "format_instant",
    "format_iso",
    "day_bounds",
]
