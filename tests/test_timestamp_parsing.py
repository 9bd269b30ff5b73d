import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from timestamp_parsing import (
    MS_PER_DAY,
    SERIAL_EPOCH_MS,
    UTC,
    WIB,
    WITA,
    combine_date_and_time,
    day_bounds,
    format_instant,
    format_iso,
    is_time_only,
    parse_timestamp,
    resolve_row_instant,
)


def utc_ms(*parts: int) -> int:
    return int(datetime(*parts, tzinfo=timezone.utc).timestamp() * 1000)


def test_epoch_milliseconds_are_identity() -> None:
    for t in (100_000_000_001, 1_725_387_172_000, 1_756_923_172_123):
        assert parse_timestamp(t) == t
        assert parse_timestamp(t, WIB) == t


def test_epoch_seconds_are_scaled() -> None:
    assert parse_timestamp(1_725_387_172) == 1_725_387_172_000


def test_serial_day_zero_matches_gviz_literal() -> None:
    assert parse_timestamp(0) == SERIAL_EPOCH_MS
    assert parse_timestamp(0) == parse_timestamp("Date(1899,11,30,0,0,0)")
    assert parse_timestamp(0.5) == SERIAL_EPOCH_MS + MS_PER_DAY // 2
    assert parse_timestamp(0, WIB) == parse_timestamp("Date(1899,11,30,0,0,0)", WIB)
    assert parse_timestamp("0", WITA) == parse_timestamp("Date(1899,11,30,0,0,0)", WITA)


def test_serial_date_with_fraction() -> None:
    # 45904 is 2025-09-04; .25 of a day is 06:00.
    assert parse_timestamp(45904.25) == utc_ms(2025, 9, 4, 6, 0, 0)
    assert parse_timestamp("45904.25") == utc_ms(2025, 9, 4, 6, 0, 0)
    assert parse_timestamp(45904.25, WIB) == utc_ms(2025, 9, 3, 23, 0, 0)
    # Epoch numbers already carry their own basis.
    assert parse_timestamp(1_725_387_172, WIB) == 1_725_387_172_000


def test_gviz_literal_is_zero_based_and_local_to_source_zone() -> None:
    assert parse_timestamp("Date(2025,8,4,1,12,52)", WIB) == utc_ms(2025, 9, 3, 18, 12, 52)
    assert parse_timestamp("Date(2025,8,4,1,12,52)", WITA) == utc_ms(2025, 9, 3, 17, 12, 52)
    assert parse_timestamp("Date(2025,0,31)", UTC) == utc_ms(2025, 1, 31)


def test_gviz_literal_with_invalid_calendar_date_is_rejected() -> None:
    assert parse_timestamp("Date(2025,1,30,0,0,0)") is None


def test_day_first_strings_with_mixed_time_separators() -> None:
    expected = utc_ms(2025, 9, 3, 18, 12, 52)
    assert parse_timestamp("04/09/2025 1.12.52", WIB) == expected
    assert parse_timestamp("04-09-2025 01:12:52", WIB) == expected
    assert parse_timestamp("4/9/25 1.12.52", WIB) == expected
    assert parse_timestamp("04/09/2025", WIB) == utc_ms(2025, 9, 3, 17, 0, 0)


def test_iso_strings_carry_their_own_offset() -> None:
    assert parse_timestamp("2025-09-04T01:12:52+07:00", WITA) == utc_ms(2025, 9, 3, 18, 12, 52)
    assert parse_timestamp("2025-09-03T18:12:52Z", WIB) == utc_ms(2025, 9, 3, 18, 12, 52)
    # Offset-less ISO is UTC whatever the source zone.
    assert parse_timestamp("2025-09-03T18:12:52", WIB) == utc_ms(2025, 9, 3, 18, 12, 52)


def test_corruption_suffix_is_stripped() -> None:
    assert parse_timestamp("2025-09-03T18:12:52ZTDate(2025,8,4)") == utc_ms(2025, 9, 3, 18, 12, 52)
    assert parse_timestamp("04/09/2025 1.12.52TDate", WIB) == utc_ms(2025, 9, 3, 18, 12, 52)


def test_native_fallback_reads_in_source_zone() -> None:
    assert parse_timestamp("Sep 4 2025 01:12:52", WIB) == utc_ms(2025, 9, 3, 18, 12, 52)


def test_unparseable_values_return_none() -> None:
    for raw in (None, "", "   ", "not a date", "now", True, float("nan"), "TDate(2025)"):
        assert parse_timestamp(raw) is None


def test_datetime_objects_are_accepted() -> None:
    aware = datetime(2025, 9, 3, 18, 12, 52, tzinfo=timezone.utc)
    naive = datetime(2025, 9, 4, 1, 12, 52)
    assert parse_timestamp(aware, WIB) == utc_ms(2025, 9, 3, 18, 12, 52)
    assert parse_timestamp(naive, WIB) == utc_ms(2025, 9, 3, 18, 12, 52)


def test_time_only_values_are_detected() -> None:
    clock = parse_timestamp("Date(1899,11,30,13,5,0)", WIB)
    assert clock is not None
    assert is_time_only(clock, WIB)
    assert not is_time_only(parse_timestamp("Date(2025,8,4)", WIB), WIB)


def test_combine_borrows_only_the_clock() -> None:
    day = parse_timestamp("Date(2025,8,4,23,59,59)", WIB)
    clock = parse_timestamp("Date(1899,11,30,1,12,52)", WIB)
    assert combine_date_and_time(day, clock, WIB) == utc_ms(2025, 9, 3, 18, 12, 52)


def test_resolve_row_instant_policies() -> None:
    expected = utc_ms(2025, 9, 3, 18, 12, 52)
    # full date in the date column, clock in the time column
    assert resolve_row_instant("Date(2025,8,4)", "Date(1899,11,30,1,12,52)", WIB) == expected
    # and the other way round
    assert resolve_row_instant("Date(1899,11,30,1,12,52)", "04/09/2025", WIB) == expected
    # both full: the time column wins
    assert resolve_row_instant("Date(2025,8,1)", "Date(2025,8,4,1,12,52)", WIB) == expected
    # a serial clock time borrows only its wall-clock hours
    noon = utc_ms(2025, 9, 4, 5, 0, 0)
    assert resolve_row_instant("Date(2025,8,4)", 0.5, WIB) == noon
    assert format_instant(resolve_row_instant("04/09/2025", "0.5", WIB), WIB) == "4/9/2025, 12.00.00"
    # a lone clock time is not an instant
    assert resolve_row_instant(None, "Date(1899,11,30,1,12,52)", WIB) is None
    assert resolve_row_instant("Date(1899,11,30,1,0,0)", "Date(1899,11,30,2,0,0)", WIB) is None
    assert resolve_row_instant("Date(2025,8,4,1,12,52)", "", WIB) == expected
    assert resolve_row_instant(None, None, WIB) is None


def test_display_formatting_in_target_zone() -> None:
    instant = utc_ms(2025, 9, 3, 18, 12, 52)
    assert format_instant(instant, WIB) == "4/9/2025, 01.12.52"
    assert format_instant(instant, UTC) == "3/9/2025, 18.12.52"
    assert format_iso(instant, WIB) == "2025-09-04T01:12:52+07:00"


def test_day_bounds_follow_local_midnight() -> None:
    instant = utc_ms(2025, 9, 3, 18, 12, 52)
    start, end = day_bounds(instant, WIB)
    assert start == utc_ms(2025, 9, 3, 17, 0, 0)
    assert end - start == MS_PER_DAY
