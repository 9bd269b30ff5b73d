"""Deduplicated, ordered sensor series with table and chart projections."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Sequence, Tuple

import pandas as pd

from sensor_records import DOMAIN_METRICS, NormalizedRecord
from source_config import CSV_DECIMALS, CSV_LABELS, SourceConfig
from timestamp_parsing import UTC, TimeZoneProfile, day_bounds, format_instant

PAGE_SIZE = 10


@dataclass(frozen=True)
class Page:
    rows: List[NormalizedRecord]
    page: int
    total_pages: int
    total: int


def paginate(rows: Sequence[NormalizedRecord], page: int, page_size: int = PAGE_SIZE) -> Page:
    """Return one 1-indexed page; out-of-range requests clamp to the nearest page."""

    if page_size < 1:
        raise ValueError(f"page_size must be positive, got {page_size}")
    total = len(rows)
    total_pages = max(1, math.ceil(total / page_size))
    page = min(max(int(page), 1), total_pages)
    start = (page - 1) * page_size
    return Page(list(rows[start : start + page_size]), page, total_pages, total)


class Series:
    """Sensor records unique by instant, held oldest first.

    Both projections are computed from the held records on demand; a series
    never changes after it is built.
    """

    def __init__(
        self, records: Tuple[NormalizedRecord, ...] = (), display_zone: TimeZoneProfile = UTC
    ) -> None:
        self._records = tuple(records)
        self.display_zone = display_zone

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[NormalizedRecord]:
        return iter(self._records)

    def __repr__(self) -> str:
        return f"Series({len(self._records)} records, display_zone={self.display_zone.name})"

    def ascending(self) -> List[NormalizedRecord]:
        return list(self._records)

    def descending(self) -> List[NormalizedRecord]:
        """Newest first, for tables."""

        return list(reversed(self._records))

    def ascending_window(self, n: int) -> List[NormalizedRecord]:
        """The most recent ``n`` records, oldest first, for charts."""

        if n <= 0:
            return []
        return list(self._records[-n:])

    def latest(self) -> Optional[NormalizedRecord]:
        return self._records[-1] if self._records else None

    def display_time(self, record: NormalizedRecord) -> str:
        return format_instant(record.instant, self.display_zone)

    def search(self, query: Optional[str]) -> List[NormalizedRecord]:
        """Filter ``descending()`` by the displayed timestamp text."""

        rows = self.descending()
        needle = (query or "").strip().lower()
        if not needle:
            return rows
        return [row for row in rows if needle in self.display_time(row).lower()]

    def descending_page(
        self, page: int, query: Optional[str] = None, page_size: int = PAGE_SIZE
    ) -> Page:
        return paginate(self.search(query), page, page_size)

    def between(self, start: int, end: int) -> "Series":
        """Records with ``start <= instant < end``."""

        kept = tuple(r for r in self._records if start <= r.instant < end)
        return Series(kept, self.display_zone)

    def on_day(self, reference_instant: int) -> "Series":
        """Records on the same local day (display zone) as ``reference_instant``."""

        start, end = day_bounds(reference_instant, self.display_zone)
        return self.between(start, end)

    def to_frame(self, config: SourceConfig, newest_first: bool = True) -> pd.DataFrame:
        """Tabular view in the domain's fixed column order, ready for CSV."""

        metrics = DOMAIN_METRICS[config.domain]
        columns = [config.csv_timestamp_label] + [CSV_LABELS[m] for m in metrics]
        rows = self.descending() if newest_first else self.ascending()

        frame = pd.DataFrame(
            [
                [format_instant(r.instant, config.display_zone)] + [r.get(m) for m in metrics]
                for r in rows
            ],
            columns=columns,
        )
        for metric in metrics:
            label = CSV_LABELS[metric]
            decimals = CSV_DECIMALS[metric]
            frame[label] = frame[label].map(
                lambda v, d=decimals: "" if v is None or pd.isna(v) else f"{float(v):.{d}f}"
            )
        return frame


def build_series(
    records: Iterable[NormalizedRecord], display_zone: TimeZoneProfile = UTC
) -> Series:
    """Deduplicate by instant (later input wins) and order oldest first."""

    records = list(records)
    if not records:
        return Series((), display_zone)

    frame = pd.DataFrame({"instant": [r.instant for r in records]})
    frame = frame.drop_duplicates(subset=["instant"], keep="last")
    frame = frame.sort_values("instant", kind="stable")
    return Series(tuple(records[i] for i in frame.index), display_zone)


def export_csv(series: Series, config: SourceConfig) -> str:
    return series.to_frame(config).to_csv(index=False)


__all__ = ["PAGE_SIZE", "Page", "paginate", "Series", "build_series", "export_csv"]
