"""Map raw spreadsheet rows onto normalized sensor records."""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from diagnostics import MalformedRowError, dprint, warn_ambiguous
from numeric_parsing import parse_number, parse_number_strict
from sensor_records import DOMAIN_METRICS, MetricKey, NormalizedRecord
from timestamp_parsing import resolve_row_instant

if TYPE_CHECKING:
    from source_config import SourceConfig

RawRow = Union[Mapping[str, object], Sequence[Tuple[str, object]]]

DATE_ROLE = "date"
TIME_ROLE = "time"

DATE_COLUMN_ALIASES: Tuple[str, ...] = ("Timestamp (UTC)", "Timestamp", "Tanggal", "Date")
TIME_COLUMN_ALIASES: Tuple[str, ...] = ("Waktu (WIB)", "Waktu", "Jam", "Time")

IRRIGATION_ALIASES: Dict[MetricKey, Tuple[str, ...]] = {
    MetricKey.TEMPERATURE: ("Suhu Tanah", "SuhuTanah", "Soil Temperature", "Temperature", "Suhu"),
    MetricKey.TEMPERATURE_AIR: ("Suhu Udara", "Air Temperature", "Temperature Air"),
    MetricKey.HUMIDITY: ("Kelembaban Udara", "Kelembapan Udara", "Humidity", "RH"),
    MetricKey.SOIL_MOISTURE: ("Kelembapan Tanah", "Kelembaban Tanah", "Soil Moisture"),
    MetricKey.PH: ("pH", "pH Tanah"),
    MetricKey.FLOW_RATE: ("Flow Rate", "FlowL/M", "Flow", "Debit"),
}

HYDROPONIC_ALIASES: Dict[MetricKey, Tuple[str, ...]] = {
    MetricKey.TEMPERATURE: ("Suhu", "Suhu (°C)", "Suhu Air", "Temperature"),
    MetricKey.PH: ("pH",),
    MetricKey.FLOW_RATE: ("FlowL/M", "Flow Rate", "Flow", "flow_lm"),
}

# Header typos seen in real sheets: "F1ow", "Suhu Tanah0".
_CONFUSABLES = str.maketrans({"1": "l", "0": "o"})
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def normalize_label(text: object) -> str:
    """Return a compact key so that header variants compare equal."""

    decomposed = unicodedata.normalize("NFKD", str(text or ""))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_ALNUM_RE.sub("", stripped.lower()).translate(_CONFUSABLES)


@dataclass(frozen=True)
class ColumnLayout:
    """Which raw column feeds each role for one header signature."""

    date_column: Optional[str] = None
    time_column: Optional[str] = None
    metric_columns: Dict[MetricKey, str] = field(default_factory=dict)
    guessed: Tuple[MetricKey, ...] = ()

    @property
    def has_timestamp(self) -> bool:
        return self.date_column is not None or self.time_column is not None


def _row_items(raw_row: RawRow) -> List[Tuple[str, object]]:
    pairs = raw_row.items() if isinstance(raw_row, Mapping) else raw_row
    return [(str(label).strip(), value) for label, value in pairs]


def _match_aliases(
    targets: Mapping[object, Iterable[str]],
    labels: Sequence[str],
    claimed: set,
) -> Dict[object, str]:
    """Assign labels to targets: exact normalized match, then longest prefix."""

    keys = [normalize_label(label) for label in labels]
    found: Dict[object, str] = {}

    for target, aliases in targets.items():
        wanted = {normalize_label(alias) for alias in aliases}
        for label, key in zip(labels, keys):
            if label in claimed or not key:
                continue
            if key in wanted:
                found[target] = label
                claimed.add(label)
                break

    candidates = []
    for target, aliases in targets.items():
        if target in found:
            continue
        for alias in aliases:
            alias_key = normalize_label(alias)
            if len(alias_key) < 2:
                continue
            for position, (label, key) in enumerate(zip(labels, keys)):
                if key.startswith(alias_key):
                    candidates.append((-len(alias_key), position, target, label))
    for _, _, target, label in sorted(candidates, key=lambda c: (c[0], c[1])):
        if target in found or label in claimed:
            continue
        found[target] = label
        claimed.add(label)

    return found


def _guess_temperature_column(
    labels: Sequence[str], ph_label: str, claimed: set
) -> Optional[str]:
    """Last-resort temperature lookup for sheets with an unlabelled column.

    One source writes temperature right after pH without a usable header, so
    the column after pH is tried first, then the first unclaimed column.
    """

    position = labels.index(ph_label)
    if position + 1 < len(labels):
        neighbour = labels[position + 1]
        if neighbour and neighbour not in claimed:
            warn_ambiguous(f"assuming column {neighbour!r} after pH holds temperature")
            return neighbour
    for label in labels:
        if label and label not in claimed:
            warn_ambiguous(f"assuming first unclaimed column {label!r} holds temperature")
            return label
    return None


def resolve_columns(labels: Sequence[str], config: "SourceConfig") -> ColumnLayout:
    """Work out which column feeds each timestamp role and metric."""

    labels = [str(label).strip() for label in labels]
    claimed: set = set()

    roles = _match_aliases(
        {DATE_ROLE: config.date_aliases, TIME_ROLE: config.time_aliases}, labels, claimed
    )
    metrics = DOMAIN_METRICS[config.domain]
    aliases = {metric: config.aliases.get(metric, ()) for metric in metrics}
    found = _match_aliases(aliases, labels, claimed)

    guessed: List[MetricKey] = []
    if (
        config.positional_temperature_fallback
        and MetricKey.TEMPERATURE in metrics
        and MetricKey.TEMPERATURE not in found
        and MetricKey.PH in found
    ):
        guess = _guess_temperature_column(labels, found[MetricKey.PH], claimed)
        if guess is not None:
            found[MetricKey.TEMPERATURE] = guess
            claimed.add(guess)
            guessed.append(MetricKey.TEMPERATURE)

    return ColumnLayout(
        date_column=roles.get(DATE_ROLE),
        time_column=roles.get(TIME_ROLE),
        metric_columns={metric: found[metric] for metric in metrics if metric in found},
        guessed=tuple(guessed),
    )


def _map_with_layout(
    values: Mapping[str, object], layout: ColumnLayout, config: "SourceConfig"
) -> Optional[NormalizedRecord]:
    date_raw = values.get(layout.date_column) if layout.date_column else None
    time_raw = values.get(layout.time_column) if layout.time_column else None
    instant = resolve_row_instant(date_raw, time_raw, config.source_zone)
    if instant is None:
        return None

    fields: Dict[MetricKey, Optional[float]] = {}
    for metric in DOMAIN_METRICS[config.domain]:
        column = layout.metric_columns.get(metric)
        raw = values.get(column) if column else None
        if config.strict_values:
            fields[metric] = parse_number_strict(metric, raw)
        else:
            fields[metric] = parse_number(raw)
    return NormalizedRecord(instant, fields)


def _first_values(items: Sequence[Tuple[str, object]]) -> Dict[str, object]:
    values: Dict[str, object] = {}
    for label, value in items:
        values.setdefault(label, value)
    return values


def map_row(raw_row: RawRow, config: "SourceConfig") -> Optional[NormalizedRecord]:
    """Return the normalized record for one raw row, or ``None`` to drop it."""

    items = _row_items(raw_row)
    layout = resolve_columns([label for label, _ in items], config)
    return _map_with_layout(_first_values(items), layout, config)


def map_row_strict(raw_row: RawRow, config: "SourceConfig") -> NormalizedRecord:
    record = map_row(raw_row, config)
    if record is None:
        raise MalformedRowError(f"no usable timestamp in row: {dict(_row_items(raw_row))!r}")
    return record


def map_rows(rows: Iterable[RawRow], config: "SourceConfig") -> List[NormalizedRecord]:
    """Map a fetched batch, dropping rows whose timestamp cannot be normalized.

    Column resolution runs once per distinct header signature.
    """

    layouts: Dict[Tuple[str, ...], ColumnLayout] = {}
    records: List[NormalizedRecord] = []
    dropped = 0

    for raw_row in rows:
        items = _row_items(raw_row)
        signature = tuple(label for label, _ in items)
        layout = layouts.get(signature)
        if layout is None:
            layout = resolve_columns(signature, config)
            layouts[signature] = layout
            if not layout.has_timestamp:
                dprint(f"[{config.name}] no timestamp column among {list(signature)}")

        record = _map_with_layout(_first_values(items), layout, config)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        dprint(f"[{config.name}] dropped {dropped} row(s) without a usable timestamp")
    return records


__all__ = [
    "RawRow",
    "DATE_COLUMN_ALIASES",
    "TIME_COLUMN_ALIASES",
    "IRRIGATION_ALIASES",
    "HYDROPONIC_ALIASES",
    "normalize_label",
    "ColumnLayout",
    "resolve_columns",
    "map_row",
    "map_row_strict",
    "map_rows",
]
