"""Visibility-aware polling loop that keeps a sensor series fresh.

One ``PollingCoordinator`` belongs to one mounted view. It re-fetches raw rows
on a fixed interval, rebuilds the series from scratch on every success and
keeps the last good series when a fetch fails.

Everything runs on a single asyncio loop, so there is no locking. Two hazards
remain and are handled explicitly:

* overlapping requests: ticks and refreshes wait for the fetch in flight, and
  each request carries a sequence number so only responses newer than the last
  applied one are used;
* callbacks after teardown: a liveness flag is checked at every continuation.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Set, Tuple, Union

from diagnostics import TransportError, dprint
from row_mapping import RawRow, map_rows
from sensor_records import NormalizedRecord
from series_view import Page, Series, build_series, export_csv
from source_config import MIN_INTERVAL_MS, SourceConfig
from threshold_alerts import Alert, ThresholdNotifier

FetchResult = Union[List[RawRow], Awaitable[List[RawRow]]]
Fetch = Callable[[str, str, Mapping[str, object]], FetchResult]


class PollStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
    STOPPED = "stopped"


@dataclass(frozen=True)
class PollingState:
    series: Series
    is_loading: bool = False
    last_error: Optional[BaseException] = None
    is_live: bool = False
    status: PollStatus = PollStatus.IDLE
    # Alerts newly raised by the last applied response.
    alerts: Tuple[Alert, ...] = ()


class PollingCoordinator:
    """Own the refresh loop and the latest series for one consumer.

    ``scheduler`` is anything with ``call_later(delay_seconds, callback)``
    returning a handle with ``cancel()``; the running asyncio loop is used
    when none is given.

    Without an explicit ``notifier`` one is built from ``config.thresholds``.
    """

    def __init__(
        self,
        fetch: Fetch,
        config: SourceConfig,
        *,
        interval_ms: Optional[int] = None,
        pause_on_hidden: bool = True,
        scheduler: Any = None,
        notifier: Optional[ThresholdNotifier] = None,
        on_change: Optional[Callable[[PollingState], None]] = None,
    ) -> None:
        self.config = config
        self.interval_ms = max(MIN_INTERVAL_MS, interval_ms or config.interval_ms)
        self.pause_on_hidden = pause_on_hidden
        if notifier is None and config.thresholds:
            notifier = ThresholdNotifier(config.thresholds)
        self.notifier = notifier
        self._fetch = fetch
        self._scheduler = scheduler
        self._on_change = on_change

        self._state = PollingState(series=Series((), config.display_zone))
        self._alive = False
        self._stopped = False
        self._visible = True
        self._timer: Any = None
        self._seq = 0
        self._applied_seq = 0
        self._in_flight: Set[int] = set()
        self._refresh_queued = False
        self._tasks: Set[asyncio.Future] = set()

    @property
    def state(self) -> PollingState:
        return self._state

    @property
    def series(self) -> Series:
        return self._state.series

    @property
    def in_flight(self) -> bool:
        return bool(self._in_flight)

    # -- lifecycle ---------------------------------------------------------

    def start(self) -> None:
        """Fetch immediately, then keep polling until ``stop()``."""

        if self._alive or self._stopped:
            return
        if self._scheduler is None:
            self._scheduler = asyncio.get_running_loop()
        self._alive = True
        self._state = replace(self._state, is_live=True)
        self._begin_fetch()
        self._arm_timer()

    def stop(self) -> None:
        """Tear down: clear the timer and ignore every pending response."""

        if self._stopped:
            return
        self._alive = False
        self._stopped = True
        self._cancel_timer()
        self._in_flight.clear()
        self._refresh_queued = False
        for task in list(self._tasks):
            task.cancel()
        self._state = replace(
            self._state, is_live=False, is_loading=False, status=PollStatus.STOPPED
        )

    def set_visible(self, visible: bool) -> None:
        """Suspend the timer while the hosting view is hidden."""

        self._visible = visible
        if not self._alive or not self.pause_on_hidden:
            return
        if visible:
            self._arm_timer()
        else:
            self._cancel_timer()

    def refresh(self) -> None:
        """Fetch now, or once the request still in flight settles.

        Refreshes requested while a fetch is running collapse into a single
        follow-up fetch, so one consumer never has two requests open.
        """

        if not self._alive:
            return
        if self._in_flight:
            self._refresh_queued = True
            return
        self._begin_fetch()

    # -- timer -------------------------------------------------------------

    def _paused(self) -> bool:
        return self.pause_on_hidden and not self._visible

    def _arm_timer(self) -> None:
        if not self._alive or self._timer is not None or self._paused():
            return
        self._timer = self._scheduler.call_later(self.interval_ms / 1000, self._on_tick)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_tick(self) -> None:
        self._timer = None
        if not self._alive or self._paused():
            return
        self._arm_timer()
        if self._in_flight:
            dprint(f"[{self.config.name}] tick skipped, fetch still in flight")
            return
        self._begin_fetch()

    # -- fetch -------------------------------------------------------------

    def _begin_fetch(self) -> None:
        self._seq += 1
        seq = self._seq
        self._in_flight.add(seq)
        self._state = replace(self._state, is_loading=True, status=PollStatus.LOADING)
        self._emit()

        try:
            pending = self._fetch(
                self.config.spreadsheet_id, self.config.sheet, dict(self.config.fetch_options)
            )
        except Exception as exc:
            self._settle_failure(seq, exc)
            return

        if not inspect.isawaitable(pending):
            self._settle_success(seq, pending)
            return

        task = asyncio.ensure_future(self._await_rows(seq, pending))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _await_rows(self, seq: int, pending: Awaitable[List[RawRow]]) -> None:
        try:
            rows = await pending
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._settle_failure(seq, exc)
            return
        self._settle_success(seq, rows)

    def _is_stale(self, seq: int) -> bool:
        self._in_flight.discard(seq)
        if not self._alive:
            return True
        if seq <= self._applied_seq:
            dprint(f"[{self.config.name}] discarding stale response #{seq}")
            if not self._in_flight:
                settled = PollStatus.FAILED if self._state.last_error else PollStatus.READY
                self._state = replace(self._state, is_loading=False, status=settled)
                self._emit()
            return True
        return False

    def _settled_status(self, status: PollStatus) -> PollStatus:
        return PollStatus.LOADING if self._in_flight else status

    def _settle_success(self, seq: int, rows: Optional[List[RawRow]]) -> None:
        if self._is_stale(seq):
            return
        records = map_rows(rows or [], self.config)
        series = build_series(records, self.config.display_zone)
        self._applied_seq = seq
        # Replace, never merge: rows removed upstream must disappear here too.
        self._state = replace(
            self._state,
            series=series,
            last_error=None,
            is_loading=bool(self._in_flight),
            status=self._settled_status(PollStatus.READY),
        )
        dprint(f"[{self.config.name}] response #{seq}: {len(series)} records")
        if self.notifier is not None:
            alerts = tuple(self.notifier.check(series.latest()))
            self._state = replace(self._state, alerts=alerts)
        self._emit()
        self._run_queued_refresh()

    def _settle_failure(self, seq: int, exc: BaseException) -> None:
        if self._is_stale(seq):
            return
        if isinstance(exc, TransportError):
            error = exc
        else:
            error = TransportError(f"fetch failed for {self.config.name}: {exc}")
            error.__cause__ = exc
        self._applied_seq = seq
        # Keep the previous series on screen; the next tick retries.
        self._state = replace(
            self._state,
            last_error=error,
            is_loading=bool(self._in_flight),
            status=self._settled_status(PollStatus.FAILED),
        )
        dprint(f"[{self.config.name}] response #{seq} failed: {exc!r}")
        self._emit()
        self._run_queued_refresh()

    def _run_queued_refresh(self) -> None:
        if self._refresh_queued and self._alive and not self._in_flight:
            self._refresh_queued = False
            self._begin_fetch()

    def _emit(self) -> None:
        if self._alive and self._on_change is not None:
            self._on_change(self._state)


class SeriesHandle:
    """What a view consumes: paged table rows, a chart window and status."""

    def __init__(self, coordinator: PollingCoordinator, page_size: int, window_size: int) -> None:
        self.coordinator = coordinator
        self.page_size = page_size
        self.window_size = window_size

    @property
    def state(self) -> PollingState:
        return self.coordinator.state

    @property
    def is_loading(self) -> bool:
        return self.coordinator.state.is_loading

    @property
    def error(self) -> Optional[BaseException]:
        return self.coordinator.state.last_error

    def descending_page(self, page: int, query: Optional[str] = None) -> Page:
        return self.coordinator.series.descending_page(page, query, self.page_size)

    def chart_window(self) -> List[NormalizedRecord]:
        return self.coordinator.series.ascending_window(self.window_size)

    def export_csv(self) -> str:
        return export_csv(self.coordinator.series, self.coordinator.config)

    def refresh(self) -> None:
        self.coordinator.refresh()

    def set_visible(self, visible: bool) -> None:
        self.coordinator.set_visible(visible)

    def close(self) -> None:
        self.coordinator.stop()


def use_series(
    config: SourceConfig,
    fetch: Fetch,
    *,
    interval_ms: Optional[int] = None,
    pause_on_hidden: bool = True,
    page_size: Optional[int] = None,
    window_size: Optional[int] = None,
    scheduler: Any = None,
    notifier: Optional[ThresholdNotifier] = None,
    on_change: Optional[Callable[[PollingState], None]] = None,
) -> SeriesHandle:
    """Create and start a coordinator for one view; call ``close()`` on teardown."""

    coordinator = PollingCoordinator(
        fetch,
        config,
        interval_ms=interval_ms,
        pause_on_hidden=pause_on_hidden,
        scheduler=scheduler,
        notifier=notifier,
        on_change=on_change,
    )
    coordinator.start()
    return SeriesHandle(
        coordinator,
        page_size or config.page_size,
        window_size or config.window_size,
    )


__all__ = [
    "Fetch",
    "PollStatus",
    "PollingState",
    "PollingCoordinator",
    "SeriesHandle",
    "use_series",
]
