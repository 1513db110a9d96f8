"""Background refresh engine for syssnap-panel."""

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from queue import Queue
from typing import Protocol

from loguru import logger

from syssnap.models import DaemonStatus, SarReport, SnapshotUser, TimedRow, TimeRange
from syssnap.snapshot import parse_snapshot
from syssnap.timerange import annotate_intervals

SNAPSHOT_UNAVAILABLE = (
    "Could not get output from sys-snap. Check if the script is running and accessible."
)


class ReportSource(Protocol):
    def get_report(self) -> SarReport: ...


class DaemonControl(Protocol):
    def check(self) -> DaemonStatus: ...

    def start(self) -> str: ...

    def print_report(self, time_range: TimeRange) -> str: ...


@dataclass(slots=True)
class PanelSnapshot:
    """Everything both tabs display, collected in one refresh."""

    status: DaemonStatus
    time_range: TimeRange
    users: dict[str, SnapshotUser]
    report: SarReport
    timed_rows: list[TimedRow] = field(default_factory=list)
    snapshot_error: str = ""
    server_time: str = ""
    taken_at: datetime = field(default_factory=datetime.now)


class PanelMonitor:
    """
    Collects daemon status, the sys-snap report and the sar report.

    Runs in a separate daemon thread and pushes PanelSnapshot values to a
    thread-safe Queue. A refresh happens every `refresh_rate` seconds or
    straight away after `refresh_now()` or a change of `time_range`.
    """

    def __init__(
        self,
        update_queue: Queue[PanelSnapshot],
        processor: ReportSource,
        daemon: DaemonControl,
        refresh_rate: float = 60.0,
        clock: Callable[[], str] | None = None,
    ) -> None:
        """
        Initialize the PanelMonitor.

        Args:
            update_queue: Thread-safe queue to push snapshots to.
            processor: Source of the 24-hour sar report.
            daemon: sys-snap control used for status and reports.
            refresh_rate: Seconds between refreshes. Default 60s.
            clock: Returns the server time line shown with each snapshot.
        """
        self._queue = update_queue
        self._processor = processor
        self._daemon = daemon
        self._refresh_rate = refresh_rate
        self._clock = clock
        self._time_range = TimeRange()
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def daemon(self) -> DaemonControl:
        return self._daemon

    @property
    def refresh_rate(self) -> float:
        return self._refresh_rate

    @refresh_rate.setter
    def refresh_rate(self, value: float) -> None:
        self._refresh_rate = max(1.0, value)

    @property
    def time_range(self) -> TimeRange:
        with self._lock:
            return self._time_range

    @time_range.setter
    def time_range(self, value: TimeRange) -> None:
        with self._lock:
            self._time_range = value
        self.refresh_now()

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the refresh thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="PanelMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the refresh thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def refresh_now(self) -> None:
        self._wake_event.set()

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            # Cleared before collecting so a request made during collect() wakes the next wait
            self._wake_event.clear()
            try:
                self._queue.put(self.collect())
            except Exception:
                logger.exception("Panel refresh failed")

            self._wake_event.wait(timeout=self._refresh_rate)

    def collect(self) -> PanelSnapshot:
        """Collect one snapshot for the current time range."""
        time_range = self.time_range
        status = self._daemon.check()

        text = self._daemon.print_report(time_range)
        users = parse_snapshot(text) if text.strip() else {}
        snapshot_error = "" if text.strip() else SNAPSHOT_UNAVAILABLE

        report = self._processor.get_report()
        timed_rows = annotate_intervals(report.series) if report.success else []

        return PanelSnapshot(
            status=status,
            time_range=time_range,
            users=users,
            report=report,
            timed_rows=timed_rows,
            snapshot_error=snapshot_error,
            server_time=self._clock() if self._clock is not None else "",
        )
