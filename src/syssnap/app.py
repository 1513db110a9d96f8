"""syssnap-panel - Main Textual application."""

from collections.abc import Callable
from functools import partial
from queue import Empty, Queue

from loguru import logger
from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.widgets import Button, DataTable, Footer, Input, Label, Static, TabbedContent, TabPane

from syssnap.cache import ProcessCache, make_runner
from syssnap.config import PanelConfig, load_config
from syssnap.daemon import SysSnapDaemon, format_elapsed
from syssnap.host import server_time
from syssnap.logger import setup_logging
from syssnap.models import DaemonStatus, SarReport, SnapshotUser, TimedRow, TimeRange
from syssnap.monitor import DaemonControl, PanelMonitor, PanelSnapshot, ReportSource
from syssnap.sar import SarDataProcessor
from syssnap.snapshot import cpu_shares, memory_shares
from syssnap.timerange import range_from_form


def format_status(status: DaemonStatus) -> str:
    """One-line description of the sampling daemon's state."""
    if not status.running:
        return "sys-snap: Not Running (press s to start)"
    text = "sys-snap: Running"
    if status.elapsed_seconds is not None:
        text += f" for {format_elapsed(status.elapsed_seconds)}"
    return f"{text}  PID: {status.pid}"


def format_contributors(user: SnapshotUser) -> str:
    """Plain-text CPU and memory contributor listing for one user."""
    lines = [f"{user.name}", "", f"CPU Score: {user.cpu_score or ''}"]
    lines += [f"{c.score:>8}  {c.label}" for c in user.cpu_contributors]
    lines += ["", f"Memory Score: {user.memory_score or ''}"]
    lines += [f"{c.score:>8}  {c.label}" for c in user.memory_contributors]
    return "\n".join(lines)


def format_percentages(shares: list[tuple[str, float]]) -> dict[str, str]:
    """Each user's share of the total score, as "12.3%"."""
    total = sum(score for _, score in shares) or 1.0
    return {name: f"{score / total * 100:5.1f}%" for name, score in shares}


SAR_NOTES = """\
sysstat collects, reports and saves system activity information.
Queue length and load average (sar -q):
  runq-sz   processes waiting for run time      plist-sz  processes in the process list
  ldavg-1   load average, last minute           ldavg-5   load average, last 5 minutes
  ldavg-15  load average, last 15 minutes       blocked   processes blocked waiting for I/O
Paging (sar -B):
  pgpgin/s  KB paged in from disk per second    pgpgout/s KB paged out to disk per second
  fault/s   page faults per second              majflt/s  major faults (needing disk) per second"""


class StatusBar(Static):
    """Daemon status and refresh time."""

    DEFAULT_CSS = """
    StatusBar {
        height: auto;
        padding: 0 1;
        background: $surface;
    }
    """

    status_text = ""

    def update_status(self, snapshot: PanelSnapshot) -> None:
        self.status_text = f"{format_status(snapshot.status)}    Updated {snapshot.taken_at:%H:%M:%S}"
        if snapshot.server_time:
            self.status_text += f"\nServer {snapshot.server_time}"
        self.update(self.status_text)


class UserScoreTable(Container):
    """Per-user CPU and memory scores from sys-snap."""

    DEFAULT_CSS = """
    UserScoreTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._users: dict[str, SnapshotUser] = {}

    @property
    def users(self) -> dict[str, SnapshotUser]:
        return self._users

    def compose(self) -> ComposeResult:
        yield DataTable(id="user-table")

    def on_mount(self) -> None:
        table = self.query_one("#user-table", DataTable)
        table.cursor_type = "row"
        table.add_column("User", key="user")
        table.add_column("CPU Score (1 = 1% of a CPU)", key="cpu")
        table.add_column("CPU share", key="cpu_share")
        table.add_column("Memory Score (1 = 1% of memory)", key="mem")
        table.add_column("Memory share", key="mem_share")

    def update_users(self, users: dict[str, SnapshotUser]) -> None:
        """Replace the table contents, keeping sys-snap's user order."""
        table = self.query_one("#user-table", DataTable)
        table.clear()
        self._users = users

        cpu = format_percentages(cpu_shares(users))
        memory = format_percentages(memory_shares(users))
        for name, user in users.items():
            table.add_row(
                name,
                user.cpu_score or "",
                cpu[name],
                user.memory_score or "",
                memory[name],
                key=name,
            )


class RangeForm(Horizontal):
    """Start and end hour/minute fields for the sys-snap report window."""

    DEFAULT_CSS = """
    RangeForm {
        height: auto;
        padding: 0 1;
    }

    RangeForm Input {
        width: 8;
    }

    RangeForm Label {
        padding: 1 1 0 1;
    }
    """

    FIELDS = ("start_hour", "start_min", "end_hour", "end_min")

    def compose(self) -> ComposeResult:
        full = TimeRange()
        yield Label("From")
        yield Input(f"{full.start_hour:02d}", placeholder="HH", type="integer", max_length=2, id="start_hour")
        yield Input(f"{full.start_min:02d}", placeholder="MM", type="integer", max_length=2, id="start_min")
        yield Label("to")
        yield Input(f"{full.end_hour:02d}", placeholder="HH", type="integer", max_length=2, id="end_hour")
        yield Input(f"{full.end_min:02d}", placeholder="MM", type="integer", max_length=2, id="end_min")
        yield Button("Load", id="load-range")

    def values(self) -> dict[str, str]:
        return {name: self.query_one(f"#{name}", Input).value for name in self.FIELDS}

    def show(self, time_range: TimeRange) -> None:
        """Put `time_range` back into the fields, e.g. after clamping or a drill-down."""
        for name in self.FIELDS:
            self.query_one(f"#{name}", Input).value = f"{getattr(time_range, name):02d}"


class SarTable(Container):
    """Merged sar -q / sar -B rows for the last 24 hours."""

    DEFAULT_CSS = """
    SarTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._intervals: list[TimeRange] = []

    def compose(self) -> ComposeResult:
        yield DataTable(id="sar-table")

    def on_mount(self) -> None:
        self.query_one("#sar-table", DataTable).cursor_type = "row"

    @property
    def row_count(self) -> int:
        return len(self._intervals)

    def interval_for(self, row_key: str) -> TimeRange:
        return self._intervals[int(row_key)]

    def update_report(self, report: SarReport, timed_rows: list[TimedRow]) -> None:
        table = self.query_one("#sar-table", DataTable)
        table.clear(columns=True)
        self._intervals = []
        if not report.success or report.series is None:
            return

        header = report.series.header
        for column in header:
            table.add_column(column, key=column)
        for index, timed in enumerate(timed_rows):
            table.add_row(*(timed.row[column] for column in header), key=str(index))
            self._intervals.append(timed.interval)


class PanelApp(App):
    """Main syssnap-panel application."""

    TITLE = "syssnap-panel"
    SUB_TITLE = "System Snapshot"

    CSS = """
    Screen {
        layout: vertical;
    }

    #range-label, #sar-message, #sar-notes {
        height: auto;
        padding: 0 1;
    }

    #contributors {
        height: auto;
        max-height: 50%;
        padding: 0 1;
        overflow-y: auto;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("s", "start_daemon", "Start sys-snap"),
        ("r", "reset_range", "Reset range"),
        ("f5", "refresh", "Refresh"),
    ]

    def __init__(
        self,
        config: PanelConfig | None = None,
        processor: ReportSource | None = None,
        daemon: DaemonControl | None = None,
        clock: Callable[[], str] | None = None,
    ) -> None:
        """Initialize the PanelApp, building real collaborators from `config` if none are given."""
        super().__init__()
        self._config = config or PanelConfig()
        runner = make_runner(self._config.command_timeout)
        if processor is None or daemon is None:
            cache = ProcessCache(
                self._config.cache_dir,
                trusted_uid=self._config.trusted_uid,
                runner=runner,
            )
            cache.purge_expired(self._config.cache_expire_seconds)
            processor = processor or SarDataProcessor(self._config, cache, runner)
            daemon = daemon or SysSnapDaemon(self._config, cache, runner)

        self._update_queue: Queue[PanelSnapshot] = Queue()
        self._monitor = PanelMonitor(
            self._update_queue,
            processor,
            daemon,
            refresh_rate=self._config.refresh_rate,
            clock=clock or partial(server_time, runner),
        )

    def compose(self) -> ComposeResult:
        yield StatusBar("Loading...", id="status-bar")
        with TabbedContent(initial="tab-sys-snap"):
            with TabPane("System Snapshot", id="tab-sys-snap"):
                yield Static(f"Scores from {TimeRange()}", id="range-label")
                yield RangeForm()
                yield UserScoreTable()
                yield Static("", id="contributors", markup=False)
            with TabPane("24 Hour Statistics", id="tab-loadavg"):
                yield Static(
                    "Select a time to load sys-snap for that interval.",
                    id="sar-message",
                    markup=False,
                )
                yield SarTable()
                yield Static(SAR_NOTES, id="sar-notes", markup=False)
        yield Footer()

    def on_mount(self) -> None:
        """Start the panel monitor when the app is mounted."""
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def on_unmount(self) -> None:
        self._monitor.stop()

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent snapshot."""
        snapshot = None
        while True:
            try:
                snapshot = self._update_queue.get_nowait()
            except Empty:
                break

        if snapshot is not None:
            self.show_snapshot(snapshot)

    def show_snapshot(self, snapshot: PanelSnapshot) -> None:
        self.query_one("#status-bar", StatusBar).update_status(snapshot)
        self.query_one("#range-label", Static).update(
            snapshot.snapshot_error or f"Scores from {snapshot.time_range}"
        )
        self.query_one(UserScoreTable).update_users(snapshot.users)
        self.query_one(SarTable).update_report(snapshot.report, snapshot.timed_rows)
        if not snapshot.report.success:
            self.query_one("#sar-message", Static).update(snapshot.report.error)
        else:
            self.query_one("#sar-message", Static).update(
                "Select a time to load sys-snap for that interval."
            )

    def set_time_range(self, time_range: TimeRange) -> None:
        self._monitor.time_range = time_range
        self.query_one(RangeForm).show(time_range)
        self.query_one("#range-label", Static).update(f"Loading scores from {time_range}...")

    def submit_range(self) -> None:
        """Load the window typed into the range form, clamped to valid times."""
        self.set_time_range(range_from_form(self.query_one(RangeForm).values()))

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id in RangeForm.FIELDS:
            self.submit_range()

    def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "load-range":
            self.submit_range()

    def on_data_table_row_selected(self, event: DataTable.RowSelected) -> None:
        if event.data_table.id == "sar-table":
            time_range = self.query_one(SarTable).interval_for(event.row_key.value)
            self.set_time_range(time_range)
            self.query_one(TabbedContent).active = "tab-sys-snap"
        elif event.data_table.id == "user-table":
            user = self.query_one(UserScoreTable).users.get(event.row_key.value)
            if user is not None:
                self.query_one("#contributors", Static).update(format_contributors(user))

    def action_start_daemon(self) -> None:
        self.run_worker(self._start_daemon, thread=True, exclusive=True, group="daemon")

    def _start_daemon(self) -> None:
        output = self._monitor.daemon.start()
        self.call_from_thread(self.notify, output.strip() or "sys-snap start requested")
        self._monitor.refresh_now()

    def action_reset_range(self) -> None:
        self.set_time_range(TimeRange())

    def action_refresh(self) -> None:
        self._monitor.refresh_now()

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def main() -> None:
    """Entry point for syssnap-panel."""
    config = load_config()
    setup_logging(config.log_level, config.log_file)
    logger.info("syssnap-panel starting")
    app = PanelApp(config)
    app.run()


if __name__ == "__main__":
    main()
