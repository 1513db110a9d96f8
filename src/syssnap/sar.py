"""24-hour system activity report built from sysstat's daily sar logs."""

import os
import re
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from syssnap.cache import ProcessCache, Runner
from syssnap.config import PanelConfig
from syssnap.models import Header, MergedSeries, ReportRow, RequestContext, SarReport

_TIMESTAMP_LINE = re.compile(r"^\d{2}:\d{2}:\d{2}")
_QUEUE_HEADER = re.compile(r"runq-sz\s+plist-sz\s+ldavg-1\s+ldavg-5\s+ldavg-15\s+blocked")
_PAGING_HEADER = re.compile(r"pgpgin/s\s+pgpgout/s\s+fault/s\s+majflt/s")

# Header lines are dropped from every window, whichever report they belong to
_ANY_HEADER = (
    re.compile(r"runq-sz\s+plist-sz\s+ldavg-1"),
    re.compile(r"pgpgin/s\s+pgpgout/s\s+fault/s"),
)
_MERIDIEMS = ("AM", "PM")
_SUMMARY_PREFIX = "Average:"
_BANNER_PREFIX = "Linux"


@dataclass(slots=True, frozen=True)
class ReportKind:
    """One sar query mode and what its output looks like."""

    option: str
    marker: str  # substring identifying the header banner line
    header_pattern: re.Pattern[str]
    default_header: Header

    @property
    def tag_prefix(self) -> str:
        return "sar" + re.sub(r"[^a-zA-Z0-9]", "", self.option)


QUEUE_LOAD = ReportKind(
    option="-q",
    marker="runq-sz",
    header_pattern=_QUEUE_HEADER,
    default_header=Header(
        ("Time", "runq-sz", "plist-sz", "ldavg-1", "ldavg-5", "ldavg-15", "blocked")
    ),
)

PAGING = ReportKind(
    option="-B",
    marker="pgpgin/s",
    header_pattern=_PAGING_HEADER,
    default_header=Header(
        (
            "Time",
            "pgpgin/s",
            "pgpgout/s",
            "fault/s",
            "majflt/s",
            "pgfree/s",
            "pgscank/s",
            "pgscand/s",
            "pgsteal/s",
            "%vmeff",
        )
    ),
)

PAGING_COLUMNS_TO_MERGE = ("pgpgin/s", "pgpgout/s", "fault/s", "majflt/s")


@dataclass(slots=True, frozen=True)
class WindowOutput:
    """Raw sar output for the trailing part of yesterday and the start of today."""

    yesterday: str
    today: str

    def __iter__(self):
        return iter((self.yesterday, self.today))


@dataclass(slots=True, frozen=True)
class ParsedReport:
    header: Header
    rows: tuple[ReportRow, ...]


def guess_interval(
    runner: Runner,
    sar_path: str = "sar",
    default: int = 600,
    maximum: int = 3600,
) -> int:
    """
    Return the sar sampling interval in seconds.

    Measures the gap between the first two timestamped lines of `sar -q`.
    Falls back to `default` when that cannot be measured or looks wrong.
    """
    output = runner([sar_path, "-q"])
    stamps = [
        line.split()[0]
        for line in (raw.strip() for raw in output.splitlines())
        if _TIMESTAMP_LINE.match(line)
    ][:2]
    if len(stamps) < 2:
        return default
    try:
        first = datetime.strptime(stamps[0], "%H:%M:%S")
        second = datetime.strptime(stamps[1], "%H:%M:%S")
    except ValueError:
        return default

    interval = int((second - first).total_seconds())
    if 0 < interval < maximum:
        return interval
    return default


def locate_log_path(
    candidates: Sequence[str],
    today: str,
    yesterday: str,
    exists: Callable[[str], bool] = os.path.exists,
) -> str:
    """
    Return the first log prefix whose today or yesterday file exists.

    Falls back to the first candidate; fetching from it then just yields no data.
    """
    for prefix in candidates:
        if exists(prefix + yesterday) or exists(prefix + today):
            return prefix
    return candidates[0]


def build_context(
    config: PanelConfig,
    runner: Runner,
    now: datetime | None = None,
    exists: Callable[[str], bool] = os.path.exists,
) -> RequestContext:
    """Fix the clock, sampling interval and log location for one report run."""
    now = now or datetime.now()
    interval = guess_interval(
        runner,
        sar_path=config.sar_path,
        default=config.default_interval,
        maximum=config.max_interval,
    )
    today = now.strftime("%d")
    yesterday = (now - timedelta(days=1)).strftime("%d")
    log_path = locate_log_path(config.sar_log_paths, today, yesterday, exists=exists)
    logger.debug(f"Using sar interval {interval}s and log prefix {log_path}")
    return RequestContext(now=now, interval=interval, log_path=log_path)


def window_commands(
    kind: ReportKind, context: RequestContext, sar_path: str = "sar"
) -> tuple[tuple[str, list[str]], tuple[str, list[str]]]:
    """
    Return (tag, command) for yesterday's and today's window of `kind`.

    Yesterday's log is rotated and immutable, so its tag changes once a day.
    Today's log grows, so its tag changes every ten minutes.
    """
    yesterday_tag = f"{kind.tag_prefix}_yesterday_{context.yesterday}"
    today_tag = f"{kind.tag_prefix}_today_{context.today}_{context.ten_minute_slot}"
    yesterday_cmd = [
        sar_path,
        kind.option,
        "-f",
        f"{context.log_path}{context.yesterday}",
        "-s",
        context.current_time,
    ]
    today_cmd = [
        sar_path,
        kind.option,
        "-f",
        f"{context.log_path}{context.today}",
        "-e",
        context.current_time,
    ]
    return (yesterday_tag, yesterday_cmd), (today_tag, today_cmd)


def fetch_windows(
    kind: ReportKind,
    context: RequestContext,
    cache: ProcessCache,
    sar_path: str = "sar",
) -> WindowOutput:
    """Run (or reuse) both windows of `kind`. Failed commands give empty strings."""
    (y_tag, y_cmd), (t_tag, t_cmd) = window_commands(kind, context, sar_path)
    return WindowOutput(
        yesterday=cache.get_or_run(y_tag, y_cmd, context.interval),
        today=cache.get_or_run(t_tag, t_cmd, context.interval),
    )


def split_fields(line: str) -> list[str]:
    """Split a sar line on whitespace, keeping a 12-hour "hh:mm:ss AM" stamp as one field."""
    fields = line.split()
    if len(fields) > 1 and fields[1].upper() in _MERIDIEMS:
        fields[0:2] = [f"{fields[0]} {fields[1]}"]
    return fields


def is_data_line(line: str) -> bool:
    """False for blank, Average:, kernel banner and header lines."""
    trimmed = line.strip()
    if not trimmed:
        return False
    if trimmed.startswith(_SUMMARY_PREFIX) or trimmed.startswith(_BANNER_PREFIX):
        return False
    return not any(pattern.search(trimmed) for pattern in _ANY_HEADER)


def merge_lines(outputs: Iterable[str], marker: str) -> list[str]:
    """
    Concatenate the trimmed, non-empty lines of each output.

    Lines containing `marker` are dropped from every output after the first,
    removing the repeated header banner of the second window.
    """
    merged: list[str] = []
    for index, output in enumerate(outputs):
        lines = [line.strip() for line in output.splitlines()]
        lines = [line for line in lines if line]
        if index > 0:
            lines = [line for line in lines if marker not in line]
        merged.extend(lines)
    return merged


def merge_filter(outputs: Iterable[str], marker: str) -> list[str]:
    """Merge window outputs and keep only data rows, in emission order."""
    return [line for line in merge_lines(outputs, marker) if is_data_line(line)]


def resolve_header(
    lines: Iterable[str], pattern: re.Pattern[str], default: Header
) -> Header:
    """
    Use the header sar actually printed, with its time label renamed to Time.

    Trailing column names are kept verbatim so newer sysstat columns survive.
    """
    for line in lines:
        if pattern.search(line):
            parts = split_fields(line)
            try:
                return Header(("Time", *parts[1:]))
            except ValueError:
                logger.debug(f"Ignoring malformed sar header: {line!r}")
                break
    return default


def parse_rows(lines: Iterable[str], header: Header) -> list[ReportRow]:
    """
    Turn data lines into rows keyed by `header`.

    Lines with fewer fields than the header, or with extra trailing fields,
    are dropped rather than padded or truncated.
    """
    rows: list[ReportRow] = []
    width = len(header)
    for line in lines:
        fields = split_fields(line)
        if len(fields) != width:
            if fields:
                logger.debug(f"Skipping sar line with {len(fields)} fields, expected {width}")
            continue
        rows.append(ReportRow(header, fields))
    return rows


def merge_series(
    primary: Sequence[ReportRow],
    secondary: Iterable[ReportRow],
    merge_columns: Sequence[str],
    primary_header: Header | None = None,
) -> MergedSeries:
    """
    Left join `secondary` onto `primary` by Time.

    The result has exactly one row per primary row, in primary order. Merged
    columns with no matching secondary row (or no such column) are empty.
    """
    if primary_header is None:
        primary_header = primary[0].header if primary else QUEUE_LOAD.default_header
    header = primary_header.extended(merge_columns)

    by_time: dict[str, Mapping[str, str]] = {}
    for row in secondary:
        by_time[row.time] = row

    merged: list[ReportRow] = []
    for row in primary:
        values = dict(row)
        match = by_time.get(row.time)
        for column in merge_columns:
            values[column] = match.get(column, "") if match is not None else ""
        merged.append(ReportRow.from_mapping(header, values))
    return MergedSeries(header=header, rows=tuple(merged))


class SarDataProcessor:
    """
    Builds the merged queue/load + paging series for the last 24 hours.

    Lower stages never raise; the only failure reported is having no
    queue/load rows at all.
    """

    def __init__(self, config: PanelConfig, cache: ProcessCache, runner: Runner) -> None:
        self._config = config
        self._cache = cache
        self._runner = runner

    def context(self, now: datetime | None = None) -> RequestContext:
        return build_context(self._config, self._runner, now=now)

    def read(self, kind: ReportKind, context: RequestContext) -> ParsedReport:
        """Fetch, filter and parse both windows of one report kind."""
        outputs = fetch_windows(kind, context, self._cache, self._config.sar_path)
        lines = merge_filter(outputs, kind.marker)
        # The data filter already removed header lines, so re-read them from the raw output
        header = resolve_header(
            merge_lines(outputs, kind.marker), kind.header_pattern, kind.default_header
        )
        return ParsedReport(header=header, rows=tuple(parse_rows(lines, header)))

    def get_report(self, context: RequestContext | None = None) -> SarReport:
        context = context or self.context()
        queue = self.read(QUEUE_LOAD, context)
        if not queue.rows:
            logger.warning("No sar -q data available")
            return SarReport.failed("Could not get sar -q data")

        paging = self.read(PAGING, context)
        series = merge_series(
            queue.rows, paging.rows, PAGING_COLUMNS_TO_MERGE, primary_header=queue.header
        )
        return SarReport(success=True, series=series)
