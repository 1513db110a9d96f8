"""Data models for syssnap-panel."""

import re
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

# Leading "| ", "\_ " and whitespace drawn by sys-snap's process tree
_TREE_DECORATION = re.compile(r"^[|\s\\_]+")


@dataclass(slots=True, frozen=True)
class Header:
    """Ordered, distinct column names of a sar report. First column is always Time."""

    columns: tuple[str, ...]

    def __post_init__(self) -> None:
        if not self.columns or self.columns[0] != "Time":
            raise ValueError(f"header must start with 'Time': {self.columns!r}")
        if len(set(self.columns)) != len(self.columns):
            raise ValueError(f"header columns must be distinct: {self.columns!r}")

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[str]:
        return iter(self.columns)

    def __contains__(self, name: object) -> bool:
        return name in self.columns

    def extended(self, names: Sequence[str]) -> "Header":
        """Return this header followed by any of `names` not already present."""
        extra = [name for name in names if name not in self.columns]
        return Header(self.columns + tuple(extra))


class ReportRow(Mapping[str, str]):
    """
    One timestamped row of a sar report.

    Behaves as a read-only mapping whose keys are exactly the columns of its
    header, in header order. Reading an undeclared column raises KeyError.
    """

    __slots__ = ("_header", "_values")

    def __init__(self, header: Header, values: Sequence[str]) -> None:
        if len(values) != len(header):
            raise ValueError(
                f"row has {len(values)} values, header has {len(header)} columns"
            )
        self._header = header
        self._values = tuple(values)

    @classmethod
    def from_mapping(cls, header: Header, data: Mapping[str, str]) -> "ReportRow":
        """Build a row for `header`, reading every column from `data`."""
        return cls(header, [data[name] for name in header])

    @property
    def header(self) -> Header:
        return self._header

    @property
    def time(self) -> str:
        return self._values[0]

    def __getitem__(self, key: str) -> str:
        try:
            index = self._header.columns.index(key)
        except ValueError:
            raise KeyError(key) from None
        return self._values[index]

    def __iter__(self) -> Iterator[str]:
        return iter(self._header.columns)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, ReportRow):
            return self._header == other._header and self._values == other._values
        if isinstance(other, Mapping):
            return dict(self) == dict(other)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._header, self._values))

    def __repr__(self) -> str:
        return f"ReportRow({dict(self)!r})"


@dataclass(slots=True, frozen=True)
class MergedSeries:
    """Queue/load rows with paging columns joined in, in sar emission order."""

    header: Header
    rows: tuple[ReportRow, ...] = ()

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self) -> Iterator[ReportRow]:
        return iter(self.rows)


@dataclass(slots=True, frozen=True)
class SarReport:
    """Outcome of building the 24-hour report."""

    success: bool
    series: MergedSeries | None = None
    error: str = ""

    @classmethod
    def failed(cls, error: str) -> "SarReport":
        return cls(success=False, error=error)


@dataclass(slots=True, frozen=True, order=True)
class TimeRange:
    """An HH:MM to HH:MM window of the day, as accepted by sys-snap --print."""

    start_hour: int = 0
    start_min: int = 0
    end_hour: int = 23
    end_min: int = 59

    @property
    def start(self) -> str:
        return f"{self.start_hour:02d}:{self.start_min:02d}"

    @property
    def end(self) -> str:
        return f"{self.end_hour:02d}:{self.end_min:02d}"

    @property
    def is_full_day(self) -> bool:
        return self == TimeRange()

    def __str__(self) -> str:
        return f"{self.start} to {self.end}"


@dataclass(slots=True, frozen=True)
class TimedRow:
    """A merged row paired with the interval a drill-down on it should load."""

    row: ReportRow
    interval: TimeRange


@dataclass(slots=True, frozen=True)
class Contributor:
    """A single process contributing to a user's CPU or memory score."""

    score: str
    process: str

    @property
    def label(self) -> str:
        return _TREE_DECORATION.sub("", self.process)


@dataclass(slots=True)
class SnapshotUser:
    """Scores and contributing processes for one user in a sys-snap report."""

    name: str
    cpu_score: str | None = None
    cpu_contributors: list[Contributor] = field(default_factory=list)
    memory_score: str | None = None
    memory_contributors: list[Contributor] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class DaemonStatus:
    """Running state of the sys-snap sampling daemon."""

    running: bool
    pid: int | None = None
    elapsed_seconds: int | None = None


@dataclass(slots=True, frozen=True)
class RequestContext:
    """
    Clock and location facts fixed for one run of the sar pipeline.

    Built once per refresh and passed to every stage so that all commands and
    cache tags of a run agree on "now".
    """

    now: datetime
    interval: int
    log_path: str

    @property
    def current_time(self) -> str:
        return self.now.strftime("%H:%M:%S")

    @property
    def today(self) -> str:
        return self.now.strftime("%d")

    @property
    def yesterday(self) -> str:
        return datetime.fromordinal(self.now.toordinal() - 1).strftime("%d")

    @property
    def ten_minute_slot(self) -> str:
        return f"h{self.now:%H}_m{self.now.minute // 10 * 10}"
