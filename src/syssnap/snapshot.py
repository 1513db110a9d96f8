"""Parser for the per-user report printed by `sys-snap.pl --print ... -v`."""

import re
from collections.abc import Iterable, Mapping
from enum import Enum

from loguru import logger

from syssnap.models import Contributor, SnapshotUser


class ParserState(Enum):
    """Where the parser is within the sys-snap report."""

    NO_USER = "no-user"
    IN_USER = "in-user"
    IN_CPU_LIST = "in-cpu-list"
    IN_MEMORY_LIST = "in-memory-list"


class LineKind(Enum):
    USER = "user"
    CPU_SCORE = "cpu-score"
    MEMORY_SCORE = "memory-score"
    CPU_PROCESS = "cpu-process"
    MEMORY_PROCESS = "memory-process"
    OTHER = "other"


_USER = re.compile(r"^user:\s+(\S+)")
_CPU_SCORE = re.compile(r"cpu-score:\s+([0-9.]+)")
_MEMORY_SCORE = re.compile(r"memory-score:\s+([0-9.]+)")
_CPU_PROCESS = re.compile(r"C:\s*([0-9.]+)\s*proc:\s*(.*)$")
_MEMORY_PROCESS = re.compile(r"M:\s*([0-9.]+)\s*proc:\s*(.*)$")

# Checked in order; the first match decides the kind of line
_CLASSIFIERS: tuple[tuple[LineKind, re.Pattern[str]], ...] = (
    (LineKind.USER, _USER),
    (LineKind.CPU_SCORE, _CPU_SCORE),
    (LineKind.MEMORY_SCORE, _MEMORY_SCORE),
    (LineKind.CPU_PROCESS, _CPU_PROCESS),
    (LineKind.MEMORY_PROCESS, _MEMORY_PROCESS),
)

_IN_SECTION = (ParserState.IN_USER, ParserState.IN_CPU_LIST, ParserState.IN_MEMORY_LIST)

# (state, line kind) -> next state. Pairs not listed are unmatched lines.
TRANSITIONS: dict[tuple[ParserState, LineKind], ParserState] = {
    **{(state, LineKind.USER): ParserState.IN_USER for state in ParserState},
    **{(state, LineKind.CPU_SCORE): ParserState.IN_CPU_LIST for state in _IN_SECTION},
    **{(state, LineKind.MEMORY_SCORE): ParserState.IN_MEMORY_LIST for state in _IN_SECTION},
    (ParserState.IN_CPU_LIST, LineKind.CPU_PROCESS): ParserState.IN_CPU_LIST,
    (ParserState.IN_MEMORY_LIST, LineKind.MEMORY_PROCESS): ParserState.IN_MEMORY_LIST,
}


def classify(line: str) -> tuple[LineKind, re.Match[str] | None]:
    # Section and score markers are matched on the raw line, process lines trimmed
    for kind, pattern in _CLASSIFIERS:
        subject = line.strip() if kind in (LineKind.CPU_PROCESS, LineKind.MEMORY_PROCESS) else line
        match = pattern.search(subject)
        if match:
            return kind, match
    return LineKind.OTHER, None


class SnapshotParser:
    """
    Finite-state parser over sys-snap's text report.

    A "user: NAME" line opens a section, "cpu-score:" and "memory-score:"
    lines set a score and select which contributor list the following
    "C: ... proc:" or "M: ... proc:" lines append to. Contributor lines
    outside a matching list are counted in `unmatched` and otherwise ignored.
    """

    def __init__(self) -> None:
        self.state = ParserState.NO_USER
        self.users: dict[str, SnapshotUser] = {}
        self.unmatched = 0
        self._current: SnapshotUser | None = None

    def feed(self, line: str) -> None:
        kind, match = classify(line)
        if kind is LineKind.OTHER:
            return

        next_state = TRANSITIONS.get((self.state, kind))
        if next_state is None:
            self.unmatched += 1
            return

        if kind is LineKind.USER:
            self._current = SnapshotUser(name=match.group(1))
            self.users[self._current.name] = self._current
        elif kind is LineKind.CPU_SCORE:
            self._current.cpu_score = match.group(1)
        elif kind is LineKind.MEMORY_SCORE:
            self._current.memory_score = match.group(1)
        elif kind is LineKind.CPU_PROCESS:
            self._current.cpu_contributors.append(Contributor(match.group(1), match.group(2)))
        elif kind is LineKind.MEMORY_PROCESS:
            self._current.memory_contributors.append(
                Contributor(match.group(1), match.group(2))
            )
        self.state = next_state

    def parse(self, lines: Iterable[str]) -> dict[str, SnapshotUser]:
        for line in lines:
            self.feed(line)
        if self.unmatched:
            logger.debug(f"sys-snap report had {self.unmatched} contributor lines outside a list")
        return self.users


def parse_snapshot(text: str) -> dict[str, SnapshotUser]:
    """Parse a full sys-snap report into users keyed by name, in report order."""
    return SnapshotParser().parse(text.splitlines())


def _score(value: str | None) -> float:
    try:
        return float(value) if value else 0.0
    except ValueError:
        return 0.0


def cpu_shares(users: Mapping[str, SnapshotUser]) -> list[tuple[str, float]]:
    """(user, CPU score) pairs in report order."""
    return [(name, _score(user.cpu_score)) for name, user in users.items()]


def memory_shares(users: Mapping[str, SnapshotUser]) -> list[tuple[str, float]]:
    """(user, memory score) pairs, highest first."""
    shares = [(name, _score(user.memory_score)) for name, user in users.items()]
    return sorted(shares, key=lambda share: share[1], reverse=True)
