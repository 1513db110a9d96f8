"""Shared sar and sys-snap sample output and fake collaborators."""

import threading

import pytest

from syssnap.models import DaemonStatus, Header, MergedSeries, ReportRow, SarReport, TimeRange

LOAD_HEADER = Header(("Time", "ldavg-1"))

BANNER = "Linux 5.14.0-362.el9.x86_64 (web01.example.com) \t03/04/2024 \t_x86_64_\t(4 CPU)"

QUEUE_YESTERDAY = f"""{BANNER}

14:30:01      runq-sz  plist-sz   ldavg-1   ldavg-5  ldavg-15   blocked
14:40:01            1       210      0.12      0.20      0.25         0
14:50:01            2       212      0.30      0.22      0.24         0
Average:            2       211      0.21      0.21      0.25         0
"""

QUEUE_TODAY = f"""{BANNER}

00:00:01      runq-sz  plist-sz   ldavg-1   ldavg-5  ldavg-15   blocked
00:10:01            0       198      0.05      0.09      0.11         0
00:20:01            3       201      0.90      0.40      0.20         1
Average:            2       200      0.48      0.25      0.16         1
"""

PAGING_YESTERDAY = f"""{BANNER}

14:30:01     pgpgin/s pgpgout/s   fault/s  majflt/s  pgfree/s pgscank/s pgscand/s pgsteal/s    %vmeff
14:40:01         0.52     12.40    210.33      0.01    120.50      0.00      0.00      0.00      0.00
Average:         0.52     12.40    210.33      0.01    120.50      0.00      0.00      0.00      0.00
"""

PAGING_TODAY = f"""{BANNER}

00:00:01     pgpgin/s pgpgout/s   fault/s  majflt/s  pgfree/s pgscank/s pgscand/s pgsteal/s    %vmeff
00:20:01         4.00     30.10    512.00      0.20    300.00      0.00      0.00      0.00      0.00
Average:         4.00     30.10    512.00      0.20    300.00      0.00      0.00      0.00      0.00
"""

SNAPSHOT_REPORT = """user: alice
\tcpu-score: 12.50
\t\tC: 10.00 proc: /usr/sbin/httpd -k start
\t\tC: 2.50 proc: | \\_ php-fpm: pool alice
\tmemory-score: 8.00
\t\tM: 6.00 proc: /usr/sbin/mysqld
\t\tM: 2.00 proc: \\_ php-fpm: pool alice
user: bob
\tcpu-score: 1.00
\t\tC: 1.00 proc: cron
\tmemory-score: 20.00
\t\tM: 20.00 proc: java -jar app.jar
"""


class FakeCache:
    """Stands in for ProcessCache, answering by tag prefix and recording calls."""

    def __init__(self, outputs: dict[str, str] | None = None) -> None:
        self.outputs = outputs or {}
        self.calls: list[tuple[str, list[str], float]] = []

    def get_or_run(self, tag, command, ttl):
        self.calls.append((tag, list(command), ttl))
        for prefix, output in self.outputs.items():
            if tag.startswith(prefix):
                return output
        return ""


@pytest.fixture
def sar_outputs():
    return {
        "sarq_yesterday": QUEUE_YESTERDAY,
        "sarq_today": QUEUE_TODAY,
        "sarB_yesterday": PAGING_YESTERDAY,
        "sarB_today": PAGING_TODAY,
    }


class FakeProcessor:
    """Stands in for SarDataProcessor."""

    def __init__(self, report: SarReport | None = None) -> None:
        self.report = report or SarReport(
            success=True,
            series=MergedSeries(
                header=LOAD_HEADER,
                rows=(
                    ReportRow(LOAD_HEADER, ["00:10:01", "0.10"]),
                    ReportRow(LOAD_HEADER, ["00:20:01", "0.20"]),
                ),
            ),
        )
        self.calls = 0

    def get_report(self) -> SarReport:
        self.calls += 1
        return self.report


class FakeDaemon:
    """Stands in for SysSnapDaemon, recording requested time ranges."""

    def __init__(self, report: str = "user: root\ncpu-score: 1.0\n") -> None:
        self.report = report
        self.ranges: list[TimeRange] = []
        self.lock = threading.Lock()

    def check(self) -> DaemonStatus:
        return DaemonStatus(running=True, pid=42, elapsed_seconds=120)

    def start(self) -> str:
        return "started"

    def print_report(self, time_range: TimeRange) -> str:
        with self.lock:
            self.ranges.append(time_range)
        return self.report
