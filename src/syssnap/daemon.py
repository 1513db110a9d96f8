"""Control of the sys-snap sampling daemon."""

import re
import time

import psutil
from loguru import logger

from syssnap.cache import ProcessCache, Runner
from syssnap.config import PanelConfig
from syssnap.models import DaemonStatus, TimeRange

_RUNNING = re.compile(r"Sys-snap is running, PID:\s*'(\d+)'")


def format_elapsed(seconds: int) -> str:
    """Format a runtime as "2d, 3h, 4m"; days only when non-zero, minutes always."""
    seconds = int(seconds)
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0 or days > 0:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return ", ".join(parts)


def process_elapsed(pid: int) -> int | None:
    """Seconds since `pid` started, or None if it cannot be inspected."""
    try:
        started = psutil.Process(pid).create_time()
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        return None
    return max(0, int(time.time() - started))


def parse_status(output: str) -> tuple[bool, int | None]:
    """Read the running flag and PID from `sys-snap.pl --check` output."""
    match = _RUNNING.search(output)
    if not match:
        return False, None
    return True, int(match.group(1))


class SysSnapDaemon:
    """
    Wrapper around sys-snap.pl's --check, --start and --print commands.

    Status and start are always run live. Reports go through the process
    cache since the same window is typically requested repeatedly.
    """

    def __init__(self, config: PanelConfig, cache: ProcessCache, runner: Runner) -> None:
        self._config = config
        self._cache = cache
        self._runner = runner

    def _command(self, *args: str) -> list[str]:
        return [self._config.perl_path, self._config.syssnap_script, *args]

    def check(self) -> DaemonStatus:
        output = self._runner(self._command("--check"))
        running, pid = parse_status(output)
        if not running:
            return DaemonStatus(running=False)
        return DaemonStatus(running=True, pid=pid, elapsed_seconds=process_elapsed(pid))

    def start(self) -> str:
        """Start the daemon, answering its confirmation prompt. Returns its output."""
        logger.info("Starting sys-snap")
        return self._runner(self._command("--start"), stdin_text="y\n")

    def print_report(self, time_range: TimeRange) -> str:
        tag = (
            f"sys_snap_{time_range.start_hour}_{time_range.start_min}"
            f"_{time_range.end_hour}_{time_range.end_min}"
        )
        command = self._command("--print", time_range.start, time_range.end, "-v")
        return self._cache.get_or_run(tag, command, self._config.snapshot_cache_ttl)
