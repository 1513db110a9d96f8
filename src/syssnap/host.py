"""Facts about the host the panel is watching."""

from datetime import datetime

from syssnap.cache import Runner


def server_time(runner: Runner, now: datetime | None = None) -> str:
    """
    The server's local time and timezone, as `timedatectl` reports it first.

    Hosts without systemd get the same "Local time:" line built from the clock.
    """
    output = runner(["timedatectl"])
    for line in output.splitlines():
        if line.strip().startswith("Local time:"):
            return line.strip()

    local = (now or datetime.now()).astimezone()
    return f"Local time: {local:%a %Y-%m-%d %H:%M:%S %Z}"
