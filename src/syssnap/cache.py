"""Cached execution of read-only reporting commands."""

import os
import re
import stat
import subprocess
import tempfile
import time
from collections.abc import Sequence
from functools import partial
from pathlib import Path
from typing import Protocol

from loguru import logger


class Runner(Protocol):
    def __call__(self, command: Sequence[str], stdin_text: str | None = None) -> str: ...


_UNSAFE_TAG_CHARS = re.compile(r"[^a-zA-Z0-9_\-.]")


def run_command(
    command: Sequence[str],
    timeout: float | None = 30.0,
    stdin_text: str | None = None,
) -> str:
    """
    Run `command` and return its combined stdout and stderr.

    Tool output is parsed, so the C locale is forced. A missing binary, an
    OS error or a timeout all yield an empty string.
    """
    env = {**os.environ, "LANG": "C"}
    try:
        result = subprocess.run(
            list(command),
            input=stdin_text,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            env=env,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        logger.warning(f"Command timed out after {timeout}s: {' '.join(command)}")
        return ""
    except OSError as e:
        logger.warning(f"Command failed to start: {' '.join(command)}: {e}")
        return ""
    return result.stdout or ""


def make_runner(timeout: float | None) -> Runner:
    """A run_command bound to `timeout`."""
    return partial(run_command, timeout=timeout)


def sanitize_tag(tag: str) -> str:
    """Map a cache tag onto the safe filename alphabet [A-Za-z0-9_.-]."""
    return _UNSAFE_TAG_CHARS.sub("_", tag)


class ProcessCache:
    """
    TTL cache of command output, one file per tag.

    An entry is only trusted if it is a regular file owned by `trusted_uid`.
    Anything else is deleted unread and treated as a miss. The directory
    itself must belong to the running user and is kept at mode 0700.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        trusted_uid: int = 0,
        runner: Runner | None = None,
        timeout: float | None = 30.0,
    ) -> None:
        """
        Initialize the ProcessCache.

        Args:
            cache_dir: Private directory holding the cache files (created 0700).
            trusted_uid: Owner uid a cache file must have to be read.
            runner: Callable executing a command; defaults to run_command.
            timeout: Per-command timeout passed to the default runner.
        """
        self._dir = Path(cache_dir)
        self._trusted_uid = trusted_uid
        self._runner = runner or make_runner(timeout)
        self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        self._secure_dir()

    @property
    def cache_dir(self) -> Path:
        return self._dir

    def path_for(self, tag: str) -> Path:
        """Storage path for `tag`. Distinct sanitized tags never share a path."""
        return self._dir / f"sar_{sanitize_tag(tag)}.cache"

    def get_or_run(self, tag: str, command: Sequence[str], ttl: float) -> str:
        """
        Return cached output for `tag` if trusted and younger than `ttl` seconds,
        otherwise run `command`, cache non-empty output and return it.
        """
        path = self.path_for(tag)
        cached = self._read_trusted(path, ttl)
        if cached is not None:
            logger.debug(f"Cache hit for {tag}")
            return cached

        logger.debug(f"Cache miss for {tag}, running {' '.join(command)}")
        output = self._runner(command)
        if output.strip():
            self._write(path, output)
        return output

    def purge_expired(self, max_age: float) -> int:
        """Delete cache files older than `max_age` seconds. Returns how many went."""
        removed = 0
        now = time.time()
        for path in self._dir.glob("*.cache"):
            try:
                if path.is_file() and now - path.stat().st_mtime > max_age:
                    path.unlink()
                    removed += 1
            except FileNotFoundError:
                continue
        if removed:
            logger.info(f"Purged {removed} expired cache files from {self._dir}")
        return removed

    def _secure_dir(self) -> None:
        """Refuse a cache directory we do not own and tighten one readable by others."""
        st = os.lstat(self._dir)
        if not stat.S_ISDIR(st.st_mode):
            raise PermissionError(f"Cache path {self._dir} is not a real directory")
        if st.st_uid != os.geteuid():
            raise PermissionError(f"Cache directory {self._dir} is owned by uid {st.st_uid}")
        if stat.S_IMODE(st.st_mode) & 0o077:
            logger.warning(f"Cache directory {self._dir} was accessible to others, resetting to 0700")
            os.chmod(self._dir, 0o700)

    def _read_trusted(self, path: Path, ttl: float) -> str | None:
        # Owner, age and content all come from one descriptor; symlinks are refused
        try:
            fd = os.open(path, os.O_RDONLY | os.O_NOFOLLOW | os.O_NONBLOCK)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Discarding unreadable cache entry {path}: {e}")
            path.unlink(missing_ok=True)
            return None

        with os.fdopen(fd) as f:
            st = os.fstat(f.fileno())
            if not stat.S_ISREG(st.st_mode) or st.st_uid != self._trusted_uid:
                logger.warning(
                    f"Discarding cache file {path} owned by uid {st.st_uid}, "
                    f"expected {self._trusted_uid}"
                )
                path.unlink(missing_ok=True)
                return None
            if time.time() - st.st_mtime >= ttl:
                return None
            return f.read()

    def _write(self, path: Path, output: str) -> None:
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=".tmp_", suffix=".part")
            with os.fdopen(fd, "w") as f:
                f.write(output)
            os.replace(tmp_name, path)
        except OSError as e:
            logger.warning(f"Could not write cache file {path}: {e}")
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            return

        # Re-check ownership of what landed at the path before it is ever read
        try:
            owner = path.stat().st_uid
        except FileNotFoundError:
            return
        if owner != self._trusted_uid:
            logger.warning(f"Fresh cache file {path} has untrusted owner {owner}, removing")
            path.unlink(missing_ok=True)
            return
        logger.info(f"Cached {len(output)} bytes to {path.name}")
