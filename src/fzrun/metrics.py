"""Metric adapters: where raw machine and process readings come from.

The fuzzy engine only sees ``RawMetrics`` and ``ProcessSample``. Everything
platform-specific lives behind ``MetricsAdapter``:

- ``PsutilAdapter`` reads through psutil (default).
- ``CommandAdapter`` parses the output of ``ps``, ``free``, ``uptime`` and
  ``mpstat``, for hosts where psutil isn't installed for the remote user.

A reading that can't be taken on this platform degrades to a neutral 0 and
logs a warning; it never aborts the check. A process that is gone by the time
it is sampled raises ``ProcessVanished``.
"""

import math
import os
import re
import subprocess
import sys
import time
from abc import ABC, abstractmethod

import psutil
import structlog

from fzrun import logging as fzlog
from fzrun.config import Config
from fzrun.models import ProcessSample

log = structlog.get_logger()

COMMAND_TIMEOUT = 10.0  # Seconds before a metric command is abandoned


class ProcessVanished(Exception):
    """The process exited between enumeration and sampling."""

    def __init__(self, pid: int):
        super().__init__(f"process {pid} no longer exists")
        self.pid = pid


class MetricsAdapter(ABC):
    """Source of raw readings for one host."""

    @abstractmethod
    def cpu_count(self) -> int:
        """Number of online logical CPUs (at least 1)."""

    @abstractmethod
    def load_averages(self) -> tuple[float, float, float]:
        """1, 5 and 15 minute load averages."""

    @abstractmethod
    def mem_used_ratio(self) -> float:
        """Fraction of physical memory in use."""

    @abstractmethod
    def io_wait_ratio(self, interval: float) -> float:
        """Fraction of CPU time spent waiting on I/O, averaged over ``interval`` seconds.

        Blocks for ``interval``.
        """

    @abstractmethod
    def pids(self) -> list[int]:
        """All process ids visible right now."""

    @abstractmethod
    def sample_process(self, pid: int) -> ProcessSample:
        """Read one process.

        Raises:
            ProcessVanished: If the process no longer exists.
        """


def _unavailable(metric: str, reason: str) -> float:
    fzlog.metric_unavailable(metric, reason)
    log.warning("metric_unavailable", metric=metric, reason=reason)
    return 0.0


# ─────────────────────────────────────────────────────────────────────────────
# psutil
# ─────────────────────────────────────────────────────────────────────────────


class PsutilAdapter(MetricsAdapter):
    """Reads metrics through psutil."""

    def cpu_count(self) -> int:
        return psutil.cpu_count(logical=True) or 1

    def load_averages(self) -> tuple[float, float, float]:
        load1, load5, load15 = psutil.getloadavg()
        return load1, load5, load15

    def mem_used_ratio(self) -> float:
        mem = psutil.virtual_memory()
        if mem.total <= 0:
            return _unavailable("memory", "total memory reported as 0")
        return (mem.total - mem.available) / mem.total

    def io_wait_ratio(self, interval: float) -> float:
        times = psutil.cpu_times_percent(interval=interval)
        # iowait is only reported on Linux
        iowait = getattr(times, "iowait", None)
        if iowait is None:
            return _unavailable("iowait", f"not reported on {sys.platform}")
        return iowait / 100

    def pids(self) -> list[int]:
        return psutil.pids()

    def sample_process(self, pid: int) -> ProcessSample:
        try:
            proc = psutil.Process(pid)
            with proc.oneshot():
                ppid = proc.ppid()
                try:
                    nice: int | None = int(proc.nice())
                except psutil.AccessDenied:
                    nice = None
                try:
                    cpu_percent = self._lifetime_cpu_percent(proc)
                    mem_percent = proc.memory_percent()
                except psutil.AccessDenied:
                    cpu_percent = 0.0
                    mem_percent = 0.0
        except (psutil.NoSuchProcess, psutil.ZombieProcess) as e:
            raise ProcessVanished(pid) from e
        return ProcessSample(
            pid=pid,
            nice=nice,
            ppid=ppid,
            cpu_percent=cpu_percent,
            mem_percent=mem_percent,
        )

    @staticmethod
    def _lifetime_cpu_percent(proc: psutil.Process) -> float:
        """CPU time over wall time since start, the way ``ps -o pcpu`` reports it."""
        cpu = proc.cpu_times()
        elapsed = time.time() - proc.create_time()
        if elapsed <= 0:
            return 0.0
        return (cpu.user + cpu.system) / elapsed * 100.0


# ─────────────────────────────────────────────────────────────────────────────
# Shell commands
# ─────────────────────────────────────────────────────────────────────────────

_LOAD_RE = re.compile(r"load averages?:\s*([\d.]+),?\s+([\d.]+),?\s+([\d.]+)")


def parse_float(text: str | None) -> float | None:
    """Parse a float, returning None for empty, malformed or non-finite input."""
    if text is None:
        return None
    try:
        value = float(text.strip())
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_int(text: str | None) -> int | None:
    """Parse an int, returning None for empty or malformed input."""
    if text is None:
        return None
    try:
        return int(text.strip())
    except ValueError:
        return None


def parse_uptime(text: str) -> tuple[float, float, float] | None:
    """Extract load averages from ``uptime`` output (Linux, BSD and Solaris)."""
    match = _LOAD_RE.search(text)
    if not match:
        return None
    return float(match.group(1)), float(match.group(2)), float(match.group(3))


def parse_free(text: str) -> float | None:
    """Used/total memory ratio from the ``Mem:`` line of ``free`` output."""
    for line in text.splitlines():
        parts = line.split()
        if parts and parts[0] == "Mem:" and len(parts) >= 3:
            total = parse_float(parts[1])
            used = parse_float(parts[2])
            if total is None or used is None or total <= 0:
                return None
            return used / total
    return None


def parse_mpstat(text: str) -> float | None:
    """I/O-wait ratio from the ``Average:`` line of sysstat ``mpstat`` output."""
    # Counted from the right: the header's time column may be "10:15:01 AM"
    from_end = None
    for line in text.splitlines():
        parts = line.split()
        if "%iowait" in parts:
            from_end = len(parts) - parts.index("%iowait")
        elif from_end is not None and parts and parts[0] == "Average:" and len(parts) >= from_end:
            value = parse_float(parts[len(parts) - from_end])
            return None if value is None else value / 100
    return None


def parse_ps_row(text: str, pid: int) -> ProcessSample | None:
    """Parse ``ps -o ni=,ppid=,pcpu=,pmem= -p PID`` output.

    Returns None when ps printed no row (the process is gone). A nice column
    that isn't a number (``-`` for realtime classes) reads as unavailable.
    """
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return None
    parts = lines[0].split()
    if len(parts) < 4:
        return None
    ppid = parse_int(parts[1])
    if ppid is None:
        return None
    return ProcessSample(
        pid=pid,
        nice=parse_int(parts[0]),
        ppid=ppid,
        cpu_percent=parse_float(parts[2]) or 0.0,
        mem_percent=parse_float(parts[3]) or 0.0,
    )


class CommandAdapter(MetricsAdapter):
    """Reads metrics by running the usual Unix tools."""

    def _run(
        self, args: list[str], timeout: float = COMMAND_TIMEOUT
    ) -> subprocess.CompletedProcess | None:
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                check=False,
                timeout=timeout,
            )
        except FileNotFoundError:
            log.warning("command_not_found", command=args[0])
            return None
        except subprocess.TimeoutExpired:
            log.warning("command_timeout", command=args[0], timeout=timeout)
            return None

    def cpu_count(self) -> int:
        result = self._run(["getconf", "_NPROCESSORS_ONLN"])
        count = parse_int(result.stdout) if result and result.returncode == 0 else None
        if count is None or count < 1:
            count = os.cpu_count() or 1
        return count

    def load_averages(self) -> tuple[float, float, float]:
        result = self._run(["uptime"])
        loads = parse_uptime(result.stdout) if result else None
        if loads is None:
            _unavailable("load", "could not parse uptime output")
            return 0.0, 0.0, 0.0
        return loads

    def mem_used_ratio(self) -> float:
        result = self._run(["free", "-b"])
        if result is None:
            return _unavailable("memory", "free not installed")
        ratio = parse_free(result.stdout)
        if ratio is None:
            return _unavailable("memory", "could not parse free output")
        return ratio

    def io_wait_ratio(self, interval: float) -> float:
        if not sys.platform.startswith("linux"):
            return _unavailable("iowait", f"not supported on {sys.platform}")
        seconds = max(1, round(interval))
        result = self._run(["mpstat", str(seconds), "1"], timeout=seconds + COMMAND_TIMEOUT)
        if result is None:
            return _unavailable("iowait", "mpstat not installed")
        ratio = parse_mpstat(result.stdout)
        if ratio is None:
            return _unavailable("iowait", "could not parse mpstat output")
        return ratio

    def pids(self) -> list[int]:
        result = self._run(["ps", "-e", "-o", "pid="])
        if result is None:
            return []
        pids = (parse_int(line) for line in result.stdout.splitlines())
        return [pid for pid in pids if pid is not None and pid > 0]

    def sample_process(self, pid: int) -> ProcessSample:
        result = self._run(["ps", "-o", "ni=,ppid=,pcpu=,pmem=", "-p", str(pid)])
        sample = parse_ps_row(result.stdout, pid) if result and result.returncode == 0 else None
        if sample is None:
            raise ProcessVanished(pid)
        return sample


def get_adapter(config: Config) -> MetricsAdapter:
    """Build the adapter named in config."""
    if config.metrics.adapter == "command":
        return CommandAdapter()
    return PsutilAdapter()
