"""Shared test fixtures for fzrun."""

import logging

import pytest
import structlog

from fzrun import logging as fzlog
from fzrun.metrics import MetricsAdapter, ProcessVanished
from fzrun.models import ProcessSample


class FakeAdapter(MetricsAdapter):
    """In-memory adapter with call counters."""

    def __init__(
        self,
        samples: list[ProcessSample] | None = None,
        vanished: tuple[int, ...] = (),
        loads: tuple[float, float, float] = (0.1, 0.1, 0.1),
        mem: float = 0.1,
        iowait: float = 0.01,
        cpus: int = 4,
    ) -> None:
        self.samples = {s.pid: s for s in samples or []}
        self.vanished = set(vanished)
        self.loads = loads
        self.mem = mem
        self.iowait = iowait
        self.cpus = cpus
        self.calls: dict[str, int] = {}

    def _count(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1

    def cpu_count(self) -> int:
        self._count("cpu_count")
        return self.cpus

    def load_averages(self) -> tuple[float, float, float]:
        self._count("load_averages")
        return self.loads

    def mem_used_ratio(self) -> float:
        self._count("mem_used_ratio")
        return self.mem

    def io_wait_ratio(self, interval: float) -> float:
        self._count("io_wait_ratio")
        return self.iowait

    def pids(self) -> list[int]:
        self._count("pids")
        return sorted(set(self.samples) | self.vanished)

    def sample_process(self, pid: int) -> ProcessSample:
        self._count("sample_process")
        if pid in self.vanished or pid not in self.samples:
            raise ProcessVanished(pid)
        return self.samples[pid]


def make_sample(
    pid: int = 1234,
    nice: int | None = 0,
    ppid: int = 500,
    cpu_percent: float = 0.0,
    mem_percent: float = 0.0,
) -> ProcessSample:
    """Create a ProcessSample for testing."""
    return ProcessSample(
        pid=pid,
        nice=nice,
        ppid=ppid,
        cpu_percent=cpu_percent,
        mem_percent=mem_percent,
    )


@pytest.fixture
def fake_adapter():
    """Factory for FakeAdapter instances."""
    return FakeAdapter


@pytest.fixture
def sample():
    """Factory for ProcessSample instances."""
    return make_sample


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep config and log files out of the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_verbosity():
    """Console verbosity is module state; restore the default after each test."""
    yield
    fzlog.set_verbosity(verbose=False, quiet=False)


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo the root handlers and structlog config set by fzlog.configure()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.reset_defaults()
