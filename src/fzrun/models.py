"""Data models for fzrun."""

from dataclasses import dataclass, field
from enum import Enum


class MachineVerdict(Enum):
    """Outcome of whole-machine triage."""

    RUNAWAY_MACHINE = "runaway"
    CLEAN_MACHINE = "clean"


class ProcessVerdict(Enum):
    """Outcome of a single-process check."""

    RUNAWAY_PROCESS = "runaway"
    CLEAN_PROCESS = "clean"
    PROCESS_VANISHED = "vanished"


@dataclass(slots=True, frozen=True)
class RawMetrics:
    """Immutable host-level readings taken once per triage."""

    load1: float
    load5: float
    load15: float
    mem_used_ratio: float  # 0.0 - 1.0
    io_wait_ratio: float  # 0.0 - 1.0
    cpu_count: int


@dataclass(slots=True, frozen=True)
class ProcessSample:
    """Immutable per-process readings."""

    pid: int
    nice: int | None  # None when the platform can't report it
    ppid: int
    cpu_percent: float  # may exceed 100 on multi-core hosts
    mem_percent: float


@dataclass(slots=True, frozen=True)
class ProcessInputs:
    """Fuzzified rule inputs for one process."""

    nice: float
    disowned: float
    mid_cpu: float
    mid_mem: float
    hi_cpu: float
    hi_mem: float

    def as_dict(self) -> dict[str, float]:
        """Return inputs keyed by rule literal name."""
        return {
            "nice": self.nice,
            "disowned": self.disowned,
            "mid_cpu": self.mid_cpu,
            "mid_mem": self.mid_mem,
            "hi_cpu": self.hi_cpu,
            "hi_mem": self.hi_mem,
        }


@dataclass(slots=True, frozen=True)
class TriageResult:
    """Machine triage verdict with the gates that fired."""

    verdict: MachineVerdict
    weighted_load: float
    metrics: RawMetrics
    breaches: tuple[str, ...] = ()

    @property
    def is_runaway(self) -> bool:
        return self.verdict is MachineVerdict.RUNAWAY_MACHINE


@dataclass(slots=True, frozen=True)
class ProcessResult:
    """Process verdict. ``badness`` and ``inputs`` are None for vanished processes."""

    pid: int
    verdict: ProcessVerdict
    badness: float | None = None
    inputs: ProcessInputs | None = None

    @property
    def is_runaway(self) -> bool:
        return self.verdict is ProcessVerdict.RUNAWAY_PROCESS


@dataclass(slots=True)
class CheckReport:
    """Everything one invocation of the single-host check produced."""

    hostname: str
    exit_code: int
    triage: TriageResult | None = None
    scanned: bool = False
    runaways: list[int] = field(default_factory=list)
    vanished: int = 0
    target: ProcessResult | None = None

    def output_lines(self) -> list[str]:
        """Lines for stdout: bare hostname, or ``hostname pid`` per runaway."""
        if self.target is not None:
            if self.target.is_runaway:
                return [f"{self.hostname} {self.target.pid}"]
            return []
        if self.scanned:
            return [f"{self.hostname} {pid}" for pid in self.runaways]
        if self.triage is not None and self.triage.is_runaway:
            return [self.hostname]
        return []
