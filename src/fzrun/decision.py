"""Crisp decisions on top of the fuzzy scores.

Two independent decisions:

- Machine triage: cheap aggregate readings against fixed thresholds. Any one
  breach marks the machine as worth a per-process scan.
- Process verdict: the rule engine's badness score against a fixed threshold.
"""

import math

import structlog

from fzrun.metrics import MetricsAdapter, ProcessVanished
from fzrun.models import (
    MachineVerdict,
    ProcessResult,
    ProcessSample,
    ProcessVerdict,
    RawMetrics,
    TriageResult,
)
from fzrun.rules import badness, fuzzify

log = structlog.get_logger()

# 5-minute average dominates; 1 and 15 minute terms only correct it
LOAD_WEIGHTS = (1, 4, 2)
LOAD_THRESHOLD = 0.70
MEM_THRESHOLD = 0.80
PROCESS_THRESHOLD = 0.30


def exceeds(value: float | None, limit: float) -> bool:
    """Strict ``value > limit``. Missing or NaN readings never exceed."""
    if value is None or math.isnan(value):
        return False
    return value > limit


def weighted_load(metrics: RawMetrics) -> float:
    """Weighted load average per CPU."""
    w1, w5, w15 = LOAD_WEIGHTS
    total = metrics.load1 * w1 + metrics.load5 * w5 + metrics.load15 * w15
    return total / sum(LOAD_WEIGHTS) / metrics.cpu_count


def triage(metrics: RawMetrics) -> TriageResult:
    """Decide whether the machine as a whole looks runaway.

    Gates (any one is enough):
    - weighted load per CPU > 0.70
    - memory used > 80%
    - I/O wait > one full CPU's worth (1 / cpu_count)
    """
    load = weighted_load(metrics)
    breaches = []
    if exceeds(load, LOAD_THRESHOLD):
        breaches.append("load")
    if exceeds(metrics.mem_used_ratio, MEM_THRESHOLD):
        breaches.append("memory")
    if exceeds(metrics.io_wait_ratio, 1 / metrics.cpu_count):
        breaches.append("iowait")

    verdict = MachineVerdict.RUNAWAY_MACHINE if breaches else MachineVerdict.CLEAN_MACHINE
    log.info(
        "triage",
        verdict=verdict.value,
        weighted_load=load,
        mem_used_ratio=metrics.mem_used_ratio,
        io_wait_ratio=metrics.io_wait_ratio,
        cpu_count=metrics.cpu_count,
        breaches=breaches,
    )
    return TriageResult(
        verdict=verdict,
        weighted_load=load,
        metrics=metrics,
        breaches=tuple(breaches),
    )


def classify(score: float) -> ProcessVerdict:
    """Runaway iff the score is strictly above the threshold."""
    if exceeds(score, PROCESS_THRESHOLD):
        return ProcessVerdict.RUNAWAY_PROCESS
    return ProcessVerdict.CLEAN_PROCESS


def judge_sample(sample: ProcessSample) -> ProcessResult:
    """Score an already-taken process sample."""
    inputs = fuzzify(sample)
    score = badness(inputs)
    return ProcessResult(pid=sample.pid, verdict=classify(score), badness=score, inputs=inputs)


def judge_process(adapter: MetricsAdapter, pid: int) -> ProcessResult:
    """Sample and score one process, reporting a vanished process distinctly."""
    try:
        sample = adapter.sample_process(pid)
    except ProcessVanished:
        log.info("process_vanished", pid=pid)
        return ProcessResult(pid=pid, verdict=ProcessVerdict.PROCESS_VANISHED)
    result = judge_sample(sample)
    if result.is_runaway:
        log.info("runaway_process", pid=pid, badness=result.badness, **result.inputs.as_dict())
    return result
