"""Single-host check: triage, optional per-process scan, single-pid mode."""

from dataclasses import dataclass

import structlog

from fzrun import logging as fzlog
from fzrun.context import CheckContext
from fzrun.decision import judge_process, triage
from fzrun.models import CheckReport, ProcessVerdict

log = structlog.get_logger()

EXIT_RUNAWAY = 0
EXIT_CLEAN = 1
EXIT_VANISHED = 255


@dataclass
class CheckOptions:
    """What one invocation should do."""

    scan: bool = False  # Scan processes when triage is positive
    force: bool = False  # Scan processes regardless of triage
    pid: int | None = None  # Check only this process


def check_pid(ctx: CheckContext, pid: int) -> CheckReport:
    """Verdict for one given process. Triage is not run."""
    result = judge_process(ctx.adapter, pid)
    fzlog.process_result(result)
    if result.verdict is ProcessVerdict.RUNAWAY_PROCESS:
        exit_code = EXIT_RUNAWAY
    elif result.verdict is ProcessVerdict.PROCESS_VANISHED:
        exit_code = EXIT_VANISHED
    else:
        exit_code = EXIT_CLEAN
    return CheckReport(hostname=ctx.hostname, exit_code=exit_code, target=result)


def scan_processes(ctx: CheckContext) -> tuple[list[int], int]:
    """Score every visible process independently.

    Returns:
        (runaway pids in enumeration order, number of processes that vanished)
    """
    runaways: list[int] = []
    vanished = 0
    scanned = 0
    for pid in ctx.adapter.pids():
        if pid == ctx.own_pid:
            continue
        result = judge_process(ctx.adapter, pid)
        scanned += 1
        if result.verdict is ProcessVerdict.PROCESS_VANISHED:
            vanished += 1
        elif result.is_runaway:
            runaways.append(pid)
        fzlog.process_result(result)

    fzlog.scan_summary(scanned, len(runaways), vanished)
    log.info("scan_complete", scanned=scanned, runaways=len(runaways), vanished=vanished)
    return runaways, vanished


def check_machine(ctx: CheckContext, scan: bool = False, force: bool = False) -> CheckReport:
    """Triage the machine, then scan processes if asked to.

    The scan runs when triage is positive and ``scan`` is set, or always when
    ``force`` is set. Exit code is 0 if triage was positive or any runaway
    process was found.
    """
    result = triage(ctx.raw_metrics())
    fzlog.triage_result(result)

    report = CheckReport(hostname=ctx.hostname, exit_code=EXIT_CLEAN, triage=result)
    if force or (scan and result.is_runaway):
        report.scanned = True
        report.runaways, report.vanished = scan_processes(ctx)
    elif scan:
        fzlog.scan_skipped()

    if result.is_runaway or report.runaways:
        report.exit_code = EXIT_RUNAWAY
    return report


def run_check(ctx: CheckContext, options: CheckOptions) -> CheckReport:
    """Run the check the options ask for."""
    if options.pid is not None:
        return check_pid(ctx, options.pid)
    return check_machine(ctx, scan=options.scan, force=options.force)
