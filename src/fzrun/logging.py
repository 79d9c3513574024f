"""Console and file logging for fzrun.

This module provides:
1. Icon vocabulary (Icon class namespace)
2. Level-based styling with verbosity gating
3. Core log functions (log, info, warn, error)
4. Domain-specific helpers (triage_result, process_result, host_failed, etc.)
5. Structlog configuration (configure, get_structlog)

Console output goes to stderr through Rich so stdout stays reserved for the
``hostname pid`` report. JSON file output via structlog remains separate.
"""

from __future__ import annotations

import logging
import logging.handlers
from datetime import datetime
from typing import TYPE_CHECKING

import structlog
from rich.console import Console

if TYPE_CHECKING:
    from fzrun.config import Config
    from fzrun.models import ProcessResult, TriageResult

_console = Console(stderr=True, highlight=False)

# Info lines are only shown when verbose; quiet silences everything
_verbose = False
_quiet = False


# ─────────────────────────────────────────────────────────────────────────────
# Icons
# ─────────────────────────────────────────────────────────────────────────────


class Icon:
    """Icon vocabulary for console output."""

    OK = "[bold green]✓[/]"
    FAIL = "[bold red]✗[/]"
    WAIT = "⏳"
    RUNAWAY = "[bright_red]▲[/]"
    CLEAN = "[bright_green]▽[/]"
    VANISHED = "[dim]○[/]"
    HOST = "[cyan]⬤[/]"


_LEVEL_STYLES = {
    "info": "[bright_blue]\\[info][/]",
    "warn": "[yellow]\\[warn][/]",
    "error": "[bold red]\\[err][/] ",
}


# ─────────────────────────────────────────────────────────────────────────────
# Core Functions
# ─────────────────────────────────────────────────────────────────────────────


def set_verbosity(verbose: bool = False, quiet: bool = False) -> None:
    """Set console verbosity. Quiet takes precedence over verbose."""
    global _verbose, _quiet
    _quiet = quiet
    _verbose = verbose and not quiet


def log(level: str, msg: str, icon: str = "") -> None:
    """Print a log message with timestamp and level.

    Args:
        level: Log level (info, warn, error)
        msg: Message to print (can include Rich markup)
        icon: Optional icon to show after level (e.g., Icon.OK)
    """
    if _quiet or (level == "info" and not _verbose):
        return
    ts = datetime.now().strftime("%H:%M:%S")
    lvl = _LEVEL_STYLES.get(level, f"[{level}]")
    icon_part = f" {icon}" if icon else ""
    _console.print(f"[dim]{ts}[/] {lvl}{icon_part} {msg}")


def info(msg: str, icon: str = "") -> None:
    """Log an info message."""
    log("info", msg, icon)


def warn(msg: str, icon: str = "") -> None:
    """Log a warning message."""
    log("warn", msg, icon)


def error(msg: str, icon: str = "") -> None:
    """Log an error message."""
    log("error", msg, icon)


def score_color(score: float) -> str:
    """Rich color for a fuzzy score."""
    from fzrun.decision import PROCESS_THRESHOLD

    if score > PROCESS_THRESHOLD:
        return "bright_red"
    if score > 0.0:
        return "bright_yellow"
    return "green"


# ─────────────────────────────────────────────────────────────────────────────
# Domain Helpers
# ─────────────────────────────────────────────────────────────────────────────


def triage_result(result: TriageResult) -> None:
    """Log machine triage outcome with its readings."""
    m = result.metrics
    icon = Icon.RUNAWAY if result.is_runaway else Icon.CLEAN
    fired = f" [bright_red]({', '.join(result.breaches)})[/]" if result.breaches else ""
    info(
        f"triage [bold]{result.verdict.value}[/]{fired} [dim]— "
        f"load {result.weighted_load:.5f}, mem {m.mem_used_ratio:.5f}, "
        f"iowait {m.io_wait_ratio:.5f}, {m.cpu_count} cpus[/]",
        icon,
    )


def process_result(result: ProcessResult) -> None:
    """Log one process verdict with its fuzzified inputs."""
    if result.badness is None or result.inputs is None:
        process_vanished(result.pid)
        return
    sc = score_color(result.badness)
    inputs = " ".join(f"{k}={v:.5f}" for k, v in result.inputs.as_dict().items())
    icon = Icon.RUNAWAY if result.is_runaway else Icon.CLEAN
    info(
        f"[dim]({result.pid})[/] badness [{sc}]{result.badness:.5f}[/] [dim]— {inputs}[/]",
        icon,
    )


def process_vanished(pid: int) -> None:
    """Log a process that exited before it could be sampled."""
    info(f"[dim]({pid}) vanished before sampling[/]", Icon.VANISHED)


def scan_skipped() -> None:
    """Log that triage was clean so no per-process scan ran."""
    info("[dim]Machine clean, per-process scan skipped[/]")


def scan_summary(scanned: int, runaways: int, vanished: int) -> None:
    """Log per-process scan totals."""
    info(
        f"Scanned [cyan]{scanned}[/] processes: "
        f"[bright_red]{runaways}[/] runaway, [dim]{vanished} vanished[/]"
    )


def metric_unavailable(metric: str, reason: str) -> None:
    """Log a metric that degraded to a neutral reading."""
    warn(f"{metric} unavailable, using 0 — {reason}")


def config_invalid(message: str) -> None:
    """Log an unusable config file."""
    error(message, Icon.FAIL)


def fleet_empty(group: str) -> None:
    """Log a group that resolved to no hosts."""
    error(f"Empty host list. Possible typo with [bold]{group!r}[/]?", Icon.FAIL)


def fleet_started(group: str, host_count: int, excluded: int) -> None:
    """Log fan-out start."""
    skipped = f" [dim]({excluded} excluded)[/]" if excluded else ""
    info(f"Checking [cyan]{host_count}[/] hosts in [bold]{group}[/]{skipped}", Icon.WAIT)


def host_done(host: str, returncode: int) -> None:
    """Log a host that finished its check."""
    info(f"[cyan]{host}[/] exit {returncode}", Icon.HOST)


def host_failed(host: str, reason: str) -> None:
    """Log a host whose check could not complete."""
    warn(f"[cyan]{host}[/] failed — {reason}")


def cover_valid(clauses: int, rows: int) -> None:
    """Log a rule cover that matches its truth table."""
    _console.print(f"{Icon.OK} {clauses} clauses match all {rows} truth-table rows")


def cover_invalid(mismatches: int) -> None:
    """Log a rule cover that disagrees with its truth table."""
    _console.print(f"{Icon.FAIL} rule cover disagrees with {mismatches} truth-table minterms")


# ─────────────────────────────────────────────────────────────────────────────
# Structlog Configuration
# ─────────────────────────────────────────────────────────────────────────────


def _add_source(source: str) -> structlog.types.Processor:
    """Create a processor that adds a source field to log events."""

    def processor(
        logger: structlog.types.WrappedLogger,
        method_name: str,
        event_dict: structlog.types.EventDict,
    ) -> structlog.types.EventDict:
        event_dict["source"] = source
        return event_dict

    return processor


def configure(config: Config, source: str = "check") -> None:
    """Configure structlog to write JSON Lines to a rotating file.

    When file logging is disabled, structlog events are dropped by the stdlib
    root logger (no handler); console output is unaffected.

    Args:
        config: Application config with paths
        source: Value of the ``source`` field on every event
    """
    stdlib_root = logging.getLogger()
    stdlib_root.setLevel(logging.INFO)
    stdlib_root.handlers.clear()

    if config.logging.file_enabled:
        config.state_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            config.log_path,
            maxBytes=config.logging.log_max_bytes,
            backupCount=config.logging.log_backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(
            structlog.stdlib.ProcessorFormatter(
                processor=structlog.processors.JSONRenderer(),
                foreign_pre_chain=[
                    structlog.contextvars.merge_contextvars,
                    structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
                    structlog.processors.add_log_level,
                    _add_source(source),
                    structlog.processors.format_exc_info,
                ],
            )
        )
        stdlib_root.addHandler(file_handler)
    else:
        stdlib_root.addHandler(logging.NullHandler())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", utc=False, key="ts"),
            structlog.processors.add_log_level,
            _add_source(source),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_structlog() -> structlog.stdlib.BoundLogger:
    """Get a structlog logger for machine-parseable file events."""
    return structlog.get_logger()
