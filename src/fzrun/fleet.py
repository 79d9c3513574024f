"""Fleet fan-out: run the single-host check on every host of a group over ssh."""

import asyncio
import contextlib
import re
from collections.abc import Callable
from dataclasses import dataclass, field

import structlog

from fzrun import logging as fzlog
from fzrun.config import Config
from fzrun.scanner import EXIT_CLEAN, EXIT_RUNAWAY, EXIT_VANISHED

log = structlog.get_logger()

EXIT_EMPTY_GROUP = 255


@dataclass
class HostResult:
    """Outcome of the remote check on one host."""

    host: str
    returncode: int | None = None  # None when the check never completed
    stdout: str = ""
    error: str | None = None

    @property
    def found_runaway(self) -> bool:
        return self.returncode == EXIT_RUNAWAY


@dataclass
class FleetReport:
    """Merged outcome across hosts, in completion order."""

    group: str
    exit_code: int
    hosts: list[str] = field(default_factory=list)
    excluded: list[str] = field(default_factory=list)
    results: list[HostResult] = field(default_factory=list)


async def resolve_group(group: str, config: Config) -> list[str]:
    """Hosts in a group: a static ``[fleet.groups]`` entry, else the resolver command.

    A resolver that is missing or prints nothing yields an empty list.
    """
    static = config.fleet.groups.get(group)
    if static is not None:
        return list(static)

    try:
        process = await asyncio.create_subprocess_exec(
            config.fleet.resolver,
            group,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except FileNotFoundError:
        log.warning("resolver_not_found", resolver=config.fleet.resolver)
        return []

    stdout, _ = await process.communicate()
    return stdout.decode("utf-8", errors="replace").split()


def exclude_hosts(hosts: list[str], pattern: str) -> tuple[list[str], list[str]]:
    """Split hosts into (kept, excluded) by a regex matched at the start of the name."""
    regex = re.compile(pattern)
    kept: list[str] = []
    excluded: list[str] = []
    for host in hosts:
        (excluded if regex.match(host) else kept).append(host)
    return kept, excluded


def remote_command(host: str, config: Config, args: tuple[str, ...] = ()) -> list[str]:
    """ssh argv that runs ``fzrun check ARGS`` on a host."""
    fleet = config.fleet
    return ["ssh", *fleet.ssh_options, host, fleet.remote_command, "check", *args]


async def check_host(
    host: str,
    config: Config,
    args: tuple[str, ...] = (),
    limiter: asyncio.Semaphore | None = None,
) -> HostResult:
    """Run the check on one host. Never raises; failures come back in the result."""
    async with limiter if limiter is not None else contextlib.nullcontext():
        try:
            process = await asyncio.create_subprocess_exec(
                *remote_command(host, config, args),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            return HostResult(host=host, error=str(e))

        try:
            stdout, _ = await asyncio.wait_for(
                process.communicate(), timeout=config.fleet.timeout_seconds
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return HostResult(host=host, error=f"timed out after {config.fleet.timeout_seconds}s")

    return HostResult(
        host=host,
        returncode=process.returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
    )


def _describe_failure(result: HostResult) -> str | None:
    if result.error is not None:
        return result.error
    # ssh itself exits 255 on connection failure; fzrun uses 255 only for a vanished pid
    if result.returncode not in (EXIT_RUNAWAY, EXIT_CLEAN, EXIT_VANISHED):
        return f"exit status {result.returncode}"
    return None


async def run_fleet(
    group: str,
    config: Config,
    args: tuple[str, ...] = (),
    exclude: bool = False,
    on_result: Callable[[HostResult], None] | None = None,
) -> FleetReport:
    """Check every host of a group concurrently.

    Results are handed to ``on_result`` as each host finishes, in no particular
    order. One host failing or timing out doesn't affect the others.

    Exit code: 255 if the group resolves to no hosts, 0 if any host reported a
    runaway, 1 otherwise.
    """
    hosts = await resolve_group(group, config)
    if not hosts:
        fzlog.fleet_empty(group)
        log.error("fleet_empty_group", group=group)
        return FleetReport(group=group, exit_code=EXIT_EMPTY_GROUP)

    excluded: list[str] = []
    if exclude:
        hosts, excluded = exclude_hosts(hosts, config.fleet.exclude_pattern)

    fzlog.fleet_started(group, len(hosts), len(excluded))
    log.info("fleet_started", group=group, hosts=len(hosts), excluded=len(excluded))

    limit = config.fleet.max_parallel
    limiter = asyncio.Semaphore(limit) if limit > 0 else None
    tasks = [asyncio.create_task(check_host(host, config, args, limiter)) for host in hosts]

    report = FleetReport(group=group, exit_code=EXIT_CLEAN, hosts=hosts, excluded=excluded)
    for next_done in asyncio.as_completed(tasks):
        result = await next_done
        report.results.append(result)

        failure = _describe_failure(result)
        if failure is not None:
            fzlog.host_failed(result.host, failure)
            log.warning("host_failed", host=result.host, reason=failure)
        else:
            fzlog.host_done(result.host, result.returncode)
            log.info("host_done", host=result.host, returncode=result.returncode)

        if result.found_runaway:
            report.exit_code = EXIT_RUNAWAY
        if on_result is not None:
            on_result(result)

    return report
