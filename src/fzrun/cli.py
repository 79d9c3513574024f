"""CLI commands for fzrun."""

import click


def _load_config():
    """Load config, exiting with status 2 if the file is unusable."""
    from fzrun import logging as fzlog
    from fzrun.config import Config

    try:
        return Config.load()
    except ValueError as e:
        fzlog.config_invalid(str(e))
        raise SystemExit(2) from e


@click.group()
@click.version_option(package_name="fzrun")
def main() -> None:
    """Detect runaway processes with fuzzy logic."""
    pass


@main.command()
@click.option("--verbose", "-v", is_flag=True, help="Explain every decision on stderr")
@click.option("--quiet", "-q", is_flag=True, help="Print nothing; only set the exit status")
@click.option(
    "--processes", "-p", "scan", is_flag=True, help="Scan processes when the machine looks runaway"
)
@click.option("--force", "-f", is_flag=True, help="Scan processes even if the machine looks clean")
@click.argument("pid", type=click.IntRange(min=1), required=False)
def check(verbose: bool, quiet: bool, scan: bool, force: bool, pid: int | None) -> None:
    """Check this host, or only process PID, for runaways.

    \b
    Exit status:
      0    runaway detected (machine, process, or PID)
      1    clean
      255  PID no longer exists
    """
    from fzrun import logging as fzlog
    from fzrun.context import CheckContext
    from fzrun.scanner import CheckOptions, run_check

    fzlog.set_verbosity(verbose=verbose, quiet=quiet)
    config = _load_config()
    fzlog.configure(config, source="check")

    ctx = CheckContext(config)
    report = run_check(ctx, CheckOptions(scan=scan, force=force, pid=pid))

    if not quiet:
        for line in report.output_lines():
            click.echo(line)
    raise SystemExit(report.exit_code)


@main.command(
    context_settings={"ignore_unknown_options": True, "allow_interspersed_args": False}
)
@click.option("--exclude", "-x", is_flag=True, help="Skip hosts matching fleet.exclude_pattern")
@click.option("--verbose", "-v", is_flag=True, help="Report each host as it finishes")
@click.argument("group")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
def fleet(exclude: bool, verbose: bool, group: str, args: tuple[str, ...]) -> None:
    """Run 'check ARGS' on every host of GROUP concurrently.

    Options for this command go before GROUP; everything after GROUP is
    passed to the remote check. Output from all hosts is merged in completion
    order. Exits 255 if GROUP has no hosts.
    """
    import asyncio

    from fzrun import logging as fzlog
    from fzrun.fleet import run_fleet

    fzlog.set_verbosity(verbose=verbose)
    config = _load_config()
    fzlog.configure(config, source="fleet")

    def emit(result) -> None:
        if result.stdout:
            click.echo(result.stdout, nl=False)

    report = asyncio.run(run_fleet(group, config, args, exclude=exclude, on_result=emit))
    raise SystemExit(report.exit_code)


@main.command()
@click.option("--check", "check_cover", is_flag=True, help="Validate against the truth table")
def rules(check_cover: bool) -> None:
    """Show the runaway rule cover."""
    from fzrun import logging as fzlog
    from fzrun.rules import RULES, clause_cube, format_clause, load_truth_table, validate_cover

    for number, clause in enumerate(RULES, start=1):
        click.echo(f"{number}. {clause_cube(clause)}  {format_clause(clause)}")

    if not check_cover:
        return

    table = load_truth_table()
    mismatches = validate_cover(table)
    if mismatches:
        fzlog.cover_invalid(len(mismatches))
        for m in mismatches:
            click.echo(f"  {m.minterm}: table says {m.expected}, rules give {m.actual}", err=True)
        raise SystemExit(1)
    fzlog.cover_valid(len(RULES), len(table.rows))


@main.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Display current configuration."""
    cfg = _load_config()

    click.echo(f"Config file: {cfg.config_path}")
    click.echo(f"Exists: {cfg.config_path.exists()}")
    click.echo()
    click.echo("[sampling]")
    click.echo(f"  io_wait_interval = {cfg.sampling.io_wait_interval}")
    click.echo()
    click.echo("[metrics]")
    click.echo(f"  adapter = {cfg.metrics.adapter}")
    click.echo()
    click.echo("[fleet]")
    click.echo(f"  resolver = {cfg.fleet.resolver}")
    click.echo(f"  remote_command = {cfg.fleet.remote_command}")
    click.echo(f"  ssh_options = {' '.join(cfg.fleet.ssh_options)}")
    click.echo(f"  exclude_pattern = {cfg.fleet.exclude_pattern}")
    click.echo(f"  timeout_seconds = {cfg.fleet.timeout_seconds}")
    click.echo(f"  max_parallel = {cfg.fleet.max_parallel}")
    for name, hosts in cfg.fleet.groups.items():
        click.echo(f"  groups.{name} = {', '.join(hosts)}")
    click.echo()
    click.echo("[logging]")
    click.echo(f"  file_enabled = {cfg.logging.file_enabled}")
    click.echo(f"  log_path = {cfg.log_path}")


@config.command("reset")
@click.confirmation_option(prompt="Reset config to defaults?")
def config_reset() -> None:
    """Reset configuration to defaults."""
    from fzrun.config import Config

    cfg = Config()
    cfg.save()
    click.echo(f"Config reset to defaults at {cfg.config_path}")


if __name__ == "__main__":
    main()
