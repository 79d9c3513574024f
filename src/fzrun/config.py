"""Configuration system for fzrun."""

import re
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path

import tomlkit

VALID_ADAPTERS = {"psutil", "command"}


@dataclass
class SamplingConfig:
    """Metric sampling configuration."""

    io_wait_interval: float = 1.0  # Seconds to average I/O wait over


@dataclass
class MetricsConfig:
    """Metric adapter selection.

    - psutil: read metrics through psutil (default, portable)
    - command: shell out to ps/free/uptime/mpstat like a plain shell check
    """

    adapter: str = "psutil"


@dataclass
class FleetConfig:
    """Fleet fan-out configuration."""

    resolver: str = "netgrouplist"  # Command printing the hosts of a group
    remote_command: str = "fzrun"  # fzrun executable on the remote hosts
    ssh_options: list[str] = field(default_factory=lambda: ["-o", "StrictHostKeyChecking=no"])
    exclude_pattern: str = r"^(login|gw)\d*"  # Hosts skipped with --exclude
    timeout_seconds: float = 60.0  # Per-host timeout
    max_parallel: int = 0  # 0 = one connection per host at once
    groups: dict[str, list[str]] = field(default_factory=dict)  # Static groups


@dataclass
class LoggingConfig:
    """JSON log file configuration."""

    file_enabled: bool = True
    log_max_bytes: int = 1024 * 1024  # Max log file size (1MB)
    log_backup_count: int = 3  # Number of backup log files to keep


def _dataclass_to_table(obj: object) -> tomlkit.items.Table:
    """Convert a dataclass instance to a tomlkit Table recursively."""
    table = tomlkit.table()
    for f in fields(obj):  # type: ignore[arg-type]
        value = getattr(obj, f.name)
        if is_dataclass(value) and not isinstance(value, type):
            table.add(f.name, _dataclass_to_table(value))
        elif isinstance(value, dict):
            sub = tomlkit.table()
            for key, item in value.items():
                sub.add(key, item)
            table.add(f.name, sub)
        else:
            table.add(f.name, value)
    return table


@dataclass
class Config:
    """Main configuration container."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    fleet: FleetConfig = field(default_factory=FleetConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def config_dir(self) -> Path:
        """Configuration directory."""
        return Path.home() / ".config" / "fzrun"

    @property
    def config_path(self) -> Path:
        """Path to config file."""
        return self.config_dir / "config.toml"

    @property
    def state_dir(self) -> Path:
        """State directory for logs."""
        return Path.home() / ".local" / "state" / "fzrun"

    @property
    def log_path(self) -> Path:
        """JSON log path."""
        return self.state_dir / "fzrun.log"

    def save(self, path: Path | None = None) -> None:
        """Save config to TOML file."""
        path = path or self.config_path
        path.parent.mkdir(parents=True, exist_ok=True)

        doc = tomlkit.document()
        for name in ("sampling", "metrics", "fleet", "logging"):
            doc.add(name, _dataclass_to_table(getattr(self, name)))
            doc.add(tomlkit.nl())

        path.write_text(tomlkit.dumps(doc))

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Load config from TOML file, returning defaults for missing values.

        Raises:
            ValueError: If the file can't be parsed or holds invalid values.
        """
        defaults = cls()
        path = path or defaults.config_path
        if not path.exists():
            return defaults

        try:
            with open(path) as f:
                data = tomlkit.load(f).unwrap()
        except tomlkit.exceptions.TOMLKitError as e:
            raise ValueError(f"Failed to parse config file {path}: {e}") from e

        return cls(
            sampling=_load_sampling_config(data.get("sampling", {})),
            metrics=_load_metrics_config(data.get("metrics", {})),
            fleet=_load_fleet_config(data.get("fleet", {})),
            logging=_load_logging_config(data.get("logging", {})),
        )


def _load_sampling_config(data: dict) -> SamplingConfig:
    """Load sampling config from TOML data."""
    defaults = SamplingConfig()
    interval = data.get("io_wait_interval", defaults.io_wait_interval)
    if interval <= 0:
        raise ValueError(f"io_wait_interval must be > 0, got {interval}")
    return SamplingConfig(io_wait_interval=interval)


def _load_metrics_config(data: dict) -> MetricsConfig:
    """Load metrics config from TOML data."""
    defaults = MetricsConfig()
    adapter = data.get("adapter", defaults.adapter)
    if adapter not in VALID_ADAPTERS:
        raise ValueError(f"Invalid adapter: {adapter!r}. Must be one of {sorted(VALID_ADAPTERS)}")
    return MetricsConfig(adapter=adapter)


def _load_fleet_config(data: dict) -> FleetConfig:
    """Load fleet config from TOML data, using dataclass defaults for missing fields."""
    d = FleetConfig()

    exclude_pattern = data.get("exclude_pattern", d.exclude_pattern)
    try:
        re.compile(exclude_pattern)
    except re.error as e:
        raise ValueError(f"Invalid exclude_pattern {exclude_pattern!r}: {e}") from e

    timeout_seconds = data.get("timeout_seconds", d.timeout_seconds)
    if timeout_seconds <= 0:
        raise ValueError(f"timeout_seconds must be > 0, got {timeout_seconds}")

    max_parallel = data.get("max_parallel", d.max_parallel)
    if max_parallel < 0:
        raise ValueError(f"max_parallel must be >= 0, got {max_parallel}")

    groups = data.get("groups", d.groups)
    for name, hosts in groups.items():
        if not isinstance(hosts, list):
            raise ValueError(f"fleet group {name!r} must be a list of hosts")

    return FleetConfig(
        resolver=data.get("resolver", d.resolver),
        remote_command=data.get("remote_command", d.remote_command),
        ssh_options=list(data.get("ssh_options", d.ssh_options)),
        exclude_pattern=exclude_pattern,
        timeout_seconds=timeout_seconds,
        max_parallel=max_parallel,
        groups={name: list(hosts) for name, hosts in groups.items()},
    )


def _load_logging_config(data: dict) -> LoggingConfig:
    """Load logging config from TOML data."""
    d = LoggingConfig()
    return LoggingConfig(
        file_enabled=data.get("file_enabled", d.file_enabled),
        log_max_bytes=data.get("log_max_bytes", d.log_max_bytes),
        log_backup_count=data.get("log_backup_count", d.log_backup_count),
    )
