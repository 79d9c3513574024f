"""Per-invocation check context."""

import os
import socket
from functools import cached_property

from fzrun.config import Config
from fzrun.metrics import MetricsAdapter, get_adapter
from fzrun.models import RawMetrics


class CheckContext:
    """State shared by one run of the check, passed explicitly.

    The CPU count and the I/O-wait sample are each read at most once and then
    reused for the rest of the run. The I/O-wait sample blocks for
    ``config.sampling.io_wait_interval`` seconds.
    """

    def __init__(
        self,
        config: Config,
        adapter: MetricsAdapter | None = None,
        hostname: str | None = None,
    ) -> None:
        self.config = config
        self.adapter = adapter if adapter is not None else get_adapter(config)
        self._hostname = hostname

    @cached_property
    def hostname(self) -> str:
        return self._hostname or socket.gethostname()

    @cached_property
    def own_pid(self) -> int:
        return os.getpid()

    @cached_property
    def cpu_count(self) -> int:
        return max(1, self.adapter.cpu_count())

    @cached_property
    def io_wait_ratio(self) -> float:
        return self.adapter.io_wait_ratio(self.config.sampling.io_wait_interval)

    def raw_metrics(self) -> RawMetrics:
        """Take the host-level snapshot used by triage."""
        load1, load5, load15 = self.adapter.load_averages()
        return RawMetrics(
            load1=load1,
            load5=load5,
            load15=load15,
            mem_used_ratio=self.adapter.mem_used_ratio(),
            io_wait_ratio=self.io_wait_ratio,
            cpu_count=self.cpu_count,
        )
