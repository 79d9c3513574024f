"""Tests for fleet fan-out."""

import asyncio

import pytest

from fzrun import fleet
from fzrun.config import Config
from fzrun.fleet import (
    EXIT_EMPTY_GROUP,
    HostResult,
    check_host,
    exclude_hosts,
    remote_command,
    resolve_group,
    run_fleet,
)


def fleet_config(groups: dict[str, list[str]] | None = None, **overrides) -> Config:
    config = Config()
    config.fleet.groups = groups or {}
    for key, value in overrides.items():
        setattr(config.fleet, key, value)
    return config


@pytest.fixture
def fake_ssh(monkeypatch):
    """Replace ssh with a local shell script per host.

    Each host maps to a shell snippet; ``$HOST`` and ``$ARGS`` are set.
    """

    def install(scripts: dict[str, str]) -> None:
        def command(host, config, args=()):
            return [
                "sh",
                "-c",
                f'HOST="{host}"; ARGS="{" ".join(args)}"; {scripts[host]}',
            ]

        monkeypatch.setattr(fleet, "remote_command", command)

    return install


class TestResolveGroup:
    """Tests for resolve_group()."""

    @pytest.mark.asyncio
    async def test_static_group(self):
        """Static groups don't run the resolver."""
        config = fleet_config({"lab": ["a", "b"]}, resolver="/nonexistent/resolver")
        assert await resolve_group("lab", config) == ["a", "b"]

    @pytest.mark.asyncio
    async def test_resolver_command(self):
        """The resolver's whitespace-separated output is the host list."""
        config = fleet_config(resolver="echo")
        assert await resolve_group("node1", config) == ["node1"]

    @pytest.mark.asyncio
    async def test_missing_resolver(self):
        """A resolver that isn't installed yields no hosts."""
        config = fleet_config(resolver="/nonexistent/resolver")
        assert await resolve_group("lab", config) == []

    @pytest.mark.asyncio
    async def test_silent_resolver(self):
        """A resolver printing nothing yields no hosts."""
        assert await resolve_group("lab", fleet_config(resolver="true")) == []


def test_exclude_hosts():
    """Hosts matching the pattern at the start of the name are excluded."""
    kept, excluded = exclude_hosts(["login1", "node1", "gw", "node-login"], r"^(login|gw)\d*")
    assert kept == ["node1", "node-login"]
    assert excluded == ["login1", "gw"]


def test_remote_command():
    """ssh runs 'fzrun check ARGS' with the configured options."""
    argv = remote_command("node1", Config(), ("-p", "-v"))
    assert argv == [
        "ssh",
        "-o",
        "StrictHostKeyChecking=no",
        "node1",
        "fzrun",
        "check",
        "-p",
        "-v",
    ]


def test_found_runaway():
    """Only remote exit 0 counts as a runaway."""
    assert HostResult("a", returncode=0).found_runaway
    assert not HostResult("a", returncode=1).found_runaway
    assert not HostResult("a", error="boom").found_runaway


class TestCheckHost:
    """Tests for check_host()."""

    @pytest.mark.asyncio
    async def test_captures_output_and_status(self, fake_ssh):
        """stdout and the exit status come back."""
        fake_ssh({"a": 'echo "$HOST 42"; exit 0'})
        result = await check_host("a", fleet_config())
        assert result.returncode == 0
        assert result.stdout == "a 42\n"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_args_forwarded(self, fake_ssh):
        """Check arguments reach the remote command."""
        fake_ssh({"a": 'echo "$ARGS"; exit 1'})
        result = await check_host("a", fleet_config(), ("-p", "-f"))
        assert result.stdout == "-p -f\n"

    @pytest.mark.asyncio
    async def test_timeout(self, fake_ssh):
        """A host that hangs is killed and reported."""
        fake_ssh({"a": "exec sleep 10"})
        result = await check_host("a", fleet_config(timeout_seconds=0.2))
        assert result.returncode is None
        assert "timed out" in result.error

    @pytest.mark.asyncio
    async def test_missing_ssh(self, monkeypatch):
        """A missing ssh binary is a failed result, not an exception."""
        monkeypatch.setattr(
            fleet, "remote_command", lambda host, config, args=(): ["/nonexistent/ssh"]
        )
        result = await check_host("a", fleet_config())
        assert result.returncode is None
        assert result.error


class TestRunFleet:
    """Tests for run_fleet()."""

    @pytest.mark.asyncio
    async def test_empty_group(self):
        """A group with no hosts exits 255."""
        report = await run_fleet("typo", fleet_config(resolver="true"))
        assert report.exit_code == EXIT_EMPTY_GROUP
        assert report.results == []

    @pytest.mark.asyncio
    async def test_any_runaway_host(self, fake_ssh):
        """One runaway host makes the fleet exit 0."""
        fake_ssh({"a": "exit 1", "b": 'echo "$HOST"; exit 0', "c": "exit 1"})
        report = await run_fleet("lab", fleet_config({"lab": ["a", "b", "c"]}))
        assert report.exit_code == 0
        assert sorted(r.host for r in report.results) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_all_clean(self, fake_ssh):
        """All hosts clean exits 1."""
        fake_ssh({"a": "exit 1", "b": "exit 1"})
        report = await run_fleet("lab", fleet_config({"lab": ["a", "b"]}))
        assert report.exit_code == 1

    @pytest.mark.asyncio
    async def test_failed_host_does_not_block_others(self, fake_ssh):
        """A timed-out host doesn't stop the others from reporting."""
        fake_ssh({"slow": "exec sleep 10", "fast": 'echo "$HOST"; exit 0'})
        config = fleet_config({"lab": ["slow", "fast"]}, timeout_seconds=0.5)
        seen: list[str] = []
        report = await run_fleet("lab", config, on_result=lambda r: seen.append(r.host))
        assert seen == ["fast", "slow"]
        assert report.exit_code == 0
        slow = next(r for r in report.results if r.host == "slow")
        assert "timed out" in slow.error

    @pytest.mark.asyncio
    async def test_results_in_completion_order(self, fake_ssh):
        """Output is merged as hosts finish, not in group order."""
        fake_ssh({"a": "sleep 0.4; exit 1", "b": "exit 1"})
        report = await run_fleet("lab", fleet_config({"lab": ["a", "b"]}))
        assert [r.host for r in report.results] == ["b", "a"]

    @pytest.mark.asyncio
    async def test_exclude(self, fake_ssh):
        """--exclude drops matching hosts before fan-out."""
        fake_ssh({"node1": "exit 1"})
        report = await run_fleet("lab", fleet_config({"lab": ["login1", "node1"]}), exclude=True)
        assert report.hosts == ["node1"]
        assert report.excluded == ["login1"]
        assert [r.host for r in report.results] == ["node1"]

    @pytest.mark.asyncio
    async def test_max_parallel(self, fake_ssh, tmp_path):
        """max_parallel caps concurrent connections."""
        marker = tmp_path / "running"
        # Each host fails if another one is running at the same time
        script = (
            f'if [ -e "{marker}" ]; then exit 3; fi; '
            f'touch "{marker}"; sleep 0.1; rm "{marker}"; exit 1'
        )
        fake_ssh(dict.fromkeys(["a", "b", "c"], script))
        config = fleet_config({"lab": ["a", "b", "c"]}, max_parallel=1)
        report = await run_fleet("lab", config)
        assert [r.returncode for r in report.results] == [1, 1, 1]

    @pytest.mark.asyncio
    async def test_event_loop_not_blocked(self, fake_ssh):
        """Hosts run concurrently."""
        fake_ssh(dict.fromkeys(["a", "b", "c", "d"], "sleep 0.3; exit 1"))
        loop = asyncio.get_running_loop()
        start = loop.time()
        await run_fleet("lab", fleet_config({"lab": ["a", "b", "c", "d"]}))
        assert loop.time() - start < 1.0
