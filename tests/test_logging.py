"""Tests for console and file logging."""

import json
import logging

from fzrun import logging as fzlog
from fzrun.config import Config
from fzrun.models import MachineVerdict, ProcessResult, ProcessVerdict, RawMetrics, TriageResult


class TestConsole:
    """Tests for verbosity gating on stderr."""

    def test_info_hidden_by_default(self, capsys):
        """Info lines need -v."""
        fzlog.info("hello")
        assert capsys.readouterr().err == ""

    def test_info_shown_when_verbose(self, capsys):
        """-v shows info lines on stderr, not stdout."""
        fzlog.set_verbosity(verbose=True)
        fzlog.info("hello")
        captured = capsys.readouterr()
        assert "hello" in captured.err
        assert captured.out == ""

    def test_warnings_shown_by_default(self, capsys):
        """Warnings print without -v."""
        fzlog.warn("careful")
        assert "careful" in capsys.readouterr().err

    def test_quiet_silences_everything(self, capsys):
        """-q wins over -v and hides errors too."""
        fzlog.set_verbosity(verbose=True, quiet=True)
        fzlog.info("a")
        fzlog.warn("b")
        fzlog.error("c")
        assert capsys.readouterr().err == ""

    def test_process_result_shows_inputs(self, capsys, sample):
        """Verbose process lines carry the score and inputs to 5 decimals."""
        from fzrun.decision import judge_sample

        fzlog.set_verbosity(verbose=True)
        fzlog.process_result(judge_sample(sample(pid=77, ppid=1, cpu_percent=35.0)))
        err = capsys.readouterr().err
        assert "(77)" in err
        assert "0.66667" in err
        assert "disowned=1.00000" in err

    def test_vanished_process(self, capsys):
        """A vanished process is reported as such."""
        fzlog.set_verbosity(verbose=True)
        fzlog.process_result(ProcessResult(5, ProcessVerdict.PROCESS_VANISHED))
        assert "vanished" in capsys.readouterr().err

    def test_triage_result_lists_breaches(self, capsys):
        """Verbose triage names the gates that fired."""
        fzlog.set_verbosity(verbose=True)
        metrics = RawMetrics(
            load1=9.0, load5=9.0, load15=9.0, mem_used_ratio=0.9, io_wait_ratio=0.0, cpu_count=1
        )
        fzlog.triage_result(
            TriageResult(MachineVerdict.RUNAWAY_MACHINE, 9.0, metrics, ("load", "memory"))
        )
        err = capsys.readouterr().err
        assert "runaway" in err
        assert "load," in err
        assert "memory" in err
        assert "9.00000" in err

    def test_score_color(self):
        """Scores above the threshold are red, positive ones yellow."""
        assert fzlog.score_color(0.9) == "bright_red"
        assert fzlog.score_color(0.3) == "bright_yellow"
        assert fzlog.score_color(0.0) == "green"


class TestConfigure:
    """Tests for the JSON log file."""

    def test_writes_json_lines(self):
        """Events land in the log file as JSON with a source field."""
        config = Config()
        fzlog.configure(config, source="check")
        fzlog.get_structlog().info("triage", verdict="clean")
        for handler in logging.getLogger().handlers:
            handler.flush()

        lines = config.log_path.read_text().splitlines()
        event = json.loads(lines[-1])
        assert event["event"] == "triage"
        assert event["verdict"] == "clean"
        assert event["source"] == "check"
        assert event["level"] == "info"
        assert "ts" in event

    def test_file_disabled(self):
        """No log file is created when file logging is off."""
        config = Config()
        config.logging.file_enabled = False
        fzlog.configure(config)
        fzlog.get_structlog().info("anything")
        assert not config.log_path.exists()
