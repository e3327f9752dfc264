"""
Smoke Tests for CLI Commands.

These tests verify that CLI commands run without errors and produce output.
They don't validate correctness deeply - just that commands work.

Usage:
    pytest tests/smoke/test_cli_commands.py -v
    pytest tests/smoke/test_cli_commands.py -v -m smoke
"""

import subprocess
import sys
from pathlib import Path

import pytest
from typer.testing import CliRunner

from src.cli import main as cli_main

# Mark all tests in this module as smoke tests
pytestmark = pytest.mark.smoke

# Project root
PROJECT_ROOT = Path(__file__).parent.parent.parent

runner = CliRunner()


def run_cli_command(command: str, timeout: int = 30) -> tuple[int, str, str]:
    """
    Run a CLI command in a subprocess and return exit code, stdout, stderr.

    Args:
        command: The command to run (after 'python -m src.cli.main')
        timeout: Maximum time to wait

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    full_command = f"{sys.executable} -m src.cli.main {command}"

    result = subprocess.run(
        full_command,
        shell=True,
        cwd=PROJECT_ROOT,
        capture_output=True,
        text=True,
        timeout=timeout,
    )

    return result.returncode, result.stdout, result.stderr


@pytest.fixture
def cli(engine, monkeypatch):
    """Invoke CLI commands against the in-memory test engine."""
    monkeypatch.setattr(cli_main, "_build_context", lambda: cli_main.CLIContext(engine=engine))

    def invoke(*args: str, **kwargs):
        return runner.invoke(cli_main.app, list(args), **kwargs)

    return invoke


class TestCLIHelp:
    """Test that help commands work."""

    def test_main_help(self):
        """Main help should display without errors."""
        code, stdout, stderr = run_cli_command("--help")

        assert code == 0, f"Help failed: {stderr}"
        assert "Commands" in stdout
        assert "mastery" in stdout

    @pytest.mark.parametrize("group", ["db", "concepts", "mastery", "content", "feedback", "cache", "maintenance"])
    def test_group_help(self, group):
        """Every command group should have help."""
        result = runner.invoke(cli_main.app, [group, "--help"])

        assert result.exit_code == 0, result.output


class TestMasteryCommands:
    """Test mastery commands."""

    def test_record(self, cli):
        result = cli("mastery", "record", "learner-1", "el-pico", "--correct", "--time-ms", "1200")

        assert result.exit_code == 0, result.output
        assert "Mastery:" in result.output
        assert "Exposures: 1" in result.output

    def test_record_invalid_learner(self, cli):
        result = cli("mastery", "record", " ", "el-pico", "--incorrect")

        assert result.exit_code == 1
        assert "learner_id" in result.output

    def test_show(self, cli, engine):
        engine.record_exposure("learner-1", "el-pico", True, 1000)

        found = cli("mastery", "show", "learner-1", "el-pico")
        missing = cli("mastery", "show", "learner-1", "la-cola")

        assert found.exit_code == 0, found.output
        assert "Mastery: learner-1" in found.output
        assert missing.exit_code == 1

    def test_due_and_weak(self, cli, engine, clock):
        engine.record_exposure("learner-1", "la-cola", False, 1000)
        clock.advance(days=2)

        due = cli("mastery", "due", "learner-1")
        weak = cli("mastery", "weak", "learner-1", "--limit", "5")

        assert due.exit_code == 0, due.output
        assert "la-cola" in due.output
        assert weak.exit_code == 0, weak.output
        assert "la-cola" in weak.output

    def test_due_empty(self, cli):
        result = cli("mastery", "due", "nobody")

        assert result.exit_code == 0
        assert "Nothing due" in result.output

    def test_stats_and_recommend(self, cli, engine):
        engine.mastery_store.add_concepts(["el-ojo"])
        engine.record_exposure("learner-1", "la-cola", False, 1000)

        stats = cli("mastery", "stats", "learner-1")
        recommend = cli("mastery", "recommend", "learner-1", "--count", "3")

        assert stats.exit_code == 0, stats.output
        assert "Tier 1" in stats.output
        assert recommend.exit_code == 0, recommend.output
        assert "el-ojo" in recommend.output


class TestContentCommands:
    """Test content and cache commands."""

    def test_policy(self, cli):
        result = cli("content", "policy", "learner-1", "--type", "translation")

        assert result.exit_code == 0, result.output
        assert "Type: translation" in result.output
        assert "Cache key:" in result.output

    def test_request_then_hit(self, cli, provider):
        first = cli("content", "request", "learner-1")
        second = cli("content", "request", "learner-1")

        assert first.exit_code == 0, first.output
        assert "generated" in first.output
        assert "cache hit" in second.output
        assert len(provider.calls) == 1

    def test_request_unknown_type(self, cli):
        result = cli("content", "request", "learner-1", "--type", "crossword")

        assert result.exit_code == 1

    def test_cache_commands(self, cli):
        cli("content", "request", "learner-1")

        stats = cli("cache", "stats")
        popular = cli("cache", "popular")
        types = cli("cache", "types")
        clear = cli("cache", "clear", "--yes")

        assert stats.exit_code == 0, stats.output
        assert "hit rate" in stats.output
        assert popular.exit_code == 0, popular.output
        assert types.exit_code == 0, types.output
        assert clear.exit_code == 0, clear.output
        assert "Removed 1" in clear.output

    def test_cache_clear_aborted(self, cli):
        result = cli("cache", "clear", input="n\n")

        assert result.exit_code != 0


class TestFeedbackCommands:
    """Test feedback commands."""

    def test_reject_and_hints(self, cli):
        for _ in range(2):
            result = cli("feedback", "reject", "el-pico", "--category", "incorrect-feature")
            assert result.exit_code == 0, result.output

        hints = cli("feedback", "hints", "el-pico")
        summary = cli("feedback", "summary")

        assert "incorrect-feature" in hints.output
        assert summary.exit_code == 0, summary.output
        assert "el-pico" in summary.output

    def test_reject_with_note(self, cli):
        result = cli("feedback", "reject", "el-pico", "--note", "[DUPLICATE] seen before")

        assert result.exit_code == 0, result.output
        assert "duplicate: 1" in result.output

    def test_approve(self, cli):
        result = cli("feedback", "approve", "el-pico", "--reviewer", "rev-1")

        assert result.exit_code == 0, result.output
        assert "Approved el-pico" in result.output

    def test_no_hints(self, cli):
        result = cli("feedback", "hints", "el-pico")

        assert "No hints" in result.output


class TestCatalogAndMaintenance:
    """Test catalog and maintenance commands."""

    def test_concepts_add_and_list(self, cli):
        added = cli("concepts", "add", "el-pico", "la-cola", "--category", "anatomy")
        again = cli("concepts", "add", "el-pico")
        listed = cli("concepts", "list")

        assert "Added 2 concepts" in added.output
        assert "Added 0 concepts" in again.output
        assert "el-pico" in listed.output

    def test_sweep(self, cli):
        result = cli("maintenance", "sweep")

        assert result.exit_code == 0, result.output
        assert "Sweep complete" in result.output
