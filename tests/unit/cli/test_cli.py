"""Unit tests for the dreadnot command line interface.

Tests cover:
- deploy with and without following the log
- status, history and log output
- The warning banner
- Exit codes for configuration, runtime and lock errors
"""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner, Result

from dreadnot import __version__
from dreadnot.cli.main import cli
from dreadnot.deploy.store import StackFileLock
from dreadnot.lib.errors import StackLockedError
from dreadnot.models.deployment import DeploymentSummary

STACK_MODULE = '''
def get_deployed_revision(stack, args):
    return "old111"


def task_deploy(stack, baton, args):
    baton.log.info("checking out ${revision}", revision=args.revision)
    if args.revision == "broken":
        raise RuntimeError("checkout failed")


def task_cleanup(stack, baton, args):
    baton.log.info("cleaning up")


targets = {"deploy": ["task_deploy"], "finally": ["task_cleanup"]}
'''

SETTINGS = """
name: Test Deploy
env: production
data_root: ./data
stacks_dir: ./stacks
stacks:
  tapkick:
    regions: [ord, dfw]
"""


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI runner."""
    return CliRunner()


@pytest.fixture
def settings(tmp_path: Path) -> Path:
    """Write a settings file with one stack module."""
    (tmp_path / "stacks").mkdir()
    (tmp_path / "stacks" / "tapkick.py").write_text(STACK_MODULE)
    path = tmp_path / "settings.yaml"
    path.write_text(SETTINGS)
    return path


def _invoke(runner: CliRunner, settings: Path, *args: str) -> Result:
    return runner.invoke(cli, ["--config", str(settings), *args])


class TestDeployCommand:
    """Tests for 'dreadnot deploy'."""

    def test_successful_deploy_streams_log(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123", "--user", "alice")

        assert result.exit_code == 0, result.output
        assert "Deployment #1 of tapkick:ord started (deploy -> abc123)" in result.output
        assert "checking out abc123" in result.output
        assert "cleaning up" in result.output
        assert "Deployment succeeded" in result.output
        assert (settings.parent / "data" / "logs" / "tapkick" / "ord" / "1.json").is_file()

    def test_failed_deploy_exits_one(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "deploy", "tapkick", "ord", "broken", "-u", "alice")

        assert result.exit_code == 1
        assert "Deployment failed" in result.output

    def test_no_follow_hides_log(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(
            runner, settings, "deploy", "tapkick", "dfw", "abc123", "--no-follow"
        )

        assert result.exit_code == 0, result.output
        assert "checking out" not in result.output
        assert "Deployment succeeded" in result.output

    def test_unknown_stack_exits_three(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "deploy", "nope", "ord", "abc123")

        assert result.exit_code == 3
        assert "Stack not found" in result.output

    def test_unknown_target_exits_three(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(
            runner, settings, "deploy", "tapkick", "ord", "abc123", "--target", "rollback"
        )

        assert result.exit_code == 3
        assert "Target not found" in result.output

    def test_locked_stack_exits_four(self, runner: CliRunner, settings: Path) -> None:
        holder = DeploymentSummary(
            name="5",
            stack_name="tapkick",
            region="ord",
            environment="production",
            to_revision="abc123",
            user="bob",
        )
        dreadnot = MagicMock()
        dreadnot.run = AsyncMock(side_effect=StackLockedError(holder))

        with patch(
            "dreadnot.cli.commands.deploy.open_dreadnot", AsyncMock(return_value=dreadnot)
        ):
            result = _invoke(runner, settings, "deploy", "tapkick", "dfw", "abc123")

        assert result.exit_code == 4
        assert "Stack locked for Deployment #5 of tapkick:ord" in result.output

    def test_stack_locked_by_other_process_exits_four(
        self, runner: CliRunner, settings: Path
    ) -> None:
        lock = StackFileLock(settings.parent / "data" / "logs" / "tapkick" / ".deploy.lock")
        lock.acquire()
        try:
            result = _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123")
        finally:
            lock.release()

        assert result.exit_code == 4
        assert "Stack locked by another Dreadnot process" in result.output
        assert not (settings.parent / "data" / "logs" / "tapkick" / "ord" / "1.json").exists()

    def test_sequential_deploys_keep_numbering(self, runner: CliRunner, settings: Path) -> None:
        first = _invoke(runner, settings, "deploy", "tapkick", "ord", "rev-a")
        second = _invoke(runner, settings, "deploy", "tapkick", "ord", "rev-b")

        assert first.exit_code == 0, first.output
        assert "Deployment #2 of tapkick:ord started" in second.output


class TestQueryCommands:
    """Tests for status, history and log."""

    def test_history_lists_newest_first(self, runner: CliRunner, settings: Path) -> None:
        _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123", "-u", "alice")
        _invoke(runner, settings, "deploy", "tapkick", "ord", "broken", "-u", "bob")

        result = _invoke(runner, settings, "history", "tapkick", "ord")

        assert result.exit_code == 0, result.output
        lines = result.output.strip().splitlines()
        assert lines[0].startswith("#2")
        assert "FAILED" in lines[0]
        assert lines[1].startswith("#1")
        assert "old111 -> abc123" in lines[1]
        assert "SUCCESS" in lines[1]

    def test_history_limit(self, runner: CliRunner, settings: Path) -> None:
        _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123")
        _invoke(runner, settings, "deploy", "tapkick", "ord", "abc124")

        result = _invoke(runner, settings, "history", "tapkick", "ord", "--limit", "1")

        assert len(result.output.strip().splitlines()) == 1

    def test_empty_history(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "history", "tapkick", "dfw")

        assert result.exit_code == 0
        assert "No deployments of tapkick:dfw" in result.output

    def test_log_prints_persisted_entries(self, runner: CliRunner, settings: Path) -> None:
        _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123")

        result = _invoke(runner, settings, "log", "tapkick", "ord", "1")

        assert result.exit_code == 0, result.output
        assert "Starting deployment 1 of target 'deploy'" in result.output
        assert "cleaning up" in result.output
        assert "Deployment #1: SUCCESS" in result.output

    def test_log_of_failed_deployment_exits_one(
        self, runner: CliRunner, settings: Path
    ) -> None:
        _invoke(runner, settings, "deploy", "tapkick", "ord", "broken")

        result = _invoke(runner, settings, "log", "tapkick", "ord", "1")

        assert result.exit_code == 1
        assert "Deployment #1: FAILED" in result.output

    def test_log_of_unknown_deployment(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "log", "tapkick", "ord", "9")

        assert result.exit_code == 3
        assert "Deployment not found" in result.output

    def test_status_shows_stacks_and_regions(
        self, runner: CliRunner, settings: Path
    ) -> None:
        _invoke(runner, settings, "deploy", "tapkick", "ord", "abc123")

        result = _invoke(runner, settings, "status")

        assert result.exit_code == 0, result.output
        assert "Test Deploy (production)" in result.output
        assert "tapkick" in result.output
        assert "deployed: old111" in result.output
        assert "last deployment: #1" in result.output
        assert "last deployment: #-" in result.output


class TestWarningCommand:
    """Tests for 'dreadnot warning'."""

    def test_set_show_and_clear(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "warning", "Deploys frozen")
        assert result.exit_code == 0
        assert "WARNING: Deploys frozen" in result.output

        result = _invoke(runner, settings, "warning")
        assert "WARNING: Deploys frozen" in result.output

        result = _invoke(runner, settings, "status")
        assert "WARNING: Deploys frozen" in result.output

        result = _invoke(runner, settings, "warning", "--clear")
        assert result.exit_code == 0
        assert "No warning set" in result.output

    def test_text_and_clear_conflict(self, runner: CliRunner, settings: Path) -> None:
        result = _invoke(runner, settings, "warning", "x", "--clear")

        assert result.exit_code == 2


class TestConfiguration:
    def test_missing_settings_exits_two(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(
            cli, ["--config", str(tmp_path / "missing.yaml"), "status"]
        )

        assert result.exit_code == 2
        assert "Configuration error" in result.output

    def test_missing_stack_module_exits_two(
        self, runner: CliRunner, settings: Path
    ) -> None:
        (settings.parent / "stacks" / "tapkick.py").unlink()

        result = _invoke(runner, settings, "status")

        assert result.exit_code == 2

    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output
