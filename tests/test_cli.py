"""Tests for the CLI."""

import json
import os
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner

from task_orchestrator.cli import main


@pytest.fixture
def cli_env():
    """Set up a temp orchestrator home for CLI testing."""
    with tempfile.TemporaryDirectory() as tmp:
        env = {
            "ORCH_HOME": tmp,
            "ORCH_WORKER_ECHO": "cat",
            "ORCH_WORKER_FAIL": "sh -c 'echo broken >&2; exit 4'",
        }
        old_env = {}
        for k, v in env.items():
            old_env[k] = os.environ.get(k)
            os.environ[k] = v

        yield CliRunner(), Path(tmp)

        for k, v in old_env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


class TestCLI:
    def test_help(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Task Orchestrator" in result.output

    def test_add_and_list(self, cli_env):
        runner, home = cli_env
        result = runner.invoke(main, ["add", "Research caching options", "-w", "echo"])
        assert result.exit_code == 0
        assert "Created task: research-caching-options" in result.output

        result = runner.invoke(main, ["add", "Pick one", "-w", "echo", "--id", "pick",
                                      "--depends-on", "research-caching-options", "--inject"])
        assert result.exit_code == 0
        assert "Depends on: research-caching-options" in result.output

        result = runner.invoke(main, ["list"])
        assert "research-caching-options" in result.output
        assert "[depends: research-caching-options]" in result.output

        data = json.loads((home / "queue.json").read_text())
        assert [t["id"] for t in data["tasks"]] == ["research-caching-options", "pick"]

    def test_add_unknown_dependency(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["add", "Orphan", "-w", "echo", "--depends-on", "ghost"])
        assert result.exit_code == 1
        assert "unknown task 'ghost'" in result.output

    def test_add_duplicate_id(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["add", "One", "-w", "echo", "--id", "one"])
        result = runner.invoke(main, ["add", "Again", "-w", "echo", "--id", "one"])
        assert result.exit_code == 1

    def test_list_empty_and_json(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["list"])
        assert "No tasks found." in result.output
        runner.invoke(main, ["add", "Thing", "-w", "echo"])
        result = runner.invoke(main, ["list", "--json", "--status", "pending"])
        assert json.loads(result.output)[0]["id"] == "thing"

    def test_show(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["add", "Write docs", "-w", "echo", "--kind", "docs"])
        result = runner.invoke(main, ["show", "write-docs"])
        assert result.exit_code == 0
        assert "Kind: docs" in result.output
        assert "Status: pending" in result.output

    def test_show_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["show", "nope"])
        assert result.exit_code == 1

    def test_run_to_completion(self, cli_env):
        runner, home = cli_env
        runner.invoke(main, ["add", "hello world", "-w", "echo", "--id", "first"])
        runner.invoke(main, ["add", "summarize", "-w", "echo", "--id", "second",
                             "--depends-on", "first", "--inject"])

        result = runner.invoke(main, ["run", "--idle-backoff", "0.05"])
        assert result.exit_code == 0, result.output
        assert "State: complete" in result.output

        result = runner.invoke(main, ["result", "first"])
        assert result.output == "hello world\n"
        result = runner.invoke(main, ["result", "second"])
        assert result.output.startswith("summarize")
        assert "### Dependency: first" in result.output
        assert "hello world" in result.output

        result = runner.invoke(main, ["status"])
        assert "State: complete" in result.output
        assert "first" in result.output

    def test_run_with_failure(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["add", "doomed", "-w", "fail", "--id", "a"])
        runner.invoke(main, ["add", "after", "-w", "echo", "--id", "b", "--depends-on", "a"])

        result = runner.invoke(main, ["run", "--idle-backoff", "0.05"])
        assert result.exit_code == 2
        assert "State: failed" in result.output

        result = runner.invoke(main, ["show", "b"])
        assert "dependency 'a' failed" in result.output
        result = runner.invoke(main, ["show", "a"])
        assert "exit code 4: broken" in result.output

    def test_run_once(self, cli_env):
        runner, _ = cli_env
        runner.invoke(main, ["add", "later", "-w", "echo"])
        result = runner.invoke(main, ["run", "--once"])
        assert result.exit_code == 0
        assert "State: running" in result.output

    def test_status_before_run(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["status"])
        assert "No snapshot published yet" in result.output

    def test_result_missing(self, cli_env):
        runner, _ = cli_env
        result = runner.invoke(main, ["result", "nope"])
        assert result.exit_code == 1
