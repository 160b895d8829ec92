"""Tests for the check command."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from kbgraph.cli import cli

_BASE = ["--user", "alice", "--json"]


@pytest.mark.usefixtures("_isolated_root")
class TestCheckCommand:
    def test_clean_graph(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, [*_BASE, "collection", "create", "A", "--id", "a"])
        result = cli_runner.invoke(cli, [*_BASE, "check", "--strict"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["data"] == {"healthy": True, "count": 0, "issues": []}

    def test_cycle_reported(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, [*_BASE, "collection", "create", "A", "--id", "a"])
        cli_runner.invoke(cli, [*_BASE, "collection", "create", "B", "--parent", "a", "--id", "b"])
        linked = cli_runner.invoke(cli, [*_BASE, "collection", "connect", "a", "b"])
        assert linked.exit_code == 0

        result = cli_runner.invoke(cli, [*_BASE, "check"])
        assert result.exit_code == 0
        issues = json.loads(result.stdout)["data"]["issues"]
        assert [i["category"] for i in issues] == ["containment_cycles"]

    def test_strict_fails_on_errors(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, [*_BASE, "collection", "create", "A", "--id", "a"])
        cli_runner.invoke(cli, [*_BASE, "collection", "create", "B", "--parent", "a", "--id", "b"])
        cli_runner.invoke(cli, [*_BASE, "collection", "connect", "a", "b"])
        result = cli_runner.invoke(cli, [*_BASE, "check", "--strict"])
        assert result.exit_code == 1
        assert json.loads(result.stdout)["data"]["healthy"] is False

    def test_human_output(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["--user", "alice", "collection", "root"])
        result = cli_runner.invoke(cli, ["--user", "alice", "check"])
        assert result.exit_code == 0
        assert "No issues found." in result.output
