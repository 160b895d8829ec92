"""Tests for the upgrade command."""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from kbgraph.cli import cli


@pytest.mark.usefixtures("_isolated_root")
class TestUpgradeCommand:
    def test_check_lists_pending(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["--json", "upgrade", "--check"])
        assert result.exit_code == 0
        data = json.loads(result.stdout)["data"]
        assert data["pending_count"] == 1
        assert data["head"] == "001_baseline"

    def test_apply_then_nothing_pending(self, cli_runner: CliRunner) -> None:
        applied = cli_runner.invoke(cli, ["--json", "upgrade"])
        assert applied.exit_code == 0
        assert json.loads(applied.stdout)["data"]["applied_count"] == 1

        again = cli_runner.invoke(cli, ["--json", "upgrade", "--check"])
        assert json.loads(again.stdout)["data"]["pending_count"] == 0

    def test_init_stamps_database(self, cli_runner: CliRunner) -> None:
        cli_runner.invoke(cli, ["init"])
        result = cli_runner.invoke(cli, ["--json", "upgrade", "--check"])
        assert json.loads(result.stdout)["data"]["current"] == "001_baseline"
