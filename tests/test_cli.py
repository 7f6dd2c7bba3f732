"""Tests for the controlgate CLI.

Exit codes: 0 = success, 1 = validation/policy/execution failure,
2 = usage error.
"""

from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from controlgate.cli.main import cli

ADDRESS = "0x" + "0" * 40

FAST_CONFIG = """\
policy:
  ticks: 0
execution:
  submit_delay: 0
"""

REQUEST_ARGS = [
    "--address",
    ADDRESS,
    "--method",
    "transfer",
    "--parameters",
    "{}",
    "--reason",
    "test request long enough",
]


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def gate_args(tmp_path):
    config = tmp_path / "controlgate.yaml"
    config.write_text(FAST_CONFIG)
    return ["--config", str(config), "--storage", str(tmp_path / "state.json")]


class TestVersion:
    def test_version(self, runner):
        result = runner.invoke(cli, ["version"])
        assert result.exit_code == 0
        assert result.output.startswith("controlgate ")

    def test_no_command_shows_help(self, runner):
        result = runner.invoke(cli, [])
        assert result.exit_code == 0
        assert "submit" in result.output


class TestCheck:
    def test_passing_request(self, runner):
        result = runner.invoke(cli, ["check", *REQUEST_ARGS])
        assert result.exit_code == 0
        assert "All policy checks passed" in result.output

    def test_failing_request(self, runner):
        result = runner.invoke(
            cli,
            ["check", "--address", "0x12", "--method", "transfer", "--reason", "too short"],
        )
        assert result.exit_code == 1
        assert "Invalid address format" in result.output
        assert "Reason too short" in result.output

    def test_json_output(self, runner):
        result = runner.invoke(cli, ["check", *REQUEST_ARGS, "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["passed"] is True
        assert [c["name"] for c in data["checks"]] == [
            "Contract Address Format",
            "Method Name Validation",
            "Parameters Format",
            "Reason Validation",
        ]

    def test_missing_option_is_usage_error(self, runner):
        result = runner.invoke(cli, ["check", "--method", "transfer"])
        assert result.exit_code == 2


class TestSubmit:
    def test_submit_and_list_logs(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "submit", "--yes", "--connect", *REQUEST_ARGS])
        assert result.exit_code == 0, result.output
        assert "Transaction executed" in result.output

        result = runner.invoke(cli, [*gate_args, "logs", "--json"])
        assert result.exit_code == 0
        (entry,) = json.loads(result.output)
        assert entry["status"] == "success"
        assert entry["method"] == "transfer"
        assert entry["gasUsed"] == "Testnet"
        assert entry["policyCheckResult"]["passed"] is True

    def test_submit_without_wallet(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "submit", "--yes", *REQUEST_ARGS])
        assert result.exit_code == 1
        assert "Wallet must be connected" in result.output

    def test_submit_uses_saved_connection(self, runner, gate_args):
        assert runner.invoke(cli, [*gate_args, "wallet", "connect"]).exit_code == 0
        result = runner.invoke(cli, [*gate_args, "submit", "--yes", *REQUEST_ARGS])
        assert result.exit_code == 0, result.output

    def test_submit_policy_failure(self, runner, gate_args):
        args = ["--address", "0x12", "--method", "transfer", "--reason", "test request long enough"]
        result = runner.invoke(cli, [*gate_args, "submit", "--yes", "--connect", *args])
        assert result.exit_code == 1
        assert "Policy violations detected" in result.output

    def test_submit_blank_field(self, runner, gate_args):
        args = ["--address", ADDRESS, "--method", "transfer", "--parameters", "", "--reason", "long enough reason"]
        result = runner.invoke(cli, [*gate_args, "submit", "--yes", *args])
        assert result.exit_code == 1
        assert "Parameters are required" in result.output

    def test_submit_declined_at_preview(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "submit", "--connect", *REQUEST_ARGS], input="n\n")
        assert result.exit_code == 1
        assert "Cancelled" in result.output

        result = runner.invoke(cli, [*gate_args, "logs", "--json"])
        assert json.loads(result.output) == []


class TestLogs:
    def test_empty(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "logs"])
        assert result.exit_code == 0
        assert "No executions yet" in result.output

    def test_limit_and_table(self, runner, gate_args):
        for _ in range(3):
            runner.invoke(cli, [*gate_args, "submit", "--yes", "--connect", *REQUEST_ARGS])

        result = runner.invoke(cli, [*gate_args, "logs", "--json", "--limit", "2"])
        assert len(json.loads(result.output)) == 2

        result = runner.invoke(cli, [*gate_args, "logs"])
        assert result.exit_code == 0
        assert "success" in result.output

    def test_clear_logs(self, runner, gate_args):
        runner.invoke(cli, [*gate_args, "submit", "--yes", "--connect", *REQUEST_ARGS])
        result = runner.invoke(cli, [*gate_args, "clear-logs", "--yes"])
        assert result.exit_code == 0

        result = runner.invoke(cli, [*gate_args, "logs", "--json"])
        assert json.loads(result.output) == []

    def test_clear_logs_declined(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "clear-logs"], input="n\n")
        assert result.exit_code == 1


class TestWallet:
    def test_connect_status_disconnect(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "wallet", "status"])
        assert result.exit_code == 1
        assert "Not connected" in result.output

        result = runner.invoke(cli, [*gate_args, "wallet", "connect"])
        assert result.exit_code == 0
        assert "sandbox-user" in result.output

        result = runner.invoke(cli, [*gate_args, "wallet", "status"])
        assert result.exit_code == 0
        assert "sandbox-user" in result.output

        assert runner.invoke(cli, [*gate_args, "wallet", "disconnect"]).exit_code == 0
        assert runner.invoke(cli, [*gate_args, "wallet", "status"]).exit_code == 1


    def test_connect_with_full_storage(self, runner, tmp_path):
        config = tmp_path / "tiny.yaml"
        config.write_text(FAST_CONFIG + "storage:\n  quota_bytes: 20\n")
        args = ["--config", str(config), "--storage", str(tmp_path / "state.json")]

        result = runner.invoke(cli, [*args, "wallet", "connect"])
        assert result.exit_code == 1
        assert "Connection failed" in result.output
        assert result.exception is None or isinstance(result.exception, SystemExit)


class TestStatusAndConfig:
    def test_status_json(self, runner, gate_args):
        result = runner.invoke(cli, [*gate_args, "status", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output) == {"storage": "available", "wallet": "available", "backend": "offline"}

    def test_config_prints_effective_values(self, runner, gate_args, tmp_path):
        result = runner.invoke(cli, [*gate_args, "config"])
        assert result.exit_code == 0
        assert "ticks: 0" in result.output
        assert str(tmp_path / "state.json") in result.output

    def test_invalid_config(self, runner, tmp_path):
        config = tmp_path / "bad.yaml"
        config.write_text("unknown: true\n")
        result = runner.invoke(cli, ["--config", str(config), "version"])
        assert result.exit_code == 1
        assert "Failed to load config" in result.output

    def test_config_from_environment(self, runner, tmp_path):
        config = tmp_path / "env.yaml"
        config.write_text("namespace: fromenv\n")
        result = runner.invoke(cli, ["config"], env={"CONTROLGATE_CONFIG": str(config)})
        assert "namespace: fromenv" in result.output
