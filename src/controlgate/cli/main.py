"""ControlGate CLI — check, submit, and inspect smart contract requests."""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from dataclasses import dataclass, replace
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from controlgate import ControlGate, ControlGateConfigError
from controlgate.config import GateConfig, load_config
from controlgate.evaluation import PolicyCheckResult
from controlgate.logs import LogStatus
from controlgate.policy import evaluate
from controlgate.request import create_draft
from controlgate.wallet import WalletError
from controlgate.workflow import ExecutionPhase, ValidationFailed

_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@dataclass
class _Context:
    config: GateConfig


def _load(config_path: str | None, storage_path: str | None) -> GateConfig:
    config = load_config(config_path) if config_path else GateConfig.default()
    if storage_path:
        config = replace(config, storage=replace(config.storage, path=storage_path))
    return config


def _print_policy_result(result: PolicyCheckResult) -> None:
    for check in result.checks:
        mark = "[green]✓[/green]" if check.passed else "[red]✗[/red]"
        _console.print(f"  {mark} {escape(check.name)}: {escape(check.message)}")
    if result.passed:
        _console.print("[green bold]All policy checks passed[/green bold]")
    else:
        _console.print("[red bold]Policy violations detected[/red bold]")


def _print_preview(fields: dict[str, str]) -> None:
    table = Table(show_header=False, title="Contract request preview")
    table.add_column("Field", style="dim")
    table.add_column("Value")
    table.add_row("Contract address", escape(fields["contract_address"]))
    table.add_row("Method", escape(fields["method"]))
    table.add_row("Parameters", escape(fields["parameters"]))
    table.add_row("Reason", escape(fields["reason"]))
    _console.print(table)


def _request_options(func):
    func = click.option("--reason", required=True, help="Why this call is being made.")(func)
    func = click.option("--parameters", default="{}", show_default=True, help="Call parameters as JSON.")(func)
    func = click.option("--method", required=True, help="Contract method name.")(func)
    func = click.option("--address", required=True, help="Contract address (0x + 40 hex digits).")(func)
    return func


def _fields(address: str, method: str, parameters: str, reason: str) -> dict[str, str]:
    return {"contract_address": address, "method": method, "parameters": parameters, "reason": reason}


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(invoke_without_command=True)
@click.option(
    "--config",
    "config_path",
    envvar="CONTROLGATE_CONFIG",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="YAML configuration file.",
)
@click.option(
    "--storage",
    "storage_path",
    envvar="CONTROLGATE_STORAGE",
    default=None,
    type=click.Path(dir_okay=False),
    help="JSON file holding logs and the wallet connection (overrides storage.path).",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, storage_path: str | None, verbose: bool) -> None:
    """ControlGate — policy checks and execution logging for smart contract calls."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=_err_console, show_path=False)],
        )
    try:
        ctx.obj = _Context(config=_load(config_path, storage_path))
    except ControlGateConfigError as e:
        _err_console.print(f"[red]Failed to load config: {escape(str(e))}[/red]")
        sys.exit(1)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


# ---------------------------------------------------------------------------
# version / config
# ---------------------------------------------------------------------------


@cli.command()
def version() -> None:
    """Show the installed controlgate version."""
    from controlgate import __version__

    click.echo(f"controlgate {__version__}")


@cli.command("config")
@click.pass_obj
def show_config(obj: _Context) -> None:
    """Print the effective configuration as YAML."""
    click.echo(yaml.safe_dump(obj.config.to_dict(), sort_keys=False), nl=False)


# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------


@cli.command()
@_request_options
@click.option("--json", "json_output", is_flag=True, default=False, help="Output results as JSON.")
def check(address: str, method: str, parameters: str, reason: str, json_output: bool) -> None:
    """Run the policy checks against a request without executing it.

    Exit code 0: every check passed. Exit code 1: one or more failed.
    """
    result = evaluate(create_draft(**_fields(address, method, parameters, reason)))

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        _print_policy_result(result)

    sys.exit(0 if result.passed else 1)


# ---------------------------------------------------------------------------
# submit
# ---------------------------------------------------------------------------


async def _submit(config: GateConfig, fields: dict[str, str], yes: bool, connect: bool) -> int:
    async with ControlGate(config) as gate:
        workflow = gate.workflow
        workflow.update_draft(**fields)
        try:
            workflow.submit()
        except ValidationFailed as e:
            for error in e.errors:
                _err_console.print(f"[red]  {escape(error.field)}: {escape(error.message)}[/red]")
            return 1

        _print_preview(fields)
        if not yes and not click.confirm("Proceed to policy checks?", default=True):
            _console.print("Cancelled.")
            return 1

        workflow.proceed()
        with _console.status("Running policy checks...") as status:

            def on_progress(percent: int) -> None:
                status.update(f"Running policy checks... {percent}%")

            result = await workflow.run_policy(on_progress)
        _print_policy_result(result)
        if not result.passed:
            return 1

        if connect and not gate.wallet.is_connected:
            try:
                await gate.wallet.connect()
            except WalletError as e:
                _err_console.print(f"[red]{escape(str(e))}[/red]")
                return 1
        for warning in workflow.warnings:
            _err_console.print(f"[yellow]{escape(warning)}[/yellow]")
        if not workflow.can_approve:
            return 1

        request = workflow.approve()
        _console.print(f"Reference: [bold]{escape(request.reference_id)}[/bold]")
        with _console.status("Waiting for wallet signature..."):
            log = await workflow.execute()

        if workflow.phase == ExecutionPhase.COMPLETE:
            _console.print("[green bold]Transaction executed[/green bold]")
            _console.print(f"  Hash: {escape(log.execution_hash)}")
            return 0
        _console.print(f"[red bold]Execution failed[/red bold]: {escape(log.error or '')}")
        return 1


@cli.command()
@_request_options
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip the preview confirmation.")
@click.option("--connect", is_flag=True, default=False, help="Connect the wallet first if needed.")
@click.pass_obj
def submit(obj: _Context, address: str, method: str, parameters: str, reason: str, yes: bool, connect: bool) -> None:
    """Draft, check, sign and record a contract call.

    Exit code 0: executed. Exit code 1: validation, policy, wallet or
    execution failure.
    """
    fields = _fields(address, method, parameters, reason)
    sys.exit(asyncio.run(_submit(obj.config, fields, yes, connect)))


# ---------------------------------------------------------------------------
# logs
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--limit", default=None, type=click.IntRange(min=1), help="Show at most N entries.")
@click.option("--json", "json_output", is_flag=True, default=False, help="Output logs as JSON.")
@click.pass_obj
def logs(obj: _Context, limit: int | None, json_output: bool) -> None:
    """Show the execution history, most recent first."""

    async def _load_logs():
        async with ControlGate(obj.config) as gate:
            return gate.store.logs

    entries = asyncio.run(_load_logs())
    if limit is not None:
        entries = entries[:limit]

    if json_output:
        click.echo(json.dumps([entry.to_dict() for entry in entries], indent=2))
        return
    if not entries:
        _console.print("No executions yet.")
        return

    table = Table(show_header=True)
    table.add_column("Reference", no_wrap=True)
    table.add_column("Time", style="dim")
    table.add_column("Method", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Hash / Error", overflow="fold")
    for entry in entries:
        if entry.status == LogStatus.SUCCESS:
            status_styled = "[green bold]success[/green bold]"
            detail = entry.execution_hash
        else:
            status_styled = "[red bold]failed[/red bold]"
            detail = entry.error or ""
        table.add_row(
            escape(entry.reference_id),
            entry.timestamp.isoformat(timespec="seconds"),
            escape(entry.method),
            status_styled,
            escape(detail),
        )
    _console.print(table)


@cli.command("clear-logs")
@click.option("--yes", "-y", is_flag=True, default=False, help="Do not ask for confirmation.")
@click.pass_obj
def clear_logs(obj: _Context, yes: bool) -> None:
    """Delete every execution log."""
    if not yes and not click.confirm("Are you sure you want to clear all execution logs?"):
        sys.exit(1)

    async def _clear() -> None:
        async with ControlGate(obj.config) as gate:
            await gate.store.clear()

    asyncio.run(_clear())
    _console.print("Execution logs cleared.")


# ---------------------------------------------------------------------------
# wallet
# ---------------------------------------------------------------------------


@cli.group()
def wallet() -> None:
    """Manage the wallet connection."""


async def _wallet_action(config: GateConfig, action: str) -> Any:
    async with ControlGate(config) as gate:
        if action == "connect":
            return await gate.wallet.connect()
        if action == "disconnect":
            await gate.wallet.disconnect()
            return None
        return gate.wallet.connection


@wallet.command("connect")
@click.pass_obj
def wallet_connect(obj: _Context) -> None:
    """Authenticate with the wallet and remember the connection."""
    try:
        connection = asyncio.run(_wallet_action(obj.config, "connect"))
    except WalletError as e:
        _err_console.print(f"[red]{escape(str(e))}[/red]")
        sys.exit(1)
    _console.print(f"[green]Connected[/green] as [bold]{escape(connection.username)}[/bold]")


@wallet.command("disconnect")
@click.pass_obj
def wallet_disconnect(obj: _Context) -> None:
    """Forget the saved wallet connection."""
    asyncio.run(_wallet_action(obj.config, "disconnect"))
    _console.print("Wallet disconnected.")


@wallet.command("status")
@click.pass_obj
def wallet_status(obj: _Context) -> None:
    """Show the saved wallet connection."""
    connection = asyncio.run(_wallet_action(obj.config, "status"))
    if connection is None:
        _console.print("Not connected.")
        sys.exit(1)
    _console.print(f"Connected as [bold]{escape(connection.username)}[/bold] ({escape(connection.address)})")


# ---------------------------------------------------------------------------
# status / serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "json_output", is_flag=True, default=False, help="Output status as JSON.")
@click.pass_obj
def status(obj: _Context, json_output: bool) -> None:
    """Probe storage, wallet and backend availability."""

    async def _status():
        async with ControlGate(obj.config) as gate:
            return await gate.status()

    result = asyncio.run(_status())
    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    table = Table(show_header=True, title="System status")
    table.add_column("Component")
    table.add_column("State")
    for name, value in result.to_dict().items():
        good = value in ("available", "online")
        table.add_row(name, f"[green]{value}[/green]" if good else f"[yellow]{value}[/yellow]")
    _console.print(table)


@cli.command()
@click.option("--host", default=None, help="Interface to bind (default from config).")
@click.option("--port", default=None, type=click.IntRange(1, 65535), help="Port to bind (default from config).")
@click.pass_obj
def serve(obj: _Context, host: str | None, port: int | None) -> None:
    """Run the stub HTTP backend."""
    from controlgate.server import run

    bind_host = host or obj.config.server.host
    bind_port = port or obj.config.server.port
    _console.print(f"Serving {escape(obj.config.app.name)} on http://{bind_host}:{bind_port}")
    run(obj.config, host=bind_host, port=bind_port)
