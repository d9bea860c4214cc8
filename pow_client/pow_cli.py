#!/usr/bin/env python3

from __future__ import annotations
import asyncio
from pathlib import Path
from typing import List, Optional

import aioconsole
import typer
from rich.console import Console
from rich.pretty import Pretty
from rich.table import Table

from pow_shared.config import ClientConfig, load_config
from pow_shared.errors import ConfigError, TransportError, UsageError
from pow_shared.log import get_logger, set_level
from pow_shared.messages import CallSpec
from .result import Result
from .session import CallHooks, CallSession

app = typer.Typer(help="pow-1 Client CLI")
console = Console()
logger = get_logger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_TRANSPORT = 2


async def run_call(
    config: ClientConfig,
    spec: CallSpec,
    lines: List[str],
    *,
    stdin: bool = False,
    timeout: Optional[float] = None,
) -> Result:
    """Perform a call, streaming the given input and printing log lines as they arrive."""

    async def stream_input(session: CallSession) -> None:
        # the remote writes input to the process verbatim, so every line carries its newline
        for line in lines:
            await session.send_text(line + "\n")
        if stdin:
            while True:
                try:
                    line = await aioconsole.ainput()
                except EOFError:
                    break
                await session.send_text(line + "\n")
        await session.close_input()

    async def cancel_after(session: CallSession, seconds: float) -> None:
        await asyncio.sleep(seconds)
        logger.warning("Timeout of %ss expired, requesting cancellation", seconds)
        await session.cancel()

    async def on_connect(session: CallSession) -> None:
        jobs = [stream_input(session)]
        if timeout is not None:
            jobs.append(cancel_after(session, timeout))
        await asyncio.gather(*jobs)

    def on_log_line(session: CallSession, line: str) -> None:
        console.print(line.rstrip("\n"), markup=False, highlight=False)

    hooks = CallHooks(on_connect=on_connect, on_log_line=on_log_line)
    session = CallSession.from_config(config, spec, hooks)
    return await session.connect()


def _print_result(result: Result, as_json: bool) -> None:
    if as_json:
        console.print_json(data=result.to_dict())
        return
    if result.success:
        console.print("[bold green]Success[/]")
        if result.data is not None:
            console.print(Pretty(result.data))
    else:
        console.print(f"[bold red]Failure[/]: {result.message}")


def _load(config_path: Optional[Path], **overrides) -> ClientConfig:
    try:
        config = load_config(config_path, **overrides)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration[/]: {e}")
        raise typer.Exit(code=EXIT_TRANSPORT)
    if config.log_level:
        set_level(config.log_level)
    return config


@app.command()
def call(
    name: str = typer.Argument(..., help="Name of the remote call"),
    params: Optional[List[str]] = typer.Argument(None, help="String parameters of the call"),
    server: Optional[str] = typer.Option(None, help="URL of the remote (ws:// or http://)"),
    token: Optional[str] = typer.Option(None, help="Bearer token sent when connecting"),
    transport: Optional[str] = typer.Option(None, help="Transport to use: ws or http"),
    input_lines: Optional[List[str]] = typer.Option(None, "--input", "-i", help="Input text to send (repeatable)"),
    stdin: bool = typer.Option(False, "--stdin", help="Stream standard input to the call"),
    timeout: Optional[float] = typer.Option(None, help="Request cancellation after this many seconds"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
):
    """Perform a single call and print its log lines and result."""
    config = _load(config_path, server=server, token=token, transport=transport)

    try:
        spec = CallSpec(name, tuple(params or ()))
        result = asyncio.run(run_call(config, spec, list(input_lines or []), stdin=stdin, timeout=timeout))
    except UsageError as e:
        console.print(f"[red]Invalid call[/]: {e}")
        raise typer.Exit(code=EXIT_TRANSPORT)
    except TransportError as e:
        console.print(f"[red]Call could not be carried out[/]: {e}")
        raise typer.Exit(code=EXIT_TRANSPORT)

    _print_result(result, as_json)
    raise typer.Exit(code=EXIT_SUCCESS if result.success else EXIT_FAILURE)


@app.command("config")
def show_config(
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML configuration file"),
):
    """Print the effective configuration."""
    config = _load(config_path)

    table = Table(title="pow-client configuration")
    table.add_column("Option")
    table.add_column("Value")
    for key, value in config.as_dict().items():
        if key == "token" and value:
            value = "********"
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
