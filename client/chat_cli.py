#!/usr/bin/env python3

from __future__ import annotations
import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from aioconsole import ainput
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from shared.envelope import DecodedMessage, ParseError, decode, encode, validate_notification_format
from shared.log import configure_root_logging, get_logger
from shared.message_types import ConnectionState, MessageKind, UserEvent
from shared.utils import format_message_timestamp
from .config import ClientConfig, ConfigError, load_config
from .ws_client import ChatConnection

app = typer.Typer(help="Room chat client CLI")
console = Console()
logger = get_logger(__name__)


def _resolve_config(config_path: Optional[Path], host: Optional[str], port: Optional[int]) -> ClientConfig:
    try:
        return load_config(config_path).with_overrides(host=host, port=port)
    except ConfigError as e:
        console.print(f"[red]Invalid configuration[/]: {escape(str(e))}")
        raise typer.Exit(code=2)


def render_message(decoded: DecodedMessage) -> str:
    """One console line for an inbound frame"""
    if decoded.kind is MessageKind.USER_EVENT:
        note = decoded.payload
        if note.event is UserEvent.CONNECTED:
            return f"[green]>> user {escape(str(note.user))} joined the room[/]"
        return f"[yellow]<< user {escape(str(note.user))} left the room[/]"
    if decoded.kind is MessageKind.TEXT:
        env = decoded.payload
        try:
            when = format_message_timestamp(env.timestamp)
        except ValueError:
            when = str(env.timestamp)
        return f"[dim]{escape(when)}[/] [bold cyan]{escape(str(env.sender))}[/]: {escape(str(env.message))}"
    return f"[dim]unrecognised payload {escape(json.dumps(decoded.data))}[/]"


def status_table(connection: ChatConnection) -> Table:
    table = Table(title="Connection")
    table.add_column("Field")
    table.add_column("Value")
    table.add_row("state", connection.state.value)
    table.add_row("connected", str(connection.get_status()))
    table.add_row("reconnect attempts", f"{connection.reconnect_attempts}/{connection.reconnect_state.max_attempts}")
    table.add_row("url", connection.url)
    return table


@app.command()
def chat(
    room: str = typer.Argument(..., help="Room address to join"),
    user_id: int = typer.Argument(..., help="Numeric user id"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="YAML config file (default: $ROOMCHAT_CONFIG)"),
    host: Optional[str] = typer.Option(None, help="Chat server host"),
    port: Optional[int] = typer.Option(None, help="Chat server port"),
    log_level: str = typer.Option("WARNING", help="Root log level"),
):
    """Join a room and chat interactively."""
    configure_root_logging(log_level)
    config = _resolve_config(config_path, host, port)

    async def main_loop() -> None:
        connection = ChatConnection(room, user_id, config)

        @connection.on_message
        def _print_message(decoded: DecodedMessage) -> None:
            console.print(render_message(decoded))

        @connection.on_connection_change
        def _print_change(connected: bool) -> None:
            if connected:
                console.print(f"[bold green]Connected[/] to {escape(room)} as {user_id}")
            elif connection.state is ConnectionState.CONNECTING:
                console.print("[yellow]Connection lost[/], reconnecting...")
            else:
                console.print("[red]Disconnected[/]")

        @connection.on_error
        def _print_error(error: Exception) -> None:
            console.print(f"[red]Transport error[/]: {escape(str(error))}")

        await connection.connect()
        try:
            while True:
                line = (await ainput(": ")).strip()
                if not line:
                    continue
                if line in {"/quit", "/exit"}:
                    break
                if line == "/help":
                    console.print("/status, /connect, /quit; anything else is sent to the room")
                    continue
                if line == "/status":
                    console.print(status_table(connection))
                    continue
                if line == "/connect":
                    if not await connection.connect():
                        console.print("[red]Could not connect[/]")
                    continue
                if not await connection.send_message(line):
                    console.print("[red]Not sent[/]: not connected (try /connect)")
        except EOFError:
            pass
        finally:
            await connection.disconnect()

    asyncio.run(main_loop())


@app.command("encode")
def encode_command(
    room: str = typer.Argument(..., help="Room address"),
    user_id: int = typer.Argument(..., help="Numeric user id"),
    text: str = typer.Argument(..., help="Message text"),
):
    """Print the envelope that would be sent for TEXT and exit."""
    env = encode(text, user_id, room)
    console.print_json(json.dumps(env.to_dict()))


@app.command()
def check(payload: str = typer.Argument(..., help="Inbound JSON payload")):
    """Classify an inbound payload."""
    try:
        decoded = decode(payload)
    except ParseError as e:
        console.print(f"[red]Malformed payload[/]: {escape(str(e))}")
        raise typer.Exit(code=1)
    console.print_json(json.dumps(validate_notification_format(decoded.data)))
    if not decoded.valid:
        raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
