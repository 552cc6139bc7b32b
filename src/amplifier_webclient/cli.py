"""Amplifier webclient CLI.

A small host for the client, useful for poking at a server by hand.

Usage:
    amplifier-webclient --ws-url ws://localhost:4002 send who
    amplifier-webclient --transport polling send look --payload '{"target": "here"}'
    amplifier-webclient listen                   # print inbound, send stdin lines

Lines typed into ``listen`` have the form ``command {json payload}``;
the payload may be omitted.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click

from .client import WebClient
from .config import TRANSPORT_MODES, ClientConfig
from .dispatcher import Dispatcher
from .protocol.lifecycle import LifecycleEvent

logger = logging.getLogger(__name__)


def parse_payload(text: str) -> dict[str, Any]:
    """Parse a JSON object given on the command line."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError(f"payload is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("payload must be a JSON object")
    return data


def parse_input_line(line: str) -> tuple[str, dict[str, Any]]:
    """Split ``command {json}`` into command and payload."""
    parts = line.strip().split(maxsplit=1)
    if not parts:
        raise ValueError("empty line")
    command = parts[0]
    payload = parse_payload(parts[1]) if len(parts) > 1 else {}
    return command, payload


class EchoEmitter:
    """Emitter that prints every inbound command as a JSON line."""

    def emit(self, command: str, payload: dict[str, Any]) -> None:
        click.echo(json.dumps([command, payload]))


@click.group()
@click.option("--ws-url", help="WebSocket URL of the server")
@click.option("--poll-url", help="Long-polling endpoint URL")
@click.option("--transport", type=click.Choice(TRANSPORT_MODES), help="Transport to use")
@click.option("--poll-timeout", type=float, help="Seconds before a poll request times out")
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    ws_url: str | None,
    poll_url: str | None,
    transport: str | None,
    poll_timeout: float | None,
    debug: bool,
) -> None:
    """Amplifier webclient - send commands to a server over WebSocket or long-polling.

    Unset options fall back to AMPLIFIER_WEBCLIENT_* environment variables.
    """
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    try:
        ctx.obj = ClientConfig.from_env(
            websocket_url=ws_url,
            poll_url=poll_url,
            transport=transport,
            poll_timeout=poll_timeout,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e


@main.command()
@click.argument("command")
@click.option("--payload", default="{}", help="JSON object of command arguments")
@click.option("--wait", default=10.0, type=float, help="Seconds to wait for the reply")
@click.pass_obj
def send(config: ClientConfig, command: str, payload: str, wait: float) -> None:
    """Send COMMAND and print the server's reply."""
    try:
        data = parse_payload(payload)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--payload") from e

    reply = asyncio.run(_send_and_wait(config, command, data, wait))
    if reply is None:
        click.echo(f"No reply to {command} within {wait}s", err=True)
        sys.exit(1)
    click.echo(json.dumps(reply))


async def _send_and_wait(
    config: ClientConfig, command: str, payload: dict[str, Any], wait: float
) -> dict[str, Any] | None:
    loop = asyncio.get_running_loop()
    reply: asyncio.Future[dict[str, Any] | None] = loop.create_future()

    def settle(value: dict[str, Any] | None) -> None:
        if not reply.done():
            reply.set_result(value)

    def on_error(error: dict[str, Any]) -> None:
        click.echo(f"error: {error.get('error')}", err=True)

    dispatcher = Dispatcher()
    dispatcher.on(LifecycleEvent.ERROR.value, on_error)
    dispatcher.on(LifecycleEvent.CLOSE.value, lambda _: settle(None))

    client = WebClient(config)
    client.init(emitter=dispatcher)
    try:
        client.send(command, payload, callback=settle)
        return await asyncio.wait_for(reply, timeout=wait)
    except TimeoutError:
        return None
    finally:
        await client.close()


@main.command()
@click.option(
    "--idle-interval",
    default=180.0,
    type=float,
    help="Seconds between idle ticks in the debug log",
)
@click.pass_obj
def listen(config: ClientConfig, idle_interval: float) -> None:
    """Print inbound commands and send lines read from stdin."""
    asyncio.run(_listen(config, idle_interval))


async def _listen(config: ClientConfig, idle_interval: float) -> None:
    client = WebClient(config)
    client.init(emitter=EchoEmitter())
    ticker = asyncio.create_task(_idle_ticks(idle_interval))
    try:
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            if not line.strip():
                continue
            try:
                command, payload = parse_input_line(line)
            except ValueError as e:
                click.echo(f"error: {e}", err=True)
                continue
            client.send(command, payload)
    finally:
        ticker.cancel()
        await client.close()


async def _idle_ticks(interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        logger.debug("Idle tick.")


if __name__ == "__main__":
    main()
