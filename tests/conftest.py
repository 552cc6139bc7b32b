"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest


class RecordingListener:
    """TransportListener that records everything a transport reports."""

    def __init__(self) -> None:
        self.messages: list[str] = []
        self.events: list[tuple[str, dict[str, Any]]] = []

    def on_message(self, wire: str) -> None:
        self.messages.append(wire)

    def on_event(self, command: str, payload: dict[str, Any]) -> None:
        self.events.append((command, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def eventually() -> Callable[..., Awaitable[None]]:
    """Wait until a condition holds, failing after a timeout."""

    async def wait(condition: Callable[[], bool], timeout: float = 2.0) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not condition():
            if loop.time() > deadline:
                raise AssertionError("Condition not met in time")
            await asyncio.sleep(0.01)

    return wait


class FakeWebSocket:
    """Stands in for a websockets client connection."""

    def __init__(self, frames: list[str | bytes] | None = None, *, hold_open: bool = True):
        self.frames = list(frames or [])
        self.hold_open = hold_open
        self.sent: list[str] = []
        self.closed = False
        self.fail_after_frames: Exception | None = None
        self._closed_event = asyncio.Event()

    async def send(self, data: str) -> None:
        self.sent.append(data)

    async def close(self) -> None:
        self.closed = True
        self._closed_event.set()

    async def _iterate(self) -> AsyncIterator[Any]:
        for frame in self.frames:
            yield frame
        if self.fail_after_frames is not None:
            raise self.fail_after_frames
        if self.hold_open:
            await self._closed_event.wait()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()


class FakeCometServer:
    """In-memory long-polling endpoint served through httpx.MockTransport.

    Polls with nothing to deliver raise ReadTimeout, like a real long-poll
    that runs out its timeout.
    """

    def __init__(self, suid: str | None = "suid-123"):
        self.suid = suid
        self.requests: list[dict[str, str]] = []
        self.outgoing: asyncio.Queue[str] = asyncio.Queue()
        self.handshake_gate = asyncio.Event()
        self.handshake_gate.set()
        self.handshake_status = 200
        self.failing_receives = 0
        self.receive_error: type[httpx.RequestError] | None = None
        self.input_status = 200

    def modes(self, mode: str) -> list[dict[str, str]]:
        return [r for r in self.requests if r["mode"] == mode]

    def push(self, command: str, payload: dict[str, Any]) -> None:
        self.outgoing.put_nowait(json.dumps([command, payload]))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        form = dict(parse_qsl(request.content.decode()))
        self.requests.append(form)
        mode = form.get("mode")

        if mode == "init":
            await self.handshake_gate.wait()
            if self.handshake_status != 200:
                return httpx.Response(self.handshake_status)
            return httpx.Response(200, json={"suid": self.suid} if self.suid else {})

        if mode == "receive":
            if self.receive_error is not None:
                await asyncio.sleep(0)
                raise self.receive_error("poll request failed", request=request)
            if self.failing_receives > 0:
                self.failing_receives -= 1
                await asyncio.sleep(0)
                return httpx.Response(500)
            try:
                body = await asyncio.wait_for(self.outgoing.get(), timeout=0.02)
            except TimeoutError:
                raise httpx.ReadTimeout("poll timed out", request=request) from None
            return httpx.Response(200, text=body)

        if mode == "input":
            return httpx.Response(self.input_status, json={})

        if mode == "close":
            return httpx.Response(200, json={})

        return httpx.Response(400)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def server() -> FakeCometServer:
    return FakeCometServer()


@pytest.fixture
def websocket_factory() -> type[FakeWebSocket]:
    return FakeWebSocket
