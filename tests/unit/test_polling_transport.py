"""Unit tests for the long-polling PollingTransport.

The comet endpoint is the in-memory FakeCometServer from conftest.
"""

from __future__ import annotations

import logging

import httpx
import pytest

from amplifier_webclient.config import ClientConfig
from amplifier_webclient.transport import PollingTransport, TransportState

POLL_URL = "http://game.test/webclientdata"


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(transport="polling", poll_url=POLL_URL, max_poll_failures=3)


def make_transport(config, listener, server) -> PollingTransport:
    return PollingTransport(config, listener, http_transport=server.transport())


class TestPollingHandshake:
    """Tests for session token negotiation."""

    @pytest.mark.asyncio
    async def test_handshake_opens_transport(self, config, listener, server, eventually) -> None:
        """A successful init handshake stores the token and opens the transport."""
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_open)

        assert transport.suid == "suid-123"
        assert listener.names() == ["socket:open"]
        assert server.requests[0] == {"mode": "init"}
        await transport.close()

    @pytest.mark.asyncio
    async def test_send_before_handshake_is_queued(
        self, config, listener, server, eventually
    ) -> None:
        """Outbound messages wait for the session token instead of being dropped."""
        server.handshake_gate.clear()
        transport = make_transport(config, listener, server)
        transport.connect()
        transport.send('["look", {}]')
        await eventually(lambda: len(server.modes("init")) == 1)

        assert transport.state == TransportState.CONNECTING
        assert server.modes("input") == []

        server.handshake_gate.set()
        await eventually(lambda: len(server.modes("input")) == 1)

        assert server.modes("input")[0] == {
            "mode": "input",
            "msg": '["look", {}]',
            "suid": "suid-123",
        }
        await transport.close()

    @pytest.mark.asyncio
    async def test_handshake_http_error(self, config, listener, server, eventually) -> None:
        """An HTTP error during the handshake fails the transport without retrying."""
        server.handshake_status = 503
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_closed)

        assert listener.names() == ["socket:error", "socket:close"]
        assert listener.events[0][1]["code"] == "handshake_failure"
        # Not retried
        assert len(server.modes("init")) == 1

    @pytest.mark.asyncio
    async def test_failed_handshake_reports_unsent_messages(
        self, config, listener, server, eventually, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Messages queued before a failed handshake are discarded with a warning."""
        server.handshake_status = 503
        transport = make_transport(config, listener, server)
        transport.connect()
        transport.send('["look", {}]')
        transport.send('["who", {}]')

        with caplog.at_level(logging.WARNING):
            await eventually(lambda: transport.is_closed)

        assert "closed with 2 unsent message(s)" in caplog.text
        assert server.modes("input") == []

    @pytest.mark.asyncio
    async def test_handshake_without_token(self, config, listener, server, eventually) -> None:
        """A handshake response without a suid is a handshake failure."""
        server.suid = None
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_closed)

        assert listener.events[0] == (
            "socket:error",
            {"error": "Handshake response carried no session token", "code": "handshake_failure"},
        )
        assert transport.suid is None


class TestPollingReceive:
    """Tests for the receive loop."""

    @pytest.mark.asyncio
    async def test_messages_delivered_in_order(self, config, listener, server, eventually) -> None:
        """Polled bodies reach the listener in arrival order, tagged with the suid."""
        transport = make_transport(config, listener, server)
        transport.connect()
        for n in range(3):
            server.outgoing.put_nowait(f'["text", {{"n": {n}}}]')
        await eventually(lambda: len(listener.messages) == 3)

        assert listener.messages == [f'["text", {{"n": {n}}}]' for n in range(3)]
        receives = server.modes("receive")
        assert all(r["suid"] == "suid-123" for r in receives)
        await transport.close()

    @pytest.mark.asyncio
    async def test_timeouts_keep_polling(self, config, listener, server, eventually) -> None:
        """A timed-out poll is not a failure; the loop just polls again."""
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: len(server.modes("receive")) >= 6)

        assert transport.is_open
        assert "socket:error" not in listener.names()
        await transport.close()

    @pytest.mark.asyncio
    async def test_repeated_failures_close_transport(
        self, config, listener, server, eventually
    ) -> None:
        """Consecutive HTTP errors up to the limit close the transport."""
        server.failing_receives = 100
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_closed)

        assert listener.names() == ["socket:open", "socket:error", "socket:close"]
        assert listener.events[1][1]["code"] == "poll_failed"
        assert len(server.modes("receive")) == 3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error", [httpx.ConnectTimeout, httpx.PoolTimeout, httpx.ConnectError]
    )
    async def test_unreachable_server_closes_transport(
        self, config, listener, server, eventually, error
    ) -> None:
        """Connect and pool timeouts count as failures, unlike an empty long-poll."""
        server.receive_error = error
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_closed)

        assert listener.names() == ["socket:open", "socket:error", "socket:close"]
        assert listener.events[1][1]["code"] == "poll_failed"
        assert len(server.modes("receive")) == 3

    @pytest.mark.asyncio
    async def test_single_failure_does_not_close(
        self, config, listener, server, eventually
    ) -> None:
        """One failed poll is retried and the transport stays open."""
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_open)

        server.failing_receives = 1
        await eventually(lambda: server.failing_receives == 0)
        server.outgoing.put_nowait('["text", {}]')
        await eventually(lambda: len(listener.messages) == 1)

        assert transport.is_open
        await transport.close()


class TestPollingSend:
    """Tests for outbound input requests."""

    @pytest.mark.asyncio
    async def test_input_failure_emits_error(self, config, listener, server, eventually) -> None:
        """A rejected input request reports send_failed but keeps the transport open."""
        server.input_status = 500
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_open)

        transport.send('["look", {}]')
        await eventually(lambda: "socket:error" in listener.names())

        assert listener.events[-1][1]["code"] == "send_failed"
        assert transport.is_open
        await transport.close()

    @pytest.mark.asyncio
    async def test_sends_keep_order(self, config, listener, server, eventually) -> None:
        """Queued messages are posted in the order they were sent."""
        transport = make_transport(config, listener, server)
        transport.connect()
        for n in range(5):
            transport.send(f'["n", {{"n": {n}}}]')
        await eventually(lambda: len(server.modes("input")) == 5)

        expected = [f'["n", {{"n": {n}}}]' for n in range(5)]
        assert [r["msg"] for r in server.modes("input")] == expected
        await transport.close()


class TestPollingClose:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_close_notifies_server(self, config, listener, server, eventually) -> None:
        """Closing posts a close request carrying the session token."""
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_open)

        await transport.close()

        assert server.modes("close") == [{"mode": "close", "suid": "suid-123"}]
        assert listener.names() == ["socket:open", "socket:close"]

    @pytest.mark.asyncio
    async def test_send_after_close(self, config, listener, server, eventually) -> None:
        """Sending after close is dropped and reported as transport_closed."""
        transport = make_transport(config, listener, server)
        transport.connect()
        await eventually(lambda: transport.is_open)
        await transport.close()

        transport.send('["look", {}]')

        assert server.modes("input") == []
        assert listener.events[-1][1]["code"] == "transport_closed"
