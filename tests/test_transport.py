"""Relay connection: lazy connect, OK matching, rejection and idempotent close."""

import asyncio
import json
from typing import Any

import pytest
from websockets.exceptions import ConnectionClosedOK

from helpers import TEST_PRIVATE_KEY
from rate_publisher.core.errors import PublishTimeout, TransportError
from rate_publisher.core.types import ReplaceableEvent, SignedEvent
from rate_publisher.relay.publisher import Publisher
from rate_publisher.relay.transport import RelayConnection


class FakeRelaySocket:
    """In-memory websocket that answers EVENT frames with a scripted OK."""

    def __init__(self, accept: bool = True, reply: bool = True) -> None:
        self.accept = accept
        self.reply = reply
        self.frames: list[Any] = []
        self.inbox: asyncio.Queue[str | None] = asyncio.Queue()
        self.closed = 0

    async def send(self, frame: str) -> None:
        message = json.loads(frame)
        self.frames.append(message)
        if self.reply:
            event_id = message[1]["id"]
            await self.inbox.put(json.dumps(["OK", event_id, self.accept, "" if self.accept else "blocked: spam"]))

    async def recv(self) -> str:
        item = await self.inbox.get()
        if item is None:
            raise ConnectionClosedOK(None, None)
        return item

    async def close(self) -> None:
        self.closed += 1


class FakeConnector:
    def __init__(self, *sockets: FakeRelaySocket) -> None:
        self.sockets = list(sockets)
        self.urls: list[str] = []

    async def __call__(self, url: str, **_kwargs: Any) -> FakeRelaySocket:
        self.urls.append(url)
        return self.sockets.pop(0)


def _event(event_id: str = "a" * 64) -> SignedEvent:
    return SignedEvent(
        id=event_id,
        pubkey="b" * 64,
        sig="c" * 128,
        kind=30078,
        created_at=1_773_064_800,
        tags=(("d", "app-bitcoin-rates"),),
        content="{}",
    )


def test_send_connects_lazily_and_resolves_on_ok() -> None:
    """The first send opens the socket; an accepting OK resolves it."""

    async def _scenario() -> tuple[FakeConnector, FakeRelaySocket]:
        socket = FakeRelaySocket()
        connector = FakeConnector(socket)
        relay = RelayConnection("ws://relay.test", connect=connector)
        assert connector.urls == []

        await relay.send(_event("1" * 64))
        await relay.send(_event("2" * 64))
        await relay.close()
        return connector, socket

    connector, socket = asyncio.run(_scenario())

    assert connector.urls == ["ws://relay.test"]
    assert [frame[0] for frame in socket.frames] == ["EVENT", "EVENT"]
    assert socket.frames[0][1]["tags"] == [["d", "app-bitcoin-rates"]]


def test_rejected_event_raises_transport_error() -> None:
    async def _scenario() -> None:
        relay = RelayConnection("ws://relay.test", connect=FakeConnector(FakeRelaySocket(accept=False)))
        with pytest.raises(TransportError, match="blocked"):
            await relay.send(_event())
        await relay.close()

    asyncio.run(_scenario())


def test_dropped_connection_fails_pending_and_reconnects() -> None:
    """A socket closing before OK fails the send; the next send reconnects."""

    async def _scenario() -> FakeConnector:
        silent = FakeRelaySocket(reply=False)
        healthy = FakeRelaySocket()
        connector = FakeConnector(silent, healthy)
        relay = RelayConnection("ws://relay.test", connect=connector)

        pending = asyncio.create_task(relay.send(_event()))
        await asyncio.sleep(0.01)
        await silent.inbox.put(None)
        with pytest.raises(TransportError):
            await pending

        await relay.send(_event("d" * 64))
        await relay.close()
        return connector

    connector = asyncio.run(_scenario())

    assert connector.urls == ["ws://relay.test", "ws://relay.test"]


def test_close_is_idempotent_and_blocks_further_sends() -> None:
    """Closing twice releases the socket once; sends after close fail."""

    async def _scenario() -> FakeRelaySocket:
        socket = FakeRelaySocket()
        async with RelayConnection("ws://relay.test", connect=FakeConnector(socket)) as relay:
            await relay.send(_event())
            await relay.close()
        assert relay.closed
        with pytest.raises(TransportError):
            await relay.send(_event())
        return socket

    socket = asyncio.run(_scenario())

    assert socket.closed == 1


def test_close_without_connection_is_noop() -> None:
    async def _scenario() -> None:
        relay = RelayConnection("ws://relay.test", connect=FakeConnector())
        await relay.close()
        await relay.close()

    asyncio.run(_scenario())


def test_connect_failure_is_transport_error() -> None:
    async def _refuse(url: str, **_kwargs: Any) -> None:
        raise OSError("connection refused")

    async def _scenario() -> None:
        relay = RelayConnection("ws://relay.test", connect=_refuse)
        with pytest.raises(TransportError, match="refused"):
            await relay.send(_event())

    asyncio.run(_scenario())


def test_timed_out_publishes_leave_nothing_pending() -> None:
    """Repeated timeouts against a silent relay leave no waiting sends behind."""

    async def _scenario() -> tuple[dict[str, Any], int, FakeRelaySocket]:
        socket = FakeRelaySocket(reply=False)
        relay = RelayConnection("ws://relay.test", connect=FakeConnector(socket))
        publisher = Publisher(relay, TEST_PRIVATE_KEY, timeout_ms=10)

        for created_at in range(1_773_064_800, 1_773_064_805):
            event = ReplaceableEvent(
                kind=30078, created_at=created_at, tags=(("d", "app-bitcoin-rates"),), content="{}"
            )
            with pytest.raises(PublishTimeout):
                await publisher.publish(event)
        await asyncio.sleep(0.01)

        pending = dict(relay._pending)
        # Only this scenario and the relay's reader remain.
        running = len(asyncio.all_tasks())
        await relay.close()
        return pending, running, socket

    pending, running, socket = asyncio.run(_scenario())

    assert pending == {}
    assert running == 2
    assert len(socket.frames) == 5


def test_discard_while_connecting_skips_the_send() -> None:
    """An event dropped before the socket opens is never written to it."""

    socket = FakeRelaySocket()

    async def _scenario() -> None:
        gate = asyncio.Event()

        async def _slow_connect(url: str, **_kwargs: Any) -> FakeRelaySocket:
            await gate.wait()
            return socket

        relay = RelayConnection("ws://relay.test", connect=_slow_connect)
        sending = asyncio.create_task(relay.send(_event()))
        await asyncio.sleep(0)
        relay.discard(_event().id)
        gate.set()
        with pytest.raises(asyncio.CancelledError):
            await sending
        assert relay._pending == {}
        await relay.close()

    asyncio.run(_scenario())

    assert socket.frames == []
