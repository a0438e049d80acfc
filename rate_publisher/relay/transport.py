"""Process-wide websocket connection to a single relay."""

import asyncio
import inspect
import json
import logging
from typing import Any, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from rate_publisher.core.errors import TransportError
from rate_publisher.core.types import SignedEvent

_WS_PING_INTERVAL_S = 30

logger = logging.getLogger(__name__)


def _websocket_connect_kwargs() -> dict[str, Any]:
    kwargs: dict[str, Any] = {"ping_interval": _WS_PING_INTERVAL_S}
    if "proxy" in inspect.signature(websockets.connect).parameters:
        kwargs["proxy"] = None
    return kwargs


class RelayConnection:
    """Owned relay handle: connects lazily, matches OK replies by event id, closes once.

    ``send`` resolves when the relay acknowledges the event and raises
    ``TransportError`` when the relay rejects it or the socket drops first.
    """

    def __init__(self, url: str, connect: Callable[..., Any] | None = None) -> None:
        self.url = url
        self._connect = connect or websockets.connect
        self._ws: Any = None
        self._reader: asyncio.Task[None] | None = None
        self._pending: dict[str, asyncio.Future[None]] = {}
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> "RelayConnection":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def _ensure_connected(self) -> Any:
        async with self._lock:
            if self._closed:
                raise TransportError("relay connection is closed")
            if self._ws is not None and self._reader is not None and not self._reader.done():
                return self._ws

            if self._ws is not None:
                stale, self._ws = self._ws, None
                await stale.close()

            try:
                self._ws = await self._connect(self.url, **_websocket_connect_kwargs())
            except (OSError, websockets.WebSocketException, asyncio.TimeoutError) as exc:
                self._ws = None
                raise TransportError(f"failed to connect to {self.url}: {exc}") from exc

            self._reader = asyncio.create_task(self._read_loop(self._ws))
            logger.info("relay_connected", extra={"url": self.url})
            return self._ws

    async def _read_loop(self, ws: Any) -> None:
        reason = "relay connection closed"
        try:
            while True:
                raw_message = await ws.recv()
                self._dispatch(raw_message)
        except ConnectionClosed as exc:
            reason = f"relay connection closed: {exc}"
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # noqa: BLE001
            reason = f"relay read failed: {exc}"
        finally:
            self._fail_pending(reason)
            if not self._closed:
                logger.warning("relay_disconnected", extra={"url": self.url, "reason": reason})

    def _dispatch(self, raw_message: Any) -> None:
        try:
            message = json.loads(raw_message)
        except (TypeError, json.JSONDecodeError):
            logger.warning("relay_invalid_json_message")
            return

        if not isinstance(message, list) or not message:
            return

        if message[0] == "NOTICE":
            logger.info("relay_notice", extra={"notice": message[1:]})
            return
        if message[0] != "OK" or len(message) < 3:
            return

        future = self._pending.pop(str(message[1]), None)
        if future is None or future.done():
            return
        if message[2] is True:
            future.set_result(None)
        else:
            detail = message[3] if len(message) > 3 else ""
            future.set_exception(TransportError(f"relay rejected event: {detail}"))

    def _fail_pending(self, reason: str) -> None:
        pending, self._pending = self._pending, {}
        for future in pending.values():
            if not future.done():
                future.set_exception(TransportError(reason))

    async def send(self, event: SignedEvent) -> None:
        """Send an event and wait for the relay's acknowledgment.

        The acknowledgment slot is registered before connecting so that
        ``discard`` can end the wait at any point.
        """

        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._pending[event.id] = future

        try:
            ws = await self._ensure_connected()
            if not future.done():
                frame = json.dumps(["EVENT", event.to_wire()], ensure_ascii=False, separators=(",", ":"))
                await ws.send(frame)
            await future
        except (ConnectionClosed, OSError) as exc:
            raise TransportError(f"failed to send event: {exc}") from exc
        finally:
            if self._pending.get(event.id) is future:
                del self._pending[event.id]

    def discard(self, event_id: str) -> None:
        """Stop waiting for an acknowledgment; the parked send ends as cancelled."""

        future = self._pending.pop(event_id, None)
        if future is not None and not future.done():
            future.cancel()

    async def close(self) -> None:
        """Release the socket; repeated calls are no-ops."""

        if self._closed:
            return
        self._closed = True

        reader, self._reader = self._reader, None
        ws, self._ws = self._ws, None
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        if ws is not None:
            await ws.close()
        self._fail_pending("relay connection is closed")
        logger.info("relay_closed", extra={"url": self.url})
