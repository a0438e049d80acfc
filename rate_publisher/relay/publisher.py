"""Sign events and deliver them to the relay under a bounded timeout."""

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, TypeVar

from rate_publisher.core.errors import PublishError, PublishTimeout, TransportError
from rate_publisher.core.types import ReplaceableEvent, SignedEvent
from rate_publisher.relay.signing import sign_event

T = TypeVar("T")

logger = logging.getLogger(__name__)


class EventTransport(Protocol):
    url: str

    async def send(self, event: SignedEvent) -> None: ...

    def discard(self, event_id: str) -> None: ...


async def race_timeout(attempt: Awaitable[T], timeout_s: float, describe: str = "operation") -> T:
    """Await ``attempt`` unless ``timeout_s`` elapses first.

    The attempt and a timer settle a single result slot; whichever resolves
    first wins. A late attempt result is discarded and the attempt is left to
    finish on its own rather than being cancelled.
    """

    loop = asyncio.get_running_loop()
    slot: asyncio.Future[T] = loop.create_future()
    task = asyncio.ensure_future(attempt)

    def _settle_attempt(done: asyncio.Future[T]) -> None:
        if done.cancelled():
            if not slot.done():
                slot.set_exception(TransportError(f"{describe} was cancelled"))
            return
        exc = done.exception()
        if slot.done():
            if exc is not None:
                logger.debug("late_attempt_failure_discarded", extra={"error": str(exc)})
            return
        if exc is not None:
            slot.set_exception(exc)
        else:
            slot.set_result(done.result())

    def _settle_timer() -> None:
        if not slot.done():
            slot.set_exception(PublishTimeout(f"{describe} timed out after {timeout_s:g}s"))

    task.add_done_callback(_settle_attempt)
    timer = loop.call_later(timeout_s, _settle_timer)
    try:
        return await slot
    finally:
        timer.cancel()


class Publisher:
    """Single best-effort publish per call; retries belong to the caller's schedule."""

    def __init__(
        self,
        transport: EventTransport,
        private_key: bytes,
        timeout_ms: int,
        signer: Callable[[ReplaceableEvent, bytes], SignedEvent] = sign_event,
    ) -> None:
        self._transport = transport
        self._private_key = private_key
        self._timeout_s = max(0, timeout_ms) / 1000
        self._signer = signer

    async def publish(self, event: ReplaceableEvent) -> SignedEvent:
        try:
            signed = self._signer(event, self._private_key)
        except PublishError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"failed to sign event: {exc}") from exc

        logger.info(
            "relay_publish",
            extra={"url": self._transport.url, "event_id": signed.id, "pubkey": signed.pubkey},
        )

        try:
            await race_timeout(
                self._transport.send(signed),
                self._timeout_s,
                describe=f"publish to {self._transport.url}",
            )
        except PublishTimeout:
            # The relay may still answer; nothing is waiting for it any more.
            self._transport.discard(signed.id)
            raise
        except PublishError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise TransportError(f"failed to publish event {signed.id}: {exc}") from exc

        return signed
