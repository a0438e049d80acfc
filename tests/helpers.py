"""Shared fakes for driving the publisher without network or real time."""

import asyncio
from datetime import datetime, timedelta, timezone

from rate_publisher.core.types import FeedSpec, RateSnapshot, ReplaceableEvent, SignedEvent

TEST_PRIVATE_KEY = bytes.fromhex("7f7ff03d123792d6ac594bfa67bf6d0c0ab55b6b1fdb6249303fe861f1ccba9a")

FIAT_FEED = FeedSpec(
    name="fiat",
    base_currency="USD",
    quote_currencies=("EUR", "CAD", "GBP"),
    api_url="https://api.frankfurter.app/latest",
    cadence_ms=15 * 60_000,
    replaceable_tag="app-currency-rates",
    topics=("app", "currency-rates"),
)

BITCOIN_FEED = FeedSpec(
    name="bitcoin",
    base_currency="BTC",
    quote_currencies=("USD",),
    api_url="https://blockchain.info/ticker",
    cadence_ms=60 * 60_000,
    replaceable_tag="app-bitcoin-rates",
    topics=("app", "bitcoin-rates"),
)


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock whose sleep jumps time forward."""

    def __init__(self, start: datetime, horizon: datetime | None = None) -> None:
        self.now = start
        self.horizon = horizon
        self.sleeps: list[float] = []
        self.on_horizon = None

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if self.horizon is not None and self.now + timedelta(seconds=seconds) >= self.horizon:
            if self.on_horizon is not None:
                self.on_horizon()
        self.advance(seconds)
        await asyncio.sleep(0)


class StaticRateSource:
    """Rate source returning fixed rates, or raising a configured error."""

    def __init__(
        self,
        rates: dict[str, float],
        error: Exception | None = None,
        log: list[str] | None = None,
    ) -> None:
        self.rates = rates
        self.error = error
        self.log = log if log is not None else []

    async def fetch(self, feed: FeedSpec) -> RateSnapshot:
        self.log.append(f"fetch:{feed.name}")
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        return RateSnapshot(base_currency=feed.base_currency, rates=dict(self.rates), fetched_at=utc(2026, 1, 1))


class RecordingPublisher:
    """Publisher stand-in that records events instead of signing and sending them."""

    def __init__(self, log: list[str] | None = None) -> None:
        self.events: list[ReplaceableEvent] = []
        self.log = log if log is not None else []

    async def publish(self, event: ReplaceableEvent) -> SignedEvent:
        await asyncio.sleep(0)
        self.events.append(event)
        d_tag = event.tags[0][1]
        self.log.append(f"publish:{d_tag}")
        return SignedEvent(
            id=f"id-{len(self.events)}",
            pubkey="pubkey",
            sig="sig",
            kind=event.kind,
            created_at=event.created_at,
            tags=event.tags,
            content=event.content,
        )
