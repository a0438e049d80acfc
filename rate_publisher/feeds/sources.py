"""Upstream rate APIs queried once per feed cycle."""

import logging
import math
from typing import Any, Protocol

import httpx

from rate_publisher.core.errors import FetchError
from rate_publisher.core.time_utils import utc_now
from rate_publisher.core.types import FeedSpec, RateSnapshot

logger = logging.getLogger(__name__)

_USER_AGENT = "nostr-rate-publisher/0.1"


class RateSource(Protocol):
    """Anything that can turn a feed description into a fresh snapshot."""

    async def fetch(self, feed: FeedSpec) -> RateSnapshot: ...


def _as_rate(value: Any) -> float | int | None:
    # Upstream numbers pass through untouched so content carries them verbatim.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        finite = math.isfinite(value)
    except OverflowError:
        return None
    return value if finite else None


class _HttpRateSource:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def _get_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        try:
            response = await self._client.get(
                url, params=params, headers={"User-Agent": _USER_AGENT}
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise FetchError(f"HTTP request failed: {exc}") from exc

        try:
            return response.json()
        except ValueError as exc:
            # JSONDecodeError and UnicodeDecodeError both land here.
            raise FetchError(f"Failed to parse response: {exc}") from exc


class FrankfurterRateSource(_HttpRateSource):
    """Fiat exchange rates keyed by quote currency, relative to the feed base."""

    async def fetch(self, feed: FeedSpec) -> RateSnapshot:
        params = {"from": feed.base_currency, "to": ",".join(feed.quote_currencies)}
        logger.info("rates_fetch", extra={"feed": feed.name, "url": feed.api_url, "params": params})

        payload = await self._get_json(feed.api_url, params=params)
        raw_rates = payload.get("rates") if isinstance(payload, dict) else None
        if not isinstance(raw_rates, dict):
            raise FetchError("Failed to parse response: missing rates object")

        rates: dict[str, float] = {}
        for code, value in raw_rates.items():
            rate = _as_rate(value)
            if rate is None:
                raise FetchError(f"Failed to parse response: invalid rate for {code}")
            rates[str(code)] = rate

        logger.info("rates_fetched", extra={"feed": feed.name, "rates": rates})
        return RateSnapshot(base_currency=feed.base_currency, rates=rates, fetched_at=utc_now())


class BlockchainTickerRateSource(_HttpRateSource):
    """Bitcoin last-trade price per quote currency from a ticker document."""

    async def fetch(self, feed: FeedSpec) -> RateSnapshot:
        logger.info("rates_fetch", extra={"feed": feed.name, "url": feed.api_url})

        payload = await self._get_json(feed.api_url)
        if not isinstance(payload, dict):
            raise FetchError("Failed to parse response: ticker is not an object")

        rates: dict[str, float] = {}
        for code in feed.quote_currencies:
            entry = payload.get(code)
            rate = _as_rate(entry.get("last")) if isinstance(entry, dict) else None
            if rate is None:
                raise FetchError(f"Failed to parse response: no last price for {code}")
            rates[code] = rate

        logger.info("rates_fetched", extra={"feed": feed.name, "rates": rates})
        return RateSnapshot(base_currency=feed.base_currency, rates=rates, fetched_at=utc_now())
