"""Environment-driven settings for the rate publisher and its feed definitions."""

import re
from functools import lru_cache
from typing import Callable

from pydantic_settings import BaseSettings, SettingsConfigDict

from rate_publisher.core.errors import ConfigError
from rate_publisher.core.types import FeedSpec

PLACEHOLDER_PRIVATE_KEY = "YOUR_PRIVATE_KEY_HEX"
_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")
_MS_PER_MINUTE = 60_000
_MS_PER_HOUR = 60 * _MS_PER_MINUTE


class Settings(BaseSettings):
    """Simple application settings loaded from environment variables or a local .env file."""

    APP_NAME: str = "app"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    VERSION: str = "0.1.0"
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    STATUS_ENABLED: bool = False
    RELAY_URL: str = "ws://localhost:8080"
    NOSTR_PRIVATE_KEY: str = ""
    PUBLISH_TIMEOUT_MS: int = 10_000
    FETCH_TIMEOUT_S: float = 15.0
    FIAT_API_URL: str = "https://api.frankfurter.app/latest"
    FIAT_BASE_CURRENCY: str = "USD"
    FIAT_CURRENCIES: str = "EUR,CAD,GBP,JPY,CNY,MXN"
    FIAT_CADENCE_MINUTES: int = 15
    BITCOIN_API_URL: str = "https://blockchain.info/ticker"
    BITCOIN_BASE_CURRENCY: str = "BTC"
    BITCOIN_QUOTE_CURRENCY: str = "USD"
    BITCOIN_CADENCE_MINUTES: int = 60

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def fiat_currencies(self) -> tuple[str, ...]:
        """Return normalized quote currencies for the fiat feed."""

        return self._split_csv(self.FIAT_CURRENCIES, transform=str.upper)

    def fiat_feed(self) -> FeedSpec:
        """Describe the fiat-to-base exchange rate feed."""

        return FeedSpec(
            name="fiat",
            base_currency=self.FIAT_BASE_CURRENCY.strip().upper(),
            quote_currencies=self.fiat_currencies(),
            api_url=self.FIAT_API_URL,
            cadence_ms=self.FIAT_CADENCE_MINUTES * _MS_PER_MINUTE,
            replaceable_tag=f"{self.APP_NAME}-currency-rates",
            topics=(self.APP_NAME, "currency-rates"),
        )

    def bitcoin_feed(self) -> FeedSpec:
        """Describe the bitcoin rate feed."""

        return FeedSpec(
            name="bitcoin",
            base_currency=self.BITCOIN_BASE_CURRENCY.strip().upper(),
            quote_currencies=(self.BITCOIN_QUOTE_CURRENCY.strip().upper(),),
            api_url=self.BITCOIN_API_URL,
            cadence_ms=self.BITCOIN_CADENCE_MINUTES * _MS_PER_MINUTE,
            replaceable_tag=f"{self.APP_NAME}-bitcoin-rates",
            topics=(self.APP_NAME, "bitcoin-rates"),
        )

    def feed_specs(self) -> tuple[FeedSpec, ...]:
        """Return every configured feed, finest cadence first."""

        feeds = sorted((self.fiat_feed(), self.bitcoin_feed()), key=lambda feed: feed.cadence_ms)
        base_ms = feeds[0].cadence_ms
        for feed in feeds:
            if feed.cadence_ms <= 0 or _MS_PER_HOUR % feed.cadence_ms != 0:
                raise ConfigError(f"{feed.name} cadence must evenly divide one hour")
            if feed.cadence_ms % base_ms != 0:
                raise ConfigError(f"{feed.name} cadence must be a multiple of {base_ms // _MS_PER_MINUTE} minutes")
            if not feed.quote_currencies:
                raise ConfigError(f"{feed.name} feed has no quote currencies")
        return tuple(feeds)

    def private_key_bytes(self) -> bytes:
        """Decode the signing key, refusing empty, placeholder or malformed values."""

        raw = self.NOSTR_PRIVATE_KEY.strip()
        if raw.startswith("0x"):
            raw = raw[2:]

        if not raw or raw == PLACEHOLDER_PRIVATE_KEY:
            raise ConfigError("NOSTR_PRIVATE_KEY environment variable not set")
        if not _HEX_KEY_RE.match(raw):
            raise ConfigError("NOSTR_PRIVATE_KEY must be 32 bytes of hex")

        return bytes.fromhex(raw)

    @staticmethod
    def _split_csv(value: str, transform: Callable[[str], str]) -> tuple[str, ...]:
        """Split comma-separated values while removing empty entries and duplicates."""

        items: list[str] = []
        seen: set[str] = set()

        for raw in value.split(","):
            item = transform(raw.strip())
            if not item or item in seen:
                continue
            seen.add(item)
            items.append(item)

        return tuple(items)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings to avoid repeated environment parsing."""

    return Settings()
