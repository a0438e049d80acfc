"""Shared lightweight types to keep module interfaces explicit and typed."""

from dataclasses import dataclass, field
from datetime import datetime

# Parameterized replaceable application data. One kind is shared by every feed;
# the d tag alone tells feeds apart at the relay.
EVENT_KIND = 30078
LABEL_NAMESPACE = "currency"

Tag = tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ServiceMeta:
    """Metadata describing a running service instance."""

    name: str
    version: str
    env: str


@dataclass(frozen=True, slots=True)
class FeedSpec:
    """Immutable description of one independently scheduled rate feed."""

    name: str
    base_currency: str
    quote_currencies: tuple[str, ...]
    api_url: str
    cadence_ms: int
    replaceable_tag: str
    topics: tuple[str, ...] = ()

    @property
    def classification_tags(self) -> tuple[tuple[str, str], ...]:
        """Return (namespace, value) labels: base currency first, then quotes in order."""

        codes = (self.base_currency, *self.quote_currencies)
        return tuple((LABEL_NAMESPACE, code) for code in codes)


@dataclass(frozen=True, slots=True)
class RateSnapshot:
    """Rates fetched once from an upstream API."""

    base_currency: str
    rates: dict[str, float]
    fetched_at: datetime


@dataclass(frozen=True, slots=True)
class ReplaceableEvent:
    """Unsigned relay event ready to be signed."""

    kind: int
    created_at: int
    tags: tuple[Tag, ...]
    content: str


@dataclass(frozen=True, slots=True)
class SignedEvent:
    """Relay event with identity fields attached by signing."""

    id: str
    pubkey: str
    sig: str
    kind: int
    created_at: int
    tags: tuple[Tag, ...] = field(default_factory=tuple)
    content: str = ""

    def to_wire(self) -> dict[str, object]:
        """Return the JSON object relays expect."""

        return {
            "id": self.id,
            "pubkey": self.pubkey,
            "created_at": self.created_at,
            "kind": self.kind,
            "tags": [list(tag) for tag in self.tags],
            "content": self.content,
            "sig": self.sig,
        }
