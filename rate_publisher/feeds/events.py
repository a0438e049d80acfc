"""Build the canonical replaceable event published for a feed snapshot."""

import json
import math
from datetime import datetime
from urllib.parse import urlparse

from rate_publisher.core.errors import BuildError
from rate_publisher.core.time_utils import iso_millis, utc_now
from rate_publisher.core.types import (
    EVENT_KIND,
    LABEL_NAMESPACE,
    FeedSpec,
    RateSnapshot,
    ReplaceableEvent,
    Tag,
)


def source_host(api_url: str) -> str:
    """Return the hostname the rates were fetched from."""

    host = urlparse(api_url).hostname
    if not host:
        raise BuildError(f"cannot derive source host from {api_url!r}")
    return host


def build_tags(feed: FeedSpec) -> tuple[Tag, ...]:
    """Return tags in fixed order: d, t per topic, L, then l per currency."""

    tags: list[Tag] = [("d", feed.replaceable_tag)]
    tags.extend(("t", topic) for topic in feed.topics)
    tags.append(("L", LABEL_NAMESPACE))
    tags.extend(("l", code, namespace) for namespace, code in feed.classification_tags)
    return tuple(tags)


def _validate(feed: FeedSpec, snapshot: RateSnapshot) -> None:
    if snapshot.base_currency != feed.base_currency:
        raise BuildError(
            f"snapshot base {snapshot.base_currency} does not match feed base {feed.base_currency}"
        )

    missing = [code for code in feed.quote_currencies if code not in snapshot.rates]
    if missing:
        raise BuildError(f"snapshot is missing rates for {','.join(missing)}")

    for code, rate in snapshot.rates.items():
        if isinstance(rate, bool) or not isinstance(rate, (int, float)):
            raise BuildError(f"rate for {code} is not a finite number")
        try:
            finite = math.isfinite(rate)
        except OverflowError:
            finite = False
        if not finite:
            raise BuildError(f"rate for {code} is not a finite number")


def build_event(feed: FeedSpec, snapshot: RateSnapshot, now: datetime | None = None) -> ReplaceableEvent:
    """Build the unsigned replaceable event for one feed cycle.

    The result depends only on the arguments; ``now`` is the build time used for
    both ``updatedAt`` and ``created_at``.
    """

    _validate(feed, snapshot)
    now = now or utc_now()

    content = {
        "baseCurrency": feed.base_currency,
        "rates": snapshot.rates,
        "updatedAt": iso_millis(now),
        "source": source_host(feed.api_url),
    }

    return ReplaceableEvent(
        kind=EVENT_KIND,
        created_at=int(now.timestamp()),
        tags=build_tags(feed),
        content=json.dumps(content, ensure_ascii=True, separators=(",", ":")),
    )
