"""In-memory record of each feed's most recent cycle outcome."""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any


@dataclass(slots=True)
class FeedStatus:
    """Mutable per-feed outcome tracking."""

    name: str
    cadence_ms: int
    last_success_at: datetime | None = None
    last_event_id: str | None = None
    last_failure_at: datetime | None = None
    last_failure_kind: str | None = None
    last_failure_reason: str | None = None
    next_fire_at: datetime | None = None
    successes: int = 0
    failures: int = 0


class FeedStatusBoard:
    def __init__(self) -> None:
        self._feeds: dict[str, FeedStatus] = {}

    def track(self, name: str, cadence_ms: int) -> FeedStatus:
        return self._feeds.setdefault(name, FeedStatus(name=name, cadence_ms=cadence_ms))

    def get(self, name: str) -> FeedStatus | None:
        return self._feeds.get(name)

    def record_success(self, name: str, at: datetime, event_id: str) -> None:
        status = self._feeds[name]
        status.last_success_at = at
        status.last_event_id = event_id
        status.successes += 1

    def record_failure(self, name: str, at: datetime, kind: str, reason: str) -> None:
        status = self._feeds[name]
        status.last_failure_at = at
        status.last_failure_kind = kind
        status.last_failure_reason = reason
        status.failures += 1

    def set_next_fire(self, name: str, at: datetime | None) -> None:
        self._feeds[name].next_fire_at = at

    def snapshot(self) -> list[dict[str, Any]]:
        """Return JSON-friendly status rows in tracking order."""

        rows: list[dict[str, Any]] = []
        for status in self._feeds.values():
            row = asdict(status)
            for key, value in row.items():
                if isinstance(value, datetime):
                    row[key] = value.isoformat()
            rows.append(row)
        return rows
