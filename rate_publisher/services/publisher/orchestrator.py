"""Wire each feed's fetch, build and publish steps onto the cadence scheduler."""

import asyncio
import logging
from typing import Any, Mapping, Sequence

from rate_publisher.core.errors import RatePublisherError
from rate_publisher.core.status import FeedStatusBoard
from rate_publisher.core.time_utils import utc_now
from rate_publisher.core.types import FeedSpec
from rate_publisher.feeds.events import build_event
from rate_publisher.feeds.sources import RateSource
from rate_publisher.relay.publisher import Publisher
from rate_publisher.scheduling.cadence import CadenceScheduler, Clock, TickCallback

logger = logging.getLogger(__name__)


class Orchestrator:
    """Run feed cycles sequentially, one isolated failure domain per feed."""

    def __init__(
        self,
        feeds: Sequence[FeedSpec],
        sources: Mapping[str, RateSource],
        publisher: Publisher,
        scheduler: CadenceScheduler,
        status: FeedStatusBoard | None = None,
        clock: Clock = utc_now,
    ) -> None:
        missing = [feed.name for feed in feeds if feed.name not in sources]
        if missing:
            raise ValueError(f"no rate source configured for {','.join(missing)}")

        self._feeds = tuple(sorted(feeds, key=lambda feed: feed.cadence_ms))
        self._sources = sources
        self._publisher = publisher
        self._scheduler = scheduler
        self._status = status or FeedStatusBoard()
        self._clock = clock

        for feed in self._feeds:
            self._status.track(feed.name, feed.cadence_ms)
            self._scheduler.register(feed.name, feed.cadence_ms, self._callback_for(feed))

    @property
    def status(self) -> FeedStatusBoard:
        return self._status

    @property
    def scheduler(self) -> CadenceScheduler:
        return self._scheduler

    def _callback_for(self, feed: FeedSpec) -> TickCallback:
        async def _callback() -> None:
            await self.run_feed(feed)

        return _callback

    def status_rows(self) -> list[dict[str, Any]]:
        """Return per-feed outcomes with the scheduler's next fire times."""

        for state in self._scheduler.states():
            self._status.set_next_fire(state.name, state.next_fire_at)
        return self._status.snapshot()

    async def run_feed(self, feed: FeedSpec) -> bool:
        """Fetch, build and publish once. Failures are logged and swallowed."""

        started_at = self._clock()
        logger.info(
            "feed_cycle_start",
            extra={"feed": feed.name, "started_at": started_at.isoformat()},
        )

        try:
            snapshot = await self._sources[feed.name].fetch(feed)
            event = build_event(feed, snapshot, now=self._clock())
            signed = await self._publisher.publish(event)
        except asyncio.CancelledError:
            raise
        except RatePublisherError as exc:
            self._record_failure(feed, exc.kind, str(exc))
            return False
        except Exception as exc:  # noqa: BLE001
            self._record_failure(feed, "unexpected_error", str(exc), exc_info=True)
            return False

        finished_at = self._clock()
        self._status.record_success(feed.name, finished_at, signed.id)
        logger.info(
            "feed_cycle_success",
            extra={
                "feed": feed.name,
                "event_id": signed.id,
                "pubkey": signed.pubkey,
                "d_tag": feed.replaceable_tag,
                "finished_at": finished_at.isoformat(),
            },
        )
        return True

    def _record_failure(self, feed: FeedSpec, kind: str, reason: str, exc_info: bool = False) -> None:
        failed_at = self._clock()
        self._status.record_failure(feed.name, failed_at, kind, reason)
        logger.error(
            "feed_cycle_failed",
            extra={
                "feed": feed.name,
                "error_kind": kind,
                "reason": reason,
                "failed_at": failed_at.isoformat(),
            },
            exc_info=exc_info,
        )

    async def cold_start(self) -> None:
        """Publish every feed once, finest cadence first, before any tick."""

        logger.info("cold_start", extra={"feeds": [feed.name for feed in self._feeds]})
        for feed in self._feeds:
            if self._scheduler.stopped:
                return
            await self.run_feed(feed)

    async def run(self) -> None:
        """Cold start, then tick until the scheduler is stopped."""

        await self.cold_start()
        if self._scheduler.stopped:
            return
        await self._scheduler.run()

    def stop(self) -> None:
        self._scheduler.stop()
