"""Rate publisher process: cold start, aligned ticks, graceful shutdown."""

import asyncio
import contextlib
import logging
import signal
from collections.abc import Iterator

import httpx
import uvicorn

from rate_publisher.core.config import Settings, get_settings
from rate_publisher.core.errors import ConfigError
from rate_publisher.core.logging import configure_logging
from rate_publisher.feeds.sources import BlockchainTickerRateSource, FrankfurterRateSource
from rate_publisher.relay.publisher import Publisher
from rate_publisher.relay.transport import RelayConnection
from rate_publisher.scheduling.cadence import CadenceScheduler
from rate_publisher.services.api.main import create_app
from rate_publisher.services.publisher.orchestrator import Orchestrator


def _request_shutdown(
    scheduler: CadenceScheduler, logger: logging.Logger, signal_name: str
) -> None:
    if scheduler.stopped:
        return
    logger.info("publisher_shutdown_signal", extra={"signal": signal_name})
    scheduler.stop()


def _install_signal_handlers(scheduler: CadenceScheduler, logger: logging.Logger) -> None:
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(
                sig,
                _request_shutdown,
                scheduler,
                logger,
                sig.name,
            )
        except NotImplementedError:
            signal_name = sig.name
            signal.signal(
                sig,
                lambda *_, signal_name=signal_name: _request_shutdown(
                    scheduler, logger, signal_name
                ),
            )


class _StatusServer(uvicorn.Server):
    """Uvicorn server that leaves SIGINT/SIGTERM to the publisher's shutdown path."""

    def install_signal_handlers(self) -> None:
        return None

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _status_server(settings: Settings, orchestrator: Orchestrator) -> uvicorn.Server:
    config = uvicorn.Config(
        create_app(orchestrator.status_rows),
        host=settings.HOST,
        port=settings.PORT,
        log_config=None,
    )
    return _StatusServer(config)


async def _run() -> int:
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)
    logger = logging.getLogger(__name__)

    try:
        private_key = settings.private_key_bytes()
        feeds = settings.feed_specs()
    except ConfigError as exc:
        logger.error("publisher_config_error", extra={"error": str(exc)})
        return 1

    scheduler = CadenceScheduler()
    _install_signal_handlers(scheduler, logger)

    logger.info(
        "publisher_startup",
        extra={
            "relay": settings.RELAY_URL,
            "publish_timeout_ms": settings.PUBLISH_TIMEOUT_MS,
            "feeds": [
                {
                    "name": feed.name,
                    "currencies": [feed.base_currency, *feed.quote_currencies],
                    "source": feed.api_url,
                    "cadence_minutes": feed.cadence_ms // 60_000,
                }
                for feed in feeds
            ],
        },
    )

    async with httpx.AsyncClient(timeout=settings.FETCH_TIMEOUT_S) as client, RelayConnection(
        settings.RELAY_URL
    ) as relay:
        sources = {
            "fiat": FrankfurterRateSource(client),
            "bitcoin": BlockchainTickerRateSource(client),
        }
        publisher = Publisher(relay, private_key, settings.PUBLISH_TIMEOUT_MS)
        orchestrator = Orchestrator(feeds, sources, publisher, scheduler)

        status_task: asyncio.Task[None] | None = None
        server: uvicorn.Server | None = None
        if settings.STATUS_ENABLED:
            server = _status_server(settings, orchestrator)
            status_task = asyncio.create_task(server.serve())

        try:
            await orchestrator.run()
        finally:
            if server is not None and status_task is not None:
                server.should_exit = True
                await status_task

    logger.info("publisher_shutdown")
    return 0


def main() -> int:
    """Run the publisher until interrupted."""

    try:
        return asyncio.run(_run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
