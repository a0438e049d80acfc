"""FastAPI status service exposing health, version and per-feed publish outcomes."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import FastAPI

from rate_publisher.core.config import get_settings
from rate_publisher.core.types import ServiceMeta

StatusProvider = Callable[[], list[dict[str, Any]]]

logger = logging.getLogger(__name__)


def create_app(status_provider: StatusProvider | None = None) -> FastAPI:
    """Build the status app; ``status_provider`` supplies the /feeds rows."""

    settings = get_settings()
    meta = ServiceMeta(name=settings.APP_NAME, version=settings.VERSION, env=settings.ENV)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Log startup metadata for operational visibility."""

        logger.info(
            "status_api_startup",
            extra={"service": "status_api", "env": meta.env, "version": meta.version},
        )
        yield

    app = FastAPI(title=f"{meta.name} rate publisher", version=meta.version, lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        """Return process liveness status."""

        return {"status": "ok"}

    @app.get("/version")
    def version() -> dict[str, str]:
        """Return application metadata from shared settings."""

        return {"name": meta.name, "version": meta.version, "env": meta.env}

    @app.get("/feeds")
    def feeds() -> dict[str, list[dict[str, Any]]]:
        """Return the most recent cycle outcome for every feed."""

        rows = status_provider() if status_provider is not None else []
        return {"feeds": rows}

    return app
