"""Smoke tests ensuring the status API serves health, version and feed outcomes."""

from fastapi.testclient import TestClient

from helpers import utc
from rate_publisher.core.status import FeedStatusBoard
from rate_publisher.services.api.main import create_app


def test_health_endpoint() -> None:
    """Health endpoint should report an OK status."""

    client = TestClient(create_app())
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_version_endpoint() -> None:
    client = TestClient(create_app())
    body = client.get("/version").json()
    assert set(body) == {"name", "version", "env"}


def test_feeds_endpoint_reports_last_outcomes() -> None:
    """Feed rows reflect recorded successes and failures."""

    board = FeedStatusBoard()
    board.track("fiat", 15 * 60_000)
    board.track("bitcoin", 60 * 60_000)
    board.record_failure("fiat", utc(2026, 3, 9, 15, 0), "fetch_error", "HTTP request failed")
    board.record_success("bitcoin", utc(2026, 3, 9, 15, 0, 2), "ab" * 32)

    client = TestClient(create_app(board.snapshot))
    feeds = client.get("/feeds").json()["feeds"]

    assert [row["name"] for row in feeds] == ["fiat", "bitcoin"]
    assert feeds[0]["last_failure_kind"] == "fetch_error"
    assert feeds[0]["failures"] == 1
    assert feeds[1]["last_success_at"] == "2026-03-09T15:00:02+00:00"
    assert feeds[1]["last_event_id"] == "ab" * 32
