"""Tests for the status API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from hecate.models import ListenerStats, NotifierState, NowPlaying
from hecate.routers import status
from hecate.services.stats_service import StatsError


@pytest.fixture
def app():
    """App with the status router and mocked services, no lifespan."""
    app = FastAPI()
    app.include_router(status.router, prefix="/api")

    app.state.now_playing_service = MagicMock()
    app.state.now_playing_service.get_status.return_value = NowPlaying(
        title="Artist - Song",
        metaint=16000,
        state=NotifierState.STREAMING,
    )

    app.state.stats_service = MagicMock()
    app.state.stats_service.get_stats = AsyncMock(
        return_value=ListenerStats(current=5, peak=40)
    )
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestStatusRouter:
    def test_now_playing(self, client):
        response = client.get("/api/now-playing")

        assert response.status_code == 200
        body = response.json()
        assert body["title"] == "Artist - Song"
        assert body["metaint"] == 16000
        assert body["state"] == "streaming"
        assert body["error"] is None

    def test_stats(self, client):
        response = client.get("/api/stats")

        assert response.status_code == 200
        assert response.json() == {"current": 5, "peak": 40}

    def test_stats_unavailable(self, app, client):
        app.state.stats_service.get_stats.side_effect = StatsError("Status endpoint returned 500")

        response = client.get("/api/stats")

        assert response.status_code == 502
        assert "500" in response.json()["detail"]
