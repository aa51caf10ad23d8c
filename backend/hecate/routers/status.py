"""
Status API router - now playing state and listener statistics.
"""
from fastapi import APIRouter, HTTPException, Request

from hecate.models import ListenerStats, NowPlaying
from hecate.services.stats_service import StatsError

router = APIRouter()


@router.get("/now-playing", response_model=NowPlaying)
async def get_now_playing(request: Request):
    """Get the last announced title and the state of the stream connection."""
    service = request.app.state.now_playing_service
    return service.get_status()


@router.get("/stats", response_model=ListenerStats)
async def get_listener_stats(request: Request):
    """Get current and peak listener counts from Icecast."""
    service = request.app.state.stats_service
    try:
        return await service.get_stats()
    except StatsError as e:
        raise HTTPException(status_code=502, detail=str(e))
