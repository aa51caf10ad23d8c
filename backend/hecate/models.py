"""
Pydantic models for API responses and service state.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class NotifierState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ENDED = "ended"    # Stream closed by the server
    FAILED = "failed"  # Transport or decode error


class NowPlaying(BaseModel):
    title: Optional[str] = Field(None, description="Last StreamTitle seen on the stream")
    metaint: Optional[int] = Field(None, ge=1, description="Audio bytes between metadata blocks")
    state: NotifierState = NotifierState.IDLE
    error: Optional[str] = Field(None, description="Failing stage and message, if the stream failed")
    updated_at: Optional[datetime] = None


class ListenerStats(BaseModel):
    current: int = Field(..., ge=0, description="Current listener count")
    peak: int = Field(..., ge=0, description="Peak listener count")
