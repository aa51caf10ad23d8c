"""
Hecate - Icecast "now playing" IRC bot with a small status API.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from hecate.config.settings import Settings
from hecate.routers import status
from hecate.services.command_service import CommandService
from hecate.services.irc_service import IrcClient
from hecate.services.now_playing_service import NowPlayingService
from hecate.services.stats_service import StatsService

logger = logging.getLogger(__name__)


def _log_task_outcome(task: asyncio.Task) -> None:
    """Report how a background task finished; failed tasks are not restarted."""
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Task {task.get_name()} failed: {error}")
    else:
        logger.info(f"Task {task.get_name()} finished")


async def _cancel(task: asyncio.Task) -> None:
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.debug(f"Task {task.get_name()} ended with {e!r}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown."""
    settings: Settings = app.state.settings

    # Startup
    app.state.stats_service = StatsService(settings.stats_url)
    app.state.irc_client = IrcClient(
        server=settings.irc_server,
        port=settings.irc_port,
        nickname=settings.nickname,
        channels=[settings.channel],
        use_tls=settings.irc_use_tls,
    )
    await app.state.irc_client.connect()

    # Both tasks write through the same sender
    sender = app.state.irc_client.sender
    app.state.command_service = CommandService(
        nickname=settings.nickname,
        stats_service=app.state.stats_service,
        sender=sender,
    )
    app.state.now_playing_service = NowPlayingService(
        stream_url=settings.stream_url,
        channel=settings.channel,
        sender=sender,
    )

    irc_task = asyncio.create_task(
        app.state.command_service.run(app.state.irc_client), name="irc-commands"
    )
    notifier_task = asyncio.create_task(
        app.state.now_playing_service.run(), name="now-playing"
    )
    for task in (irc_task, notifier_task):
        task.add_done_callback(_log_task_outcome)

    yield

    # Shutdown
    await _cancel(notifier_task)
    await _cancel(irc_task)
    await app.state.now_playing_service.close()
    await app.state.stats_service.close()
    await app.state.irc_client.close()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title="Hecate",
        description="Announces Icecast stream titles on IRC",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.include_router(status.router, prefix="/api", tags=["status"])

    @app.get("/api/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    return app


def run() -> None:
    """Console entry point - serve the status API and run the bot."""
    import uvicorn

    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
