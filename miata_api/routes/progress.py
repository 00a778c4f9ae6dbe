"""
Server-sent event stream of scraping progress.
"""
import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from miata_scraper.models import ProgressEvent, Stage
from miata_scraper.progress import ProgressChannel

from ..config import config
from ..deps import get_progress

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["progress"])


def format_sse(event: ProgressEvent) -> str:
    return f"data: {json.dumps(event.to_dict())}\n\n"


@router.get("/sessions/{session_id}/progress")
async def stream_progress(session_id: str, request: Request, progress: ProgressChannel = Depends(get_progress)):
    """
    Stream progress events for a session.

    The latest event is replayed first. The stream ends after a complete
    stage published while attached; a replayed complete from an earlier run
    is sent but keeps the stream open for the next run.
    """
    queue: asyncio.Queue = asyncio.Queue()
    loop = asyncio.get_running_loop()

    def observer(event: ProgressEvent) -> None:
        loop.call_soon_threadsafe(queue.put_nowait, event)

    subscription = progress.subscribe(session_id, observer)
    logger.info(f"Progress client attached to session {session_id}")

    async def events():
        try:
            while True:
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=config.SSE_KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    if await request.is_disconnected():
                        break
                    yield ": keepalive\n\n"
                    continue
                yield format_sse(event)
                if event.stage == Stage.COMPLETE and event is not subscription.replayed:
                    break
        finally:
            subscription.unsubscribe()
            logger.info(f"Progress client detached from session {session_id}")

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
