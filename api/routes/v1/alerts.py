"""
api/routes/v1/alerts.py -- Alert feed and incident report endpoints.

Routes:
  GET /api/v1/alerts          -- current alerts, newest first
  GET /api/v1/alerts/stream   -- Server-Sent Events: one snapshot of all
                                 alerts per ALERT_STREAM_INTERVAL_SECONDS
  GET /api/v1/reports         -- current incident reports, newest first

All three require an authenticated caller. Alerts and reports are written by
external producers; this service only reads them.

The stream is a cooperative subscription: each tick checks whether the client
is still connected, and the generator ends (or is cancelled by the server) as
soon as it is not. Store reads run in the thread pool so a slow database does
not block the event loop.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from starlette.concurrency import run_in_threadpool

from api.models import AlertResponse, ReportResponse
from auth.dependencies import get_current_session
from auth.models import SessionClaims
from core.errors import KsmsError
from storage.base import Storage

logger = logging.getLogger("ksms.api")

router = APIRouter()


def _snapshot(storage: Storage) -> str:
    alerts = storage.list_alerts()
    return json.dumps([AlertResponse.from_alert(a).model_dump() for a in alerts])


async def alert_snapshots(
    storage: Storage,
    is_disconnected: Callable[[], Awaitable[bool]],
    interval: float,
) -> AsyncIterator[str]:
    """Yield one SSE "data:" frame per interval until the client goes away.

    A store failure ends the stream with a single "error" event rather than
    a silent gap.
    """
    try:
        while not await is_disconnected():
            try:
                payload = await run_in_threadpool(_snapshot, storage)
            except KsmsError as exc:
                logger.error("Alert stream aborted: %s", exc.message)
                yield "event: error\ndata: " + json.dumps({"code": exc.code, "message": exc.message}) + "\n\n"
                return
            yield f"data: {payload}\n\n"
            await asyncio.sleep(interval)
    except asyncio.CancelledError:
        logger.debug("Alert stream cancelled")
        raise
    finally:
        logger.debug("Alert stream closed")


@router.get("/alerts", response_model=list[AlertResponse])
def list_alerts(request: Request, session: SessionClaims = Depends(get_current_session)) -> list[AlertResponse]:
    storage: Storage = request.app.state.storage
    return [AlertResponse.from_alert(a) for a in storage.list_alerts()]


@router.get("/alerts/stream")
async def stream_alerts(request: Request, session: SessionClaims = Depends(get_current_session)) -> StreamingResponse:
    storage: Storage = request.app.state.storage
    interval: float = request.app.state.settings.alert_stream_interval_seconds
    return StreamingResponse(
        alert_snapshots(storage, request.is_disconnected, interval),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.get("/reports", response_model=list[ReportResponse])
def list_reports(request: Request, session: SessionClaims = Depends(get_current_session)) -> list[ReportResponse]:
    storage: Storage = request.app.state.storage
    return [ReportResponse.from_report(r) for r in storage.list_reports()]
