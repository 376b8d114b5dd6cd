"""
Query Monitor - Main Application Entry Point

FastAPI application exposing live, derived dashboards for distributed query
executions over REST and WebSocket.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any, cast

import asyncio
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from starlette.websockets import WebSocketState
import logging

from query_monitor import __version__
from query_monitor.api.routes import queries
from query_monitor.config import settings
from query_monitor.core.dashboard import build_dashboard_view
from query_monitor.core.registry import registry

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler(settings.LOG_FILE)
        if settings.LOG_FILE
        else logging.NullHandler(),
    ],
)

# One line per coordinator request is too chatty at INFO.
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager - handles startup and shutdown events.
    """
    logger.info("🚀 Query Monitor starting up...")
    logger.info(f"🔗 Coordinator: {settings.COORDINATOR_URL}")
    logger.info(
        f"🔧 Environment: {'Development' if settings.APP_DEBUG else 'Production'}"
    )

    yield

    logger.info("🛑 Query Monitor shutting down...")

    # Cancel pending poll timers and release the coordinator client.
    try:
        await registry.shutdown(timeout_seconds=5.0)
    except Exception as e:
        logger.warning("Registry shutdown encountered an error: %s", e)


app = FastAPI(
    title="Query Monitor",
    description="Live derived-metrics dashboard for distributed query executions",
    version=__version__,
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
)

# Configure CORS for local development
if settings.APP_DEBUG:
    app.add_middleware(
        cast(Any, CORSMiddleware),
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    logger.info(f"🔓 CORS enabled for origins: {settings.CORS_ORIGINS}")


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "version": __version__,
        "active_dashboards": len(await registry.query_ids()),
        "timestamp": datetime.now(UTC).isoformat(),
    }


app.include_router(queries.router, prefix="/api/queries", tags=["queries"])


# ============================================================================
# WebSocket streaming
# ============================================================================


async def _stream_query_dashboard(websocket: WebSocket, query_id: str) -> None:
    await websocket.send_json(
        {
            "status": "connected",
            "query_id": query_id,
            "timestamp": datetime.now(UTC).isoformat(),
        }
    )

    poller = await registry.get_or_start(query_id)
    updates = poller.subscribe()
    try:
        view = build_dashboard_view(poller.dashboard_state())
        await websocket.send_json({"event": "QUERY_UPDATE", "data": view.model_dump(mode="json")})

        while not poller.ended and not poller.closed:
            recv_task = asyncio.create_task(websocket.receive())
            update_task = asyncio.create_task(updates.get())
            done, pending = await asyncio.wait(
                {recv_task, update_task}, return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()

            if recv_task in done:
                msg = recv_task.result()
                if msg.get("type") == "websocket.disconnect":
                    break
                continue

            state = update_task.result()
            if state is None:
                # Poller was torn down.
                break
            view = build_dashboard_view(state)
            await websocket.send_json(
                {"event": "QUERY_UPDATE", "data": view.model_dump(mode="json")}
            )
            if state.ended:
                break
    finally:
        poller.unsubscribe(updates)
        if poller.ended:
            await registry.release_ended(query_id)


@app.websocket("/ws/query/{query_id}")
async def websocket_query_dashboard(websocket: WebSocket, query_id: str):
    """
    WebSocket endpoint streaming the derived dashboard after every poll.

    The stream ends after the view of the query's final state is sent.
    """
    await websocket.accept()
    logger.info(f"📡 WebSocket connected for query: {query_id}")

    try:
        await _stream_query_dashboard(websocket, query_id)
        if websocket.client_state == WebSocketState.CONNECTED:
            await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"📡 WebSocket disconnected for query: {query_id}")
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
        try:
            await websocket.close()
        except Exception:
            pass


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "query_monitor.main:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=settings.APP_RELOAD,
        log_level=settings.LOG_LEVEL.lower(),
    )
