#!/usr/bin/env python3
"""
queueboard - Main Entry Point

This is the thin orchestration layer that:
1. Loads configuration
2. Initializes modules
3. Serves the queue API and its live streams

All business logic is in the modules, following black box principles.
"""

import asyncio
import logging
import logging.config as log_config
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import AsyncGenerator, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sse_starlette.sse import EventSourceResponse

from queueboard.logging_config import get_logging_config
from queueboard.modules.api import (
    EntryView,
    ExpiryTick,
    PositionResponse,
    PushRequest,
    QueueEntry,
    QueueResponse,
    QueuesResponse,
    QueueType,
    RemoveResponse,
)

# Import modules through their black box interfaces
from queueboard.modules.config import get_config
from queueboard.modules.expiry import ExpiryTicker, compute_expiry
from queueboard.modules.notifier import ChangeNotifier
from queueboard.modules.queue import QueueModule
from queueboard.modules.reconciler import Reconciler
from queueboard.modules.storage import StorageModule
from queueboard.modules.store import (
    NotFoundError,
    QueueError,
    QueueStore,
    StoreFactory,
)

# Get configuration
config = get_config()

log_config.dictConfig(get_logging_config(config.get("log_level")))
logger = logging.getLogger(__name__)

WAITING_ROOM_TTL = timedelta(milliseconds=config.get("waiting_room_ttl_ms"))

# Module instances (initialized at startup)
storage_module: Optional[StorageModule] = None
queue_store: Optional[QueueStore] = None
queue_module: Optional[QueueModule] = None
reconciler: Optional[Reconciler] = None
notifier: Optional[ChangeNotifier] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifecycle - initialize and cleanup resources.
    """
    global storage_module, queue_store, queue_module, reconciler, notifier

    # Startup
    logger.info("Starting queueboard API...")

    backend = config.get("queue_backend")
    redis_client = None
    if backend == "redis":
        storage_module = StorageModule(config.redis_url, password=config.get("redis_password"))
        redis_client = await storage_module.connect()

    queue_store = StoreFactory.build(backend, redis_client)
    queue_module = QueueModule(queue_store)
    reconciler = Reconciler(queue_module)
    notifier = ChangeNotifier(
        queue_store, reconciler.refresh, reconnect_delay=config.get("reconnect_delay")
    )

    logger.info(f"queueboard API started with {backend} backend")

    yield

    # Shutdown
    logger.info("Shutting down queueboard API...")
    if storage_module:
        await storage_module.disconnect()
        storage_module = None
    queue_store = queue_module = reconciler = notifier = None
    logger.info("queueboard API shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="queueboard API",
    description="Shared main queue and waiting room with live updates",
    version="1.0.0",
    lifespan=lifespan,
)


def require_queue_module() -> QueueModule:
    if not queue_module:
        raise HTTPException(503, "Service not initialized")
    return queue_module


def build_entry_views(entries: List[QueueEntry], now: Optional[datetime] = None) -> List[EntryView]:
    """Attach first/last markers and the waiting room countdown to each entry."""
    now = now or datetime.now(UTC)
    views = []
    for index, entry in enumerate(entries):
        view = EntryView(
            entry=entry,
            is_first=index == 0,
            is_last=index == len(entries) - 1,
        )
        state = compute_expiry(entry.moved_at, now, WAITING_ROOM_TTL)
        if state is not None:
            view.remaining_ms = state.remaining_ms
            view.expired = state.expired
            view.timer = state.label
        views.append(view)
    return views


def snapshot_event(queue_type: QueueType, entries: List[QueueEntry], error: Optional[str]) -> dict:
    response = QueueResponse(
        queue_type=queue_type,
        items=build_entry_views(entries),
        count=len(entries),
        error=error,
    )
    return {"event": "queue", "data": response.model_dump_json()}


# Queue Endpoints


@app.get("/queues", response_model=QueuesResponse)
async def get_all_queues():
    """
    Get both partitions.

    Returns:
        200: Main queue and waiting room, each in position order
    """
    queues = await require_queue_module().get_all_queues()
    return QueuesResponse(main=queues[QueueType.MAIN], waitingRoom=queues[QueueType.WAITING_ROOM])


@app.get("/queues/{queue_type}", response_model=QueueResponse)
async def get_queue(queue_type: QueueType):
    """
    Get one partition with its display overlay.

    A failed store read returns an empty list with the transient error
    in the "error" field.
    """
    snapshot = await require_queue_module().get_snapshot(queue_type)
    return QueueResponse(
        queue_type=queue_type,
        items=build_entry_views(snapshot.entries),
        count=len(snapshot.entries),
        error=snapshot.error,
    )


@app.get("/queues/{queue_type}/next-position", response_model=PositionResponse)
async def get_next_position(queue_type: QueueType):
    """Position the next push to this partition would receive."""
    position = await require_queue_module().next_position(queue_type)
    return PositionResponse(queue_type=queue_type, next_position=position)


@app.get("/queues/{queue_type}/front", response_model=QueueEntry)
async def get_front(queue_type: QueueType):
    """
    Peek at the entry the next pop would remove.

    Returns:
        200: Front entry
        404: Partition is empty
    """
    entry = await require_queue_module().front(queue_type)
    if entry is None:
        raise HTTPException(404, f"{queue_type.value} queue is empty")
    return entry


@app.post("/queues/{queue_type}/items", response_model=List[QueueEntry], status_code=201)
async def push_item(queue_type: QueueType, request: PushRequest):
    """
    Push an entry to the tail of a partition.

    Returns:
        201: Refreshed partition
        503: Store write failed
    """
    return await require_queue_module().push(request.value1, request.value2, queue_type)


@app.post("/queues/{queue_type}/pop", response_model=List[QueueEntry])
async def pop_item(queue_type: QueueType):
    """
    Remove the front entry of a partition. Popping an empty partition is a no-op.

    Returns:
        200: Refreshed partition
    """
    return await require_queue_module().pop(queue_type)


@app.delete("/queues/items/{item_id}", response_model=RemoveResponse)
async def remove_item(item_id: str):
    """
    Remove an entry from whichever partition holds it.

    Returns:
        200: Partition the entry belonged to and its refreshed list
        404: Entry not found
    """
    queue_type, items = await require_queue_module().remove_item(item_id)
    return RemoveResponse(queue_type=queue_type, items=items)


@app.post("/queues/items/{item_id}/move", response_model=QueuesResponse)
async def move_item(item_id: str):
    """
    Move an entry to the tail of the waiting room.

    Returns:
        200: Both refreshed partitions
        404: Entry not found
    """
    queues = await require_queue_module().move_to_waiting_room(item_id)
    return QueuesResponse(main=queues[QueueType.MAIN], waitingRoom=queues[QueueType.WAITING_ROOM])


# Live Streams


@app.get("/queues/{queue_type}/stream")
async def stream_queue(queue_type: QueueType):
    """
    SSE stream of a partition's full ordered list.

    Sends the current list on connect, then a new list whenever the push
    channel signals a change or the poll interval elapses and the list
    differs from the last one sent.
    """
    if not notifier or not reconciler:
        raise HTTPException(503, "Service not initialized")

    stream_notifier = notifier
    stream_reconciler = reconciler
    poll_interval_ms = config.get("poll_interval_ms")

    async def event_generator() -> AsyncGenerator:
        updates: asyncio.Queue = asyncio.Queue()
        subscription = stream_notifier.subscribe(queue_type, updates.put_nowait)
        poller = stream_reconciler.start_polling(queue_type, updates.put_nowait, poll_interval_ms)
        logger.info(f"Client connected to {queue_type.value} queue stream")

        try:
            entries = await stream_reconciler.refresh(queue_type)
            last_sent = entries
            yield snapshot_event(queue_type, entries, stream_reconciler.errors.get(queue_type))

            while True:
                entries = await updates.get()
                if entries == last_sent:
                    continue
                last_sent = entries
                yield snapshot_event(queue_type, entries, stream_reconciler.errors.get(queue_type))

        except asyncio.CancelledError:
            logger.info(f"Client disconnecting from {queue_type.value} queue stream")
        finally:
            subscription.unsubscribe()
            poller.cancel()

    return EventSourceResponse(event_generator())


@app.get("/queues/items/{item_id}/timer")
async def stream_timer(item_id: str):
    """
    SSE countdown for a waiting room entry, one tick per second until it expires.

    Returns:
        200: Stream of tick events ending with an "expired" event
        404: Entry not found
        409: Entry is not in the waiting room
    """
    entry = await require_queue_module().get_entry(item_id)
    if entry.moved_at is None:
        raise HTTPException(409, "Entry is not in the waiting room")

    ticker = ExpiryTicker(entry.moved_at, duration=WAITING_ROOM_TTL)

    async def event_generator() -> AsyncGenerator:
        async for state in ticker.ticks():
            tick = ExpiryTick(
                item_id=item_id,
                remaining_ms=state.remaining_ms,
                expired=state.expired,
                timer=state.label,
            )
            yield {"event": "expired" if state.expired else "tick", "data": tick.model_dump_json()}

    return EventSourceResponse(event_generator())


# Health/Monitoring Endpoints


@app.get("/healthz")
async def healthz():
    """
    Minimal health check endpoint for readiness/liveness probes.

    Returns:
        200: Service is running
    """
    return {"status": "ok"}


@app.get("/health")
async def health_check():
    """
    Health check including the queue store.

    Returns:
        200: Service healthy
        503: Service unhealthy
    """
    backend = config.get("queue_backend")
    try:
        if backend == "redis":
            store_status = "connected" if storage_module and await storage_module.ping() else "disconnected"
        else:
            store_status = "in-process"

        modules_ready = all([queue_module, reconciler, notifier])

        if store_status != "disconnected" and modules_ready:
            return {
                "status": "healthy",
                "backend": backend,
                "store": store_status,
                "modules": "initialized",
                "version": "1.0.0",
            }
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "backend": backend,
                "store": store_status,
                "modules": "initialized" if modules_ready else "not initialized",
            },
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "error": str(e)})


# Error handlers


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    """Handle missing queue entries."""
    return JSONResponse(status_code=404, content={"error": str(exc), "item_id": exc.item_id})


@app.exception_handler(QueueError)
async def store_error_handler(request: Request, exc: QueueError):
    """Handle store read/write failures."""
    logger.error(f"Queue store error: {exc}")
    return JSONResponse(status_code=503, content={"error": "Queue store unavailable"})


@app.exception_handler(ValueError)
async def validation_error_handler(request: Request, exc: ValueError):
    """Handle validation errors."""
    logger.error(f"Validation error: {exc}")
    return JSONResponse(status_code=400, content={"error": str(exc)})


def run() -> None:
    uvicorn.run(
        "queueboard.main:app",
        host=config.get("host"),
        port=config.get("port"),
        log_level=config.get("log_level").lower(),
        reload=config.get("debug"),
        log_config=get_logging_config(config.get("log_level")),
    )


if __name__ == "__main__":
    run()
