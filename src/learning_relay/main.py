"""Learning Relay - Main FastAPI application."""

import asyncio
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional
from uuid import UUID

import anyio
from fastapi import FastAPI, HTTPException, Query, Request, Response
from pydantic import ValidationError as PydanticValidationError
from sse_starlette import EventSourceResponse

from learning_relay import config
from learning_relay.clients import CatalogClient, LearningPathClient
from learning_relay.dispatcher import ToolDispatcher
from learning_relay.models import (
    CatalogEntry,
    FunctionCall,
    HistoryEntry,
    RelayStats,
    SessionInfo,
    ToolCallBatch,
    ToolResponseBatch,
)
from learning_relay.session import Session, SessionRegistry
from learning_relay.tools import tool_declarations

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("learning-relay")

# Global state
catalog_client: Optional[CatalogClient] = None
learning_path_client: Optional[LearningPathClient] = None
registry: Optional[SessionRegistry] = None
dispatcher: Optional[ToolDispatcher] = None


def init_telemetry():
    """Initialize OpenTelemetry if configured."""
    endpoint = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT")
    if not endpoint:
        return

    try:
        from opentelemetry import trace
        from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
            OTLPSpanExporter,
        )
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.resources import SERVICE_NAME, Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor

        resource = Resource.create(
            {SERVICE_NAME: os.getenv("OTEL_SERVICE_NAME", "learning-relay")}
        )
        provider = TracerProvider(resource=resource)
        provider.add_span_processor(
            BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint, insecure=True))
        )
        trace.set_tracer_provider(provider)
        logger.info(f"OpenTelemetry initialized: {endpoint}")
        return FastAPIInstrumentor
    except ImportError as e:
        logger.warning(f"OpenTelemetry not available: {e}")
        return None


async def open_resource(session: Session, entry: CatalogEntry) -> None:
    """Ask the session's client to open an accepted launch URL."""
    await session.send_event(
        {
            "event": "open_resource",
            "data": json.dumps({"title": entry.title, "url": entry.url}),
        }
    )


async def reaper_loop():
    """Background task that closes idle sessions."""
    while True:
        await asyncio.sleep(config.SESSION_REAP_INTERVAL)
        try:
            await registry.expire_idle(config.SESSION_IDLE_TIMEOUT)
        except Exception as e:
            logger.error(f"Session reaper cycle failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    global catalog_client, learning_path_client, registry, dispatcher
    catalog_client = CatalogClient()
    learning_path_client = LearningPathClient()
    registry = SessionRegistry(catalog_client.fetch_catalog)
    dispatcher = ToolDispatcher(learning_path_client, opener=open_resource)
    logger.info(
        f"Learning relay started: tool_timeout={config.TOOL_TIMEOUT}s, "
        f"launch_threshold={config.LAUNCH_THRESHOLD}"
    )

    reaper_task = None
    if config.SESSION_IDLE_TIMEOUT > 0:
        reaper_task = asyncio.create_task(reaper_loop())
        logger.info(
            f"Session reaper started: idle_timeout={config.SESSION_IDLE_TIMEOUT}s, "
            f"interval={config.SESSION_REAP_INTERVAL}s"
        )

    yield

    if reaper_task:
        reaper_task.cancel()
        try:
            await reaper_task
        except asyncio.CancelledError:
            pass

    await registry.close_all()
    await catalog_client.close()
    await learning_path_client.close()


app = FastAPI(
    title="Learning Relay",
    description="Catalog search and launch tools for a conversational assistant",
    version="0.1.0",
    lifespan=lifespan,
)

# Initialize OTel
otel_instrumentor = init_telemetry()
if otel_instrumentor:
    otel_instrumentor().instrument_app(app)


# =============================================================================
# Health & Stats
# =============================================================================


@app.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "learning-relay"}


@app.get("/api/stats", response_model=RelayStats)
async def get_stats():
    """Get relay statistics."""
    sessions = await registry.sessions()
    return RelayStats(
        active_sessions=len(sessions),
        cached_catalogs=sum(1 for s in sessions if s.catalog.loaded),
        total_searches=sum(len(s.history) for s in sessions),
    )


@app.get("/api/tools")
async def list_tools():
    """List tool declarations for the assistant's session config."""
    return [t.model_dump(exclude_none=True) for t in tool_declarations()]


# =============================================================================
# Session API
# =============================================================================


def _parse_session_id(session_id: str) -> UUID:
    try:
        return UUID(hex=session_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid session_id")


async def _get_session(session_id: str) -> Session:
    session = await registry.get(_parse_session_id(session_id))
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")
    session.touch()
    return session


@app.post("/api/sessions", response_model=SessionInfo, status_code=201)
async def create_session():
    """Start a new tool session."""
    session = await registry.create()
    return session.info()


@app.get("/api/sessions/{session_id}", response_model=SessionInfo)
async def get_session(session_id: str):
    """Get a session."""
    session = await _get_session(session_id)
    return session.info()


@app.delete("/api/sessions/{session_id}")
async def end_session(session_id: str):
    """End a session, abandoning any in-flight batch."""
    closed = await registry.close(_parse_session_id(session_id))
    if not closed:
        raise HTTPException(status_code=404, detail="Session not found")
    return {"deleted": True, "id": session_id}


@app.get("/api/sessions/{session_id}/history", response_model=list[HistoryEntry])
async def get_history(session_id: str):
    """Searches made in this session, oldest first."""
    session = await _get_session(session_id)
    return list(session.history.history())


@app.post("/api/sessions/{session_id}/tools/call", response_model=ToolResponseBatch)
async def call_tools(session_id: str, body: ToolCallBatch):
    """Handle a batch of tool invocations and return all responses together."""
    session = await _get_session(session_id)
    task = session.spawn(dispatcher.handle_batch(session, body.functionCalls))
    try:
        responses = await task
    except asyncio.CancelledError:
        if not task.cancelled():
            raise
        raise HTTPException(status_code=410, detail="Session ended")
    return ToolResponseBatch(functionResponses=responses)


# =============================================================================
# Streaming Sessions (SSE transport)
# =============================================================================


async def _deliver_batch(session: Session, calls: list[FunctionCall]) -> None:
    """Handle a batch and emit its responses as one stream event."""
    responses = await dispatcher.handle_batch(session, calls)
    batch = ToolResponseBatch(functionResponses=responses)
    await session.send_event(
        {"event": "tool_response", "data": batch.model_dump_json()}
    )


@app.get("/sessions/sse")
async def session_sse_endpoint(request: Request):
    """Session SSE endpoint - opens a session and streams its events.

    1. Client connects via GET to /sessions/sse
    2. Server sends 'endpoint' event with POST URL for tool call batches
    3. Client POSTs batches to that endpoint
    4. Server sends 'tool_response' and 'open_resource' events back
    """
    session = await registry.create()
    session.streaming = True
    session_id = session.session_id

    async def event_generator():
        try:
            # Send endpoint event first - tells client where to POST batches
            endpoint_url = f"/sessions/message?session_id={session_id.hex}"
            yield {
                "event": "endpoint",
                "data": endpoint_url,
            }
            logger.debug(f"Sent endpoint event: {endpoint_url}")

            async for event in session.event_recv:
                yield event

        except anyio.ClosedResourceError:
            logger.debug(f"SSE stream closed for session {session_id}")
        finally:
            # Ending the stream ends the session and abandons pending batches
            await registry.close(session_id)

    return EventSourceResponse(event_generator())


@app.post("/sessions/message")
async def session_message_endpoint(request: Request, session_id: str = Query(...)):
    """Receive a tool call batch; its responses are delivered on the SSE stream."""
    session = await _get_session(session_id)

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")

    try:
        batch = ToolCallBatch.model_validate(body)
    except PydanticValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=e.errors(include_url=False, include_context=False),
        )

    logger.debug(
        f"Batch received: session={session_id}, calls={len(batch.functionCalls)}"
    )
    session.spawn(_deliver_batch(session, batch.functionCalls))

    # Return 202 Accepted (responses come via SSE)
    return Response(status_code=202)


# =============================================================================
# Entry point
# =============================================================================


def main():
    """Run the Learning Relay server."""
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
