import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

import config
from clock import Clock, from_epoch_ms, system_clock
from schemas import ChartRequest, ChartResponse, WindowState
from search import HttpSearchBackend, SearchBackendError
from session import ChartSession

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

search_backend = HttpSearchBackend()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await search_backend.aclose()


app = FastAPI(title="Solar Chart API", lifespan=lifespan)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_backend():
    """Search backend dependency, overridden in tests."""
    return search_backend


def get_clock() -> Clock:
    """Clock dependency, overridden in tests."""
    return system_clock


def apply_request(session: ChartSession, request: dict) -> None:
    """Apply the window/chart fields of a request to a session."""
    if request.get("granularity") is not None:
        session.set_granularity(request["granularity"])
    if request.get("start_ms") is not None:
        session.set_start(from_epoch_ms(request["start_ms"]))
    if "chart_mode" in request:
        session.set_chart_mode(request["chart_mode"])
    for field in ("site_id", "device_id", "max_points"):
        if field in request:
            setattr(session, field, request[field])


@app.get("/")
async def root():
    """Root endpoint to check if the API is running."""
    return {"message": "Solar Chart API is running"}


@app.get("/window", response_model=WindowState)
async def get_window(
    granularity: Optional[str] = Query(None, description="hour, day, week, month or year"),
    start_ms: Optional[int] = None,
    chart_mode: Optional[str] = None,
    clock: Clock = Depends(get_clock),
):
    """
    Describe a chart window without querying the backend.

    Without start_ms the initial window for the granularity is used. Unknown
    granularities fall back to day.
    """
    session = ChartSession(None, clock=clock)
    apply_request(session, {"granularity": granularity, "start_ms": start_ms, "chart_mode": chart_mode})
    window, _ = session.snapshot()
    return window


@app.post("/chart", response_model=ChartResponse)
async def get_chart(request: ChartRequest, backend=Depends(get_backend), clock: Clock = Depends(get_clock)):
    """Fetch and reshape the series for one chart window."""
    session = ChartSession(backend, clock=clock)
    apply_request(session, request.model_dump())
    try:
        return await session.refresh()
    except SearchBackendError as e:
        raise HTTPException(status_code=502, detail=str(e))


# Store active chart sessions by connection
active_sessions = {}


async def send_chart(websocket: WebSocket, session: ChartSession) -> None:
    """Refresh the session and push the chart, or an error, to the client."""
    try:
        chart = await session.refresh()
    except SearchBackendError as e:
        await websocket.send_json({"error": str(e)})
        return
    if chart is not None:
        await websocket.send_json(chart.model_dump(mode="json"))


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, backend=Depends(get_backend), clock: Clock = Depends(get_clock)):
    """
    WebSocket endpoint for an interactive chart.

    Each connection owns a ChartSession. Supported actions: load,
    set_granularity, step_back, step_forward, set_chart_mode. Every accepted
    action answers with the refreshed chart.
    """
    await websocket.accept()

    conn_id = id(websocket)
    session = ChartSession(backend, clock=clock)
    active_sessions[conn_id] = session

    try:
        while True:
            data = await websocket.receive_json()
            if not isinstance(data, dict):
                await websocket.send_json({"error": "Expected a JSON object"})
                continue

            action = data.get("action", "load")
            try:
                request = ChartRequest.model_validate(data)
            except ValidationError as e:
                await websocket.send_json({"error": f"Invalid {action} request: {e}"})
                continue

            if action == "load":
                apply_request(session, request.model_dump(exclude_unset=True))
            elif action == "set_granularity":
                session.set_granularity(request.granularity)
            elif action == "step_back":
                session.step_back()
            elif action == "step_forward":
                session.step_forward()
            elif action == "set_chart_mode":
                session.set_chart_mode(request.chart_mode)
            else:
                await websocket.send_json({"error": f"Unknown action: {action}"})
                continue

            await send_chart(websocket, session)

    except WebSocketDisconnect:
        logger.info("WebSocket disconnected: %s", conn_id)
    finally:
        active_sessions.pop(conn_id, None)
