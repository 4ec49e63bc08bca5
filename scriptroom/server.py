import asyncio
import json
import logging
from datetime import datetime
from typing import AsyncIterator, Awaitable, Callable, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel

from scriptroom.realtime.bus import Subscription
from scriptroom.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class PromptRequest(BaseModel):
    prompt: str


class PromptAccepted(BaseModel):
    status: str
    project_id: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str


async def sse_events(
    sub: Subscription,
    is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None,
    heartbeat_sec: float = 15.0,
) -> AsyncIterator[bytes]:
    """Render a bus subscription as SSE frames until the client leaves or the subscription closes."""
    try:
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            event = await sub.get(timeout=heartbeat_sec)
            if event is None:
                if sub.closed:
                    break
                yield b": keep-alive\n\n"
                continue
            json_str = json.dumps(event.to_wire(), ensure_ascii=False)
            logger.debug(f"Sending SSE event: {event.type}")
            yield f"data: {json_str}\n\n".encode("utf-8")
    finally:
        sub.close()


def create_app(
    runtime: Optional[Runtime] = None,
    runtime_factory: Optional[Callable[[], Runtime]] = None,
    assets_dir: Optional[str] = None,
) -> FastAPI:
    app = FastAPI(title="ScriptRoom API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.runtime = runtime

    def get_runtime() -> Runtime:
        if app.state.runtime is None:
            if runtime_factory is None:
                raise HTTPException(status_code=503, detail="Runtime not configured")
            app.state.runtime = runtime_factory()
            logger.info("Global runtime initialized")
        return app.state.runtime

    @app.post("/projects/{project_id}/prompt", status_code=202, response_model=PromptAccepted)
    async def submit_prompt(project_id: str, body: PromptRequest, background_tasks: BackgroundTasks):
        rt = get_runtime()
        logger.info(f"POST /projects/{project_id}/prompt - prompt: {body.prompt[:50]}...")
        background_tasks.add_task(rt.orchestrator.handle_prompt, project_id, body.prompt)
        return PromptAccepted(status="accepted", project_id=project_id)

    @app.get("/projects/{project_id}/events")
    async def project_events(project_id: str, request: Request):
        rt = get_runtime()
        sub = rt.bus.subscribe_project(project_id)
        logger.info(f"SSE subscriber joined project {project_id}")
        return StreamingResponse(
            sse_events(sub, is_disconnected=request.is_disconnected),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/projects/{project_id}/elements")
    async def project_elements(project_id: str):
        rt = get_runtime()
        try:
            elements = await asyncio.to_thread(rt.repository.list_elements, project_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return {"elements": [e.to_dict() for e in elements]}

    @app.get("/budget")
    async def budget_status():
        return get_runtime().ledger.status()

    @app.post("/budget/reset-monthly")
    async def budget_reset_monthly():
        ledger = get_runtime().ledger
        ledger.reset_monthly()
        return ledger.status()

    @app.get("/health")
    async def health():
        return HealthResponse(status="healthy", timestamp=datetime.now().isoformat())

    @app.get("/")
    async def root():
        return {"message": "ScriptRoom API is running"}

    if assets_dir:
        # Serves files written by the local asset publisher.
        app.mount("/assets", StaticFiles(directory=assets_dir, check_dir=False), name="assets")

    return app


def _default_runtime() -> Runtime:
    from scriptroom.config.config import config
    from scriptroom.utils.logging_setup import configure_logging

    configure_logging(log_file=config["log_file"], level=config["log_level"], enable_console=True)
    return build_runtime(config)


def _default_assets_dir() -> Optional[str]:
    from scriptroom.config.config import config

    publisher = (config.get("tools") or {}).get("publisher") or {}
    if (publisher.get("provider") or "").lower() != "local":
        return None
    return publisher.get("publish_dir")


app = create_app(runtime_factory=_default_runtime, assets_dir=_default_assets_dir())


def main() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
