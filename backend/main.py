"""
FragCoder Backend — FastAPI + WebSocket server.
Shader compilation and rendering happen client-side via WebGL. The backend runs
the AI prompt pipeline and owns the branching chat state of each connection.
"""

import json
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import ai
import config
from chat import ChatSession
from ws_handlers import HANDLERS, WsContext, send_error, send_json, send_state

logger = logging.getLogger(__name__)

_settings = config.load_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _settings
    _settings = config.load_settings()
    logging.basicConfig(
        level=_settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not (_settings.openrouter_api_key or _settings.anthropic_api_key):
        logger.warning("No LLM API key configured; AI requests will fail")
    yield


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(title="FragCoder", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ai.AIError)
async def ai_error_handler(request, exc: ai.AIError):
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


# ---------------------------------------------------------------------------
# REST endpoints
# ---------------------------------------------------------------------------

class PromptRequest(BaseModel):
    prompt: str | None = None
    model: str | None = None
    code: str | None = None


@app.get("/api/health")
async def health():
    return {"status": "ok"}


@app.get("/api/ai/models")
async def list_models():
    return {
        "models": list(ai.ALLOWED_MODELS),
        "default": ai.resolve_model(None, _settings),
    }


@app.post("/api/ai/prompt")
async def ai_prompt(req: PromptRequest):
    return await ai.process_prompt(
        req.prompt or "", model=req.model, code=req.code, settings=_settings,
    )


# ---------------------------------------------------------------------------
# WebSocket endpoint
# ---------------------------------------------------------------------------

def _make_session(ws: WebSocket) -> ChatSession:
    async def push_state():
        await send_json(ws, {"type": "chat_state", **session.snapshot()})

    session = ChatSession(
        generate=ai.generate,
        model=ai.resolve_model(None, _settings),
        timeout=_settings.request_timeout,
        reset_delay=_settings.task_reset_delay,
        on_change=push_state,
    )
    return session


@app.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    ctx = WsContext(session=_make_session(ws), settings=_settings)

    await send_json(ws, {"type": "init", "models": list(ai.ALLOWED_MODELS)})
    await send_state(ws, ctx)
    if not (_settings.openrouter_api_key or _settings.anthropic_api_key):
        await send_json(ws, {"type": "api_key_required"})

    try:
        while True:
            raw = await ws.receive_text()
            try:
                msg = json.loads(raw)
            except json.JSONDecodeError:
                await send_error(ws, "Malformed message")
                continue
            if not isinstance(msg, dict):
                await send_error(ws, "Malformed message")
                continue

            msg_type = msg.get("type")
            handler = HANDLERS.get(msg_type)
            if handler is None:
                logger.warning("Unknown message type: %r", msg_type)
                await send_error(ws, f"Unknown message type: {msg_type}")
                continue
            await handler(ws, msg, ctx)

    except (WebSocketDisconnect, RuntimeError):
        # In-flight generation is left to finish; its sends are dropped.
        logger.info("Client disconnected")
