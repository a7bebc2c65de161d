"""WebSocket message handlers for FragCoder.

Each handler is an ``async def handle_xxx(ws, msg, ctx)`` function.
A dispatch table ``HANDLERS`` maps message type strings to handlers.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Awaitable

import config
from ai.llm_client import resolve_model
from chat import ChatSession

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Assistant is busy, please wait..."

_API_KEY_NAMES = {
    "openrouter": "OPENROUTER_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
}


# ---------------------------------------------------------------------------
# Per-connection context
# ---------------------------------------------------------------------------

@dataclass
class WsContext:
    session: ChatSession
    settings: config.Settings = field(default_factory=config.Settings)
    agent_task: asyncio.Task | None = None  # reference to running generation


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

async def send_json(ws, message: dict) -> None:
    """Send to one client; a closed socket is not an error for the caller."""
    try:
        await ws.send_text(json.dumps(message))
    except Exception as e:
        logger.debug("Dropping message to closed socket: %s", e)


async def send_state(ws, ctx: WsContext) -> None:
    await send_json(ws, {"type": "chat_state", **ctx.session.snapshot()})


async def send_error(ws, message: str) -> None:
    await send_json(ws, {"type": "error", "message": message})


async def _log(ws, message: str, level: str = "info") -> None:
    await send_json(ws, {
        "type": "agent_log",
        "agent": "System",
        "message": message,
        "level": level,
    })


async def _refuse_if_busy(ws, ctx: WsContext) -> bool:
    running = ctx.agent_task is not None and not ctx.agent_task.done()
    if running or ctx.session.busy:
        await send_error(ws, BUSY_MESSAGE)
        return True
    return False


def _start_generation(ws, ctx: WsContext, work: Awaitable, label: str) -> None:
    """Run a session command in the background, one at a time per connection."""
    async def _run_generation_task():
        try:
            await work
            await _log(ws, f"{label} finished")
        except Exception as e:
            logger.exception("%s failed", label)
            await _log(ws, f"{label} error: {e}", "error")
        finally:
            ctx.agent_task = None

    ctx.agent_task = asyncio.create_task(_run_generation_task())


def _message_id(msg: dict) -> str:
    value = msg.get("id")
    return value if isinstance(value, str) else ""


# ---------------------------------------------------------------------------
# Handlers — each is async def handle_xxx(ws, msg, ctx)
# ---------------------------------------------------------------------------

async def handle_set_api_key(ws, msg, ctx: WsContext):
    provider = msg.get("provider", "openrouter")
    key = (msg.get("key") or "").strip()
    env_name = _API_KEY_NAMES.get(provider)
    if env_name is None or not key:
        await send_error(ws, "An API key and a known provider are required")
        return
    config.save_api_key(env_name, key)
    ctx.settings = config.load_settings()
    await send_json(ws, {"type": "api_key_saved", "provider": provider})


async def handle_set_model(ws, msg, ctx: WsContext):
    ctx.session.model = resolve_model(msg.get("model"), ctx.settings)
    await send_state(ws, ctx)


async def handle_prompt(ws, msg, ctx: WsContext):
    if await _refuse_if_busy(ws, ctx):
        return
    text = msg.get("text") or ""
    if not isinstance(text, str) or not text.strip():
        await send_error(ws, "Prompt is required and must be a non-empty string")
        return
    code = msg.get("code")
    thumbnail = msg.get("thumbnail")
    if not all(v is None or isinstance(v, str) for v in (code, thumbnail)):
        await send_error(ws, "code and thumbnail must be strings")
        return
    if msg.get("model"):
        ctx.session.model = resolve_model(msg["model"], ctx.settings)

    _start_generation(
        ws, ctx,
        ctx.session.submit(text, code=code, thumbnail=thumbnail),
        "Generation",
    )


async def handle_retry(ws, msg, ctx: WsContext):
    if await _refuse_if_busy(ws, ctx):
        return
    message_id = _message_id(msg)
    if ctx.session.branch_info(message_id) is None:
        await send_error(ws, f"Unknown message: {message_id}")
        return
    _start_generation(ws, ctx, ctx.session.retry(message_id), "Retry")


async def handle_edit(ws, msg, ctx: WsContext):
    if await _refuse_if_busy(ws, ctx):
        return
    message_id = _message_id(msg)
    text = msg.get("text") or ""
    if ctx.session.branch_info(message_id) is None:
        await send_error(ws, f"Unknown message: {message_id}")
        return
    if not isinstance(text, str) or not text.strip():
        await send_error(ws, "Edited prompt must be a non-empty string")
        return
    _start_generation(ws, ctx, ctx.session.edit(message_id, text), "Edit")


async def handle_set_active_branch(ws, msg, ctx: WsContext):
    key = msg.get("key")
    index = msg.get("index")
    if not isinstance(key, str) or not isinstance(index, int) or isinstance(index, bool):
        await send_error(ws, "set_active_branch needs a string key and an integer index")
        return
    await ctx.session.set_active_branch(key, index)


async def handle_new_chat(ws, msg, ctx: WsContext):
    await ctx.session.clear()
    await _log(ws, "Chat history cleared")


async def handle_request_state(ws, msg, ctx: WsContext):
    await send_state(ws, ctx)


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "set_api_key": handle_set_api_key,
    "set_model": handle_set_model,
    "prompt": handle_prompt,
    "retry": handle_retry,
    "edit": handle_edit,
    "set_active_branch": handle_set_active_branch,
    "new_chat": handle_new_chat,
    "request_state": handle_request_state,
}
