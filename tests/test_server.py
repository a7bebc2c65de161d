"""Tests for the FastAPI REST endpoints and the /ws chat protocol."""
from __future__ import annotations

import asyncio
import threading

import pytest
from fastapi.testclient import TestClient

import ai
import config
import main
import ws_handlers
from ai import service


@pytest.fixture
def client(monkeypatch):
    settings = config.Settings(openrouter_api_key="sk-test", task_reset_delay=0.01)
    monkeypatch.setattr(config, "load_settings", lambda: settings)

    async def fake_generate(prompt, model=None, code=None):
        if "fail" in prompt:
            raise ai.LLMError("OpenRouter API error: 500")
        return {"code": "void mainImage(out vec4 c, in vec2 p) { c = vec4(1.0); }",
                "explanation": f"Shader for: {prompt}"}

    monkeypatch.setattr(ai, "generate", fake_generate)
    with TestClient(main.app) as test_client:
        yield test_client


def _receive_until(ws, predicate, limit: int = 30) -> dict:
    for _ in range(limit):
        msg = ws.receive_json()
        if predicate(msg):
            return msg
    raise AssertionError("expected message never arrived")


def _settled_state(ws, n_messages: int, check=lambda m: True) -> dict:
    return _receive_until(ws, lambda m: (
        m["type"] == "chat_state"
        and len(m["messages"]) == n_messages
        and m["taskState"]["status"] in ("complete", "error")
        and check(m)
    ))


# ── REST ──


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_models_lists_allow_list(client):
    data = client.get("/api/ai/models").json()
    assert data["models"] == list(ai.ALLOWED_MODELS)
    assert data["default"] == config.DEFAULT_MODEL


def test_prompt_endpoint_success(client, monkeypatch):
    async def fake_process_prompt(prompt, model=None, code=None, settings=None):
        return {"code": "c", "explanation": "e", "usage": {"totalTokens": 1}}

    monkeypatch.setattr(ai, "process_prompt", fake_process_prompt)
    resp = client.post("/api/ai/prompt", json={"prompt": "sunset"})
    assert resp.status_code == 200
    assert resp.json()["code"] == "c"


def test_prompt_endpoint_rejects_empty_prompt(client):
    resp = client.post("/api/ai/prompt", json={"prompt": "  "})
    assert resp.status_code == 400
    assert "Prompt is required" in resp.json()["error"]


def test_prompt_endpoint_maps_parse_errors(client, monkeypatch):
    async def fake_call_llm(prompt, model, settings):
        return ai.llm_client.LLMResponse(content="no json", model=model)

    monkeypatch.setattr(service, "call_llm", fake_call_llm)
    resp = client.post("/api/ai/prompt", json={"prompt": "sunset"})
    assert resp.status_code == 502
    assert "Failed to parse AI response" in resp.json()["error"]


# ── WebSocket chat ──


def test_ws_initial_messages(client):
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json()["type"] == "init"
        state = ws.receive_json()
        assert state["type"] == "chat_state"
        assert state["messages"] == []
        assert state["taskState"] == {"status": "idle", "steps": []}


def test_ws_prompt_retry_edit_flow(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "prompt", "text": "make a sunset"})
        state = _settled_state(ws, 2)
        user, reply = state["messages"]
        assert user["content"] == "make a sunset"
        assert reply["codeArtifact"]["type"] == "generated"

        _receive_until(ws, lambda m: m["type"] == "agent_log")

        ws.send_json({"type": "retry", "id": user["id"]})
        state = _settled_state(ws, 2, lambda m: m["messages"][1]["id"] != reply["id"])
        assert state["messages"][0]["id"] == user["id"]
        _receive_until(ws, lambda m: m["type"] == "agent_log")

        ws.send_json({"type": "edit", "id": user["id"], "text": "make a sunrise"})
        state = _settled_state(ws, 2, lambda m: m["messages"][0]["content"] == "make a sunrise")
        assert state["branches"][state["messages"][0]["id"]] == {"count": 2, "activeIndex": 1}
        _receive_until(ws, lambda m: m["type"] == "agent_log")

        ws.send_json({"type": "set_active_branch", "key": "root", "index": 0})
        state = _receive_until(ws, lambda m: m["type"] == "chat_state"
                               and m["messages"][0]["content"] == "make a sunset")
        assert len(state["messages"]) == 2


def test_ws_generation_failure_shows_error_reply(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "prompt", "text": "please fail"})
        state = _settled_state(ws, 2)
        reply = state["messages"][1]
        assert reply["isError"] is True
        assert reply["content"] == "OpenRouter API error: 500"
        assert state["taskState"]["status"] == "error"


def test_ws_new_chat_clears(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "prompt", "text": "make a sunset"})
        _settled_state(ws, 2)
        _receive_until(ws, lambda m: m["type"] == "agent_log")
        ws.send_json({"type": "new_chat"})
        state = _receive_until(ws, lambda m: m["type"] == "chat_state" and m["messages"] == [])
        assert state["branches"] == {}


def test_ws_refuses_commands_while_generating(client, monkeypatch):
    release = threading.Event()

    async def gated_generate(prompt, model=None, code=None):
        while not release.is_set():
            await asyncio.sleep(0.01)
        return {"code": "void mainImage(out vec4 c, in vec2 p) {}", "explanation": "done"}

    monkeypatch.setattr(ai, "generate", gated_generate)
    with client.websocket_connect("/ws") as ws:
        try:
            ws.send_json({"type": "prompt", "text": "make a sunset"})
            state = _receive_until(ws, lambda m: m["type"] == "chat_state"
                                   and m["taskState"]["status"] == "thinking")
            user_id = state["messages"][0]["id"]

            busy = {"type": "error", "message": ws_handlers.BUSY_MESSAGE}
            ws.send_json({"type": "prompt", "text": "add clouds"})
            assert _receive_until(ws, lambda m: m["type"] == "error") == busy
            ws.send_json({"type": "retry", "id": user_id})
            assert _receive_until(ws, lambda m: m["type"] == "error") == busy
            ws.send_json({"type": "edit", "id": user_id, "text": "make a sunrise"})
            assert _receive_until(ws, lambda m: m["type"] == "error") == busy
        finally:
            release.set()

        state = _settled_state(ws, 2)
        assert state["messages"][0]["content"] == "make a sunset"


def test_ws_rejects_bad_messages(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_text("{not json")
        assert _receive_until(ws, lambda m: m["type"] == "error")["message"] == "Malformed message"

        ws.send_json({"type": "explode"})
        assert "Unknown message type" in _receive_until(ws, lambda m: m["type"] == "error")["message"]

        ws.send_json({"type": "retry", "id": "missing"})
        assert "Unknown message" in _receive_until(ws, lambda m: m["type"] == "error")["message"]

        ws.send_json({"type": "set_active_branch", "key": "root", "index": "1"})
        assert "integer index" in _receive_until(ws, lambda m: m["type"] == "error")["message"]

        ws.send_json({"type": "prompt", "text": "make a sunset", "code": 42})
        assert _receive_until(ws, lambda m: m["type"] == "error")["message"] == \
            "code and thumbnail must be strings"
