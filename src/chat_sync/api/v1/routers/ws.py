from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from chat_sync.api.deps import get_verifier
from chat_sync.api.v1.schemas.view import ViewResponse
from chat_sync.api.v1.schemas.ws import WsInbound, WsOutbound
from chat_sync.application.dto.principal import Principal
from chat_sync.application.dto.view import ConversationView
from chat_sync.config import settings
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.services.session_registry import SessionRegistry
from chat_sync.services.sync_orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


def _frame(type_: str, data: dict) -> str:
    return WsOutbound(type=type_, data=data).model_dump_json()


def _view_frame(view: ConversationView) -> str:
    return _frame("view", ViewResponse.from_view(view).model_dump(mode="json"))


@router.websocket("/ws/conversations/{conversation_id}")
async def ws_conversation(
    websocket: WebSocket,
    conversation_id: int,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    registry: SessionRegistry = websocket.app.state.registry
    cid = ConversationId(conversation_id)
    owns_session = not registry.is_open(principal, cid)
    orchestrator, _ok = await registry.open(principal, cid)
    await websocket.accept()

    views: asyncio.Queue[ConversationView] = asyncio.Queue()
    unsubscribe = orchestrator.subscribe(views.put_nowait)
    await websocket.send_text(_view_frame(orchestrator.view))

    tag = f"{principal.user_id}-{conversation_id}"
    pump_task = asyncio.create_task(_pump(websocket, views), name=f"ws-views-{tag}")
    heartbeat_task = asyncio.create_task(_heartbeat(websocket), name=f"ws-heartbeat-{tag}")
    try:
        await _read_loop(websocket, orchestrator)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", tag)
    finally:
        heartbeat_task.cancel()
        pump_task.cancel()
        unsubscribe()
        if owns_session:
            registry.close(principal, cid)


async def _pump(ws: WebSocket, views: asyncio.Queue[ConversationView]) -> None:
    while True:
        view = await views.get()
        # only the newest snapshot matters
        while not views.empty():
            view = views.get_nowait()
        await ws.send_text(_view_frame(view))


async def _heartbeat(ws: WebSocket) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    try:
        while True:
            await asyncio.sleep(interval)
            await ws.send_text(_frame("pong", {}))
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.debug("WS heartbeat stopped", exc_info=True)


async def _read_loop(ws: WebSocket, orchestrator: SyncOrchestrator) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PayloadError:
            await ws.send_text(_frame("error", {"code": "invalid_payload"}))
            continue

        if msg.type == "ping":
            await ws.send_text(_frame("pong", {}))

        elif msg.type == "typing":
            orchestrator.set_typing(str(msg.data.get("text", "")))

        elif msg.type == "send":
            result = await orchestrator.send(str(msg.data.get("content", "")))
            await ws.send_text(_frame("result", {"ok": result.ok, "error": result.error}))
