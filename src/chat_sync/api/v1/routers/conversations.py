from __future__ import annotations

from fastapi import APIRouter, Query, Response

from chat_sync.api.deps import CurrentPrincipal, RegistryDep
from chat_sync.api.v1.schemas.view import (
    ActionResultResponse,
    FeedbackRequest,
    SendMessageRequest,
    TypingRequest,
    ViewResponse,
)
from chat_sync.application.dto.view import ActionResult
from chat_sync.domain.value_objects.enums import OrderAction
from chat_sync.domain.value_objects.ids import ConversationId

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])


@router.post("/{conversation_id}/session", response_model=ActionResultResponse)
async def open_session(
    conversation_id: int,
    principal: CurrentPrincipal,
    registry: RegistryDep,
    preserve: bool = Query(False),
) -> ActionResultResponse:
    orchestrator, ok = await registry.open(
        principal, ConversationId(conversation_id), preserve=preserve,
    )
    view = orchestrator.view
    result = ActionResult.success() if ok else ActionResult.failure(view.error or "Failed to load")
    return ActionResultResponse.build(result, view)


@router.delete("/{conversation_id}/session", status_code=204)
async def close_session(
    conversation_id: int,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> Response:
    registry.close(principal, ConversationId(conversation_id))
    return Response(status_code=204)


@router.get("/{conversation_id}/view", response_model=ViewResponse)
async def get_view(
    conversation_id: int,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ViewResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    return ViewResponse.from_view(orchestrator.view)


@router.post("/{conversation_id}/messages", response_model=ActionResultResponse)
async def send_message(
    conversation_id: int,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ActionResultResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    result = await orchestrator.send(body.content)
    return ActionResultResponse.build(result, orchestrator.view)


@router.post("/{conversation_id}/typing", status_code=204)
async def set_typing(
    conversation_id: int,
    body: TypingRequest,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> Response:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    orchestrator.set_typing(body.text)
    return Response(status_code=204)


@router.post("/{conversation_id}/messages/older", response_model=ActionResultResponse)
async def load_older(
    conversation_id: int,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ActionResultResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    result = await orchestrator.load_older()
    return ActionResultResponse.build(result, orchestrator.view)


@router.post("/{conversation_id}/actions/{action}", response_model=ActionResultResponse)
async def run_action(
    conversation_id: int,
    action: OrderAction,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ActionResultResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    result = await orchestrator.run_action(action)
    return ActionResultResponse.build(result, orchestrator.view)


@router.post("/{conversation_id}/feedback", response_model=ActionResultResponse)
async def submit_feedback(
    conversation_id: int,
    body: FeedbackRequest,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ActionResultResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    result = await orchestrator.submit_feedback(body.rating, body.comment)
    return ActionResultResponse.build(result, orchestrator.view)


@router.post("/{conversation_id}/feedback/dismiss", response_model=ViewResponse)
async def dismiss_feedback(
    conversation_id: int,
    principal: CurrentPrincipal,
    registry: RegistryDep,
) -> ViewResponse:
    orchestrator = registry.get(principal, ConversationId(conversation_id))
    orchestrator.dismiss_feedback()
    return ViewResponse.from_view(orchestrator.view)
