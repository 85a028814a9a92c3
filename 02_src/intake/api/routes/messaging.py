"""Messaging API routes: transport webhooks and conversation queries."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, Query

from ...app import Application
from ...models import Message, Session
from ...transport import InboundEvent
from .errors import to_http_exception


class InboundRequest(BaseModel):
    """Inbound message as forwarded by the messaging gateway."""

    sender_id: str
    text: str
    is_group: bool = False


class InboundResponse(BaseModel):
    outcome: str


class OutboundEchoRequest(BaseModel):
    """Echo of a message sent from the paired account."""

    recipient_id: str
    text: str


class OutboundEchoResponse(BaseModel):
    manual: bool


class DisconnectedRequest(BaseModel):
    reason: str | None = None


class QrRequest(BaseModel):
    qr_code: str


class AckResponse(BaseModel):
    status: str


class StatusResponse(BaseModel):
    """Transport connectivity and housekeeping state."""

    ready: bool
    qr_code: str | None
    disconnect_reason: str | None
    ready_since: datetime | None
    in_flight: list[str]
    maintenance: dict[str, Any]


class ConversationResponse(BaseModel):
    """Response model for a session record."""

    contact_id: str
    dialogue_state: str
    pending_field: str | None
    collected_fields: dict[str, str]
    first_message: str
    created_at: datetime | None
    last_activity_at: datetime | None
    mute_until: datetime | None
    mute_reason: str | None
    blocked_until: datetime | None


class MessageResponse(BaseModel):
    """Response model for a message log entry."""

    id: str
    direction: str
    origin: str
    content: str
    timestamp: datetime


class SendMessageRequest(BaseModel):
    """Operator message sent outside the scripted flow."""

    contact_id: str
    text: str


class SendMessageResponse(BaseModel):
    delivered: bool


def session_to_response(session: Session) -> dict:
    state = session.dialogue_state
    return {
        "contact_id": session.contact_id,
        "dialogue_state": getattr(state, "value", state),
        "pending_field": session.pending_field,
        "collected_fields": session.collected_fields,
        "first_message": session.first_message,
        "created_at": session.created_at,
        "last_activity_at": session.last_activity_at,
        "mute_until": session.mute_until,
        "mute_reason": session.mute_reason.value if session.mute_reason else None,
        "blocked_until": session.blocked_until,
    }


def message_to_response(message: Message) -> dict:
    return {
        "id": message.id,
        "direction": message.direction,
        "origin": message.origin,
        "content": message.content,
        "timestamp": message.timestamp,
    }


def create_messaging_router(app: Application) -> APIRouter:
    """Create messaging router."""
    router = APIRouter(prefix="/api", tags=["messaging"])

    @router.post("/inbound", response_model=InboundResponse)
    async def receive_inbound(request: InboundRequest) -> dict:
        """Inbound message webhook. Group messages are ignored."""
        try:
            outcome = await app.adapter.on_message(
                InboundEvent(
                    sender_id=request.sender_id,
                    text=request.text,
                    is_group=request.is_group,
                )
            )
            return {"outcome": outcome.value if outcome else "ignored"}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/outbound-echo", response_model=OutboundEchoResponse)
    async def receive_outbound_echo(request: OutboundEchoRequest) -> dict:
        """Own-message webhook; a reply typed by a human mutes the bot."""
        try:
            manual = await app.adapter.on_own_message(request.recipient_id, request.text)
            return {"manual": manual}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/transport/ready", response_model=AckResponse)
    async def transport_ready() -> dict:
        try:
            app.adapter.on_ready()
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/transport/disconnected", response_model=AckResponse)
    async def transport_disconnected(request: DisconnectedRequest) -> dict:
        try:
            app.adapter.on_disconnected(request.reason)
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/transport/qr", response_model=AckResponse)
    async def transport_qr(request: QrRequest) -> dict:
        try:
            app.adapter.on_qr(request.qr_code)
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/status", response_model=StatusResponse)
    async def get_status() -> dict:
        """Connectivity, pairing code and maintenance schedule."""
        try:
            status = app.transport.status
            return {
                "ready": status.ready,
                "qr_code": status.qr_code,
                "disconnect_reason": status.disconnect_reason,
                "ready_since": status.ready_since,
                "in_flight": app.engine.in_flight,
                "maintenance": app.maintenance.status(),
            }
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/conversations", response_model=list[ConversationResponse])
    async def list_conversations(limit: int = Query(100, ge=1, le=1000)) -> list[dict]:
        """Sessions ordered by most recent activity."""
        try:
            sessions = await app.engine.list_conversations(limit=limit)
            return [session_to_response(s) for s in sessions]
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/conversations/{contact_id}", response_model=ConversationResponse)
    async def get_conversation(contact_id: str) -> dict:
        try:
            session = await app.engine.get_conversation_state(contact_id)
            return session_to_response(session)
        except Exception as e:
            raise to_http_exception(e)

    @router.get(
        "/conversations/{contact_id}/history", response_model=list[MessageResponse]
    )
    async def get_conversation_history(
        contact_id: str, limit: int = Query(100, ge=1, le=1000)
    ) -> list[dict]:
        """Message log for one contact, oldest first."""
        try:
            messages = await app.engine.get_conversation_history(contact_id, limit=limit)
            return [message_to_response(m) for m in messages]
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/send-message", response_model=SendMessageResponse)
    async def send_message(request: SendMessageRequest) -> dict:
        """Send an operator message, bypassing the scripted flow."""
        try:
            delivered = await app.engine.send_custom_message(
                request.contact_id, request.text
            )
            return {"delivered": delivered}
        except Exception as e:
            raise to_http_exception(e)

    return router
