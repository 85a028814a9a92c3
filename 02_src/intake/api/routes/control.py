"""Control API routes."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel
from fastapi import APIRouter, HTTPException, Query

from ...app import Application
from .errors import to_http_exception
from .messaging import ConversationResponse, session_to_response


class StatusResponse(BaseModel):
    """Response model for status."""

    status: str


class UnblockResponse(BaseModel):
    unblocked: bool


class ExcludedContactResponse(BaseModel):
    """A contact currently opted out or muted."""

    contact_id: str
    kind: str
    reason: str | None
    until: datetime
    remaining_seconds: int


class MaintenanceRunResponse(BaseModel):
    evicted: int


# Global SIM instance (will be set by main app)
_sim_instance: Any = None


def set_sim_instance(sim: Any) -> None:
    """Set the global SIM instance."""
    global _sim_instance
    _sim_instance = sim


def get_sim_instance() -> Any:
    """Get the global SIM instance."""
    return _sim_instance


def create_control_router(app: Application) -> APIRouter:
    """Create control router."""
    router = APIRouter(prefix="/api/control", tags=["control"])

    @router.post(
        "/conversations/{contact_id}/reset", response_model=ConversationResponse
    )
    async def reset_conversation(
        contact_id: str,
        clear_block: bool = Query(False, description="Also lift an opt-out"),
    ) -> dict:
        """Return one conversation to INITIAL."""
        try:
            session = await app.engine.reset_conversation(
                contact_id, clear_block=clear_block
            )
            return session_to_response(session)
        except Exception as e:
            raise to_http_exception(e)

    @router.post(
        "/conversations/{contact_id}/forward", response_model=ConversationResponse
    )
    async def forward_conversation(contact_id: str) -> dict:
        """Hand a conversation over to a human attendant."""
        try:
            session = await app.engine.forward_to_human(contact_id)
            return session_to_response(session)
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/contacts/{contact_id}/unblock", response_model=UnblockResponse)
    async def unblock_contact(contact_id: str) -> dict:
        """Clear opt-out and mute windows for a contact."""
        try:
            unblocked = await app.engine.unblock_contact(contact_id)
            return {"unblocked": unblocked}
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/excluded", response_model=list[ExcludedContactResponse])
    async def list_excluded() -> list[dict]:
        """Contacts currently opted out or muted, with remaining time."""
        try:
            return await app.engine.list_excluded_contacts()
        except Exception as e:
            raise to_http_exception(e)

    @router.get("/maintenance")
    async def maintenance_status() -> dict:
        """Housekeeping schedule."""
        try:
            return app.maintenance.status()
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/maintenance", response_model=MaintenanceRunResponse)
    async def run_maintenance() -> dict:
        """Run the stale-session sweep now."""
        try:
            return await app.engine.trigger_maintenance_now()
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/reset", response_model=StatusResponse)
    async def reset_system() -> dict:
        """Reset system data between test runs."""
        try:
            await app.reset()
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/sim/start", response_model=StatusResponse)
    async def start_sim() -> dict:
        """Start SIM simulation."""
        try:
            if not _sim_instance:
                raise HTTPException(status_code=404, detail="SIM not configured")
            await _sim_instance.start()
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    @router.post("/sim/stop", response_model=StatusResponse)
    async def stop_sim() -> dict:
        """Stop SIM simulation."""
        try:
            if not _sim_instance:
                raise HTTPException(status_code=404, detail="SIM not configured")
            await _sim_instance.stop()
            return {"status": "ok"}
        except Exception as e:
            raise to_http_exception(e)

    return router
