from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

import database
from routers.contact import StatusUpdate, update_contact_status
from schemas import ClickPosition, Document, EventType
from security import get_current_admin, owned_document
from services import analytics, portfolio

router = APIRouter(prefix="/analytics", tags=["Analytics"])


class TrackRequest(Document):
    type: EventType
    page: Optional[str] = None
    project_id: Optional[str] = None
    image_id: Optional[str] = None
    skill_id: Optional[str] = None
    session_id: Optional[str] = None
    duration: Optional[float] = None
    click_position: Optional[ClickPosition] = None
    username: Optional[str] = None


@router.post("/track")
def track(payload: TrackRequest, request: Request):
    owner = portfolio.resolve_portfolio_owner(payload.username)
    event = payload.model_dump(exclude={"username"})
    for field in ("project_id", "image_id", "skill_id"):
        if event.get(field):
            event[field] = database.to_oid(event[field])

    info = analytics.client_info(
        request.headers.get("user-agent"),
        request.client.host if request.client else None,
        request.headers.get("referer"),
    )
    session_id = analytics.track_event(owner["_id"], event, info)
    return {"success": True, "sessionId": session_id, "message": "Analytics event tracked successfully"}


@router.get("/dashboard")
def get_dashboard(period: str = Query(analytics.DEFAULT_PERIOD), user: dict = Depends(get_current_admin)):
    return analytics.dashboard(database.to_oid(user["id"]), period)


@router.get("/realtime")
def get_realtime(user: dict = Depends(get_current_admin)):
    return analytics.realtime(database.to_oid(user["id"]))


@router.patch("/contacts/{id}/status")
def set_contact_status(payload: StatusUpdate, contact: dict = Depends(owned_document("contact", "Contact", gate=get_current_admin))):
    updated = update_contact_status(contact, payload.status)
    return {"message": "Contact status updated", "contact": database.to_public(updated)}
