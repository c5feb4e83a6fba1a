from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from pydantic import EmailStr, Field

import database
from schemas import CONTACT_STATUSES, Contact, ContactStatus, Document
from security import get_current_user, owned_document
from services import portfolio
from services.notifications import notify_contact

router = APIRouter(prefix="/contact", tags=["Contact"])


class ContactRequest(Document):
    name: str = Field(..., min_length=1)
    email: EmailStr
    message: str = Field(..., min_length=1)
    username: Optional[str] = None


class StatusUpdate(Document):
    status: str


def update_contact_status(contact: dict, status: str) -> dict:
    """Apply an admin status change; anything outside new/read/replied is rejected."""
    if status not in CONTACT_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")
    return database.update_document("contact", {"_id": contact["_id"]}, {"status": status})


@router.post("", status_code=201)
def submit_contact(payload: ContactRequest, request: Request, background_tasks: BackgroundTasks):
    owner = portfolio.resolve_portfolio_owner(payload.username)
    contact = Contact(
        name=payload.name,
        email=payload.email,
        message=payload.message,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent", ""),
        user_id=owner["_id"],
    )
    contact_id = database.create_document("contact", contact)

    recipient = (owner.get("portfolioData") or {}).get("contactEmail") or owner.get("email")
    background_tasks.add_task(notify_contact, contact.model_dump(), recipient)
    return {"message": "Message sent successfully", "contactId": contact_id}


@router.get("")
def list_contacts(
    status: Optional[ContactStatus] = None,
    limit: int = Query(50, ge=1, le=200),
    page: int = Query(1, ge=1),
    user: dict = Depends(get_current_user),
):
    query = {"userId": database.to_oid(user["id"])}
    if status:
        query["status"] = status
    total = database.collection("contact").count_documents(query)
    docs = database.get_documents("contact", query, limit=limit, skip=(page - 1) * limit, sort=[("createdAt", -1)])
    return {
        "contacts": [database.to_public(d) for d in docs],
        "pagination": {
            "current": page,
            "total": -(-total // limit),
            "count": len(docs),
            "totalContacts": total,
        },
    }


@router.patch("/{id}/status")
def set_status(payload: StatusUpdate, contact: dict = Depends(owned_document("contact", "Contact"))):
    updated = update_contact_status(contact, payload.status)
    return {"message": "Contact status updated successfully", "contact": database.to_public(updated)}
