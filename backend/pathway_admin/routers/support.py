"""
Pathway Admin - Support Tickets Router
Ticket list, thread messages, admin replies, metadata edits and CSV export.
"""
from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from ..auth import require_admin
from ..services.date_ranges import DateRange
from ..services.document_store import DocumentStore, get_store
from ..services.support_tickets_service import SupportTicketsService
from .deps import csv_download, get_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/support", tags=["support"], dependencies=[Depends(require_admin)])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class TicketMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    author: str
    text: str
    date: str


class TicketResponse(BaseModel):
    """A support thread as the tickets table shows it."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    subject: str
    user: str
    status: str
    priority: str
    assigned_to: str
    message: str
    last_updated: str
    messages: List[TicketMessageResponse] = []


class ThreadMessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender: str
    text: str
    created_at: Optional[datetime] = None


class ReplyRequest(BaseModel):
    text: str = Field(..., min_length=1)


class UpdateTicketRequest(BaseModel):
    status: Optional[str] = Field(None, pattern="^(open|in_progress|resolved)$")
    priority: Optional[str] = Field(None, pattern="^(low|medium|high)$")
    assigned_to: Optional[str] = None
    subject: Optional[str] = None
    admin_note: Optional[str] = None


class CreateTicketRequest(BaseModel):
    user: str = Field(..., min_length=1, description="User id or email")
    subject: str = Field(..., min_length=1)
    initial_message: Optional[str] = None


class CreatedResponse(BaseModel):
    id: str


class MessageResponse(BaseModel):
    message: str


def get_tickets_service(
    store: DocumentStore = Depends(get_store),
    now: Optional[datetime] = Depends(get_now),
) -> SupportTicketsService:
    return SupportTicketsService(store, now)


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/tickets", response_model=List[TicketResponse])
async def get_tickets(
    range: DateRange = Query(DateRange.ALL_TIME),
    service: SupportTicketsService = Depends(get_tickets_service),
):
    """
    Tickets active in range, most recent first. `all_time` returns every ticket.
    """
    return [TicketResponse.model_validate(t) for t in service.get_support_tickets(range)]


@router.get("/tickets/export")
async def export_tickets(
    range: DateRange = Query(DateRange.ALL_TIME),
    service: SupportTicketsService = Depends(get_tickets_service),
):
    """Download the tickets in range as CSV."""
    filename, content = service.export_tickets(range)
    logger.info(f"Support tickets exported: {filename}")
    return csv_download(filename, content)


@router.post("/tickets", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(request: CreateTicketRequest, service: SupportTicketsService = Depends(get_tickets_service)):
    """Open (or reopen) the ticket thread for a user."""
    thread_id = service.create_support_ticket(request.user, request.subject, request.initial_message)
    return CreatedResponse(id=thread_id)


@router.get("/tickets/{thread_id}/messages", response_model=List[ThreadMessageResponse])
async def get_thread_messages(thread_id: str, service: SupportTicketsService = Depends(get_tickets_service)):
    return [ThreadMessageResponse.model_validate(m) for m in service.get_support_thread_messages(thread_id)]


@router.post("/tickets/{thread_id}/reply", response_model=CreatedResponse, status_code=status.HTTP_201_CREATED)
async def reply_to_ticket(thread_id: str, request: ReplyRequest,
                          service: SupportTicketsService = Depends(get_tickets_service)):
    """Send a reply as support."""
    return CreatedResponse(id=service.send_admin_reply(thread_id, request.text))


@router.patch("/tickets/{thread_id}", response_model=MessageResponse)
async def update_ticket(thread_id: str, request: UpdateTicketRequest,
                        service: SupportTicketsService = Depends(get_tickets_service)):
    """Change status, priority, assignee, subject or note."""
    service.update_ticket_metadata(thread_id, request.model_dump(exclude_unset=True))
    return MessageResponse(message="Ticket updated")
