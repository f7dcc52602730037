"""Client router - FastAPI endpoints for client operations"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import Client, User
from ..appointments.service import rule_to_dict
from ..recurrence.schemas import RuleResponse
from .schemas import (
    ClientCreate,
    ClientResponse,
    ClientUpdate,
    RecurringClientCreate,
    RecurringClientResponse,
)
from .service import ClientService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clients", tags=["Clients"])


def get_client_service(db: Session = Depends(get_db)) -> ClientService:
    """Dependency injection for ClientService"""
    return ClientService(db)


def to_response(client: Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        name=client.name,
        email=client.email,
        phone=client.phone,
        notes=client.notes,
        isRecurring=bool(client.is_recurring),
        created_at=client.created_at,
    )


@router.get("", response_model=list[ClientResponse])
async def get_clients(
    recurring: bool = Query(False),
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    """Get all clients for the current user"""
    return [to_response(c) for c in service.get_clients(current_user, recurring)]


@router.post("/recurring", response_model=RecurringClientResponse)
async def create_recurring_client(
    data: RecurringClientCreate,
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    """Create a client with a weekly rule and materialize its appointments"""
    client, rule, result = service.create_recurring_client(data, current_user)
    return RecurringClientResponse(
        client=to_response(client),
        rule=RuleResponse(**rule_to_dict(rule)),
        materialize=result,
    )


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    return to_response(service.get_client(client_id, current_user))


@router.post("", response_model=ClientResponse)
async def create_client(
    data: ClientCreate,
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    """Create a new client"""
    return to_response(service.create_client(data, current_user))


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    data: ClientUpdate,
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    return to_response(service.update_client(client_id, data, current_user))


@router.delete("/{client_id}")
async def delete_client(
    client_id: int,
    current_user: User = Depends(get_current_user),
    service: ClientService = Depends(get_client_service),
):
    """Delete a client and its appointments"""
    return service.delete_client(client_id, current_user)
