"""Client service - Business logic for client operations"""

import logging

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...database import translate_datastore_errors
from ...exceptions import RecurrenceValidationError
from ...models import Client, RecurringRule, User
from ..appointments.service import AppointmentService
from ..recurrence.schemas import RuleCreate
from .repository import ClientRepository
from .schemas import ClientCreate, ClientUpdate, RecurringClientCreate

logger = logging.getLogger(__name__)


class ClientService:
    """Service layer for client business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ClientRepository()

    def get_clients(self, user: User, recurring_only: bool = False) -> list[Client]:
        """Get all clients for a user"""
        return self.repo.get_clients(self.db, user.id, recurring_only)

    def get_client(self, client_id: int, user: User) -> Client:
        """Get a specific client"""
        client = self.repo.get_client_by_id(self.db, client_id, user.id)
        if not client:
            raise HTTPException(status_code=404, detail="Client not found")
        return client

    def create_client(self, data: ClientCreate, user: User) -> Client:
        """Create a new client"""
        logger.info(f"📥 Creating client for user_id: {user.id}")

        with translate_datastore_errors():
            return self.repo.create_client(
                self.db,
                user.id,
                name=data.name,
                email=data.email,
                phone=data.phone,
                notes=data.notes,
                is_recurring=False,
            )

    def create_recurring_client(
        self, data: RecurringClientCreate, user: User
    ) -> tuple[Client, RecurringRule, dict]:
        """
        Create a client and its weekly rule in one transaction, then materialize.
        If the rule cannot be stored the client is not kept either.
        """
        logger.info(f"📥 Creating recurring client for user_id: {user.id}")
        appointments = AppointmentService(self.db)

        try:
            with translate_datastore_errors():
                client = self.repo.create_client(
                    self.db,
                    user.id,
                    commit=False,
                    name=data.name,
                    email=data.email,
                    phone=data.phone,
                    notes=data.notes,
                    is_recurring=True,
                )
                rule_data = RuleCreate(
                    clientId=client.id,
                    title=data.title or data.name,
                    weekdays=data.weekdays,
                    timeLocal=data.timeLocal,
                    timezone=data.timezone,
                    startDate=data.startDate,
                    endDate=data.endDate,
                    intervalWeeks=data.intervalWeeks,
                    amount=data.amount,
                )
                rule = appointments.build_rule(rule_data, user, client.id)
                self.db.commit()
        except (RecurrenceValidationError, SQLAlchemyError):
            self.db.rollback()
            logger.error(f"❌ Recurring client creation rolled back for user {user.id}")
            raise

        self.db.refresh(client)
        self.db.refresh(rule)
        logger.info(f"✅ Recurring client {client.id} created with rule {rule.id}")

        result = appointments.materialize(rule)
        return client, rule, result

    def update_client(self, client_id: int, data: ClientUpdate, user: User) -> Client:
        """Update a client"""
        client = self.get_client(client_id, user)

        updates = {}
        if data.name is not None:
            updates["name"] = data.name.strip()
        if data.email is not None:
            updates["email"] = data.email
        if data.phone is not None:
            updates["phone"] = data.phone
        if data.notes is not None:
            updates["notes"] = data.notes

        with translate_datastore_errors():
            return self.repo.update_client(self.db, client, **updates)

    def delete_client(self, client_id: int, user: User) -> dict:
        """Delete a client, its appointments, and deactivate its rules"""
        client = self.get_client(client_id, user)

        with translate_datastore_errors():
            deactivated = self.repo.delete_client(self.db, client)

        logger.info(f"🗑️ Client {client_id} deleted ({deactivated} rules deactivated)")
        return {"message": "Client deleted", "deactivatedRules": deactivated}
