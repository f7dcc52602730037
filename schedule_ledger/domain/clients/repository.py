"""Client repository - Database operations for clients"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Client, RecurringRule


class ClientRepository:
    """Repository for client database operations"""

    @staticmethod
    def get_clients(db: Session, user_id: int, recurring_only: bool = False) -> list[Client]:
        """Get all clients for a user"""
        query = db.query(Client).filter(Client.user_id == user_id)

        if recurring_only:
            query = query.filter(Client.is_recurring.is_(True))

        return query.order_by(Client.name, Client.id).all()

    @staticmethod
    def get_client_by_id(db: Session, client_id: int, user_id: int) -> Optional[Client]:
        """Get a specific client by ID"""
        return (
            db.query(Client)
            .filter(Client.id == client_id, Client.user_id == user_id)
            .first()
        )

    @staticmethod
    def create_client(db: Session, user_id: int, commit: bool = True, **client_data) -> Client:
        """Create a new client (flush only when the caller owns the transaction)"""
        client = Client(user_id=user_id, **client_data)
        db.add(client)
        if commit:
            db.commit()
            db.refresh(client)
        else:
            db.flush()
        return client

    @staticmethod
    def update_client(db: Session, client: Client, **updates) -> Client:
        """Update a client with provided fields"""
        for key, value in updates.items():
            if value is not None and hasattr(client, key):
                setattr(client, key, value)

        db.commit()
        db.refresh(client)
        return client

    @staticmethod
    def delete_client(db: Session, client: Client) -> int:
        """
        Delete a client together with its appointments.
        Its rules are kept for history but deactivated and unlinked.
        Returns the number of rules deactivated.
        """
        rules = db.query(RecurringRule).filter(RecurringRule.client_id == client.id).all()
        for rule in rules:
            rule.active = False
            rule.client_id = None

        db.delete(client)
        db.commit()
        return len(rules)
