"""
Orphan reconciliation for derived financial entries

Entries point back to their expense/revenue only through the note text, so a
renamed, deleted or no-longer-recurring record leaves its future expected
entries behind. This module removes them and collapses duplicates.
"""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...cache import cache
from ...config import RECONCILE_COOLDOWN_SECONDS
from ...database import acquire_owner_lock, translate_datastore_errors
from ...exceptions import DatastoreUnavailable
from ...models import FinancialEntry, User
from ...shared.clock import owner_today
from .materializer import DERIVED_NOTE_PREFIXES, LOCK_SCOPE, derived_note
from .repository import FinanceRepository

logger = logging.getLogger(__name__)


def is_derived_note(note: Optional[str]) -> bool:
    return bool(note) and note.startswith(DERIVED_NOTE_PREFIXES)


def valid_derived_notes(db: Session, user_id: int) -> set[tuple[str, str]]:
    """(kind, note) pairs the owner's current records would generate"""
    valid = set()
    for record in FinanceRepository.get_derived_sources(db, user_id):
        note = derived_note(record)
        if note:
            valid.add((record.ENTRY_KIND, note))
    return valid


def is_orphan(entry: FinancialEntry, valid_notes: set[tuple[str, str]]) -> bool:
    return is_derived_note(entry.note) and (entry.kind, entry.note) not in valid_notes


def _newest_first(entry: FinancialEntry):
    return (entry.created_at is not None, entry.created_at, entry.id)


def find_duplicates(entries: list[FinancialEntry]) -> list[FinancialEntry]:
    """All but the most recently created entry of each (kind, due_date, note) group"""
    groups = {}
    for entry in entries:
        groups.setdefault((entry.kind, entry.due_date, entry.note), []).append(entry)

    duplicates = []
    for group in groups.values():
        if len(group) > 1:
            group.sort(key=_newest_first, reverse=True)
            duplicates.extend(group[1:])
    return duplicates


def reconcile_orphans(db: Session, user: User, today: Optional[date] = None) -> dict:
    """
    Delete future expected entries whose source no longer produces them, then
    remove duplicate derived entries.

    Returns:
        dict: {deletedCount, duplicatesRemoved}
    """
    if today is None:
        today = owner_today(user)

    try:
        with translate_datastore_errors():
            acquire_owner_lock(db, user.id, LOCK_SCOPE)

            valid_notes = valid_derived_notes(db, user.id)
            candidates = [
                e
                for e in FinanceRepository.get_expected_entries_since(db, user.id, today)
                if is_derived_note(e.note)
            ]

            orphans = [e for e in candidates if is_orphan(e, valid_notes)]
            for entry in orphans:
                db.delete(entry)

            orphan_ids = {e.id for e in orphans}
            duplicates = find_duplicates([e for e in candidates if e.id not in orphan_ids])
            for entry in duplicates:
                db.delete(entry)

            db.commit()
    except (SQLAlchemyError, DatastoreUnavailable):
        db.rollback()
        raise

    if orphans or duplicates:
        logger.info(
            f"🧹 Reconciled entries for user {user.id}: "
            f"{len(orphans)} orphans, {len(duplicates)} duplicates removed"
        )
    return {"deletedCount": len(orphans), "duplicatesRemoved": len(duplicates)}


def cooldown_key(user_id: int) -> str:
    return f"reconcile:cooldown:{user_id}"


def reconcile_if_due(db: Session, user: User, today: Optional[date] = None) -> Optional[dict]:
    """
    Run reconciliation at most once per cooldown period per owner.
    Returns None when skipped. Without Redis every call runs.
    """
    key = cooldown_key(user.id)
    if cache.get(key):
        logger.debug(f"⏭️ Reconcile cooldown active for user {user.id}")
        return None

    result = reconcile_orphans(db, user, today=today)
    cache.set(key, {"ranAt": (today or owner_today(user)).isoformat()}, RECONCILE_COOLDOWN_SECONDS)
    return result
