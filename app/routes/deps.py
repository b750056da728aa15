from collections.abc import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from app.core.config import settings
from app.database.db import get_db
from app.services.ledger import RegistrationLedger
from app.stores.base import LedgerStore
from app.stores.sql import SqlAlchemyStore


def get_store(request: Request, db: Session = Depends(get_db)) -> Iterator[LedgerStore]:
    """The app-owned memory store when one is configured, else a SQL store on this request's session."""
    memory_store = getattr(request.app.state, "memory_store", None)
    if memory_store is not None:
        yield memory_store
    else:
        yield SqlAlchemyStore(db)


def get_ledger(request: Request, store: LedgerStore = Depends(get_store)) -> RegistrationLedger:
    delete_mode = getattr(request.app.state, "event_delete_mode", settings.EVENT_DELETE_MODE)
    return RegistrationLedger(store, request.app.state.event_locks, delete_mode=delete_mode)
