# ticketdesk/backend/app/deps.py
"""
Process-wide collaborators, built once and handed to routes through
FastAPI dependencies. Tests swap them via app.dependency_overrides.
"""

from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from . import config
from .db import SessionLocal, get_db
from .services.chat_service import ChatService
from .services.email import Mailer, mailer_from_config
from .services.historial import HistorialRecorder
from .services.lifecycle import utcnow
from .services.storage import LocalStorage, Storage
from .services.ticket_service import TicketService


@lru_cache
def get_recorder() -> HistorialRecorder:
    return HistorialRecorder(SessionLocal)


@lru_cache
def get_ticket_storage() -> Storage:
    return LocalStorage(config.STORAGE_BUCKET)


@lru_cache
def get_chat_storage() -> Storage:
    return LocalStorage(config.CHAT_STORAGE_BUCKET)


@lru_cache
def get_mailer() -> Optional[Mailer]:
    return mailer_from_config()


def get_clock() -> Callable:
    return utcnow


def get_ticket_service(
    db: Session = Depends(get_db),
    recorder: HistorialRecorder = Depends(get_recorder),
    clock: Callable = Depends(get_clock),
    mailer: Optional[Mailer] = Depends(get_mailer),
) -> TicketService:
    return TicketService(db, recorder, clock=clock, mailer=mailer)


def get_chat_service(
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_chat_storage),
) -> ChatService:
    return ChatService(db, storage)
