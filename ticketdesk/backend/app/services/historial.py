# ticketdesk/backend/app/services/historial.py
"""
Audit trail (historial) for tickets.

Entries are only ever inserted. The recorder writes through its own
session, after the triggering change has been committed, and a failed
write is logged and swallowed: the audit log is informational and never
decides whether the business operation succeeded.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.ticket_historial import TicketHistorial
from ..models.user import User
from .lifecycle import HistorialTipo, TransitionEvent

logger = logging.getLogger(__name__)

SYSTEM_NAME = "Sistema"


class HistorialRecorder:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def append(
        self,
        ticket_id: int,
        user_id: Optional[int],
        tipo: HistorialTipo,
        descripcion: str,
        datos: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Insert one entry. Returns False (and logs) when the write fails."""
        try:
            db = self.session_factory()
        except SQLAlchemyError as exc:
            logger.error("[Historial] No session for ticket %s: %s", ticket_id, exc)
            return False
        try:
            db.add(
                TicketHistorial(
                    ticket_id=ticket_id,
                    user_id=user_id,
                    tipo=HistorialTipo(tipo).value,
                    descripcion=descripcion,
                    datos=datos or {},
                )
            )
            db.commit()
            return True
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error(
                "[Historial] Error registrando '%s' en ticket %s: %s", tipo, ticket_id, exc
            )
            return False
        finally:
            db.close()

    def record_transitions(
        self, ticket_id: int, user_id: Optional[int], events: List[TransitionEvent]
    ) -> List[bool]:
        return [
            self.append(ticket_id, user_id, ev.tipo, ev.descripcion, ev.datos)
            for ev in events
        ]


def list_for_ticket(db: Session, ticket_id: int) -> List[Dict[str, Any]]:
    """Entries oldest first, each annotated with the actor's display name."""
    rows = (
        db.query(TicketHistorial)
        .filter(TicketHistorial.ticket_id == ticket_id)
        .order_by(TicketHistorial.created_at.asc(), TicketHistorial.id.asc())
        .all()
    )
    names = user_names(db, {r.user_id for r in rows if r.user_id})
    return [serialize_entry(r, names.get(r.user_id, SYSTEM_NAME)) for r in rows]


def serialize_entry(entry: TicketHistorial, nombre: str) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "ticket_id": entry.ticket_id,
        "user_id": entry.user_id,
        "tipo": entry.tipo,
        "descripcion": entry.descripcion,
        "datos": entry.datos or {},
        "created_at": entry.created_at,
        "usuario_nombre": nombre,
    }


def user_names(db: Session, ids) -> Dict[int, str]:
    """Resolve user ids to display names in one query."""
    ids = [i for i in ids if i is not None]
    if not ids:
        return {}
    users = db.query(User).filter(User.id.in_(ids)).all()
    return {u.id: u.display_name for u in users}
