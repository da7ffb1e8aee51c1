# ticketdesk/backend/app/services/lifecycle.py
"""
Ticket status model and derived time accounting.

Status changes stamp one lifecycle timestamp (started_at, completed_at,
invoiced_at) the first time the ticket enters the matching status. Once
set, a timestamp is never overwritten, even if the status is later moved
backwards. Elapsed hours are recomputed on every read from those stored
timestamps, so a closed ticket always reports the same value.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional


class TicketStatus(str, Enum):
    PENDIENTE = "Pendiente"
    EN_CURSO = "En curso"
    COMPLETADO = "Completado"
    PENDIENTE_FACTURAR = "Pendiente de facturar"
    FACTURADO = "Facturado"


class TicketPriority(str, Enum):
    URGENTE = "Urgente"
    ALTA = "Alta"
    MEDIA = "Media"
    BAJA = "Baja"


class HistorialTipo(str, Enum):
    CREACION = "creacion"
    ESTADO = "estado"
    PRIORIDAD = "prioridad"
    ASIGNACION = "asignacion"
    DESASIGNACION = "desasignacion"
    COMENTARIO = "comentario"
    ARCHIVO = "archivo"
    HORAS = "horas"
    NOTA_INTERNA = "nota_interna"


DEFAULT_STATUS = TicketStatus.PENDIENTE
DEFAULT_PRIORITY = TicketPriority.MEDIA

# Which timestamp a status stamps on entry. Every status must appear here.
STAMPED_FIELD: Dict[TicketStatus, Optional[str]] = {
    TicketStatus.PENDIENTE: None,
    TicketStatus.EN_CURSO: "started_at",
    TicketStatus.COMPLETADO: "completed_at",
    TicketStatus.PENDIENTE_FACTURAR: "completed_at",
    TicketStatus.FACTURADO: "invoiced_at",
}

# Which stored timestamp freezes the elapsed-time clock for a status.
CLOSING_FIELD: Dict[TicketStatus, Optional[str]] = {
    TicketStatus.PENDIENTE: None,
    TicketStatus.EN_CURSO: None,
    TicketStatus.COMPLETADO: "completed_at",
    TicketStatus.PENDIENTE_FACTURAR: "completed_at",
    TicketStatus.FACTURADO: "invoiced_at",
}

CLOSED_STATUSES = tuple(s for s, field in CLOSING_FIELD.items() if field)
OPEN_STATUSES = tuple(s for s, field in CLOSING_FIELD.items() if not field)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransitionEvent:
    """A status or priority change, consumed by the audit recorder."""

    tipo: HistorialTipo
    de: Optional[str]
    a: str

    @property
    def descripcion(self) -> str:
        label = "Estado" if self.tipo is HistorialTipo.ESTADO else "Prioridad"
        return f'{label} cambiado: "{self.de}" → "{self.a}"'

    @property
    def datos(self) -> Dict[str, Any]:
        return {"de": self.de, "a": self.a}


def parse_status(value: Any) -> TicketStatus:
    try:
        return TicketStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in TicketStatus)
        raise ValueError(f"Estado no válido '{value}'. Permitidos: {allowed}")


def parse_priority(value: Any) -> TicketPriority:
    try:
        return TicketPriority(value)
    except ValueError:
        allowed = ", ".join(p.value for p in TicketPriority)
        raise ValueError(f"Prioridad no válida '{value}'. Permitidas: {allowed}")


def stamp_lifecycle(ticket: Any, status: TicketStatus, now: datetime) -> Optional[str]:
    """
    Set the timestamp tied to `status` if it is still empty.
    Returns the name of the field that was written, or None.
    """
    field = STAMPED_FIELD[status]
    if field is None or getattr(ticket, field) is not None:
        return None
    setattr(ticket, field, now)
    return field


def apply_update(ticket: Any, changes: Dict[str, Any], now: datetime) -> List[TransitionEvent]:
    """
    Apply a partial update to `ticket` in place.

    Only keys present in `changes` are written. A status that differs from
    the current one is recorded and may stamp its lifecycle timestamp; a
    status or priority that actually changes yields a TransitionEvent.
    """
    events: List[TransitionEvent] = []

    for field in ("asunto", "descripcion", "notas", "dispositivo_id"):
        if field in changes:
            setattr(ticket, field, changes[field])

    new_priority = changes.get("prioridad")
    if new_priority is not None:
        new_priority = parse_priority(new_priority).value
        old_priority = ticket.prioridad
        ticket.prioridad = new_priority
        if new_priority != old_priority:
            events.append(TransitionEvent(HistorialTipo.PRIORIDAD, old_priority, new_priority))

    new_status = changes.get("estado")
    if new_status is not None:
        status = parse_status(new_status)
        old_status = ticket.estado
        if status.value != old_status:
            ticket.estado = status.value
            stamp_lifecycle(ticket, status, now)
            events.append(TransitionEvent(HistorialTipo.ESTADO, old_status, status.value))

    return events


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def closing_time(ticket: Any) -> Optional[datetime]:
    """The stored instant at which the ticket's clock stopped, if any."""
    try:
        status = TicketStatus(ticket.estado)
    except ValueError:
        return None
    field = CLOSING_FIELD[status]
    if field is None:
        return None
    return getattr(ticket, field)


def compute_elapsed(ticket: Any, now_fn: Callable[[], datetime] = utcnow) -> float:
    """
    Hours between creation and either the closing timestamp (closed
    ticket) or `now_fn()` (open ticket), rounded half-up to one decimal.
    """
    if ticket.created_at is None:
        return 0.0
    end = closing_time(ticket)
    if end is None:
        end = now_fn()
    seconds = (as_utc(end) - as_utc(ticket.created_at)).total_seconds()
    tenths = math.floor(seconds / 360 + 0.5)
    return max(0.0, tenths / 10)
