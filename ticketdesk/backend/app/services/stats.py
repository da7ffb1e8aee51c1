# ticketdesk/backend/app/services/stats.py
"""Aggregates for the admin dashboard. Computed in Python over plain rows."""

from collections import defaultdict
from datetime import date, datetime, time, timedelta
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session, selectinload

from ..models.empresa import Empresa
from ..models.ticket import Ticket
from .historial import user_names
from .lifecycle import (
    CLOSED_STATUSES,
    OPEN_STATUSES,
    TicketPriority,
    TicketStatus,
    as_utc,
    utcnow,
)

DONE_STATUSES = tuple(s.value for s in CLOSED_STATUSES)
ACTIVE_STATUSES = tuple(s.value for s in OPEN_STATUSES)

# status -> counter key in the response payloads
STATUS_KEYS = {
    TicketStatus.PENDIENTE.value: "pendientes",
    TicketStatus.EN_CURSO.value: "en_curso",
    TicketStatus.COMPLETADO.value: "completados",
    TicketStatus.PENDIENTE_FACTURAR.value: "pendiente_facturar",
    TicketStatus.FACTURADO.value: "facturados",
}


def _date_range(query, desde: Optional[date], hasta: Optional[date]):
    if desde:
        query = query.filter(Ticket.created_at >= datetime.combine(desde, time.min))
    if hasta:
        query = query.filter(Ticket.created_at <= datetime.combine(hasta, time(23, 59, 59)))
    return query


def resumen(db: Session, now_fn: Callable[[], datetime] = utcnow) -> Dict[str, Any]:
    rows = db.query(Ticket.estado, Ticket.prioridad, Ticket.created_at).all()
    hace_7_dias = now_fn() - timedelta(days=7)

    data = {"total": len(rows)}
    for key in STATUS_KEYS.values():
        data[key] = 0
    for estado, _, _ in rows:
        if estado in STATUS_KEYS:
            data[STATUS_KEYS[estado]] += 1
    data["urgentes"] = sum(1 for _, p, _ in rows if p == TicketPriority.URGENTE.value)
    data["ultimos_7_dias"] = sum(
        1 for _, _, created in rows if created and as_utc(created) >= as_utc(hace_7_dias)
    )
    return data


def por_operario(
    db: Session, desde: Optional[date] = None, hasta: Optional[date] = None
) -> List[Dict[str, Any]]:
    """
    One row per assigned operator. Totals, completions, hours and mean
    resolution time cover tickets created in the range; the pending count
    covers every ticket regardless of date.
    """
    tickets = _date_range(
        db.query(Ticket).options(selectinload(Ticket.asignaciones), selectinload(Ticket.horas)),
        desde,
        hasta,
    ).all()
    todos = db.query(Ticket).options(selectinload(Ticket.asignaciones)).all()

    ids = {a.user_id for t in tickets for a in t.asignaciones}
    ids |= {a.user_id for t in todos for a in t.asignaciones}
    if not ids:
        return []
    names = user_names(db, ids)

    stats: Dict[int, Dict[str, Any]] = {}
    tiempos: Dict[int, List[float]] = defaultdict(list)

    def row(uid: int) -> Dict[str, Any]:
        if uid not in stats:
            stats[uid] = {
                "id": uid,
                "nombre": names.get(uid, "?"),
                "tickets_totales": 0,
                "tickets_completados": 0,
                "tickets_pendientes": 0,
                "horas_totales": 0.0,
            }
        return stats[uid]

    for ticket in tickets:
        for a in ticket.asignaciones:
            op = row(a.user_id)
            op["tickets_totales"] += 1
            if ticket.estado in DONE_STATUSES:
                op["tickets_completados"] += 1
                cierre = ticket.invoiced_at or ticket.completed_at
                if ticket.created_at and cierre:
                    delta = as_utc(cierre) - as_utc(ticket.created_at)
                    tiempos[a.user_id].append(delta.total_seconds() / 3600)
        for h in ticket.horas:
            if h.user_id in stats:
                stats[h.user_id]["horas_totales"] += float(h.horas)

    for ticket in todos:
        if ticket.estado not in ACTIVE_STATUSES:
            continue
        for a in ticket.asignaciones:
            if a.user_id in stats:
                stats[a.user_id]["tickets_pendientes"] += 1

    for uid, op in stats.items():
        values = tiempos.get(uid)
        op["tiempo_promedio_horas"] = sum(values) / len(values) if values else None
    return list(stats.values())


def por_empresa(
    db: Session, desde: Optional[date] = None, hasta: Optional[date] = None
) -> List[Dict[str, Any]]:
    rows = _date_range(
        db.query(Ticket.empresa_id, Ticket.estado, Ticket.prioridad, Empresa.nombre).outerjoin(
            Empresa, Ticket.empresa_id == Empresa.id
        ),
        desde,
        hasta,
    ).all()

    stats: Dict[int, Dict[str, Any]] = {}
    for empresa_id, estado, prioridad, nombre in rows:
        entry = stats.get(empresa_id)
        if entry is None:
            entry = {"id": empresa_id, "nombre": nombre, "total": 0, "urgentes": 0}
            entry.update({key: 0 for key in STATUS_KEYS.values()})
            stats[empresa_id] = entry
        entry["total"] += 1
        if estado in STATUS_KEYS:
            entry[STATUS_KEYS[estado]] += 1
        if prioridad == TicketPriority.URGENTE.value:
            entry["urgentes"] += 1

    return sorted(stats.values(), key=lambda e: e["total"], reverse=True)
