# ticketdesk/backend/app/services/ticket_service.py
"""
Ticket lifecycle manager.

Every mutating method commits its own change first and only then asks
the recorder for an audit entry and the mailer for notifications, so
neither side effect can undo the change.
"""

import logging
from datetime import date, datetime, time
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import String, cast, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from ..db import dialect_insert
from ..errors import NotFoundError, UpstreamError, ValidationError
from ..models.empresa import Dispositivo, Empresa
from ..models.ticket import Ticket, TicketArchivo, TicketAsignacion, TicketHora
from ..models.ticket_historial import TicketHistorial
from ..models.user import User
from .archivos import UploadedFile, serialize_file
from .email import Mailer, Recipient, notify_assignment
from .historial import HistorialRecorder, list_for_ticket, serialize_entry, user_names
from .lifecycle import (
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    HistorialTipo,
    apply_update,
    compute_elapsed,
    parse_priority,
    parse_status,
    stamp_lifecycle,
    utcnow,
)
from .storage import Storage, build_storage_path

logger = logging.getLogger(__name__)

UNKNOWN_NAME = "?"
ALL = "all"


class TicketService:
    def __init__(
        self,
        db: Session,
        recorder: HistorialRecorder,
        clock: Callable[[], datetime] = utcnow,
        mailer: Optional[Mailer] = None,
    ):
        self.db = db
        self.recorder = recorder
        self.clock = clock
        self.mailer = mailer

    # --- lookups -----------------------------------------------------------

    def get(self, ticket_id: int) -> Ticket:
        ticket = self.db.get(Ticket, ticket_id)
        if ticket is None:
            raise NotFoundError("Ticket no encontrado")
        return ticket

    def _next_numero(self) -> int:
        return (self.db.query(func.coalesce(func.max(Ticket.numero), 0)).scalar() or 0) + 1

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Error de base de datos: %s", exc)
            raise UpstreamError(f"Error de base de datos: {exc.__class__.__name__}")

    # --- create / update / delete ------------------------------------------

    def create(self, data: Dict[str, Any], actor: User) -> Ticket:
        empresa_id = data.get("empresa_id")
        asunto = (data.get("asunto") or "").strip()
        if not empresa_id or not asunto:
            raise ValidationError("empresa_id y asunto son obligatorios.")
        if self.db.get(Empresa, empresa_id) is None:
            raise NotFoundError("Empresa no encontrada")

        try:
            estado = parse_status(data.get("estado") or DEFAULT_STATUS)
            prioridad = parse_priority(data.get("prioridad") or DEFAULT_PRIORITY)
        except ValueError as exc:
            raise ValidationError(str(exc))

        dispositivo_id = data.get("dispositivo_id") or None
        if dispositivo_id is not None and self.db.get(Dispositivo, dispositivo_id) is None:
            raise NotFoundError("Dispositivo no encontrado")
        operarios = list(dict.fromkeys(data.get("operarios") or []))
        if operarios:
            self._load_operators(operarios)

        now = self.clock()
        ticket = Ticket(
            numero=self._next_numero(),
            empresa_id=empresa_id,
            dispositivo_id=dispositivo_id,
            asunto=asunto,
            descripcion=data.get("descripcion") or None,
            notas=data.get("notas") or None,
            prioridad=prioridad.value,
            estado=estado.value,
            created_by=actor.id,
            created_at=now,
        )
        stamp_lifecycle(ticket, estado, now)
        self.db.add(ticket)
        self._commit()
        self.db.refresh(ticket)

        self.recorder.append(
            ticket.id,
            actor.id,
            HistorialTipo.CREACION,
            f"Ticket #{ticket.numero} creado por {actor.display_name}",
        )

        if operarios:
            self.assign_operators(ticket.id, operarios, actor)
        return ticket

    def update(self, ticket_id: int, changes: Dict[str, Any], actor: User) -> Ticket:
        ticket = self.get(ticket_id)
        if "asunto" in changes and not (changes["asunto"] or "").strip():
            raise ValidationError("El asunto no puede estar vacío.")
        if "dispositivo_id" in changes and changes["dispositivo_id"] is not None:
            if self.db.get(Dispositivo, changes["dispositivo_id"]) is None:
                raise NotFoundError("Dispositivo no encontrado")
        try:
            events = apply_update(ticket, changes, self.clock())
        except ValueError as exc:
            raise ValidationError(str(exc))
        self._commit()
        self.db.refresh(ticket)

        self.recorder.record_transitions(ticket.id, actor.id, events)
        return ticket

    def delete(self, ticket_id: int, storage: Storage) -> None:
        """
        Remove the ticket and everything hanging off it. Storage objects go
        first; if that fails the rows stay so no metadata is lost silently.
        """
        ticket = self.get(ticket_id)
        numero = ticket.numero
        paths = [a.storage_path for a in ticket.archivos]
        for comentario in ticket.comentarios:
            paths.extend(f.nombre_storage for f in comentario.archivos)
        if paths:
            storage.delete(paths)
        self.db.delete(ticket)
        self._commit()
        logger.info("Ticket #%s eliminado (%d archivos)", numero, len(paths))

    def set_notas(self, ticket_id: int, notas: Optional[str]) -> Ticket:
        ticket = self.get(ticket_id)
        ticket.notas = notas
        self._commit()
        return ticket

    # --- assignments -------------------------------------------------------

    def _upsert_asignaciones(self, rows: List[Dict[str, Any]]) -> None:
        stmt = dialect_insert(self.db)(TicketAsignacion).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["ticket_id", "user_id"],
            set_={"asignado_by": stmt.excluded.asignado_by},
        )
        self.db.execute(stmt)

    def _load_operators(self, operator_ids: Sequence[int]) -> List[User]:
        operators = self.db.query(User).filter(User.id.in_(operator_ids)).all()
        found = {u.id for u in operators}
        missing = [i for i in operator_ids if i not in found]
        if missing:
            raise ValidationError(f"Operarios no encontrados: {missing}")
        return operators

    def assign_operators(
        self, ticket_id: int, operator_ids: Sequence[int], actor: User
    ) -> Tuple[List[Dict[str, Any]], List[int]]:
        """
        Upsert one assignment per operator. Returns the assignment rows for
        the requested operators and the ids that were not assigned before;
        only those are audited and emailed.
        """
        operator_ids = list(dict.fromkeys(operator_ids or []))
        if not operator_ids:
            raise ValidationError("Debes proporcionar al menos un operario.")
        ticket = self.get(ticket_id)
        operators = self._load_operators(operator_ids)

        existing = {
            row.user_id
            for row in self.db.query(TicketAsignacion.user_id).filter(
                TicketAsignacion.ticket_id == ticket_id
            )
        }
        nuevos = [i for i in operator_ids if i not in existing]

        self._upsert_asignaciones(
            [{"ticket_id": ticket_id, "user_id": uid, "asignado_by": actor.id} for uid in operator_ids]
        )
        self._commit()

        by_id = {u.id: u for u in operators}
        if nuevos:
            nombres = ", ".join(by_id[i].display_name for i in nuevos)
            self.recorder.append(
                ticket_id,
                actor.id,
                HistorialTipo.ASIGNACION,
                f"{actor.display_name} asignó a: {nombres}",
                {"nuevos_operarios": nuevos, "nombres": nombres},
            )
            recipients = [Recipient(i, by_id[i].nombre, by_id[i].email) for i in nuevos]
            empresa = ticket.empresa.nombre if ticket.empresa else ""
            notify_assignment(self.mailer, recipients, ticket, empresa)

        rows = (
            self.db.query(TicketAsignacion)
            .filter(
                TicketAsignacion.ticket_id == ticket_id,
                TicketAsignacion.user_id.in_(operator_ids),
            )
            .all()
        )
        records = [serialize_asignacion(r, by_id[r.user_id].display_name) for r in rows]
        return records, nuevos

    def unassign_operator(self, ticket_id: int, operator_id: int, actor: User) -> bool:
        """Remove one assignment. Removing an absent one still succeeds."""
        operator = self.db.get(User, operator_id)
        nombre = operator.display_name if operator else str(operator_id)

        self.db.query(TicketAsignacion).filter(
            TicketAsignacion.ticket_id == ticket_id,
            TicketAsignacion.user_id == operator_id,
        ).delete(synchronize_session=False)
        self._commit()

        if self.db.get(Ticket, ticket_id) is None:
            return True
        self.recorder.append(
            ticket_id,
            actor.id,
            HistorialTipo.DESASIGNACION,
            f"{actor.display_name} quitó a {nombre} del ticket",
            {"operario_id": operator_id, "nombre": nombre},
        )
        return True

    # --- hours, notes, files -----------------------------------------------

    def log_hours(
        self,
        ticket_id: int,
        horas: float,
        actor: User,
        descripcion: Optional[str] = None,
        fecha: Optional[date] = None,
    ) -> TicketHora:
        if horas is None or horas <= 0:
            raise ValidationError("Horas inválidas.")
        self.get(ticket_id)
        row = TicketHora(
            ticket_id=ticket_id,
            user_id=actor.id,
            horas=float(horas),
            descripcion=descripcion or None,
            fecha=fecha or self.clock().date(),
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)

        detalle = f": {descripcion}" if descripcion else ""
        self.recorder.append(
            ticket_id,
            actor.id,
            HistorialTipo.HORAS,
            f"{actor.display_name} registró {horas:g}h{detalle}",
            {"horas": horas, "descripcion": descripcion},
        )
        return row

    def add_internal_note(self, ticket_id: int, texto: str, actor: User) -> TicketHistorial:
        """Internal notes are stored as audit entries; here the entry is the result."""
        texto = (texto or "").strip()
        if not texto:
            raise ValidationError("El texto no puede estar vacío.")
        self.get(ticket_id)
        entry = TicketHistorial(
            ticket_id=ticket_id,
            user_id=actor.id,
            tipo=HistorialTipo.NOTA_INTERNA.value,
            descripcion=texto,
            datos={},
        )
        self.db.add(entry)
        self._commit()
        self.db.refresh(entry)
        return entry

    def upload_files(
        self, ticket_id: int, files: List[UploadedFile], actor: User, storage: Storage
    ) -> List[TicketArchivo]:
        """
        Store each file independently. Succeeds if at least one file was
        saved; a metadata insert failure removes the object it just wrote.
        """
        if not files:
            raise ValidationError("No se han enviado archivos.")
        self.get(ticket_id)

        saved: List[TicketArchivo] = []
        errores: List[str] = []
        for upload in files:
            path = build_storage_path("tickets", ticket_id, filename=upload.filename)
            try:
                storage.put(path, upload.content, upload.content_type)
            except UpstreamError as exc:
                errores.append(f"{upload.filename}: {exc.message}")
                continue

            row = TicketArchivo(
                ticket_id=ticket_id,
                nombre_original=upload.filename,
                storage_path=path,
                mime_type=upload.content_type,
                tamanio=upload.size,
                subido_by=actor.id,
            )
            try:
                self.db.add(row)
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                try:
                    storage.delete([path])
                except UpstreamError as exc:
                    logger.error("[Storage] Objeto huérfano %s: %s", path, exc.message)
                errores.append(f"{upload.filename}: error al guardar en BD")
                continue
            self.db.refresh(row)
            saved.append(row)

        if not saved:
            raise UpstreamError(
                f"No se pudo subir ningún archivo. Errores: {'; '.join(errores)}"
            )
        if errores:
            logger.warning("[Storage] Ticket %s: subidas fallidas: %s", ticket_id, errores)

        nombres = [r.nombre_original for r in saved]
        self.recorder.append(
            ticket_id,
            actor.id,
            HistorialTipo.ARCHIVO,
            f"{actor.display_name} adjuntó: {', '.join(nombres)}",
            {"archivos": nombres},
        )
        return saved

    # --- reads -------------------------------------------------------------

    def list_tickets(
        self,
        estado: Optional[str] = None,
        prioridad: Optional[str] = None,
        empresa_id: Optional[int] = None,
        operario_id: Optional[int] = None,
        search: Optional[str] = None,
        desde: Optional[date] = None,
        hasta: Optional[date] = None,
    ) -> List[Dict[str, Any]]:
        query = (
            self.db.query(Ticket)
            .outerjoin(Empresa, Ticket.empresa_id == Empresa.id)
            .options(
                joinedload(Ticket.empresa),
                joinedload(Ticket.dispositivo),
                selectinload(Ticket.asignaciones),
            )
        )
        if estado and estado != ALL:
            query = query.filter(Ticket.estado == estado)
        if prioridad and prioridad != ALL:
            query = query.filter(Ticket.prioridad == prioridad)
        if empresa_id:
            query = query.filter(Ticket.empresa_id == empresa_id)
        if desde:
            query = query.filter(Ticket.created_at >= datetime.combine(desde, time.min))
        if hasta:
            query = query.filter(Ticket.created_at <= datetime.combine(hasta, time(23, 59, 59)))
        if operario_id:
            query = query.filter(Ticket.asignaciones.any(TicketAsignacion.user_id == operario_id))
        if search:
            term = f"%{escape_like(search.strip())}%"
            query = query.filter(
                or_(
                    Ticket.asunto.ilike(term, escape="\\"),
                    Empresa.nombre.ilike(term, escape="\\"),
                    cast(Ticket.numero, String).like(term, escape="\\"),
                )
            )

        tickets = query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()
        names = user_names(self.db, {a.user_id for t in tickets for a in t.asignaciones})
        return [self._serialize_row(t, names) for t in tickets]

    def _serialize_row(self, ticket: Ticket, names: Dict[int, str]) -> Dict[str, Any]:
        data = serialize_ticket(ticket)
        data["empresa"] = (
            {"id": ticket.empresa.id, "nombre": ticket.empresa.nombre} if ticket.empresa else None
        )
        data["dispositivo"] = (
            {"id": ticket.dispositivo.id, "nombre": ticket.dispositivo.nombre, "tipo": ticket.dispositivo.tipo}
            if ticket.dispositivo
            else None
        )
        data["asignaciones"] = [
            serialize_asignacion(a, names.get(a.user_id, UNKNOWN_NAME)) for a in ticket.asignaciones
        ]
        data["horas_transcurridas"] = compute_elapsed(ticket, self.clock)
        return data

    def detail(self, ticket_id: int) -> Dict[str, Any]:
        ticket = self.get(ticket_id)
        ids = {a.user_id for a in ticket.asignaciones}
        ids |= {h.user_id for h in ticket.horas}
        ids |= {a.subido_by for a in ticket.archivos if a.subido_by}
        names = user_names(self.db, ids)

        data = self._serialize_row(ticket, names)
        empresa = ticket.empresa
        if empresa is not None:
            data["empresa"].update(
                email=empresa.email, telefono=empresa.telefono, contactos=empresa.contactos
            )
        if ticket.dispositivo is not None:
            data["dispositivo"].update(
                ip=ticket.dispositivo.ip, numero_serie=ticket.dispositivo.numero_serie
            )
        data["historial"] = list_for_ticket(self.db, ticket.id)
        data["horas"] = [
            {
                "id": h.id,
                "horas": h.horas,
                "descripcion": h.descripcion,
                "fecha": h.fecha,
                "user_id": h.user_id,
                "usuario_nombre": names.get(h.user_id, UNKNOWN_NAME),
            }
            for h in ticket.horas
        ]
        data["archivos"] = [
            serialize_file(
                a,
                storage_path=a.storage_path,
                subido_by=a.subido_by,
                usuario_nombre=names.get(a.subido_by, UNKNOWN_NAME),
            )
            for a in ticket.archivos
        ]
        data["horas_totales"] = sum(float(h.horas) for h in ticket.horas)
        return data


def escape_like(text: str) -> str:
    """Make `%` and `_` match literally in a LIKE pattern."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def serialize_ticket(ticket: Ticket) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "numero": ticket.numero,
        "asunto": ticket.asunto,
        "descripcion": ticket.descripcion,
        "notas": ticket.notas,
        "prioridad": ticket.prioridad,
        "estado": ticket.estado,
        "empresa_id": ticket.empresa_id,
        "dispositivo_id": ticket.dispositivo_id,
        "created_by": ticket.created_by,
        "created_at": ticket.created_at,
        "started_at": ticket.started_at,
        "completed_at": ticket.completed_at,
        "invoiced_at": ticket.invoiced_at,
    }


def serialize_asignacion(row: TicketAsignacion, nombre: str) -> Dict[str, Any]:
    return {
        "id": row.id,
        "ticket_id": row.ticket_id,
        "user_id": row.user_id,
        "asignado_at": row.asignado_at,
        "usuario_nombre": nombre,
    }


def serialize_nota_interna(entry: TicketHistorial, actor: User) -> Dict[str, Any]:
    return serialize_entry(entry, actor.display_name)
