# ticketdesk/backend/app/services/chat_service.py
"""
Team chat: channels, memberships and messages.

Only members read or post in a channel. Channel admins are recorded per
membership (rol="admin" for the creator) while editing and deleting a
channel is reserved for application administrators.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..db import dialect_insert
from ..errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from ..models.chat import ChatCanal, ChatCanalMiembro, ChatMensaje, ChatMensajeArchivo
from ..models.ticket import Ticket
from ..models.user import User
from .archivos import UploadedFile, serialize_file
from .historial import user_names
from .storage import Storage, build_storage_path

logger = logging.getLogger(__name__)

ROL_ADMIN = "admin"
ROL_MIEMBRO = "miembro"
DEFAULT_PAGE = 100


def slugify(nombre: str) -> str:
    return re.sub(r"\s+", "-", nombre.strip().lower())


def _serialize_canal(db: Session, canal: ChatCanal) -> Dict[str, Any]:
    names = user_names(db, {m.user_id for m in canal.miembros})
    return {
        "id": canal.id,
        "nombre": canal.nombre,
        "descripcion": canal.descripcion,
        "tipo": canal.tipo,
        "created_at": canal.created_at,
        "miembros": [
            {
                "user_id": m.user_id,
                "rol": m.rol,
                "joined_at": m.joined_at,
                "nombre": names.get(m.user_id, "?"),
            }
            for m in canal.miembros
        ],
    }


def _ticket_ref(ticket: Optional[Ticket]) -> Optional[Dict[str, Any]]:
    if ticket is None:
        return None
    return {"id": ticket.id, "numero": ticket.numero, "asunto": ticket.asunto, "estado": ticket.estado}


def _serialize_mensaje(row: ChatMensaje, nombre: str, ticket: Optional[Ticket]) -> Dict[str, Any]:
    return {
        "id": row.id,
        "canal_id": row.canal_id,
        "user_id": row.user_id,
        "contenido": row.contenido,
        "ticket_ref_id": row.ticket_ref_id,
        "anclado": row.anclado,
        "editado": row.editado,
        "created_at": row.created_at,
        "usuario_nombre": nombre,
        "archivos": [serialize_file(a) for a in row.archivos],
        "ticket": _ticket_ref(ticket),
    }


class ChatService:
    def __init__(self, db: Session, storage: Storage):
        self.db = db
        self.storage = storage

    def _get_canal(self, canal_id: int) -> ChatCanal:
        canal = self.db.get(ChatCanal, canal_id)
        if canal is None:
            raise NotFoundError("Canal no encontrado.")
        return canal

    def _require_member(self, canal_id: int, user: User) -> None:
        member = (
            self.db.query(ChatCanalMiembro)
            .filter(ChatCanalMiembro.canal_id == canal_id, ChatCanalMiembro.user_id == user.id)
            .first()
        )
        if member is None:
            raise AuthorizationError("No eres miembro de este canal.")

    def _upsert_members(self, canal_id: int, user_ids: Sequence[int]) -> None:
        # Existing members keep their role
        rows = [
            {"canal_id": canal_id, "user_id": uid, "rol": ROL_MIEMBRO}
            for uid in dict.fromkeys(user_ids)
        ]
        if not rows:
            return
        stmt = dialect_insert(self.db)(ChatCanalMiembro).values(rows)
        self.db.execute(stmt.on_conflict_do_nothing(index_elements=["canal_id", "user_id"]))

    def _commit_canal(self) -> None:
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Ya existe un canal con ese nombre.")

    # --- channels ----------------------------------------------------------

    def list_canales(self, user: User) -> List[Dict[str, Any]]:
        canales = (
            self.db.query(ChatCanal)
            .options(selectinload(ChatCanal.miembros))
            .join(ChatCanalMiembro, ChatCanalMiembro.canal_id == ChatCanal.id)
            .filter(ChatCanalMiembro.user_id == user.id)
            .order_by(ChatCanal.created_at.asc(), ChatCanal.id.asc())
            .all()
        )
        return [_serialize_canal(self.db, c) for c in canales]

    def create_canal(
        self,
        nombre: str,
        actor: User,
        descripcion: Optional[str] = None,
        tipo: str = "canal",
        miembros: Sequence[int] = (),
    ) -> Dict[str, Any]:
        if not (nombre or "").strip():
            raise ValidationError("El nombre es obligatorio.")
        canal = ChatCanal(
            nombre=slugify(nombre),
            descripcion=descripcion or None,
            tipo=tipo or "canal",
            creado_por=actor.id,
        )
        self.db.add(canal)
        self._commit_canal()

        self.db.add(ChatCanalMiembro(canal_id=canal.id, user_id=actor.id, rol=ROL_ADMIN))
        self.db.flush()
        self._upsert_members(canal.id, [uid for uid in miembros if uid != actor.id])
        self.db.commit()
        self.db.refresh(canal)
        return _serialize_canal(self.db, canal)

    def update_canal(
        self,
        canal_id: int,
        nombre: str,
        actor: User,
        descripcion: Optional[str] = None,
        miembros: Optional[Sequence[int]] = None,
    ) -> Dict[str, Any]:
        """Rename the channel; a `miembros` list replaces everyone except the caller."""
        if not (nombre or "").strip():
            raise ValidationError("El nombre es obligatorio.")
        canal = self._get_canal(canal_id)
        canal.nombre = slugify(nombre)
        canal.descripcion = descripcion or None
        self._commit_canal()

        if miembros is not None:
            self.db.query(ChatCanalMiembro).filter(
                ChatCanalMiembro.canal_id == canal_id,
                ChatCanalMiembro.user_id != actor.id,
            ).delete(synchronize_session=False)
            self._upsert_members(canal_id, [uid for uid in miembros if uid != actor.id])
            self.db.commit()

        self.db.refresh(canal)
        return _serialize_canal(self.db, canal)

    def delete_canal(self, canal_id: int) -> None:
        canal = self._get_canal(canal_id)
        paths = [a.nombre_storage for m in canal.mensajes for a in m.archivos]
        if paths:
            self.storage.delete(paths)
        self.db.delete(canal)
        self.db.commit()

    def add_miembros(self, canal_id: int, miembros: Sequence[int]) -> None:
        if not miembros:
            raise ValidationError("Debes proporcionar al menos un miembro.")
        self._get_canal(canal_id)
        self._upsert_members(canal_id, miembros)
        self.db.commit()

    # --- messages ----------------------------------------------------------

    def list_mensajes(
        self,
        canal_id: int,
        user: User,
        limit: int = DEFAULT_PAGE,
        before: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        self._require_member(canal_id, user)
        query = (
            self.db.query(ChatMensaje)
            .options(selectinload(ChatMensaje.archivos))
            .filter(ChatMensaje.canal_id == canal_id)
        )
        if before is not None:
            query = query.filter(ChatMensaje.created_at < before)
        rows = query.order_by(ChatMensaje.created_at.asc(), ChatMensaje.id.asc()).limit(limit).all()

        names = user_names(self.db, {m.user_id for m in rows})
        ref_ids = {m.ticket_ref_id for m in rows if m.ticket_ref_id}
        tickets = {}
        if ref_ids:
            tickets = {t.id: t for t in self.db.query(Ticket).filter(Ticket.id.in_(ref_ids))}
        return [
            _serialize_mensaje(m, names.get(m.user_id, "?"), tickets.get(m.ticket_ref_id))
            for m in rows
        ]

    def post_mensaje(
        self,
        canal_id: int,
        actor: User,
        contenido: str,
        files: List[UploadedFile],
        ticket_ref_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        contenido = (contenido or "").strip()
        if not contenido and not files:
            raise ValidationError("El mensaje debe tener contenido o archivos.")
        self._require_member(canal_id, actor)

        ticket = self.db.get(Ticket, ticket_ref_id) if ticket_ref_id else None
        mensaje = ChatMensaje(
            canal_id=canal_id,
            user_id=actor.id,
            contenido=contenido,
            ticket_ref_id=ticket.id if ticket else None,
        )
        self.db.add(mensaje)
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise UpstreamError(f"No se pudo enviar el mensaje: {exc.__class__.__name__}")
        self.db.refresh(mensaje)

        for upload in files:
            path = build_storage_path("chat", canal_id, mensaje.id, filename=upload.filename)
            try:
                self.storage.put(path, upload.content, upload.content_type)
            except UpstreamError as exc:
                logger.error("[Storage] Mensaje %s: %s", mensaje.id, exc.message)
                continue
            self.db.add(
                ChatMensajeArchivo(
                    mensaje_id=mensaje.id,
                    nombre_original=upload.filename,
                    nombre_storage=path,
                    mime_type=upload.content_type,
                    tamanio=upload.size,
                )
            )
            try:
                self.db.commit()
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.error("Error guardando archivo de chat %s: %s", mensaje.id, exc)
                try:
                    self.storage.delete([path])
                except UpstreamError as cleanup:
                    logger.error("[Storage] Objeto huérfano %s: %s", path, cleanup.message)

        self.db.refresh(mensaje)
        return _serialize_mensaje(mensaje, actor.display_name, ticket)

    def _get_mensaje(self, mensaje_id: int) -> ChatMensaje:
        mensaje = self.db.get(ChatMensaje, mensaje_id)
        if mensaje is None:
            raise NotFoundError("Mensaje no encontrado.")
        return mensaje

    def edit_mensaje(self, mensaje_id: int, contenido: str, actor: User) -> Dict[str, Any]:
        contenido = (contenido or "").strip()
        if not contenido:
            raise ValidationError("El contenido no puede estar vacío.")
        mensaje = self._get_mensaje(mensaje_id)
        if mensaje.user_id != actor.id:
            raise AuthorizationError("Solo puedes editar tus propios mensajes.")
        mensaje.contenido = contenido
        mensaje.editado = True
        self.db.commit()
        self.db.refresh(mensaje)
        return _serialize_mensaje(mensaje, actor.display_name, None)

    def pin_mensaje(self, mensaje_id: int, anclado: bool) -> Dict[str, Any]:
        mensaje = self._get_mensaje(mensaje_id)
        mensaje.anclado = anclado
        self.db.commit()
        return {"id": mensaje.id, "anclado": mensaje.anclado}

    def delete_mensaje(self, mensaje_id: int, actor: User) -> None:
        mensaje = self._get_mensaje(mensaje_id)
        if mensaje.user_id != actor.id and not actor.is_admin:
            raise AuthorizationError("Sin permisos para eliminar este mensaje.")
        paths = [a.nombre_storage for a in mensaje.archivos]
        if paths:
            self.storage.delete(paths)
        self.db.delete(mensaje)
        self.db.commit()
