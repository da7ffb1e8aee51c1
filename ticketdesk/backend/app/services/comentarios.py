# ticketdesk/backend/app/services/comentarios.py
import logging
from typing import Any, Dict, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..errors import AuthorizationError, NotFoundError, UpstreamError, ValidationError
from ..models.comentario import TicketComentario, TicketComentarioArchivo
from ..models.ticket import Ticket
from ..models.user import User
from .archivos import UploadedFile, serialize_file
from .historial import HistorialRecorder, user_names
from .lifecycle import HistorialTipo
from .storage import Storage, build_storage_path

logger = logging.getLogger(__name__)


def serialize_comentario(row: TicketComentario, nombre: str) -> Dict[str, Any]:
    return {
        "id": row.id,
        "ticket_id": row.ticket_id,
        "user_id": row.user_id,
        "contenido": row.contenido,
        "editado": row.editado,
        "created_at": row.created_at,
        "updated_at": row.updated_at,
        "usuario_nombre": nombre,
        "archivos": [serialize_file(a) for a in row.archivos],
    }


def list_comentarios(db: Session, ticket_id: int) -> List[Dict[str, Any]]:
    rows = (
        db.query(TicketComentario)
        .options(selectinload(TicketComentario.archivos))
        .filter(TicketComentario.ticket_id == ticket_id)
        .order_by(TicketComentario.created_at.asc(), TicketComentario.id.asc())
        .all()
    )
    names = user_names(db, {r.user_id for r in rows})
    return [serialize_comentario(r, names.get(r.user_id, "?")) for r in rows]


def add_comentario(
    db: Session,
    recorder: HistorialRecorder,
    storage: Storage,
    ticket_id: int,
    contenido: str,
    files: List[UploadedFile],
    actor: User,
) -> Dict[str, Any]:
    """
    Create a comment with optional attachments. The comment row is written
    first; attachments that fail are skipped and logged.
    """
    contenido = (contenido or "").strip()
    if not contenido and not files:
        raise ValidationError("El comentario debe tener texto o archivos.")
    if db.get(Ticket, ticket_id) is None:
        raise NotFoundError("Ticket no encontrado.")

    comentario = TicketComentario(ticket_id=ticket_id, user_id=actor.id, contenido=contenido)
    db.add(comentario)
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise UpstreamError(f"No se pudo crear el comentario: {exc.__class__.__name__}")
    db.refresh(comentario)

    for upload in files:
        path = build_storage_path("comentarios", comentario.id, filename=upload.filename)
        try:
            storage.put(path, upload.content, upload.content_type)
        except UpstreamError as exc:
            logger.error("[Storage] Comentario %s: %s", comentario.id, exc.message)
            continue
        db.add(
            TicketComentarioArchivo(
                comentario_id=comentario.id,
                nombre_original=upload.filename,
                nombre_storage=path,
                mime_type=upload.content_type,
                tamanio=upload.size,
                subido_by=actor.id,
            )
        )
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Error guardando archivo de comentario %s: %s", comentario.id, exc)
            try:
                storage.delete([path])
            except UpstreamError as cleanup:
                logger.error("[Storage] Objeto huérfano %s: %s", path, cleanup.message)

    recorder.append(
        ticket_id,
        actor.id,
        HistorialTipo.COMENTARIO,
        f"{actor.display_name} añadió un comentario",
        {"comentario_id": comentario.id},
    )
    db.refresh(comentario)
    return serialize_comentario(comentario, actor.display_name)


def delete_comentario(db: Session, storage: Storage, comentario_id: int, actor: User) -> None:
    comentario = db.get(TicketComentario, comentario_id)
    if comentario is None:
        raise NotFoundError("Comentario no encontrado.")
    if comentario.user_id != actor.id and not actor.is_admin:
        raise AuthorizationError("Sin permisos para eliminar este comentario.")

    paths = [a.nombre_storage for a in comentario.archivos]
    if paths:
        storage.delete(paths)
    db.delete(comentario)
    db.commit()
