# ticketdesk/backend/app/api/v1/recursos.py
"""Signed URLs, downloads and owner-or-admin deletes for ticket resources."""

from fastapi import APIRouter, Depends
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from ... import config
from ...auth import get_current_user
from ...db import get_db
from ...deps import get_chat_storage, get_ticket_storage
from ...errors import AuthorizationError, NotFoundError
from ...models.chat import ChatMensajeArchivo
from ...models.comentario import TicketComentarioArchivo
from ...models.ticket import TicketArchivo, TicketHora
from ...models.user import User
from ...services.comentarios import delete_comentario
from ...services.storage import Storage, read_download_token

router = APIRouter(prefix="/recursos", tags=["recursos"])


def _signed(storage: Storage, path: str, archivo) -> dict:
    return {
        "url": storage.signed_url(path, config.SIGNED_URL_TTL),
        "nombre": archivo.nombre_original,
        "mime_type": archivo.mime_type,
    }


@router.get("/archivos/{archivo_id}/url")
def ticket_file_url(
    archivo_id: int,
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_ticket_storage),
    _: User = Depends(get_current_user),
):
    archivo = db.get(TicketArchivo, archivo_id)
    if archivo is None:
        raise NotFoundError("Archivo no encontrado")
    return _signed(storage, archivo.storage_path, archivo)


@router.delete("/archivos/{archivo_id}")
def delete_ticket_file(
    archivo_id: int,
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_ticket_storage),
    current_user: User = Depends(get_current_user),
):
    archivo = db.get(TicketArchivo, archivo_id)
    if archivo is None:
        raise NotFoundError("Archivo no encontrado")
    if archivo.subido_by != current_user.id and not current_user.is_admin:
        raise AuthorizationError("Sin permisos para eliminar este archivo.")

    storage.delete([archivo.storage_path])
    db.delete(archivo)
    db.commit()
    return {"ok": True}


@router.delete("/comentarios/{comentario_id}")
def remove_comentario(
    comentario_id: int,
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_ticket_storage),
    current_user: User = Depends(get_current_user),
):
    delete_comentario(db, storage, comentario_id, current_user)
    return {"ok": True}


@router.get("/comentarios/archivos/{archivo_id}/url")
def comment_file_url(
    archivo_id: int,
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_ticket_storage),
    _: User = Depends(get_current_user),
):
    archivo = db.get(TicketComentarioArchivo, archivo_id)
    if archivo is None:
        raise NotFoundError("Archivo no encontrado.")
    return _signed(storage, archivo.nombre_storage, archivo)


@router.delete("/horas/{hora_id}")
def delete_hora(
    hora_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    hora = db.get(TicketHora, hora_id)
    if hora is None:
        raise NotFoundError("No encontrado")
    if hora.user_id != current_user.id and not current_user.is_admin:
        raise AuthorizationError("Sin permisos.")
    db.delete(hora)
    db.commit()
    return {"ok": True}


@router.get("/chat/archivos/{archivo_id}/url")
def chat_file_url(
    archivo_id: int,
    db: Session = Depends(get_db),
    storage: Storage = Depends(get_chat_storage),
    _: User = Depends(get_current_user),
):
    archivo = db.get(ChatMensajeArchivo, archivo_id)
    if archivo is None:
        raise NotFoundError("Archivo no encontrado.")
    return _signed(storage, archivo.nombre_storage, archivo)


@router.get("/descargas/{token}")
def download(
    token: str,
    ticket_storage: Storage = Depends(get_ticket_storage),
    chat_storage: Storage = Depends(get_chat_storage),
):
    """The signed token is the credential; no bearer token needed."""
    bucket, path = read_download_token(token)
    storages = {s.bucket: s for s in (ticket_storage, chat_storage)}
    storage = storages.get(bucket)
    if storage is None:
        raise NotFoundError("Archivo no encontrado.")
    target = storage.open_path(path)
    return FileResponse(target, filename=target.name)
