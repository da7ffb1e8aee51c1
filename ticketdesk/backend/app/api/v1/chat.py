# ticketdesk/backend/app/api/v1/chat.py

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status

from ...auth import get_current_user, require_admin
from ...deps import get_chat_service
from ...models.user import User
from ...schemas.chat import CanalCreate, CanalUpdate, MensajeEdit, MensajePin, MiembrosAdd
from ...services.archivos import read_uploads
from ...services.chat_service import DEFAULT_PAGE, ChatService

router = APIRouter(prefix="/chat", tags=["chat"])


@router.get("/canales")
def list_canales(
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_canales(current_user)


@router.post("/canales", status_code=status.HTTP_201_CREATED)
def create_canal(
    payload: CanalCreate,
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    return service.create_canal(
        payload.nombre,
        current_user,
        descripcion=payload.descripcion,
        tipo=payload.tipo,
        miembros=payload.miembros,
    )


@router.put("/canales/{canal_id}")
def update_canal(
    canal_id: int,
    payload: CanalUpdate,
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(require_admin),
):
    return service.update_canal(
        canal_id,
        payload.nombre,
        current_user,
        descripcion=payload.descripcion,
        miembros=payload.miembros,
    )


@router.delete("/canales/{canal_id}")
def delete_canal(
    canal_id: int,
    service: ChatService = Depends(get_chat_service),
    _: User = Depends(require_admin),
):
    service.delete_canal(canal_id)
    return {"ok": True}


@router.post("/canales/{canal_id}/miembros")
def add_miembros(
    canal_id: int,
    payload: MiembrosAdd,
    service: ChatService = Depends(get_chat_service),
    _: User = Depends(get_current_user),
):
    service.add_miembros(canal_id, payload.miembros)
    return {"ok": True}


@router.get("/canales/{canal_id}/mensajes")
def list_mensajes(
    canal_id: int,
    limit: int = Query(DEFAULT_PAGE, ge=1, le=500),
    before: Optional[datetime] = None,
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    return service.list_mensajes(canal_id, current_user, limit=limit, before=before)


@router.post("/canales/{canal_id}/mensajes", status_code=status.HTTP_201_CREATED)
async def post_mensaje(
    canal_id: int,
    contenido: str = Form(""),
    ticket_ref_id: Optional[int] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    file_names: Optional[str] = Form(None),
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    uploads = await read_uploads(files, file_names)
    return service.post_mensaje(canal_id, current_user, contenido, uploads, ticket_ref_id)


@router.patch("/mensajes/{mensaje_id}")
def edit_mensaje(
    mensaje_id: int,
    payload: MensajeEdit,
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    return service.edit_mensaje(mensaje_id, payload.contenido, current_user)


@router.patch("/mensajes/{mensaje_id}/pin")
def pin_mensaje(
    mensaje_id: int,
    payload: MensajePin,
    service: ChatService = Depends(get_chat_service),
    _: User = Depends(get_current_user),
):
    return service.pin_mensaje(mensaje_id, payload.anclado)


@router.delete("/mensajes/{mensaje_id}")
def delete_mensaje(
    mensaje_id: int,
    service: ChatService = Depends(get_chat_service),
    current_user: User = Depends(get_current_user),
):
    service.delete_mensaje(mensaje_id, current_user)
    return {"ok": True}
