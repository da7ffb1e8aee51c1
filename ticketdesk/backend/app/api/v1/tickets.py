# ticketdesk/backend/app/api/v1/tickets.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...db import get_db
from ...deps import get_recorder, get_ticket_service, get_ticket_storage
from ...models.user import User
from ...schemas.ticket import (
    AsignacionCreate,
    HoraCreate,
    NotaInternaCreate,
    NotasUpdate,
    TicketCreate,
    TicketRead,
    TicketUpdate,
)
from ...services.archivos import read_uploads, serialize_file
from ...services.comentarios import add_comentario, list_comentarios
from ...services.historial import HistorialRecorder, list_for_ticket
from ...services.storage import Storage
from ...services.ticket_service import TicketService, serialize_nota_interna

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.get("/")
def list_tickets(
    estado: Optional[str] = None,
    prioridad: Optional[str] = None,
    empresa_id: Optional[int] = None,
    operario_id: Optional[int] = None,
    search: Optional[str] = None,
    desde: Optional[date] = None,
    hasta: Optional[date] = None,
    service: TicketService = Depends(get_ticket_service),
    _: User = Depends(get_current_user),
):
    return service.list_tickets(
        estado=estado,
        prioridad=prioridad,
        empresa_id=empresa_id,
        operario_id=operario_id,
        search=search,
        desde=desde,
        hasta=hasta,
    )


@router.get("/{ticket_id}")
def get_ticket(
    ticket_id: int,
    service: TicketService = Depends(get_ticket_service),
    _: User = Depends(get_current_user),
):
    return service.detail(ticket_id)


@router.post("/", response_model=TicketRead, status_code=status.HTTP_201_CREATED)
def create_ticket(
    payload: TicketCreate,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    return service.create(payload.model_dump(), current_user)


@router.put("/{ticket_id}", response_model=TicketRead)
def update_ticket(
    ticket_id: int,
    payload: TicketUpdate,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    return service.update(ticket_id, payload.model_dump(exclude_unset=True), current_user)


@router.delete("/{ticket_id}")
def delete_ticket(
    ticket_id: int,
    service: TicketService = Depends(get_ticket_service),
    storage: Storage = Depends(get_ticket_storage),
    _: User = Depends(require_admin),
):
    service.delete(ticket_id, storage)
    return {"ok": True}


# --- assignments ---------------------------------------------------------


@router.post("/{ticket_id}/asignaciones")
def assign_operators(
    ticket_id: int,
    payload: AsignacionCreate,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    records, nuevos = service.assign_operators(ticket_id, payload.operarios, current_user)
    return {"asignaciones": records, "nuevos": nuevos}


@router.delete("/{ticket_id}/asignaciones/{user_id}")
def unassign_operator(
    ticket_id: int,
    user_id: int,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    service.unassign_operator(ticket_id, user_id, current_user)
    return {"ok": True}


# --- notes and history ---------------------------------------------------


@router.put("/{ticket_id}/notas")
def update_notas(
    ticket_id: int,
    payload: NotasUpdate,
    service: TicketService = Depends(get_ticket_service),
    _: User = Depends(get_current_user),
):
    ticket = service.set_notas(ticket_id, payload.notas)
    return {"id": ticket.id, "notas": ticket.notas}


@router.post("/{ticket_id}/notas-internas", status_code=status.HTTP_201_CREATED)
def add_nota_interna(
    ticket_id: int,
    payload: NotaInternaCreate,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    entry = service.add_internal_note(ticket_id, payload.texto, current_user)
    return serialize_nota_interna(entry, current_user)


@router.get("/{ticket_id}/historial")
def get_historial(
    ticket_id: int,
    service: TicketService = Depends(get_ticket_service),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    service.get(ticket_id)
    return list_for_ticket(db, ticket_id)


# --- comments ------------------------------------------------------------


@router.get("/{ticket_id}/comentarios")
def get_comentarios(
    ticket_id: int,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return list_comentarios(db, ticket_id)


@router.post("/{ticket_id}/comentarios", status_code=status.HTTP_201_CREATED)
async def post_comentario(
    ticket_id: int,
    contenido: str = Form(""),
    files: Optional[List[UploadFile]] = File(None),
    file_names: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    recorder: HistorialRecorder = Depends(get_recorder),
    storage: Storage = Depends(get_ticket_storage),
    current_user: User = Depends(get_current_user),
):
    uploads = await read_uploads(files, file_names)
    return add_comentario(db, recorder, storage, ticket_id, contenido, uploads, current_user)


# --- attachments and hours ------------------------------------------------


@router.post("/{ticket_id}/archivos", status_code=status.HTTP_201_CREATED)
async def upload_archivos(
    ticket_id: int,
    files: Optional[List[UploadFile]] = File(None),
    file_names: Optional[str] = Form(None),
    service: TicketService = Depends(get_ticket_service),
    storage: Storage = Depends(get_ticket_storage),
    current_user: User = Depends(get_current_user),
):
    uploads = await read_uploads(files, file_names)
    saved = service.upload_files(ticket_id, uploads, current_user, storage)
    return [
        serialize_file(a, storage_path=a.storage_path, subido_by=a.subido_by) for a in saved
    ]


@router.post("/{ticket_id}/horas", status_code=status.HTTP_201_CREATED)
def log_horas(
    ticket_id: int,
    payload: HoraCreate,
    service: TicketService = Depends(get_ticket_service),
    current_user: User = Depends(get_current_user),
):
    hora = service.log_hours(
        ticket_id, payload.horas, current_user, payload.descripcion, payload.fecha
    )
    return {
        "id": hora.id,
        "ticket_id": hora.ticket_id,
        "user_id": hora.user_id,
        "horas": hora.horas,
        "descripcion": hora.descripcion,
        "fecha": hora.fecha,
        "usuario_nombre": current_user.display_name,
    }
