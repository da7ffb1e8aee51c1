# ticketdesk/backend/app/schemas/ticket.py

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.lifecycle import TicketPriority, TicketStatus


class TicketCreate(BaseModel):
    empresa_id: int
    asunto: str = Field(..., min_length=1)
    descripcion: Optional[str] = None
    notas: Optional[str] = None
    prioridad: TicketPriority = TicketPriority.MEDIA
    estado: TicketStatus = TicketStatus.PENDIENTE
    dispositivo_id: Optional[int] = None
    # Operators to assign right away
    operarios: List[int] = []


class TicketUpdate(BaseModel):
    """Partial update: only the fields sent are touched."""

    asunto: Optional[str] = Field(None, min_length=1)
    descripcion: Optional[str] = None
    notas: Optional[str] = None
    prioridad: Optional[TicketPriority] = None
    estado: Optional[TicketStatus] = None
    dispositivo_id: Optional[int] = None


class TicketRead(BaseModel):
    id: int
    numero: int
    asunto: str
    descripcion: Optional[str] = None
    notas: Optional[str] = None
    prioridad: str
    estado: str
    empresa_id: int
    dispositivo_id: Optional[int] = None
    created_by: Optional[int] = None

    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    invoiced_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class NotasUpdate(BaseModel):
    notas: Optional[str] = None


class NotaInternaCreate(BaseModel):
    texto: str = ""


class AsignacionCreate(BaseModel):
    operarios: List[int] = []


class HoraCreate(BaseModel):
    horas: float = Field(..., gt=0)
    descripcion: Optional[str] = None
    fecha: Optional[date] = None
