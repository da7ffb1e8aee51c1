# ticketdesk/backend/app/schemas/empresa.py
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class EmpresaCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    cif: str = Field(..., min_length=1)
    email: Optional[str] = None
    telefono: Optional[str] = None
    direccion: Optional[str] = None
    contactos: Optional[Any] = None


class EmpresaUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    cif: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    telefono: Optional[str] = None
    direccion: Optional[str] = None
    contactos: Optional[Any] = None


class EmpresaRead(EmpresaCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DispositivoCreate(BaseModel):
    empresa_id: int
    nombre: str = Field(..., min_length=1)
    tipo: Optional[str] = None
    categoria: Optional[str] = None
    ip: Optional[str] = None
    numero_serie: Optional[str] = None
    notas: Optional[str] = None


class DispositivoUpdate(BaseModel):
    empresa_id: Optional[int] = None
    nombre: Optional[str] = Field(None, min_length=1)
    tipo: Optional[str] = None
    categoria: Optional[str] = None
    ip: Optional[str] = None
    numero_serie: Optional[str] = None
    notas: Optional[str] = None


class DispositivoRead(DispositivoCreate):
    id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
