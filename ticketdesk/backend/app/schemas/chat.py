# ticketdesk/backend/app/schemas/chat.py
from typing import List, Optional

from pydantic import BaseModel, Field, StrictBool


class CanalCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    descripcion: Optional[str] = None
    tipo: str = "canal"
    miembros: List[int] = []


class CanalUpdate(BaseModel):
    nombre: str = Field(..., min_length=1)
    descripcion: Optional[str] = None
    # None leaves membership untouched; a list replaces it
    miembros: Optional[List[int]] = None


class MiembrosAdd(BaseModel):
    miembros: List[int] = []


class MensajeEdit(BaseModel):
    contenido: str = ""


class MensajePin(BaseModel):
    anclado: StrictBool
