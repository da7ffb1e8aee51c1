# ticketdesk/backend/app/schemas/usuario.py
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Rol = Literal["admin", "trabajador"]


class LoginRequest(BaseModel):
    email: str
    password: str


class UserRead(BaseModel):
    id: int
    email: str
    nombre: str
    rol: str
    activo: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    usuario: UserRead


class UserCreate(BaseModel):
    nombre: str = Field(..., min_length=1)
    email: EmailStr
    rol: Rol
    password: str = Field(..., min_length=6)


class UserUpdate(BaseModel):
    nombre: Optional[str] = Field(None, min_length=1)
    rol: Optional[Rol] = None
    activo: Optional[bool] = None


class OperarioRead(BaseModel):
    id: int
    nombre: str
    rol: str
    activo: bool

    model_config = ConfigDict(from_attributes=True)
