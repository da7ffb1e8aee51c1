# ticketdesk/backend/app/models/user.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.sql import func

from ..db import Base

ROLE_ADMIN = "admin"
ROLE_WORKER = "trabajador"
ROLES = (ROLE_ADMIN, ROLE_WORKER)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    nombre = Column(String(255), nullable=False)
    password_hash = Column(String(255), nullable=False)
    rol = Column(String(50), nullable=False, server_default=ROLE_WORKER)
    activo = Column(Boolean, nullable=False, default=True, server_default="1")

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def is_admin(self) -> bool:
        return self.rol == ROLE_ADMIN

    @property
    def display_name(self) -> str:
        return self.nombre or self.email
