# ticketdesk/backend/app/models/empresa.py
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base


class Empresa(Base):
    __tablename__ = "empresas"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(255), nullable=False, index=True)
    cif = Column(String(50), nullable=False)
    email = Column(String(255), nullable=True)
    telefono = Column(String(50), nullable=True)
    direccion = Column(Text, nullable=True)
    contactos = Column(JSON, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    dispositivos = relationship(
        "Dispositivo", back_populates="empresa", cascade="all, delete-orphan"
    )


class Dispositivo(Base):
    __tablename__ = "dispositivos"

    id = Column(Integer, primary_key=True, index=True)
    empresa_id = Column(
        Integer, ForeignKey("empresas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    nombre = Column(String(255), nullable=False)
    tipo = Column(String(100), nullable=True)
    categoria = Column(String(100), nullable=True, index=True)
    ip = Column(String(100), nullable=True)
    numero_serie = Column(String(255), nullable=True)
    notas = Column(Text, nullable=True)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    empresa = relationship("Empresa", back_populates="dispositivos")
