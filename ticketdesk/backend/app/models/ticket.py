# ticketdesk/backend/app/models/ticket.py

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base


class Ticket(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    numero = Column(Integer, unique=True, nullable=False, index=True)

    asunto = Column(String(255), nullable=False)
    descripcion = Column(Text, nullable=True)
    notas = Column(Text, nullable=True)

    prioridad = Column(String(50), nullable=False, server_default="Media")
    estado = Column(String(50), nullable=False, server_default="Pendiente", index=True)

    empresa_id = Column(Integer, ForeignKey("empresas.id"), nullable=False, index=True)
    dispositivo_id = Column(
        Integer, ForeignKey("dispositivos.id", ondelete="SET NULL"), nullable=True
    )
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Lifecycle timestamps: each one is written at most once
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    invoiced_at = Column(DateTime(timezone=True), nullable=True)

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    empresa = relationship("Empresa")
    dispositivo = relationship("Dispositivo")

    asignaciones = relationship(
        "TicketAsignacion", back_populates="ticket", cascade="all, delete-orphan"
    )
    historial = relationship(
        "TicketHistorial",
        back_populates="ticket",
        cascade="all, delete-orphan",
        order_by="TicketHistorial.created_at",
    )
    horas = relationship(
        "TicketHora", back_populates="ticket", cascade="all, delete-orphan"
    )
    archivos = relationship(
        "TicketArchivo", back_populates="ticket", cascade="all, delete-orphan"
    )
    comentarios = relationship(
        "TicketComentario", back_populates="ticket", cascade="all, delete-orphan"
    )


class TicketAsignacion(Base):
    __tablename__ = "ticket_asignaciones"
    __table_args__ = (
        UniqueConstraint("ticket_id", "user_id", name="uq_ticket_asignacion"),
    )

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    asignado_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    asignado_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    ticket = relationship("Ticket", back_populates="asignaciones")


class TicketHora(Base):
    __tablename__ = "ticket_horas"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    horas = Column(Float, nullable=False)
    descripcion = Column(Text, nullable=True)
    fecha = Column(Date, nullable=False)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    ticket = relationship("Ticket", back_populates="horas")


class TicketArchivo(Base):
    __tablename__ = "ticket_archivos"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    nombre_original = Column(String(255), nullable=False)
    storage_path = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=True)
    tamanio = Column(Integer, nullable=True)
    subido_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    ticket = relationship("Ticket", back_populates="archivos")
