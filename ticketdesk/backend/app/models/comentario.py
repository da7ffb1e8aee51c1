# ticketdesk/backend/app/models/comentario.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base


class TicketComentario(Base):
    __tablename__ = "ticket_comentarios"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    contenido = Column(Text, nullable=False, default="")
    editado = Column(Boolean, nullable=False, default=False)

    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    ticket = relationship("Ticket", back_populates="comentarios")
    archivos = relationship(
        "TicketComentarioArchivo",
        back_populates="comentario",
        cascade="all, delete-orphan",
    )


class TicketComentarioArchivo(Base):
    __tablename__ = "ticket_comentarios_archivos"

    id = Column(Integer, primary_key=True, index=True)
    comentario_id = Column(
        Integer,
        ForeignKey("ticket_comentarios.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    nombre_original = Column(String(255), nullable=False)
    nombre_storage = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=True)
    tamanio = Column(Integer, nullable=True)
    subido_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    comentario = relationship("TicketComentario", back_populates="archivos")
