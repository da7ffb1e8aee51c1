# ticketdesk/backend/app/models/chat.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base


class ChatCanal(Base):
    __tablename__ = "chat_canales"

    id = Column(Integer, primary_key=True, index=True)
    nombre = Column(String(100), unique=True, nullable=False)
    descripcion = Column(Text, nullable=True)
    tipo = Column(String(50), nullable=False, server_default="canal")
    creado_por = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    miembros = relationship(
        "ChatCanalMiembro", back_populates="canal", cascade="all, delete-orphan"
    )
    mensajes = relationship(
        "ChatMensaje", back_populates="canal", cascade="all, delete-orphan"
    )


class ChatCanalMiembro(Base):
    __tablename__ = "chat_canales_miembros"
    __table_args__ = (
        UniqueConstraint("canal_id", "user_id", name="uq_chat_canal_miembro"),
    )

    id = Column(Integer, primary_key=True, index=True)
    canal_id = Column(
        Integer, ForeignKey("chat_canales.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rol = Column(String(50), nullable=False, server_default="miembro")
    joined_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    canal = relationship("ChatCanal", back_populates="miembros")


class ChatMensaje(Base):
    __tablename__ = "chat_mensajes"

    id = Column(Integer, primary_key=True, index=True)
    canal_id = Column(
        Integer, ForeignKey("chat_canales.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    contenido = Column(Text, nullable=False, default="")
    ticket_ref_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="SET NULL"), nullable=True
    )
    anclado = Column(Boolean, nullable=False, default=False)
    editado = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False, index=True
    )

    canal = relationship("ChatCanal", back_populates="mensajes")
    archivos = relationship(
        "ChatMensajeArchivo", back_populates="mensaje", cascade="all, delete-orphan"
    )


class ChatMensajeArchivo(Base):
    __tablename__ = "chat_mensajes_archivos"

    id = Column(Integer, primary_key=True, index=True)
    mensaje_id = Column(
        Integer, ForeignKey("chat_mensajes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    nombre_original = Column(String(255), nullable=False)
    nombre_storage = Column(String(512), nullable=False)
    mime_type = Column(String(255), nullable=True)
    tamanio = Column(Integer, nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    mensaje = relationship("ChatMensaje", back_populates="archivos")
