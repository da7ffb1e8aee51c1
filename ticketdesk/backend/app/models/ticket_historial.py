# ticketdesk/backend/app/models/ticket_historial.py

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base


class TicketHistorial(Base):
    """Append-only audit entry; rows go away only with their ticket."""

    __tablename__ = "ticket_historial"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # NULL means the entry was produced by the system
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    tipo = Column(String(50), nullable=False)
    descripcion = Column(Text, nullable=False)
    datos = Column(JSON, nullable=False, default=dict)

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    ticket = relationship("Ticket", back_populates="historial")
