# ticketdesk/backend/app/models/__init__.py

from .user import User
from .empresa import Empresa, Dispositivo
from .ticket import Ticket, TicketAsignacion, TicketHora, TicketArchivo
from .ticket_historial import TicketHistorial
from .comentario import TicketComentario, TicketComentarioArchivo
from .chat import ChatCanal, ChatCanalMiembro, ChatMensaje, ChatMensajeArchivo

__all__ = [
    "User",
    "Empresa",
    "Dispositivo",
    "Ticket",
    "TicketAsignacion",
    "TicketHora",
    "TicketArchivo",
    "TicketHistorial",
    "TicketComentario",
    "TicketComentarioArchivo",
    "ChatCanal",
    "ChatCanalMiembro",
    "ChatMensaje",
    "ChatMensajeArchivo",
]
