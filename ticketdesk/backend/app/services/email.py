# ticketdesk/backend/app/services/email.py
"""
Assignment notifications by email.

Each recipient is an independent attempt: failures are collected and
logged, never raised, so one bad address cannot stop the others or fail
the assignment that triggered them.
"""

import html
import logging
import smtplib
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from typing import Any, List, Optional, Sequence

from .. import config

logger = logging.getLogger(__name__)

PRIORITY_COLORS = {
    "Urgente": "#dc2626",
    "Alta": "#d97706",
    "Media": "#2563eb",
    "Baja": "#059669",
}
DEFAULT_COLOR = "#64748b"

MESES = [
    "enero", "febrero", "marzo", "abril", "mayo", "junio",
    "julio", "agosto", "septiembre", "octubre", "noviembre", "diciembre",
]


@dataclass
class Recipient:
    id: int
    nombre: str
    email: Optional[str]


@dataclass
class DeliveryResult:
    recipient: Recipient
    ok: bool
    error: Optional[str] = None


class Mailer:
    def send(self, to: str, subject: str, html_body: str) -> None:
        raise NotImplementedError


class SmtpMailer(Mailer):
    def __init__(self, host: str, port: int, user: Optional[str], password: Optional[str], sender: Optional[str]):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user

    def send(self, to: str, subject: str, html_body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content("Este mensaje requiere un cliente con soporte HTML.")
        msg.add_alternative(html_body, subtype="html")

        smtp_cls = smtplib.SMTP_SSL if self.port == 465 else smtplib.SMTP
        with smtp_cls(self.host, self.port, timeout=30) as smtp:
            if smtp_cls is smtplib.SMTP:
                smtp.starttls()
            if self.user:
                smtp.login(self.user, self.password or "")
            smtp.send_message(msg)


def mailer_from_config() -> Optional[Mailer]:
    if not config.EMAIL_HOST:
        logger.warning("[Email] EMAIL_HOST no configurado; notificaciones desactivadas")
        return None
    return SmtpMailer(
        host=config.EMAIL_HOST,
        port=config.EMAIL_PORT,
        user=config.EMAIL_USER,
        password=config.EMAIL_PASS,
        sender=config.EMAIL_FROM,
    )


def format_fecha(value: Optional[datetime]) -> str:
    if value is None:
        return "—"
    return f"{value.day:02d} de {MESES[value.month - 1]} de {value.year}"


def render_assignment_email(recipient: Recipient, ticket: Any, empresa: str) -> tuple:
    """Build (subject, html) for the "ticket assigned to you" message."""
    esc = html.escape
    color = PRIORITY_COLORS.get(ticket.prioridad, DEFAULT_COLOR)
    ticket_url = f"{config.FRONTEND_URL}/tickets"
    descripcion = ""
    if ticket.descripcion:
        descripcion = f"""
            <div style="background:#fafafa;border:1px solid #e0e0e0;padding:14px 16px;margin-bottom:24px;">
              <p style="margin:0 0 4px;color:#888888;font-size:11px;text-transform:uppercase;">Descripcion</p>
              <p style="margin:0;color:#444444;font-size:14px;line-height:1.6;">{esc(ticket.descripcion)}</p>
            </div>"""

    body = f"""<!DOCTYPE html>
<html lang="es">
  <head><meta charset="UTF-8"></head>
  <body style="margin:0;padding:32px 0;background:#f4f4f4;font-family:Arial,sans-serif;">
    <div style="max-width:540px;margin:0 auto;background:#ffffff;border:1px solid #e0e0e0;">
      <div style="background:#0047b3;padding:24px 32px;">
        <p style="margin:0 0 4px;color:#a8c4f0;font-size:11px;text-transform:uppercase;">Sistema de Tickets</p>
        <p style="margin:0;color:#ffffff;font-size:22px;font-weight:bold;">Ticketdesk</p>
      </div>
      <div style="padding:32px;">
        <p style="margin:0 0 6px;color:#333333;font-size:15px;">Hola, <strong>{esc(recipient.nombre or recipient.email or "")}</strong></p>
        <p style="margin:0 0 24px;color:#555555;font-size:14px;">Se te ha asignado el ticket <strong>#{ticket.numero}</strong>. A continuacion tienes los detalles.</p>
        <div style="background:#f0f4ff;border-left:3px solid #0047b3;padding:14px 16px;margin-bottom:20px;">
          <p style="margin:0 0 3px;color:#666666;font-size:11px;text-transform:uppercase;">Asunto</p>
          <p style="margin:0;color:#111111;font-size:16px;font-weight:bold;">{esc(ticket.asunto)}</p>
        </div>
        <table width="100%" cellpadding="12" cellspacing="0" style="border:1px solid #e0e0e0;margin-bottom:24px;">
          <tr>
            <td><small>EMPRESA</small><br><strong>{esc(empresa or "—")}</strong></td>
            <td><small>PRIORIDAD</small><br><span style="color:#ffffff;background:{color};padding:2px 10px;">{esc(ticket.prioridad)}</span></td>
          </tr>
          <tr>
            <td><small>ESTADO</small><br>{esc(ticket.estado)}</td>
            <td><small>FECHA</small><br>{format_fecha(ticket.created_at)}</td>
          </tr>
        </table>{descripcion}
        <p style="text-align:center;">
          <a href="{ticket_url}" style="display:inline-block;background:#0047b3;color:#ffffff;text-decoration:none;padding:13px 36px;font-weight:bold;">Ver ticket #{ticket.numero}</a>
        </p>
      </div>
      <div style="background:#f4f4f4;border-top:1px solid #e0e0e0;padding:16px 32px;">
        <p style="margin:0;color:#999999;font-size:12px;text-align:center;">
          Este correo se ha generado automaticamente. No respondas a este mensaje.<br>
          &copy; {datetime.now().year} Ticketdesk
        </p>
      </div>
    </div>
  </body>
</html>"""
    subject = f"Ticket #{ticket.numero} asignado: {ticket.asunto}"
    return subject, body


def notify_assignment(
    mailer: Optional[Mailer],
    recipients: Sequence[Recipient],
    ticket: Any,
    empresa: str,
) -> List[DeliveryResult]:
    """Send one email per recipient and report every outcome."""
    if mailer is None:
        return []

    results: List[DeliveryResult] = []
    for recipient in recipients:
        if not recipient.email:
            results.append(DeliveryResult(recipient, ok=False, error="sin email"))
            continue
        try:
            subject, body = render_assignment_email(recipient, ticket, empresa)
            mailer.send(recipient.email, subject, body)
            results.append(DeliveryResult(recipient, ok=True))
        except Exception as exc:
            logger.warning("[Email] Fallo enviando a %s: %s", recipient.nombre, exc)
            results.append(DeliveryResult(recipient, ok=False, error=str(exc)))

    sent = sum(1 for r in results if r.ok)
    logger.info("[Email] Ticket #%s: %d/%d notificaciones enviadas", ticket.numero, sent, len(results))
    return results
