# ticketdesk/backend/app/errors.py
"""
Error taxonomy shared by services and routes.

Every error carries the HTTP status it maps to; main.py turns them into
the common {"error": ...} body.
"""


class TicketdeskError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(TicketdeskError):
    status_code = 400


class AuthenticationError(TicketdeskError):
    status_code = 401


class AuthorizationError(TicketdeskError):
    status_code = 403


class NotFoundError(TicketdeskError):
    status_code = 404


class ConflictError(TicketdeskError):
    status_code = 409


class UpstreamError(TicketdeskError):
    """Store, object storage or mail transport call failed."""

    status_code = 500
