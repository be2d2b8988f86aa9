"""Error types for AgentDuty."""

from typing import Optional


class AgentDutyError(Exception):
    """Base class for all AgentDuty errors."""


class TransportError(AgentDutyError):
    """Network or HTTP failure talking to the service."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AuthError(TransportError):
    """The service rejected our credentials."""


class ProtocolError(TransportError):
    """Malformed response, or a response carrying GraphQL errors.

    Subclasses TransportError so retry loops treat both the same way.
    """


class NotFoundError(AgentDutyError):
    """No such notification or session."""
