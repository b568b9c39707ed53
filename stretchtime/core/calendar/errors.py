"""Exceptions raised by the calendar integrations"""

from typing import Optional


class CalendarError(Exception):
    """Base class for calendar integration errors"""


class ConfigurationError(CalendarError):
    """A provider is missing required settings, such as its client ID."""


class AuthenticationError(CalendarError):
    """The interactive OAuth flow did not complete."""


class AuthorizationDeniedError(AuthenticationError):
    """The provider redirected back with an ``error`` parameter."""

    def __init__(self, error: str, description: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.description = description


class AuthenticationTimeoutError(AuthenticationError):
    """No redirect arrived before the flow timed out."""


class TokenExchangeError(AuthenticationError):
    """The token endpoint rejected an authorization code."""

    def __init__(self, status_code: int, body: str):
        super().__init__(f"Token exchange failed ({status_code}): {body}")
        self.status_code = status_code
        self.body = body
