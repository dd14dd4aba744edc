"""
VolkPass Errors — the error taxonomy shared by every component.

Session and recovery errors carry security meaning and are always surfaced
to the caller. Messages for authentication and verification failures are
fixed strings: they never say which field was wrong.
"""


class VolkpassError(Exception):
    """Base class for all errors raised by the VolkPass core."""

    default_message: str = "VolkPass error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidInput(VolkpassError, ValueError):
    """Empty or malformed fields, rejected before any collaborator call."""

    default_message = "Invalid input"


class AuthenticationFailed(VolkpassError):
    """Bad username or secret. The cause is intentionally not disclosed."""

    default_message = "Invalid credentials"

    def __init__(self, message: str | None = None) -> None:
        # callers may pass details for logs, the public message stays generic
        self.detail = message
        super().__init__(self.default_message)


class SecondFactorInvalid(VolkpassError):
    """Bad verification code or backup code. Session state is unchanged."""

    default_message = "Invalid verification code"

    def __init__(self, message: str | None = None) -> None:
        self.detail = message
        super().__init__(self.default_message)


class Unauthorized(VolkpassError):
    """The current session lacks the role or phase the operation requires."""

    default_message = "Not authorized"


class Conflict(VolkpassError):
    """A concurrent state mutation won, or the state no longer allows the call."""

    default_message = "Conflicting state change"


class InvalidPhase(Conflict):
    """The operation is not valid in the session's current phase."""

    default_message = "Operation not allowed in the current session phase"


class StaleTransition(Conflict):
    """A collaborator response arrived after a newer state change completed."""

    default_message = "Session changed while the request was in flight"


class Expired(VolkpassError):
    """A recovery token is past its expiry."""

    default_message = "Recovery request has expired"


class CollaboratorUnavailable(VolkpassError):
    """Transport or persistence failure. Safe to retry, never corrupts state."""

    default_message = "Backing service unavailable"


class RequestNotFound(InvalidInput):
    """No recovery request with the given id."""

    default_message = "Recovery request not found"


class RecordNotFound(InvalidInput):
    """No credential record with the given id."""

    default_message = "Credential record not found"
