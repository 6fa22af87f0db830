"""Error types shared by the stores, services and the socket protocol."""


class MessagingError(Exception):
    """Base class for errors with a stable, client-facing error code."""

    code = "internal_error"

    def __init__(self, code: str | None = None, message: str | None = None):
        if code is not None:
            self.code = code
        super().__init__(message or self.code)


class ValidationError(MessagingError, ValueError):
    """Malformed or missing identifier or required field."""

    code = "invalid_request"


class NotFoundError(MessagingError):
    """Referenced conversation or message does not exist."""

    code = "not_found"


class ForbiddenError(MessagingError):
    """Caller may not act on the resource. Raised by the HTTP layer only."""

    code = "forbidden"


class DecodeError(MessagingError, ValueError):
    """Stored ciphertext envelope could not be decrypted."""

    code = "decode_error"


class PersistenceError(MessagingError):
    """A store operation failed."""

    code = "persistence_error"
