import typing


class LedgerError(Exception):
    """Base class for ledger failures. Each kind maps onto one HTTP status."""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: typing.Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class AuthFailed(LedgerError):
    status_code = 403
    default_message = "Invalid PIN"


class ValidationFailed(LedgerError):
    status_code = 400
    default_message = "Invalid code format"


class NotFound(LedgerError):
    status_code = 404
    default_message = "Not found"


class Forbidden(LedgerError):
    status_code = 403
    default_message = "Invalid or expired token"


class GenerationExhausted(LedgerError):
    """Raised when no unused value could be drawn within the retry budget."""
    status_code = 500
    default_message = "Could not generate unique code"
