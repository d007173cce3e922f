class GatepassError(Exception):
    """Base class for errors surfaced to API callers.

    ``code`` is the stable machine-readable kind, ``status_code`` the HTTP mapping.
    """

    code = "error"
    status_code = 400

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# Input errors: rejected before any state change, safe to retry after correction.

class InvalidRecipientError(GatepassError):
    code = "invalid_recipient"
    status_code = 400


# Policy/state errors: a real conflict with current state, re-fetch before retrying.

class TicketNotTransferableError(GatepassError):
    code = "not_transferable"
    status_code = 409


class NotOwnerError(GatepassError):
    code = "not_owner"
    status_code = 403


class AlreadyTransferredError(GatepassError):
    code = "already_transferred"
    status_code = 409


class NotFoundError(GatepassError):
    code = "not_found"
    status_code = 404


class TransferNotFoundError(NotFoundError):
    pass


class NotCancellableError(GatepassError):
    code = "not_cancellable"
    status_code = 409


class VerificationCodeError(GatepassError):
    code = "invalid_verification"
    status_code = 400


# Integrity errors: always fail closed.

class InvalidEntryTokenError(GatepassError):
    code = "invalid_token"
    status_code = 401

    def __init__(self, message: str = "Invalid entry token") -> None:
        super().__init__(message)


class ExpiredEntryTokenError(InvalidEntryTokenError):
    code = "expired_token"

    def __init__(self, message: str = "Entry token expired") -> None:
        super().__init__(message)


class EntryDeniedError(GatepassError):
    """Gate decision failure. ``reason`` is for server-side logs only."""

    code = "entry_denied"
    status_code = 403

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__("Entry denied")


# Storage failures that may succeed on retry (connectivity, serialization conflicts).

class TransientStoreError(GatepassError):
    code = "transient"
    status_code = 503

    def __init__(self, message: str = "Temporary storage failure, please retry") -> None:
        super().__init__(message)
