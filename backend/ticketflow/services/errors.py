"""Domain errors raised by services and mapped to HTTP responses in main."""


class TicketflowError(Exception):
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(TicketflowError):
    """Missing or malformed input."""

    status_code = 400

    def __init__(self, message: str, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message)


class AuthError(TicketflowError):
    """401 for a missing or invalid credential, 403 for insufficient scope."""

    def __init__(self, message: str, status_code: int = 401):
        self.status_code = status_code
        super().__init__(message)


class NotFound(TicketflowError):
    status_code = 404


class InvalidTransition(TicketflowError):
    status_code = 400

    def __init__(self, current: str, target: str, allowed: list[str]):
        self.current = current
        self.target = target
        self.allowed = allowed
        allowed_text = ", ".join(allowed) if allowed else "none (terminal state)"
        super().__init__(
            f"Cannot transition from '{current}' to '{target}'. Allowed: {allowed_text}"
        )


class Conflict(TicketflowError):
    status_code = 409


class InternalError(TicketflowError):
    status_code = 500
