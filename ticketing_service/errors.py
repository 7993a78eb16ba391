"""
errors.py — Error Types Surfaced to the Caller

Every rejection in the purchase flow is raised as a PurchaseError subclass.
The FastAPI app renders all of them in the same envelope:
{"status": "error", "message": <text>}.
"""

import enum


class PurchaseError(Exception):
    """Base class for errors that end a purchase with an HTTP response."""
    status_code = 500

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class BadRequest(PurchaseError):
    status_code = 400


class TicketsSoldOut(PurchaseError):
    status_code = 410


class ServerError(PurchaseError):
    status_code = 500


class ErrorKind(enum.Enum):
    """Tag distinguishing structured processor errors from everything else."""
    PROCESSOR = "processor"
    TRANSPORT = "transport"


class PaymentProcessorError(Exception):
    """
    Raised by PaymentProcessorClient for any failed call.

    Attributes:
        kind (ErrorKind): PROCESSOR if the processor answered with a
            structured error body, TRANSPORT otherwise.
        message (str | None): The processor's own message (PROCESSOR only).
        status_code (int | None): HTTP status of the processor response.
    """

    def __init__(self, detail: str, kind: ErrorKind = ErrorKind.TRANSPORT,
                 message: str = None, status_code: int = None):
        super().__init__(detail)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    def user_message(self) -> str:
        """The processor's message for structured errors, else the generic error text."""
        if self.kind is ErrorKind.PROCESSOR and self.message:
            return self.message
        return str(self)
