# barbershop/errors.py
"""
Typed failures raised by the booking services.

Routers never build HTTP errors for domain outcomes themselves; the exception
handler in main.py turns these into responses using ``status_code`` and
forwards ``extra`` into the JSON body.
"""


class BookingError(Exception):
    status_code = 400

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ValidationFailure(BookingError):
    status_code = 400


class InvalidCode(BookingError):
    status_code = 400


class SessionExpired(BookingError):
    status_code = 400


class NotFound(BookingError):
    status_code = 404


class ClientBlocked(BookingError):
    status_code = 403


class SlotConflict(BookingError):
    status_code = 409


class BlockConflict(BookingError):
    status_code = 409


class InvalidTransition(BookingError):
    status_code = 409


class QuotaExceeded(BookingError):
    status_code = 429


class DeliveryFailed(BookingError):
    status_code = 502
