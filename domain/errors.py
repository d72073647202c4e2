from collections import namedtuple

FieldError = namedtuple("FieldError", ["field", "message"])


class ValidationFailed(Exception):
    """Raised with every offending field collected, before anything is written."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    def to_details(self):
        return [{"field": e.field, "message": e.message} for e in self.errors]


class CouponError(Exception):
    def __init__(self, message):
        self.message = message
        super().__init__(message)


class CapacityError(Exception):
    def __init__(self, field, message):
        self.field = field
        self.message = message
        super().__init__(message)


class BookingNotFound(LookupError):
    pass


class PaymentStateError(Exception):
    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Illegal payment transition {current} -> {target}")


class GatewayError(Exception):
    pass
