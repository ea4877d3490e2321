"""
Booking exceptions.

User-correctable situations (missing data, busy slot, ambiguous hour) are
answered in the chat reply and never raised. These exceptions cover the
cases where a stage has to abort.
"""


class BookingError(Exception):
    """Base class for booking pipeline failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class BarbershopNotFoundError(BookingError):
    """The barbershop id in the request does not exist."""

    def __init__(self, barbershop_id):
        super().__init__(f"Barbershop not found: {barbershop_id}")
        self.barbershop_id = barbershop_id


class SlotTakenError(BookingError):
    """Another booking landed on the slot between the check and the insert."""

    def __init__(self, employee_id, appointment_date, start_time):
        super().__init__(
            f"Slot {appointment_date} {start_time} already taken for employee {employee_id}"
        )
        self.employee_id = employee_id
        self.appointment_date = appointment_date
        self.start_time = start_time
