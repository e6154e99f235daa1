"""Exception hierarchy for the invigilation service.

Service functions raise these; the HTTP layer maps each one to a status code.
"""


class LabError(Exception):
    """Base exception for all invigilation service errors."""


class ValidationError(LabError):
    """Raised when one or more submitted fields are missing or invalid."""

    def __init__(self, errors: dict[str, str]):
        """Initialize the exception.

        Args:
            errors: Mapping of field name to a human readable message.
        """
        self.errors = dict(errors)
        super().__init__(
            "Invalid fields: " + ", ".join(sorted(self.errors))
        )


class ParseError(LabError):
    """Raised when a time range string is malformed."""

    def __init__(self, text: str, detail: str = "expected 'HH:MM - HH:MM'"):
        self.text = text
        super().__init__(f"Cannot parse time range {text!r}: {detail}")


class ConflictError(LabError):
    """Raised when a venue is already booked for an overlapping slot."""

    def __init__(self, venue: str, date: str, time: str):
        self.venue = venue
        self.date = date
        self.time = time
        super().__init__(
            f"Venue '{venue}' is not available on {date} at {time}"
        )


class TransitionError(LabError):
    """Raised when a status change is not allowed from the current status."""


class PermissionDeniedError(LabError):
    """Raised when the acting user may not perform an operation."""


class NotFoundError(LabError):
    """Raised when a requested document does not exist."""

    def __init__(self, collection: str, document_id: str):
        self.collection = collection
        self.document_id = document_id
        super().__init__(f"{collection} '{document_id}' not found")


class StoreError(LabError):
    """Raised when the document store fails to read or write."""
