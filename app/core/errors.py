"""Family board error hierarchy.

All board-specific errors inherit from FamilyBoardError; the API layer maps
each one to a status code.
"""


class FamilyBoardError(Exception):
    """Base error for all board operations."""

    status_code = 500


class ValidationError(FamilyBoardError):
    """Request payload is missing a required field."""

    status_code = 400


class MemberNotFoundError(FamilyBoardError):
    """No current status exists for the requested member."""

    status_code = 404

    def __init__(self, name: str):
        super().__init__(f"Member not found: {name}")
        self.name = name


class StoreError(FamilyBoardError):
    """The durable store could not be read or written."""


class MirrorError(FamilyBoardError):
    """The legacy JSON mirror could not be read or written."""


class RegistryFullError(FamilyBoardError):
    """Subscriber registry is at capacity."""

    status_code = 503


class ChannelClosedError(FamilyBoardError):
    """A subscriber channel no longer accepts frames."""


class StreamTransportError(FamilyBoardError):
    """Client-side stream failed (bad status, server closed the stream)."""
