"""Domain errors raised by the store layer.

The API and MCP surfaces translate these into responses; the store layer never
builds HTTP errors itself.
"""


class ShelfwiseError(Exception):
    """Base class for expected, user-facing failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ShelfwiseError):
    """Record does not exist or is outside the caller's organization.

    The two cases share one message so existence never leaks across tenants.
    """


class StateConflictError(ShelfwiseError):
    """Operation is not allowed in the record's current status."""


class ValidationError(ShelfwiseError):
    """Input is well-formed but rejected by a domain rule."""
