"""Domain error taxonomy for the fleet back office.

Validation, not-found and conflict errors abort an operation before any
write and are mapped to HTTP status codes by the application.  A
:class:`SideEffectError` describes a failure that happened *after* the
primary write succeeded; it is logged and reported through
:class:`~fleet_api.engine.side_effects.SideEffectResult`, never raised to
the caller.
"""

from __future__ import annotations

from collections.abc import Iterable


class FleetError(Exception):
    """Base class for all domain errors."""


class RecordValidationError(FleetError):
    """A required field is missing or a value is out of range."""


class RecordNotFoundError(FleetError):
    """A record, or a record it references, does not exist."""

    def __init__(self, entity: str, record_id: str, *, field: str = "id") -> None:
        self.entity = entity
        self.record_id = record_id
        self.field = field
        super().__init__(f"{entity} with {field} '{record_id}' not found")


class ConflictError(FleetError):
    """A unique key is already taken or the target is in the wrong state."""


class InvoiceLockedError(ConflictError):
    """Line items cannot be changed while the invoice is in its current status."""

    def __init__(self, invoice_id: str, status: str, allowed: Iterable[str]) -> None:
        self.invoice_id = invoice_id
        self.status = status
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invoice '{invoice_id}' is {status}; line items can only be changed "
            f"while the invoice is {' or '.join(self.allowed)}"
        )


class ConcurrentModificationError(FleetError):
    """A conditional write lost the race against another writer."""

    def __init__(self, entity: str, record_id: str, expected_version: int) -> None:
        self.entity = entity
        self.record_id = record_id
        self.expected_version = expected_version
        super().__init__(f"{entity} '{record_id}' changed since version {expected_version} was read")


class SideEffectError(FleetError):
    """A best-effort step failed after the primary write was stored."""

    def __init__(self, step: str, cause: BaseException) -> None:
        self.step = step
        self.cause = cause
        super().__init__(f"{step} failed: {cause}")


class VinDecodeError(FleetError):
    """The vehicle identification service could not decode a VIN."""
