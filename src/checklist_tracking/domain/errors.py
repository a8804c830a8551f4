from __future__ import annotations


class ChecklistTrackingError(Exception):
    """Base class for errors raised by checklist_tracking."""


class InvalidTimeSlot(ChecklistTrackingError, ValueError):
    """Slot encoding is malformed or names an unknown standard slot."""


class InvalidRequest(ChecklistTrackingError, ValueError):
    """A required range or identifier parameter is missing or inconsistent."""


class Forbidden(ChecklistTrackingError, PermissionError):
    """Caller lacks the role required for the operation."""


class DependencyFailure(ChecklistTrackingError, RuntimeError):
    """An external collaborator (store, mail sender) failed."""


class EmailDeliveryError(DependencyFailure):
    pass
