"""
core/errors.py -- Typed error taxonomy for the CyberDash core.

Every component raises one of these instead of a raw library exception, so
the transport layer can map failures to a uniform envelope without knowing
which store or parser produced them.

  ValidationError  -- malformed caller input. Never retried. HTTP 400.
  NotFoundError    -- the requested record or dashboard does not exist. HTTP 404.
  StoreError       -- connectivity or query failure in the relational store.
                      Logged by the store, surfaced with a generic message. HTTP 503.

"No data" is never an error: empty results are a normal operating condition
for a sparsely populated feed and are returned as zeroed payloads.

Layer rule: core/ is the kernel. This module imports nothing from api/,
feeds/, dashboards/, or metrics/.
"""

from typing import Optional


class CyberDashError(Exception):
    """Base class for every error the core surfaces to a caller."""

    code = "error"
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(CyberDashError):
    """Caller input failed validation. Carries the offending field name."""

    code = "validation_error"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None, detail: Optional[str] = None) -> None:
        super().__init__(message, detail=detail)
        self.field = field


class NotFoundError(CyberDashError):
    code = "not_found"
    status_code = 404

    def __init__(self, resource: str, identifier: object = None) -> None:
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} '{identifier}' not found"
        super().__init__(message)
        self.resource = resource


class StoreError(CyberDashError):
    """The relational store could not complete a query.

    The message is generic on purpose: the underlying driver error may
    contain SQL text or connection details and is only written to the log.
    """

    code = "store_unavailable"
    status_code = 503

    def __init__(self, operation: str = "query") -> None:
        super().__init__("The data store is unavailable.", detail=None)
        self.operation = operation
