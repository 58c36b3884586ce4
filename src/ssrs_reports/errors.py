# SSRS Reports Client
# File: errors.py
# Version: v2

"""Error types raised by the SSRS reports client."""

from __future__ import annotations

from typing import Any, Optional


class ReportingServicesError(RuntimeError):
    """Base class for all errors raised by this package."""


class ConfigurationError(ReportingServicesError):
    """Raised when the client is not configured well enough to connect."""


class TransportFault(ReportingServicesError):
    """A remote call failed or the server answered with a SOAP fault.

    ``str(fault)`` is the SOAP faultstring when the server sent one,
    otherwise the underlying transport error message.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        fault_code: Optional[str] = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.fault_code = fault_code
        self.detail = detail


class ValidationError(ReportingServicesError):
    """Invalid caller input, raised before any remote call is made."""


class MissingParameterError(ValidationError):
    """A required report parameter has no value."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Parameter {name} cannot be undefined!")
        self.name = name
