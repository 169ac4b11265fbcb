"""
Custom exceptions for the Infrastructure layer.
"""
from typing import Optional


class InfrastructureError(Exception):
    """Base class for exceptions in the infrastructure layer."""
    pass


class ProviderError(InfrastructureError):
    """
    Failure reported by (or while talking to) an object storage provider.

    Transport, authentication, quota and malformed-response failures from
    every provider SDK are collapsed into this one type at the adapter boundary.
    """

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        self.message = message
        self.code = code
        self.status = status
        super().__init__(message)

    def __str__(self) -> str:
        details = []
        if self.status is not None:
            details.append(f"status={self.status}")
        if self.code:
            details.append(f"code={self.code}")
        if details:
            return f"{self.message} ({', '.join(details)})"
        return self.message


class NotFoundError(ProviderError):
    """Object or prefix does not exist."""
    pass


class ConfigurationError(InfrastructureError):
    """Required storage configuration is missing or invalid."""
    pass
