"""
Error taxonomy shared by the search core and its HTTP surface.

Callers distinguish caller-fixable input errors (ValidationError) from
failures to serve the request (InfrastructureError); only the latter is
worth retrying.
"""
from typing import Any, Dict, Optional


class ParcelSearchError(Exception):
    """Base class for all parcel search errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(ParcelSearchError):
    """Malformed or out-of-range input, never retried"""

    def __init__(self, message: str, field: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data


class AuthorizationError(ParcelSearchError):
    """Operation attempted on a resource the caller does not own"""


class NotFoundError(ParcelSearchError):
    """Referenced location, feature or property does not exist"""


class InfrastructureError(ParcelSearchError):
    """Store unavailable, geography extension missing or timed out"""
