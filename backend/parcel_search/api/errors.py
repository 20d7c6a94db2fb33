from fastapi import HTTPException, status
from parcel_search.core.config import settings
from parcel_search.core.exceptions import (
    AuthorizationError, InfrastructureError, NotFoundError, ParcelSearchError, ValidationError
)


def to_http_exception(error: ParcelSearchError) -> HTTPException:
    """Map a core error onto the HTTP status callers act on"""
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())
    if isinstance(error, AuthorizationError):
        if settings.MASK_FORBIDDEN_AS_NOT_FOUND:
            return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={
                "error": "NotFoundError", "message": error.message, "details": error.details,
            })
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=error.to_dict())
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=error.to_dict())
    if isinstance(error, InfrastructureError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail={
            "error": "InfrastructureError", "message": "Search backend temporarily unavailable",
        })
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error.to_dict())
