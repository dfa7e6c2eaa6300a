from fastapi import HTTPException, status as http_status

from eventboard.services.errors import (
    BadRequestError,
    ConflictError,
    EventBoardError,
    ForbiddenError,
    NotFoundError,
    RepositoryUnavailableError,
)

_STATUS_BY_ERROR: tuple[tuple[type[EventBoardError], int], ...] = (
    (NotFoundError, http_status.HTTP_404_NOT_FOUND),
    (ForbiddenError, http_status.HTTP_403_FORBIDDEN),
    (ConflictError, http_status.HTTP_409_CONFLICT),
    (BadRequestError, http_status.HTTP_400_BAD_REQUEST),
    (RepositoryUnavailableError, http_status.HTTP_503_SERVICE_UNAVAILABLE),
)


def http_error(exc: EventBoardError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=http_status.HTTP_500_INTERNAL_SERVER_ERROR, detail="internal error")
