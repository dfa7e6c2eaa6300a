class EventBoardError(Exception):
    """Base error for event board operations."""


class NotFoundError(EventBoardError):
    """Raised when no entity exists for the id within the caller's tenant."""


class ForbiddenError(EventBoardError):
    """Raised when the actor's role or ownership does not permit the operation."""


class ConflictError(EventBoardError):
    """Raised when a transition targets the current state or a write lost a race."""


class BadRequestError(EventBoardError):
    """Raised for invalid transitions, cursors, or payload rules."""


class RepositoryUnavailableError(EventBoardError):
    """Raised when the database is unavailable or not configured."""
