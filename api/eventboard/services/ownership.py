from __future__ import annotations

from typing import Protocol, TypeVar

from eventboard.core.auth import ActingUser
from eventboard.services.errors import ForbiddenError
from eventboard.services.models import Event

ResourceT = TypeVar("ResourceT", contravariant=True)


class OwnerChecker(Protocol[ResourceT]):
    def is_owner(self, resource: ResourceT, actor: ActingUser) -> bool: ...


class EventOwnerChecker:
    """Only the creator owns an event, and only inside its own tenant."""

    def is_owner(self, resource: Event, actor: ActingUser) -> bool:
        return resource.tenant_id == actor.tenant_id and resource.is_owned_by(actor.id)


def ensure_owner(checker: OwnerChecker[ResourceT], resource: ResourceT, actor: ActingUser, message: str) -> None:
    if not checker.is_owner(resource, actor):
        raise ForbiddenError(message)
