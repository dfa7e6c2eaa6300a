from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    MODERATOR = "moderator"
    MEMBER = "member"


MODERATION_ROLES = frozenset({Role.MODERATOR, Role.ADMIN})


@dataclass(frozen=True, slots=True)
class ActingUser:
    """Authenticated caller as supplied by the auth layer."""

    id: str
    tenant_id: str
    role: Role = Role.MEMBER
    name: str | None = None

    @property
    def can_moderate(self) -> bool:
        return self.role in MODERATION_ROLES


def parse_role(value: object) -> Role:
    if isinstance(value, str):
        try:
            return Role(value.strip().lower())
        except ValueError:
            pass
    return Role.MEMBER
