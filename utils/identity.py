"""Explicit acting-user context passed into every service call."""
from dataclasses import dataclass, field
from typing import FrozenSet

from flask_login import current_user

from utils.errors import Unauthorized


@dataclass(frozen=True)
class ActingUser:
    id: str
    role: str
    name: str = ""
    department_ids: FrozenSet[int] = field(default_factory=frozenset)

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"

    @property
    def is_staff(self) -> bool:
        return self.role == "STAFF"

    @property
    def is_privileged(self) -> bool:
        return self.role in ("ADMIN", "STAFF")

    @classmethod
    def from_user(cls, user) -> "ActingUser":
        return cls(
            id=user.id,
            role=user.role,
            name=user.name or "",
            department_ids=frozenset(d.id for d in user.departments),
        )


def acting_user(user=None) -> ActingUser:
    """Resolve the session user once at the request boundary."""
    user = user if user is not None else current_user
    if not user or not getattr(user, "is_authenticated", False):
        raise Unauthorized()
    return ActingUser.from_user(user)

