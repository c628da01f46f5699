"""Actors as seen by the core.

Authentication happens elsewhere. The core receives an already validated
actor id and role and only checks that the role may perform an operation.
"""

from dataclasses import dataclass
from enum import Enum

from protean.exceptions import ValidationError


class Role(Enum):
    DONOR = "donor"
    REQUESTER = "requester"
    PARTNER = "partner"
    OPERATOR = "operator"


@dataclass(frozen=True)
class Actor:
    actor_id: str
    role: Role

    @classmethod
    def parse(cls, actor_id: str | None, role: str | None) -> "Actor":
        errors = {}
        if not actor_id:
            errors["actor_id"] = ["Actor id is required"]
        try:
            parsed_role = Role((role or "").lower())
        except ValueError:
            errors["role"] = [f"Unknown role {role!r}"]
        if errors:
            raise ValidationError(errors)
        return cls(actor_id=actor_id, role=parsed_role)

    def require_role(self, *roles: Role) -> None:
        """Reject the actor unless it holds one of ``roles``. Operators may do anything."""
        if self.role == Role.OPERATOR or self.role in roles:
            return
        allowed = ", ".join(role.value for role in roles)
        raise ValidationError({"role": [f"Role {self.role.value} cannot perform this operation (needs {allowed})"]})
