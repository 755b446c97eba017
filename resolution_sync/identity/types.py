"""Identity types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Role(Enum):
    """Principal roles."""

    ADMIN = "admin"
    USER = "user"


@dataclass(frozen=True)
class Principal:
    """The signed-in actor.

    Attributes:
        id: Stable user identifier, used as owner_id on records
        role: Admin or regular user
        name: Display name
        dept: Department label, informational only
    """

    id: str
    role: Role = Role.USER
    name: str = ""
    dept: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role.value, "name": self.name, "dept": self.dept}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Principal:
        role_value = str(data.get("role") or Role.USER.value).lower()
        try:
            role = Role(role_value)
        except ValueError as e:
            raise ValueError(f"Unknown role: {data.get('role')!r}") from e
        principal_id = data.get("id") or data.get("user_id")
        if not principal_id:
            raise ValueError("Principal requires an id")
        return cls(
            id=str(principal_id),
            role=role,
            name=str(data.get("name") or data.get("display_name") or ""),
            dept=str(data.get("dept") or ""),
        )
