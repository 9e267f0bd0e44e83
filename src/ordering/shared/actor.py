"""The authenticated principal performing an operation."""

from dataclasses import dataclass
from enum import Enum


class Role(Enum):
    CUSTOMER = "customer"
    VENDOR = "vendor"
    ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @classmethod
    def customer(cls, actor_id: str) -> "Actor":
        return cls(id=str(actor_id), role=Role.CUSTOMER)

    @classmethod
    def vendor(cls, actor_id: str) -> "Actor":
        return cls(id=str(actor_id), role=Role.VENDOR)

    @classmethod
    def admin(cls, actor_id: str) -> "Actor":
        return cls(id=str(actor_id), role=Role.ADMIN)
