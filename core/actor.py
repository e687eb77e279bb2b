# core/actor.py
"""
The pre-authenticated caller of a workflow operation.

Authentication happens outside the engine; every operation receives a
`current_actor` callable and trusts what it returns.
"""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, Optional

from core.errors import PermissionDenied


class Role(str, Enum):
    ADMIN = "admin"
    TEACHER = "teacher"
    PARENT = "parent"


@dataclass(frozen=True)
class Actor:
    id: str
    role: Role
    email: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER


ActorProvider = Callable[[], Actor]


def require_role(actor: Actor, allowed: Iterable[Role], action: str) -> None:
    allowed = set(allowed)
    if actor.role not in allowed:
        names = ", ".join(sorted(r.value for r in allowed))
        raise PermissionDenied(f"{action} requires one of: {names} (caller is {actor.role.value})")
