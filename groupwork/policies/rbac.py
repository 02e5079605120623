#groupwork/policies/rbac.py
from __future__ import annotations
from dataclasses import dataclass

from groupwork.core.errors import Forbidden
from groupwork.models.enums import PrincipalRole


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: PrincipalRole
    display_name: str

    @property
    def is_lecturer(self) -> bool:
        return self.role == PrincipalRole.LECTURER


def require_lecturer(principal: Principal) -> None:
    if not principal.is_lecturer:
        raise Forbidden("Only lecturers may perform this action.")


def require_student(principal: Principal) -> None:
    if principal.role != PrincipalRole.STUDENT:
        raise Forbidden("Only students may perform this action.")
