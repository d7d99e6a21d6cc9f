"""
Role-based access control. One policy table maps role -> resource -> allowed actions;
routes declare the (resource, action) they need via check_permission.
"""

from typing import Dict, FrozenSet

from fastapi import Depends, HTTPException, status

from schoolhub.auth.dependencies import get_current_user
from schoolhub.auth.schemas import CurrentUser
from schoolhub.core.enums import UserRole

_STUDENT_WRITE = frozenset({"create", "update", "delete", "bulk", "promote", "graduate", "transfer"})
_ALL_STUDENT = _STUDENT_WRITE | {"list", "read"}
_CRUD = frozenset({"create", "list", "read", "update", "delete"})

# role -> resource -> actions. Anything absent is denied.
POLICY: Dict[str, Dict[str, FrozenSet[str]]] = {
    UserRole.ADMIN.value: {
        "students": _ALL_STUDENT,
        "users": frozenset({"create"}),
        "academic_years": _CRUD,
        "classes": _CRUD | {"assign_teacher"},
        "sections": _CRUD | {"recount"},
        "activity_logs": frozenset({"list"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.PRINCIPAL.value: {
        "students": _ALL_STUDENT,
        "academic_years": _CRUD,
        "classes": _CRUD | {"assign_teacher"},
        "sections": _CRUD | {"recount"},
        "activity_logs": frozenset({"list"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.TEACHER.value: {
        "students": frozenset({"list", "read"}),
        "academic_years": frozenset({"list", "read"}),
        "classes": frozenset({"list", "read"}),
        "sections": frozenset({"list", "read"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.ACCOUNTANT.value: {
        "students": frozenset({"list"}),
        "academic_years": frozenset({"list", "read"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.STUDENT.value: {
        "students": frozenset({"read"}),
        "academic_years": frozenset({"read"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.PARENT.value: {
        "students": frozenset({"read"}),
        "academic_years": frozenset({"read"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.LIBRARIAN.value: {
        "academic_years": frozenset({"read"}),
        "notifications": frozenset({"list", "update"}),
    },
    UserRole.RECEPTIONIST.value: {
        "academic_years": frozenset({"read"}),
        "notifications": frozenset({"list", "update"}),
    },
}


def is_allowed(role: str, resource: str, action: str) -> bool:
    if role == UserRole.SUPER_ADMIN.value:
        return True
    return action in POLICY.get(role, {}).get(resource, frozenset())


def check_permission(resource: str, action: str):
    """
    Dependency factory to enforce a specific permission.

    Example:
        Depends(check_permission("students", "promote"))
    """

    async def _checker(current_user: CurrentUser = Depends(get_current_user)) -> None:
        if not is_allowed(current_user.role, resource, action):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Role ({current_user.role}) is not allowed to access this resource",
            )

    return _checker
