"""
Permission checks for attendance operations.
"""
from ..models.models import User, UserRole, ShiftAssignment, MANAGER_ROLES


def is_manager(user: User) -> bool:
    """ADMIN, MANAGER and SUPERVISOR form the manager tier."""
    return user.role in MANAGER_ROLES


def is_subject(user: User, assignment: ShiftAssignment) -> bool:
    """True when the user is the one scheduled on the assignment."""
    return assignment.user_id == user.id


def get_user_role(user: User) -> str:
    return user.role.value if user.role else UserRole.EMPLOYEE.value
