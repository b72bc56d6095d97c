"""
Слой доступа: роль пользователя -> разрешенные операции.

Таблица CAPABILITIES - единственное место, где описаны права. Ученик (siswa)
дополнительно ограничен своими собственными данными.
"""

import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional
from .exceptions import ForbiddenError
from .models import UserRecord, UserRole

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Операции, доступ к которым проверяется."""
    VIEW_DASHBOARD = "view_dashboard"
    LIST_STUDENTS = "list_students"
    VIEW_STUDENT = "view_student"
    VIEW_OWN_PROFILE = "view_own_profile"
    MANAGE_STUDENTS = "manage_students"
    VERIFY_STUDENT = "verify_student"
    VIEW_GRADES = "view_grades"
    MANAGE_GRADES = "manage_grades"
    LIST_SUBJECTS = "list_subjects"
    MANAGE_SUBJECTS = "manage_subjects"
    VIEW_SETTINGS = "view_settings"
    MANAGE_SETTINGS = "manage_settings"
    MANAGE_USERS = "manage_users"
    CHANGE_OWN_PASSWORD = "change_own_password"
    DOWNLOAD_CERTIFICATE = "download_certificate"


CAPABILITIES: Dict[UserRole, FrozenSet[Operation]] = {
    UserRole.ADMIN: frozenset({
        Operation.VIEW_DASHBOARD,
        Operation.LIST_STUDENTS,
        Operation.VIEW_STUDENT,
        Operation.MANAGE_STUDENTS,
        Operation.VERIFY_STUDENT,
        Operation.VIEW_GRADES,
        Operation.MANAGE_GRADES,
        Operation.LIST_SUBJECTS,
        Operation.MANAGE_SUBJECTS,
        Operation.VIEW_SETTINGS,
        Operation.MANAGE_SETTINGS,
        Operation.MANAGE_USERS,
        Operation.CHANGE_OWN_PASSWORD,
        Operation.DOWNLOAD_CERTIFICATE,
    }),
    UserRole.GURU: frozenset({
        Operation.VIEW_DASHBOARD,
        Operation.LIST_STUDENTS,
        Operation.VIEW_STUDENT,
        Operation.VIEW_GRADES,
        Operation.MANAGE_GRADES,
        Operation.LIST_SUBJECTS,
        Operation.VIEW_SETTINGS,
        Operation.CHANGE_OWN_PASSWORD,
        Operation.DOWNLOAD_CERTIFICATE,
    }),
    UserRole.SISWA: frozenset({
        Operation.VIEW_STUDENT,
        Operation.VIEW_OWN_PROFILE,
        Operation.VIEW_GRADES,
        Operation.VIEW_SETTINGS,
        Operation.CHANGE_OWN_PASSWORD,
        Operation.DOWNLOAD_CERTIFICATE,
    }),
}

# Операции, в которых siswa видит только свою запись
OWN_RECORD_OPERATIONS = frozenset({
    Operation.VIEW_STUDENT,
    Operation.VIEW_GRADES,
    Operation.DOWNLOAD_CERTIFICATE,
})


class AccessPolicy:
    """Проверка прав по таблице CAPABILITIES."""

    def __init__(self, capabilities: Dict[UserRole, FrozenSet[Operation]] = None):
        self.capabilities = capabilities or CAPABILITIES

    def is_allowed(self, user: UserRecord, operation: Operation, student_id: Optional[int] = None) -> bool:
        """Возвращает True, если пользователь может выполнить операцию."""
        role = UserRole(user.role)
        if operation not in self.capabilities.get(role, frozenset()):
            return False

        # Без ID записи siswa не получает доступ к чужим данным
        if role == UserRole.SISWA and operation in OWN_RECORD_OPERATIONS:
            return student_id is not None and user.student_id == student_id

        return True

    def authorize(self, user: UserRecord, operation: Operation, student_id: Optional[int] = None):
        """
        Проверяет право на операцию.

        Args:
            user: Текущий пользователь
            operation: Операция
            student_id: ID ученика, к которому относится операция

        Raises:
            ForbiddenError: Если доступ запрещен
        """
        if not self.is_allowed(user, operation, student_id):
            logger.warning(
                f"Доступ запрещен: {user.username} ({UserRole(user.role).value}) -> {Operation(operation).value}"
                + (f" [ученик {student_id}]" if student_id is not None else "")
            )
            raise ForbiddenError("Akses ditolak")


access_policy = AccessPolicy()
