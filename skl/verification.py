"""
Машина состояний верификации ученика.

pending -> verified | rejected. Из конечных состояний допускается повторное
решение (в том числе то же самое), а возврат в pending выполняется только
явной отменой администратора с подтверждением.

Операции этого модуля доступны только администратору; роль проверяет слой
доступа (skl.access) до вызова.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, FrozenSet, Optional
from .database import SKLRepository
from .exceptions import InvalidTransitionError, StudentNotFoundError, ValidationError
from .models import StudentRecord, StudentStatus
from .validators import Validators

logger = logging.getLogger(__name__)

TRANSITIONS: Dict[StudentStatus, FrozenSet[StudentStatus]] = {
    StudentStatus.PENDING: frozenset({StudentStatus.VERIFIED, StudentStatus.REJECTED}),
    StudentStatus.VERIFIED: frozenset({StudentStatus.VERIFIED, StudentStatus.REJECTED, StudentStatus.PENDING}),
    StudentStatus.REJECTED: frozenset({StudentStatus.VERIFIED, StudentStatus.REJECTED, StudentStatus.PENDING}),
}


def can_transition(current: StudentStatus, target: StudentStatus) -> bool:
    """Проверяет, разрешен ли переход между статусами."""
    return target in TRANSITIONS.get(StudentStatus(current), frozenset())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VerificationService:
    """Сервис решений по верификации учеников."""

    def __init__(self, repository: SKLRepository, clock: Callable[[], datetime] = None):
        """
        Args:
            repository: Репозиторий SKL
            clock: Источник текущего времени (для тестов)
        """
        self.repository = repository
        self.clock = clock or _utcnow

    def submit_verification(self, student_id: int, decision, verifier_id: int,
                            notes: Optional[str] = None) -> StudentRecord:
        """
        Записывает решение администратора.

        Статус, проверяющий, время и примечание обновляются одним UPDATE:
        либо запись меняется целиком, либо не меняется совсем.

        Args:
            student_id: ID ученика
            decision: verified или rejected
            verifier_id: ID администратора
            notes: Примечание

        Returns:
            StudentRecord: Обновленный ученик

        Raises:
            ValidationError: При недопустимом решении
            StudentNotFoundError: Если ученик не найден
        """
        target = Validators.validate_decision(decision)
        notes = notes.strip() if notes and notes.strip() else None

        logger.info(f"Верификация ученика {student_id}: {target.value} (администратор {verifier_id})")

        student = self.repository.get_student(student_id)
        if student is None:
            logger.warning(f"Ученик {student_id} не найден для верификации")
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")

        current = StudentStatus(student.status)
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Perubahan status {current.value} -> {target.value} tidak diizinkan"
            )

        updated = self.repository.set_verification(
            student_id,
            status=target.value,
            verified_by=verifier_id,
            verification_date=self.clock(),
            notes=notes
        )

        if updated is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")

        logger.info(f"Ученик {student_id}: {current.value} -> {target.value}")
        return StudentRecord.model_validate(updated)

    def reopen_verification(self, student_id: int, actor_id: int, confirm: bool = False,
                            notes: Optional[str] = None) -> StudentRecord:
        """
        Возвращает ученика в статус pending (отмена решения администратором).

        Args:
            student_id: ID ученика
            actor_id: ID администратора
            confirm: Явное подтверждение
            notes: Причина

        Returns:
            StudentRecord: Ученик в статусе pending

        Raises:
            ValidationError: Без подтверждения
            InvalidTransitionError: Если ученик уже в pending
            StudentNotFoundError: Если ученик не найден
        """
        if confirm is not True:
            raise ValidationError("Pembatalan verifikasi harus dikonfirmasi")

        student = self.repository.get_student(student_id)
        if student is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")

        current = StudentStatus(student.status)
        if not can_transition(current, StudentStatus.PENDING):
            raise InvalidTransitionError(f"Siswa {student_id} masih berstatus {current.value}")

        logger.warning(f"Администратор {actor_id} вернул ученика {student_id} в pending (был {current.value})")

        updated = self.repository.set_verification(
            student_id,
            status=StudentStatus.PENDING.value,
            verified_by=None,
            verification_date=None,
            notes=notes.strip() if notes and notes.strip() else None
        )

        if updated is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")

        return StudentRecord.model_validate(updated)
