"""
Модуль валидации входных данных SKL.
"""

import math
from pathlib import Path
from typing import Optional
from .exceptions import *
from .generator import TEMPLATE_FIELDS, template_fields
from .models import StudentStatus, UserRole

GRADE_MIN = 0
GRADE_MAX = 100

MAX_IMAGE_SIZE = 10 * 1024 * 1024

# Допустимые расширения изображений и их сигнатуры
IMAGE_SIGNATURES = {
    ".png": b"\x89PNG\r\n\x1a\n",
    ".jpg": b"\xff\xd8\xff",
    ".jpeg": b"\xff\xd8\xff",
}

# Решения, которые может принять администратор
DECISIONS = frozenset({StudentStatus.VERIFIED.value, StudentStatus.REJECTED.value})


class Validators:
    """Набор проверок входных данных."""

    @staticmethod
    def validate_decision(decision) -> StudentStatus:
        """
        Проверяет решение верификации.

        Args:
            decision: verified или rejected

        Returns:
            StudentStatus: Нормализованное решение

        Raises:
            DecisionValidationError: При недопустимом значении
        """
        if isinstance(decision, StudentStatus):
            decision = decision.value

        if not isinstance(decision, str) or decision.strip().lower() not in DECISIONS:
            raise DecisionValidationError(
                f"Keputusan verifikasi tidak valid: {decision!r}. Gunakan 'verified' atau 'rejected'"
            )

        return StudentStatus(decision.strip().lower())

    @staticmethod
    def validate_grade_value(value) -> float:
        """
        Проверяет значение оценки.

        Raises:
            GradeValidationError: Если значение не число или вне диапазона 0-100
        """
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise GradeValidationError(f"Nilai harus berupa angka: {value!r}")

        if math.isnan(value) or not (GRADE_MIN <= value <= GRADE_MAX):
            raise GradeValidationError(f"Nilai harus di antara {GRADE_MIN} dan {GRADE_MAX}: {value}")

        return float(value)

    @staticmethod
    def validate_user_role(role, student_id: Optional[int]) -> UserRole:
        """
        Проверяет связку роли и ученика.

        Пользователь siswa ссылается ровно на одного ученика, admin и guru ни на кого.

        Raises:
            UserValidationError: При нарушении правила
        """
        try:
            role = UserRole(role)
        except ValueError:
            raise UserValidationError(f"Peran tidak dikenal: {role!r}")

        if role == UserRole.SISWA and student_id is None:
            raise UserValidationError("Akun siswa harus terhubung dengan data siswa")

        if role != UserRole.SISWA and student_id is not None:
            raise UserValidationError(f"Akun {role.value} tidak boleh terhubung dengan data siswa")

        return role

    @staticmethod
    def validate_cert_number_template(template: str) -> str:
        """
        Проверяет шаблон номера SKL.

        Допускаются только поля {id} и {year} (с форматом, например {id:03d});
        шаблон пробно форматируется на тестовых значениях.

        Raises:
            ValidationError: Если шаблон не форматируется или содержит другие поля
        """
        if not template or not template.strip():
            raise ValidationError("Template nomor surat tidak boleh kosong")

        try:
            fields = template_fields(template)
        except ValueError as e:
            raise ValidationError(f"Template nomor surat tidak valid: {e}")

        for field in fields:
            if field not in TEMPLATE_FIELDS:
                raise ValidationError(
                    f"Kolom template tidak dikenal: {{{field}}}. Gunakan {{id}} dan {{year}}"
                )

        try:
            template.format(id=1, year=2000)
        except (KeyError, IndexError, ValueError, AttributeError, TypeError) as e:
            raise ValidationError(f"Template nomor surat tidak valid: {e}")

        return template

    @staticmethod
    def validate_image_upload(filename: str, content: bytes) -> str:
        """
        Проверяет загружаемое изображение (логотип, шапка, подпись, печать).

        Args:
            filename: Исходное имя файла
            content: Содержимое файла

        Returns:
            str: Расширение файла в нижнем регистре (.png, .jpg)

        Raises:
            ValidationError: Пустой файл, превышен размер или формат не PNG/JPEG
        """
        if not content:
            raise ValidationError("File gambar kosong atau tidak diunggah")

        if len(content) > MAX_IMAGE_SIZE:
            raise ValidationError(f"Ukuran file melebihi {MAX_IMAGE_SIZE // (1024 * 1024)} MB")

        extension = Path(filename or "").suffix.lower()
        if extension not in IMAGE_SIGNATURES:
            raise ValidationError(f"Format gambar tidak didukung: {extension or filename!r}. Gunakan PNG atau JPG")

        if not content.startswith(IMAGE_SIGNATURES[extension]):
            raise ValidationError("Isi file tidak sesuai dengan format gambar")

        return ".jpg" if extension == ".jpeg" else extension
