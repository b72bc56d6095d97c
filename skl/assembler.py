"""
Сборщик данных SKL: объединяет ученика, оценки и настройки школы в одну модель.
"""

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Iterable, Optional, Sequence
from .database import SKLRepository
from .exceptions import ConfigurationError, StudentNotEligibleError, StudentNotFoundError
from .generator import CertificateNumberGenerator, format_indonesian_date
from .models import (
    CertificateData, CertificateOptions, GradeLine, SchoolSettingsData, StudentRecord, StudentStatus
)

logger = logging.getLogger(__name__)

DEFAULT_MAJOR = "MIPA"
_TWO_PLACES = Decimal("0.01")


def average_grade(values: Iterable[float]) -> Optional[float]:
    """
    Среднее арифметическое оценок с округлением до 2 знаков (half-up).

    Returns:
        Optional[float]: Среднее или None, если оценок нет
    """
    values = [Decimal(str(v)) for v in values]
    if not values:
        return None

    mean = sum(values) / Decimal(len(values))
    return float(mean.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


class CertificateAssembler:
    """Собирает CertificateData для одного ученика."""

    def __init__(self, repository: SKLRepository, today: Callable[[], date] = None):
        """
        Args:
            repository: Репозиторий SKL
            today: Источник текущей даты (для тестов)
        """
        self.repository = repository
        self.today = today or date.today

    def assemble(self, student_id: int, options: CertificateOptions = None,
                 school_settings: SchoolSettingsData = None) -> CertificateData:
        """
        Собирает данные SKL.

        Args:
            student_id: ID ученика
            options: Параметры (show_grades)
            school_settings: Настройки школы; если не переданы, читаются из БД

        Returns:
            CertificateData: Неизменяемая модель для рендера

        Raises:
            StudentNotFoundError: Ученик не найден
            StudentNotEligibleError: Ученик не верифицирован
            ConfigurationError: Нет настроек школы
        """
        options = options or CertificateOptions()

        student_row = self.repository.get_student(student_id)
        if student_row is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")

        student = StudentRecord.model_validate(student_row)
        if student.status != StudentStatus.VERIFIED:
            logger.warning(f"SKL для ученика {student_id} не выдан: статус {student.status.value}")
            raise StudentNotEligibleError(f"Siswa dengan ID {student_id} belum diverifikasi")

        school = self._resolve_settings(school_settings)

        grades: Sequence[GradeLine] = ()
        average = None
        if options.show_grades:
            grades = self._load_grades(student.id)
            average = average_grade(line.value for line in grades)

        issued_on = self.today()
        cert_number = CertificateNumberGenerator(school.cert_number_template).generate(student.id, issued_on.year)

        logger.info(f"Собраны данные SKL {cert_number} для ученика {student.id} (оценок: {len(grades)})")

        return CertificateData(
            student_id=student.id,
            nisn=student.nisn,
            nis=student.nis,
            full_name=student.full_name,
            birth_place=student.birth_place,
            birth_date=format_indonesian_date(student.birth_date),
            parent_name=student.parent_name,
            class_name=student.class_name,
            major_name=student.major or DEFAULT_MAJOR,
            cert_number=cert_number,
            issue_date=format_indonesian_date(issued_on),
            issued_on=issued_on,
            school_name=school.school_name,
            school_address=school.school_address,
            school_email=school.school_email,
            school_website=school.school_website,
            school_logo=school.school_logo,
            ministry_logo=school.ministry_logo,
            header_image=school.header_image,
            use_header_image=school.use_header_image,
            province_name=school.province_name,
            city_name=school.city_name,
            academic_year=school.academic_year,
            graduation_date=school.graduation_date,
            headmaster_name=school.headmaster_name,
            headmaster_nip=school.headmaster_nip,
            headmaster_signature=school.headmaster_signature,
            school_stamp=school.school_stamp,
            use_digital_signature=school.use_digital_signature,
            cert_header=school.cert_header,
            cert_footer=school.cert_footer,
            cert_regulation_text=school.cert_regulation_text,
            cert_criteria_text=school.cert_criteria_text,
            cert_before_student_data=school.cert_before_student_data,
            cert_after_student_data=school.cert_after_student_data,
            show_grades=options.show_grades,
            grades=tuple(grades),
            average_grade=average,
        )

    def _resolve_settings(self, school_settings: Optional[SchoolSettingsData]) -> SchoolSettingsData:
        """Возвращает настройки школы и проверяет обязательные поля."""
        if school_settings is None:
            row = self.repository.get_school_settings()
            if row is None:
                raise ConfigurationError("Pengaturan sekolah belum diisi")
            school_settings = SchoolSettingsData.model_validate(row)

        if not school_settings.school_name.strip():
            raise ConfigurationError("Nama sekolah belum diisi pada pengaturan")
        if not school_settings.headmaster_name.strip():
            raise ConfigurationError("Nama kepala sekolah belum diisi pada pengaturan")

        return school_settings

    def _load_grades(self, student_id: int) -> Sequence[GradeLine]:
        """Загружает оценки ученика в порядке группа, код, название."""
        return [
            GradeLine(
                subject_code=subject.code,
                subject_name=subject.name,
                group=subject.group,
                value=grade.value,
            )
            for grade, subject in self.repository.get_student_grades(student_id)
        ]
