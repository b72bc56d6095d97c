"""
Pydantic модели для валидации и сериализации данных SKL.
"""

from datetime import date, datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator


class StudentStatus(str, Enum):
    """Статусы верификации ученика."""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class UserRole(str, Enum):
    """Роли пользователей."""
    ADMIN = "admin"
    GURU = "guru"
    SISWA = "siswa"


class SubjectGroup(str, Enum):
    """Группы предметов в таблице оценок."""
    A = "A"  # Pelajaran Umum
    B = "B"  # Keterampilan
    C = "C"  # Peminatan
    D = "D"  # Lintas Minat


# ---------------------------------------------------------------------- ученики

class StudentCreate(BaseModel):
    """Модель запроса на создание ученика."""
    nisn: str = Field(..., min_length=1, max_length=20, description="Национальный номер ученика")
    nis: str = Field(..., min_length=1, max_length=20, description="Школьный номер ученика")
    full_name: str = Field(..., min_length=1, max_length=100, description="ФИО")
    birth_place: str = Field(..., min_length=1, max_length=100, description="Место рождения")
    birth_date: date = Field(..., description="Дата рождения")
    parent_name: str = Field(..., min_length=1, max_length=100, description="Родитель / опекун")
    class_name: str = Field(..., min_length=1, max_length=20, description="Класс")
    major: Optional[str] = Field(None, max_length=50, description="Направление (MIPA, IPS, ...)")

    @field_validator('nisn', 'nis')
    @classmethod
    def validate_number(cls, v):
        """Номера состоят только из цифр."""
        value = v.strip()
        if not value.isdigit():
            raise ValueError("harus berupa angka")
        return value

    @field_validator('full_name', 'birth_place', 'parent_name', 'class_name')
    @classmethod
    def strip_text(cls, v):
        value = v.strip()
        if not value:
            raise ValueError("tidak boleh kosong")
        return value

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "nisn": "0051234567",
            "nis": "12345",
            "full_name": "Budi Santoso",
            "birth_place": "Bandung",
            "birth_date": "2007-05-14",
            "parent_name": "Slamet Santoso",
            "class_name": "XII IPA 1",
            "major": "MIPA"
        }
    })


class StudentUpdate(BaseModel):
    """Модель запроса на изменение анкетных данных ученика."""
    nisn: Optional[str] = Field(None, min_length=1, max_length=20)
    nis: Optional[str] = Field(None, min_length=1, max_length=20)
    full_name: Optional[str] = Field(None, min_length=1, max_length=100)
    birth_place: Optional[str] = Field(None, min_length=1, max_length=100)
    birth_date: Optional[date] = None
    parent_name: Optional[str] = Field(None, min_length=1, max_length=100)
    class_name: Optional[str] = Field(None, min_length=1, max_length=20)
    major: Optional[str] = Field(None, max_length=50)

    @field_validator('nisn', 'nis')
    @classmethod
    def validate_number(cls, v):
        if v is None:
            return v
        value = v.strip()
        if not value.isdigit():
            raise ValueError("harus berupa angka")
        return value


class StudentRecord(BaseModel):
    """Модель ученика."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    nisn: str
    nis: str
    full_name: str
    birth_place: str
    birth_date: date
    parent_name: str
    class_name: str
    major: Optional[str] = None
    status: StudentStatus = StudentStatus.PENDING
    verified_by: Optional[int] = None
    verification_date: Optional[datetime] = None
    verification_notes: Optional[str] = None
    created_at: Optional[datetime] = None


class VerificationRequest(BaseModel):
    """Решение администратора по ученику. Значение decision проверяет машина состояний."""
    decision: str = Field(..., description="verified или rejected")
    notes: Optional[str] = Field(None, description="Примечание к решению")


class ReopenRequest(BaseModel):
    """Возврат ученика в статус pending."""
    confirm: bool = Field(default=False, description="Подтверждение администратора")
    notes: Optional[str] = None


# ---------------------------------------------------------------------- предметы и оценки

class SubjectCreate(BaseModel):
    """Модель запроса на создание предмета."""
    code: str = Field(..., min_length=1, max_length=20)
    name: str = Field(..., min_length=1, max_length=100)
    group: SubjectGroup = SubjectGroup.A


class SubjectUpdate(BaseModel):
    """Модель запроса на изменение предмета."""
    code: Optional[str] = Field(None, min_length=1, max_length=20)
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    group: Optional[SubjectGroup] = None


class SubjectRecord(BaseModel):
    """Модель предмета."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    name: str
    group: SubjectGroup = SubjectGroup.A


class GradeCreate(BaseModel):
    """Модель запроса на сохранение оценки. Диапазон проверяет сервис."""
    student_id: int
    subject_id: int
    value: float


class GradeEntry(BaseModel):
    """Оценка в пакете оценок одного ученика."""
    subject_id: int
    value: float


class ClassGradeRow(BaseModel):
    """Строка импорта оценок класса: NISN и оценки по кодам предметов."""
    nisn: str
    grades: Dict[str, float]


class ClassGradeImport(BaseModel):
    """Импорт оценок целого класса."""
    class_name: str = Field(..., min_length=1)
    rows: List[ClassGradeRow]

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "class_name": "XII IPA 1",
            "rows": [{"nisn": "0051234567", "grades": {"MTK": 88, "BIN": 91.5}}]
        }
    })


class ClassGradeImportResult(BaseModel):
    """Результат импорта оценок класса."""
    students: int
    saved: int


class GradeRecord(BaseModel):
    """Оценка вместе с названием предмета."""
    id: int
    student_id: int
    subject_id: int
    subject_code: str
    subject_name: str
    group: SubjectGroup
    value: float


# ---------------------------------------------------------------------- настройки школы

class SchoolSettingsData(BaseModel):
    """Снимок настроек школы, передается сборщику SKL."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    school_name: str
    school_address: str = ""
    school_email: str = ""
    school_website: str = ""
    school_logo: str = ""
    ministry_logo: str = ""
    header_image: str = ""
    use_header_image: bool = False

    headmaster_name: str
    headmaster_nip: str = ""
    headmaster_signature: str = ""
    school_stamp: str = ""
    use_digital_signature: bool = False

    cert_header: str = "SURAT KETERANGAN"
    cert_footer: str = ""
    cert_number_template: str = "421/{id:03d}/SMA/{year}"
    cert_regulation_text: str = ""
    cert_criteria_text: str = ""
    cert_before_student_data: str = ""
    cert_after_student_data: str = ""

    academic_year: str = ""
    graduation_date: str = ""
    city_name: str = ""
    province_name: str = ""
    updated_at: Optional[datetime] = None


class SchoolSettingsUpdate(BaseModel):
    """Частичное обновление настроек школы."""
    school_name: Optional[str] = Field(None, max_length=200)
    school_address: Optional[str] = None
    school_email: Optional[str] = Field(None, max_length=100)
    school_website: Optional[str] = Field(None, max_length=100)
    school_logo: Optional[str] = None
    ministry_logo: Optional[str] = None
    header_image: Optional[str] = None
    use_header_image: Optional[bool] = None
    headmaster_name: Optional[str] = Field(None, max_length=100)
    headmaster_nip: Optional[str] = Field(None, max_length=50)
    headmaster_signature: Optional[str] = None
    school_stamp: Optional[str] = None
    use_digital_signature: Optional[bool] = None
    cert_header: Optional[str] = Field(None, max_length=200)
    cert_footer: Optional[str] = None
    cert_number_template: Optional[str] = Field(None, max_length=100)
    cert_regulation_text: Optional[str] = None
    cert_criteria_text: Optional[str] = None
    cert_before_student_data: Optional[str] = None
    cert_after_student_data: Optional[str] = None
    academic_year: Optional[str] = Field(None, max_length=20)
    graduation_date: Optional[str] = Field(None, max_length=30)
    city_name: Optional[str] = Field(None, max_length=100)
    province_name: Optional[str] = Field(None, max_length=100)


# ---------------------------------------------------------------------- пользователи

class UserCreate(BaseModel):
    """Модель запроса на создание пользователя."""
    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6, description="Пароль в открытом виде")
    full_name: str = Field(..., min_length=1, max_length=100)
    role: UserRole = UserRole.GURU
    student_id: Optional[int] = None


class UserRecord(BaseModel):
    """Модель пользователя без пароля."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    full_name: str
    role: UserRole
    student_id: Optional[int] = None
    created_at: Optional[datetime] = None


class PasswordChange(BaseModel):
    """Смена собственного пароля."""
    current_password: str
    new_password: str = Field(..., min_length=6)


class PasswordReset(BaseModel):
    """Сброс пароля администратором."""
    new_password: str = Field(..., min_length=6)


class DashboardStats(BaseModel):
    """Статистика для главной страницы."""
    total_students: int = 0
    verified_students: int = 0
    pending_students: int = 0
    rejected_students: int = 0
    total_classes: int = 0


class StudentImportResult(BaseModel):
    """Результат массового импорта учеников."""
    imported: int
    students: List[StudentRecord]


# ---------------------------------------------------------------------- SKL

class CertificateOptions(BaseModel):
    """Параметры формирования SKL."""
    show_grades: bool = False


class GradeLine(BaseModel):
    """Строка таблицы оценок в SKL."""
    model_config = ConfigDict(frozen=True)

    subject_code: str
    subject_name: str
    group: SubjectGroup = SubjectGroup.A
    value: float


class CertificateData(BaseModel):
    """
    Готовая к отрисовке модель SKL.

    Собирается заново на каждый запрос и нигде не хранится.
    """
    model_config = ConfigDict(frozen=True)

    # Ученик
    student_id: int
    nisn: str
    nis: str
    full_name: str
    birth_place: str
    birth_date: str
    parent_name: str
    class_name: str
    major_name: str = "MIPA"

    # Вычисляемые поля
    cert_number: str
    issue_date: str
    issued_on: Optional[date] = None

    # Школа
    school_name: str
    school_address: str = ""
    school_email: str = ""
    school_website: str = ""
    school_logo: str = ""
    ministry_logo: str = ""
    header_image: str = ""
    use_header_image: bool = False
    province_name: str = ""
    city_name: str = ""
    academic_year: str = ""
    graduation_date: str = ""

    # Директор
    headmaster_name: str
    headmaster_nip: str = ""
    headmaster_signature: str = ""
    school_stamp: str = ""
    use_digital_signature: bool = False

    # Тексты
    cert_header: str = "SURAT KETERANGAN"
    cert_footer: str = ""
    cert_regulation_text: str = ""
    cert_criteria_text: str = ""
    cert_before_student_data: str = ""
    cert_after_student_data: str = ""

    # Оценки
    show_grades: bool = False
    grades: Tuple[GradeLine, ...] = ()
    average_grade: Optional[float] = None

    @property
    def download_filename(self) -> str:
        """Имя файла для Content-Disposition, полученное из номера SKL."""
        safe_number = "".join(c if c.isalnum() else "-" for c in self.cert_number).strip("-")
        return f"SKL_{safe_number}.pdf"
