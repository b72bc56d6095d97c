"""
Основная бизнес-логика SKL: ученики, оценки, предметы, настройки,
пользователи, верификация и выдача документа.
"""

import logging
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple
from sqlalchemy.exc import SQLAlchemyError
from .access import AccessPolicy, Operation, access_policy
from .assembler import CertificateAssembler
from .database import SKLRepository, get_repository
from .exceptions import *
from .models import (
    CertificateData, CertificateOptions, ClassGradeImport, ClassGradeImportResult, DashboardStats,
    GradeCreate, GradeEntry, GradeRecord,
    SchoolSettingsData, SchoolSettingsUpdate, StudentCreate, StudentImportResult, StudentRecord,
    StudentUpdate, SubjectCreate, SubjectRecord, SubjectUpdate, UserCreate, UserRecord, UserRole,
)
from .renderer import CertificateRenderer
from .security import hash_password, verify_password
from .validators import Validators
from .verification import VerificationService

logger = logging.getLogger(__name__)

# Поля, без которых настройки школы нельзя создать
REQUIRED_SETTINGS_FIELDS = ("school_name", "headmaster_name")

# Вид изображения в URL -> колонка настроек школы
IMAGE_FIELDS = {
    "school-logo": "school_logo",
    "ministry-logo": "ministry_logo",
    "header-image": "header_image",
    "headmaster-signature": "headmaster_signature",
    "school-stamp": "school_stamp",
}


class SKLService:
    """Сервис SKL для API и CLI."""

    def __init__(self, repository: SKLRepository = None, renderer: CertificateRenderer = None,
                 policy: AccessPolicy = None, today: Callable[[], date] = None,
                 clock: Callable[[], datetime] = None):
        """
        Инициализация сервиса.

        Args:
            repository: Репозиторий SKL
            renderer: Рендер PDF
            policy: Политика доступа
            today: Источник текущей даты для номера и даты SKL
            clock: Источник текущего времени для верификации
        """
        self.repository = repository or get_repository()
        self.renderer = renderer or CertificateRenderer()
        self.policy = policy or access_policy
        self.assembler = CertificateAssembler(self.repository, today=today)
        self.verification = VerificationService(self.repository, clock=clock)
        self.validator = Validators()

    # ------------------------------------------------------------------ ученики

    def list_students(self, status: str = None, class_name: str = None) -> List[StudentRecord]:
        """Получает список учеников с фильтрами по статусу и классу."""
        try:
            rows = self.repository.list_students(status=status, class_name=class_name)
            return [StudentRecord.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения списка учеников: {e}")
            raise DatabaseError(f"Gagal mengambil data siswa: {e}")

    def get_student(self, student_id: int) -> StudentRecord:
        """
        Получает ученика.

        Raises:
            StudentNotFoundError: Если ученик не найден
        """
        try:
            row = self.repository.get_student(student_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal mengambil data siswa: {e}")

        if row is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")
        return StudentRecord.model_validate(row)

    def get_student_profile(self, user: UserRecord) -> StudentRecord:
        """Возвращает запись ученика, связанную с учетной записью siswa."""
        if user.student_id is None:
            raise StudentNotFoundError("Akun ini tidak terhubung dengan data siswa")
        return self.get_student(user.student_id)

    def create_student(self, request: StudentCreate, create_account: bool = False) -> StudentRecord:
        """
        Создает ученика и, при необходимости, учетную запись siswa.

        Логин и начальный пароль учетной записи равны NISN.

        Raises:
            AlreadyExistsError: NISN или логин уже заняты
        """
        logger.info(f"Создание ученика NISN {request.nisn} ({request.full_name})")

        try:
            student_data = request.model_dump()
            if create_account:
                [(student, _)] = self.repository.create_students_with_accounts(
                    [(student_data, self._student_account(request))]
                )
            else:
                student = self.repository.create_student(student_data)
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания ученика {request.nisn}: {e}")
            raise DatabaseError(f"Gagal menyimpan data siswa: {e}")

        logger.info(f"Ученик {student.id} создан")
        return StudentRecord.model_validate(student)

    def update_student(self, student_id: int, request: StudentUpdate) -> StudentRecord:
        """Изменяет анкетные поля ученика. Статус верификации не меняется."""
        data = request.model_dump(exclude_unset=True, exclude_none=True)
        logger.info(f"Изменение ученика {student_id}: {sorted(data)}")

        try:
            student = self.repository.update_student(student_id, data)
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка изменения ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal menyimpan data siswa: {e}")

        if student is None:
            raise StudentNotFoundError(f"Siswa dengan ID {student_id} tidak ditemukan")
        return StudentRecord.model_validate(student)

    def import_students(self, requests: List[StudentCreate]) -> StudentImportResult:
        """
        Массовый импорт учеников с учетными записями siswa.

        Все строки сохраняются в одной транзакции: при дубликате не
        сохраняется ни одна.
        """
        if not requests:
            raise ValidationError("Tidak ada data siswa untuk diimpor")

        nisns = [request.nisn for request in requests]
        duplicates = sorted({nisn for nisn in nisns if nisns.count(nisn) > 1})
        if duplicates:
            logger.warning(f"Импорт отклонен, повторяющиеся NISN: {duplicates}")
            raise AlreadyExistsError(f"NISN ganda dalam data impor: {', '.join(duplicates)}")

        logger.info(f"Импорт учеников: {len(requests)}")

        try:
            created = self.repository.create_students_with_accounts(
                [(request.model_dump(), self._student_account(request)) for request in requests]
            )
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка импорта учеников: {e}")
            raise DatabaseError(f"Gagal mengimpor data siswa: {e}")

        students = [StudentRecord.model_validate(student) for student, _ in created]
        logger.info(f"Импортировано учеников: {len(students)}")
        return StudentImportResult(imported=len(students), students=students)

    def _student_account(self, request: StudentCreate) -> dict:
        return {
            "username": request.nisn,
            "password": hash_password(request.nisn),
            "full_name": request.full_name,
            "role": UserRole.SISWA.value,
        }

    # ------------------------------------------------------------------ верификация

    def submit_verification(self, student_id: int, decision, verifier: UserRecord,
                            notes: Optional[str] = None) -> StudentRecord:
        """Решение администратора по ученику."""
        self.policy.authorize(verifier, Operation.VERIFY_STUDENT)
        try:
            return self.verification.submit_verification(student_id, decision, verifier.id, notes)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка верификации ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal menyimpan verifikasi: {e}")

    def reopen_verification(self, student_id: int, actor: UserRecord, confirm: bool = False,
                            notes: Optional[str] = None) -> StudentRecord:
        """Возврат ученика в pending администратором."""
        self.policy.authorize(actor, Operation.VERIFY_STUDENT)
        try:
            return self.verification.reopen_verification(student_id, actor.id, confirm=confirm, notes=notes)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка отмены верификации ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal membatalkan verifikasi: {e}")

    # ------------------------------------------------------------------ оценки

    def get_student_grades(self, student_id: int) -> List[GradeRecord]:
        """Оценки ученика с названиями предметов."""
        self.get_student(student_id)

        try:
            rows = self.repository.get_student_grades(student_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения оценок ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal mengambil nilai: {e}")

        return [self._grade_record(grade, subject) for grade, subject in rows]

    def save_grade(self, request: GradeCreate) -> GradeRecord:
        """
        Сохраняет оценку (повторное сохранение обновляет значение).

        Raises:
            GradeValidationError: Значение вне диапазона 0-100
            StudentNotFoundError: Ученик не найден
            SubjectNotFoundError: Предмет не найден
        """
        value = self.validator.validate_grade_value(request.value)
        self.get_student(request.student_id)

        try:
            subject = self.repository.get_subject(request.subject_id)
            if subject is None:
                raise SubjectNotFoundError(f"Mata pelajaran dengan ID {request.subject_id} tidak ditemukan")

            grade = self.repository.save_grade(request.student_id, request.subject_id, value)
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка сохранения оценки: {e}")
            raise DatabaseError(f"Gagal menyimpan nilai: {e}")

        logger.info(f"Оценка ученика {request.student_id} по {subject.code}: {value}")
        return self._grade_record(grade, subject)

    def save_student_grades(self, student_id: int, entries: List[GradeEntry]) -> List[GradeRecord]:
        """
        Сохраняет пакет оценок одного ученика в одной транзакции.

        Если хотя бы одна оценка некорректна, не сохраняется ни одна.

        Raises:
            ValidationError: Пустой пакет или предмет повторяется
            GradeValidationError: Значение вне диапазона 0-100
            StudentNotFoundError: Ученик не найден
            SubjectNotFoundError: Предмет не найден
        """
        if not entries:
            raise ValidationError("Tidak ada nilai untuk disimpan")

        subject_ids = [entry.subject_id for entry in entries]
        if len(set(subject_ids)) != len(subject_ids):
            raise ValidationError("Mata pelajaran yang sama muncul lebih dari sekali")

        values = [self.validator.validate_grade_value(entry.value) for entry in entries]
        self.get_student(student_id)

        try:
            subjects = {}
            for subject_id in subject_ids:
                subject = self.repository.get_subject(subject_id)
                if subject is None:
                    raise SubjectNotFoundError(f"Mata pelajaran dengan ID {subject_id} tidak ditemukan")
                subjects[subject_id] = subject

            grades = self.repository.save_grades(
                [(student_id, subject_id, value) for subject_id, value in zip(subject_ids, values)]
            )
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка сохранения оценок ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal menyimpan nilai: {e}")

        logger.info(f"Сохранено оценок ученика {student_id}: {len(grades)}")
        return [self._grade_record(grade, subjects[grade.subject_id]) for grade in grades]

    def import_class_grades(self, request: ClassGradeImport) -> ClassGradeImportResult:
        """
        Импорт оценок класса: строки с NISN и оценками по кодам предметов.

        Все оценки сохраняются в одной транзакции. Ученик должен числиться
        в указанном классе, предметы ищутся по коду.

        Raises:
            ValidationError: Нет данных, NISN повторяется или ученик из другого класса
            GradeValidationError: Значение вне диапазона 0-100
            StudentNotFoundError: NISN не найден
            SubjectNotFoundError: Код предмета не найден
        """
        class_name = request.class_name.strip()
        nisns = [row.nisn.strip() for row in request.rows]
        if not nisns:
            raise ValidationError("Tidak ada data nilai untuk diimpor")

        duplicates = sorted({nisn for nisn in nisns if nisns.count(nisn) > 1})
        if duplicates:
            raise ValidationError(f"NISN ganda dalam data impor: {', '.join(duplicates)}")

        logger.info(f"Импорт оценок класса {class_name}: строк {len(nisns)}")

        try:
            subjects = {subject.code: subject for subject in self.repository.list_subjects()}
            grades = []

            for nisn, row in zip(nisns, request.rows):
                student = self.repository.get_student_by_nisn(nisn)
                if student is None:
                    raise StudentNotFoundError(f"Siswa dengan NISN {nisn} tidak ditemukan")
                if student.class_name != class_name:
                    raise ValidationError(f"Siswa dengan NISN {nisn} bukan anggota kelas {class_name}")

                for code, value in row.grades.items():
                    subject = subjects.get(code.strip())
                    if subject is None:
                        raise SubjectNotFoundError(f"Mata pelajaran dengan kode {code} tidak ditemukan")
                    grades.append((student.id, subject.id, self.validator.validate_grade_value(value)))

            if not grades:
                raise ValidationError("Tidak ada nilai yang valid untuk disimpan")

            self.repository.save_grades(grades)
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка импорта оценок класса {class_name}: {e}")
            raise DatabaseError(f"Gagal mengimpor nilai: {e}")

        logger.info(f"Импортировано оценок класса {class_name}: {len(grades)}")
        return ClassGradeImportResult(students=len(nisns), saved=len(grades))

    def _grade_record(self, grade, subject) -> GradeRecord:
        return GradeRecord(
            id=grade.id,
            student_id=grade.student_id,
            subject_id=subject.id,
            subject_code=subject.code,
            subject_name=subject.name,
            group=subject.group,
            value=grade.value,
        )

    def delete_grade(self, grade_id: int):
        """Удаляет оценку."""
        try:
            deleted = self.repository.delete_grade(grade_id)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления оценки {grade_id}: {e}")
            raise DatabaseError(f"Gagal menghapus nilai: {e}")

        if not deleted:
            raise GradeNotFoundError(f"Nilai dengan ID {grade_id} tidak ditemukan")
        logger.info(f"Оценка {grade_id} удалена")

    def get_grades_summary(self) -> List[Dict[str, int]]:
        """Количество оценок по каждому ученику."""
        try:
            return self.repository.get_grades_summary()
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения сводки оценок: {e}")
            raise DatabaseError(f"Gagal mengambil ringkasan nilai: {e}")

    # ------------------------------------------------------------------ предметы

    def list_subjects(self, group: str = None) -> List[SubjectRecord]:
        try:
            return [SubjectRecord.model_validate(row) for row in self.repository.list_subjects(group)]
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения предметов: {e}")
            raise DatabaseError(f"Gagal mengambil mata pelajaran: {e}")

    def create_subject(self, request: SubjectCreate) -> SubjectRecord:
        logger.info(f"Создание предмета {request.code}")
        try:
            subject = self.repository.create_subject(request.model_dump(mode="json"))
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания предмета {request.code}: {e}")
            raise DatabaseError(f"Gagal menyimpan mata pelajaran: {e}")
        return SubjectRecord.model_validate(subject)

    def update_subject(self, subject_id: int, request: SubjectUpdate) -> SubjectRecord:
        data = request.model_dump(mode="json", exclude_unset=True, exclude_none=True)
        try:
            subject = self.repository.update_subject(subject_id, data)
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка изменения предмета {subject_id}: {e}")
            raise DatabaseError(f"Gagal menyimpan mata pelajaran: {e}")

        if subject is None:
            raise SubjectNotFoundError(f"Mata pelajaran dengan ID {subject_id} tidak ditemukan")
        return SubjectRecord.model_validate(subject)

    # ------------------------------------------------------------------ настройки

    def get_school_settings(self) -> Optional[SchoolSettingsData]:
        """Текущие настройки школы или None, если они еще не заданы."""
        try:
            row = self.repository.get_school_settings()
        except SQLAlchemyError as e:
            logger.error(f"Ошибка чтения настроек школы: {e}")
            raise DatabaseError(f"Gagal mengambil pengaturan: {e}")
        return SchoolSettingsData.model_validate(row) if row is not None else None

    def update_school_settings(self, request: SchoolSettingsUpdate) -> SchoolSettingsData:
        """
        Создает или обновляет настройки школы.

        Raises:
            ValidationError: Некорректный шаблон номера или нет обязательных полей
        """
        data = request.model_dump(exclude_unset=True, exclude_none=True)

        if "cert_number_template" in data:
            self.validator.validate_cert_number_template(data["cert_number_template"])

        current = self.get_school_settings()
        for field in REQUIRED_SETTINGS_FIELDS:
            value = data.get(field, getattr(current, field, "") if current else "")
            if not value or not value.strip():
                raise ValidationError(f"Kolom {field} wajib diisi")

        try:
            row = self.repository.save_school_settings(data)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка сохранения настроек школы: {e}")
            raise DatabaseError(f"Gagal menyimpan pengaturan: {e}")

        logger.info(f"Настройки школы сохранены: {sorted(data)}")
        return SchoolSettingsData.model_validate(row)

    def save_school_image(self, kind: str, filename: str, content: bytes) -> SchoolSettingsData:
        """
        Сохраняет изображение в директорию изображений и записывает имя файла в настройки.

        Прежний файл того же вида удаляется.

        Args:
            kind: Вид изображения (ключ IMAGE_FIELDS)
            filename: Исходное имя загруженного файла
            content: Содержимое файла

        Raises:
            ValidationError: Неизвестный вид или некорректный файл
            ConfigurationError: Нет настроек школы или директории изображений
        """
        field = self._image_field(kind)
        extension = self.validator.validate_image_upload(filename, content)
        assets_path = self._assets_path()

        current = self.get_school_settings()
        if current is None:
            raise ConfigurationError("Pengaturan sekolah belum diisi")

        stored_name = f"{field}_{uuid.uuid4().hex}{extension}"
        target = assets_path / stored_name
        try:
            assets_path.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as e:
            logger.error(f"Ошибка записи изображения {target}: {e}")
            raise ConfigurationError(f"Gagal menyimpan file gambar: {e}")

        try:
            row = self.repository.save_school_settings({field: stored_name})
        except SQLAlchemyError as e:
            target.unlink(missing_ok=True)
            logger.error(f"Ошибка сохранения изображения {kind}: {e}")
            raise DatabaseError(f"Gagal menyimpan pengaturan: {e}")

        self._remove_image(getattr(current, field))
        logger.info(f"Изображение {kind} сохранено: {stored_name}")
        return SchoolSettingsData.model_validate(row)

    def delete_school_image(self, kind: str) -> SchoolSettingsData:
        """
        Удаляет изображение из настроек и с диска.

        Удаление шапки-изображения выключает use_header_image.
        """
        field = self._image_field(kind)

        current = self.get_school_settings()
        if current is None:
            raise ConfigurationError("Pengaturan sekolah belum diisi")

        data = {field: ""}
        if field == "header_image":
            data["use_header_image"] = False

        try:
            row = self.repository.save_school_settings(data)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка удаления изображения {kind}: {e}")
            raise DatabaseError(f"Gagal menyimpan pengaturan: {e}")

        self._remove_image(getattr(current, field))
        logger.info(f"Изображение {kind} удалено")
        return SchoolSettingsData.model_validate(row)

    def _image_field(self, kind: str) -> str:
        try:
            return IMAGE_FIELDS[kind]
        except KeyError:
            raise ValidationError(f"Jenis gambar tidak dikenal: {kind}. Gunakan {', '.join(IMAGE_FIELDS)}")

    def _assets_path(self) -> Path:
        if self.renderer.assets_path is None:
            raise ConfigurationError("Direktori gambar tidak dikonfigurasi")
        return self.renderer.assets_path

    def _remove_image(self, value: str):
        """Удаляет файл, сохраненный ранее в директорию изображений; чужие пути не трогает."""
        if not value or self.renderer.assets_path is None:
            return

        path = Path(value)
        if path.is_absolute() or len(path.parts) != 1:
            return

        try:
            (self.renderer.assets_path / path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Не удалось удалить изображение {path}: {e}")

    # ------------------------------------------------------------------ пользователи

    def list_users(self, role: str = None) -> List[UserRecord]:
        try:
            return [UserRecord.model_validate(row) for row in self.repository.list_users(role)]
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения пользователей: {e}")
            raise DatabaseError(f"Gagal mengambil data pengguna: {e}")

    def create_user(self, request: UserCreate) -> UserRecord:
        """
        Создает пользователя.

        Raises:
            UserValidationError: Роль не согласована с student_id
            StudentNotFoundError: Связанный ученик не найден
            AlreadyExistsError: Логин занят
        """
        role = self.validator.validate_user_role(request.role, request.student_id)
        if request.student_id is not None:
            self.get_student(request.student_id)

        logger.info(f"Создание пользователя {request.username} ({role.value})")

        try:
            user = self.repository.create_user({
                "username": request.username.strip(),
                "password": hash_password(request.password),
                "full_name": request.full_name.strip(),
                "role": role.value,
                "student_id": request.student_id,
            })
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания пользователя {request.username}: {e}")
            raise DatabaseError(f"Gagal menyimpan pengguna: {e}")

        return UserRecord.model_validate(user)

    def authenticate(self, username: str, password: str) -> UserRecord:
        """
        Проверяет логин и пароль.

        Raises:
            AuthenticationError: Неверные учетные данные
        """
        try:
            user = self.repository.get_user_by_username(username)
        except SQLAlchemyError as e:
            logger.error(f"Ошибка проверки пользователя {username}: {e}")
            raise DatabaseError(f"Gagal memeriksa pengguna: {e}")

        if user is None or not verify_password(password, user.password):
            logger.warning(f"Неудачная попытка входа: {username}")
            raise AuthenticationError("Username atau password salah")

        return UserRecord.model_validate(user)

    def change_password(self, user: UserRecord, current_password: str, new_password: str):
        """Смена собственного пароля с проверкой текущего."""
        try:
            row = self.repository.get_user(user.id)
            if row is None:
                raise UserNotFoundError(f"Pengguna dengan ID {user.id} tidak ditemukan")

            if not verify_password(current_password, row.password):
                logger.warning(f"Пользователь {user.username} указал неверный текущий пароль")
                raise ValidationError("Password saat ini salah")

            self.repository.update_user_password(user.id, hash_password(new_password))
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка смены пароля пользователя {user.username}: {e}")
            raise DatabaseError(f"Gagal mengubah password: {e}")

        logger.info(f"Пользователь {user.username} сменил пароль")

    def reset_password(self, user_id: int, new_password: str):
        """Сброс пароля администратором."""
        try:
            updated = self.repository.update_user_password(user_id, hash_password(new_password))
        except SQLAlchemyError as e:
            logger.error(f"Ошибка сброса пароля пользователя {user_id}: {e}")
            raise DatabaseError(f"Gagal mereset password: {e}")

        if not updated:
            raise UserNotFoundError(f"Pengguna dengan ID {user_id} tidak ditemukan")
        logger.info(f"Пароль пользователя {user_id} сброшен")

    def ensure_admin(self, username: str, password: str, full_name: str = "Administrator") -> bool:
        """
        Создает администратора, если в системе нет ни одного.

        Returns:
            bool: True, если администратор был создан
        """
        try:
            if self.repository.count_users(UserRole.ADMIN.value) > 0:
                return False

            self.repository.create_user({
                "username": username,
                "password": hash_password(password),
                "full_name": full_name,
                "role": UserRole.ADMIN.value,
            })
        except SKLError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Ошибка создания администратора {username}: {e}")
            raise DatabaseError(f"Gagal membuat administrator: {e}")

        logger.warning(f"Создан администратор по умолчанию: {username}. Смените пароль!")
        return True

    # ------------------------------------------------------------------ статистика

    def get_dashboard_stats(self) -> DashboardStats:
        """Счетчики учеников по статусам и количество классов."""
        try:
            return DashboardStats(**self.repository.get_statistics())
        except SQLAlchemyError as e:
            logger.error(f"Ошибка получения статистики: {e}")
            raise DatabaseError(f"Gagal mengambil statistik: {e}")

    # ------------------------------------------------------------------ SKL

    def build_certificate(self, student_id: int, show_grades: bool = False) -> CertificateData:
        """Собирает данные SKL без формирования PDF."""
        try:
            return self.assembler.assemble(student_id, CertificateOptions(show_grades=show_grades))
        except SQLAlchemyError as e:
            logger.error(f"Ошибка сборки SKL для ученика {student_id}: {e}")
            raise DatabaseError(f"Gagal mengambil data sertifikat: {e}")

    def generate_certificate(self, student_id: int, show_grades: bool = False) -> Tuple[CertificateData, bytes]:
        """
        Собирает данные и формирует PDF SKL.

        Returns:
            Tuple[CertificateData, bytes]: Данные документа и PDF

        Raises:
            StudentNotFoundError: Ученик не найден
            StudentNotEligibleError: Ученик не верифицирован
            ConfigurationError: Нет настроек школы
            RenderError: Ошибка формирования PDF
        """
        logger.info(f"Выдача SKL ученику {student_id} (оценки: {show_grades})")

        data = self.build_certificate(student_id, show_grades)
        pdf = self.renderer.render(data)

        logger.info(f"SKL {data.cert_number} выдан ученику {student_id}")
        return data, pdf

