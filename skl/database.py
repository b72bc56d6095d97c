"""
Модели SQLAlchemy и репозиторий для работы с базой данных SKL.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from sqlalchemy import (
    create_engine, Column, String, Integer, DateTime, Date, Float,
    Boolean, Text, ForeignKey, UniqueConstraint, CheckConstraint, Index, text, update, func
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.pool import StaticPool
from config.settings import get_settings
from .exceptions import AlreadyExistsError

logger = logging.getLogger(__name__)

# Базовый класс для моделей
Base = declarative_base()


class Student(Base):
    """Модель ученика."""

    __tablename__ = "students"

    id = Column(Integer, primary_key=True, autoincrement=True)
    nisn = Column(String(20), unique=True, nullable=False, index=True)
    nis = Column(String(20), nullable=False)
    full_name = Column(String(100), nullable=False)
    birth_place = Column(String(100), nullable=False)
    birth_date = Column(Date, nullable=False)
    parent_name = Column(String(100), nullable=False)
    class_name = Column(String(20), nullable=False, index=True)
    major = Column(String(50), nullable=True)

    # Верификация
    status = Column(String(20), nullable=False, default="pending", server_default=text("'pending'"), index=True)
    verified_by = Column(
        Integer,
        ForeignKey("users.id", use_alter=True, name="fk_students_verified_by_users"),
        nullable=True
    )
    verification_date = Column(DateTime(timezone=True), nullable=True)
    verification_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_student_status_class', 'status', 'class_name'),
    )

    def __repr__(self):
        return f"<Student(id={self.id}, nisn={self.nisn}, status={self.status})>"


class User(Base):
    """Модель пользователя."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password = Column(Text, nullable=False)
    full_name = Column(String(100), nullable=False)
    role = Column(String(10), nullable=False, default="siswa")
    student_id = Column(Integer, ForeignKey("students.id"), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<User(username={self.username}, role={self.role})>"


class Subject(Base):
    """Модель предмета."""

    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    group = Column("subject_group", String(1), nullable=False, default="A", server_default=text("'A'"))

    def __repr__(self):
        return f"<Subject(code={self.code}, name={self.name})>"


class Grade(Base):
    """Модель оценки ученика по предмету."""

    __tablename__ = "grades"

    id = Column(Integer, primary_key=True, autoincrement=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id"), nullable=False)
    value = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('student_id', 'subject_id', name='uq_grade_student_subject'),
        CheckConstraint('value >= 0 AND value <= 100', name='ck_grade_value_range'),
    )

    def __repr__(self):
        return f"<Grade(student_id={self.student_id}, subject_id={self.subject_id}, value={self.value})>"


class SchoolSettings(Base):
    """Модель настроек школы и шаблонов SKL (одна запись)."""

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Школа
    school_name = Column(String(200), nullable=False)
    school_address = Column(Text, nullable=False, default="")
    school_email = Column(String(100), nullable=False, default="")
    school_website = Column(String(100), nullable=False, default="")
    school_logo = Column(Text, nullable=False, default="")
    ministry_logo = Column(Text, nullable=False, default="")
    header_image = Column(Text, nullable=False, default="")
    use_header_image = Column(Boolean, nullable=False, default=False)

    # Директор
    headmaster_name = Column(String(100), nullable=False)
    headmaster_nip = Column(String(50), nullable=False, default="")
    headmaster_signature = Column(Text, nullable=False, default="")
    school_stamp = Column(Text, nullable=False, default="")
    use_digital_signature = Column(Boolean, nullable=False, default=False)

    # Шаблоны текста
    cert_header = Column(String(200), nullable=False, default="SURAT KETERANGAN")
    cert_footer = Column(Text, nullable=False, default="")
    cert_number_template = Column(String(100), nullable=False, default="421/{id:03d}/SMA/{year}")
    cert_regulation_text = Column(Text, nullable=False, default="")
    cert_criteria_text = Column(Text, nullable=False, default="")
    cert_before_student_data = Column(Text, nullable=False, default="")
    cert_after_student_data = Column(Text, nullable=False, default="")

    academic_year = Column(String(20), nullable=False, default="")
    graduation_date = Column(String(30), nullable=False, default="")
    city_name = Column(String(100), nullable=False, default="")
    province_name = Column(String(100), nullable=False, default="")

    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<SchoolSettings(school_name={self.school_name})>"


class DatabaseManager:
    """Менеджер для работы с базой данных."""

    def __init__(self, database_url: str = None, echo: bool = False):
        """
        Инициализация менеджера БД.

        Args:
            database_url: URL подключения к БД
            echo: Логировать SQL запросы
        """
        if database_url is None:
            database_url = get_settings().database_url

        self.database_url = database_url

        if database_url.startswith("sqlite"):
            # Одно соединение на процесс: нужно для in-memory БД и TestClient
            self.engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
                echo=echo
            )
        else:
            self.engine = create_engine(
                database_url,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=echo
            )

        self.SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False, bind=self.engine)

    def create_tables(self):
        """Создает все таблицы в базе данных."""
        Base.metadata.create_all(bind=self.engine)
        logger.info("Таблицы базы данных созданы")

    def drop_tables(self):
        """Удаляет все таблицы из базы данных."""
        Base.metadata.drop_all(bind=self.engine)
        logger.info("Таблицы базы данных удалены")

    def get_session(self) -> Session:
        """Возвращает новую сессию для работы с БД."""
        return self.SessionLocal()

    def health_check(self) -> bool:
        """Проверяет подключение к базе данных."""
        try:
            with self.get_session() as session:
                session.execute(text("SELECT 1"))
                return True
        except Exception as e:
            logger.error(f"Ошибка подключения к БД: {e}")
            return False


class SKLRepository:
    """Репозиторий учеников, оценок, предметов, настроек и пользователей."""

    def __init__(self, db_manager: DatabaseManager):
        """
        Инициализация репозитория.

        Args:
            db_manager: Менеджер базы данных
        """
        self.db_manager = db_manager

    # ------------------------------------------------------------------ ученики

    def get_student(self, student_id: int) -> Optional[Student]:
        """Получает ученика по ID."""
        with self.db_manager.get_session() as session:
            return session.get(Student, student_id)

    def get_student_by_nisn(self, nisn: str) -> Optional[Student]:
        """Получает ученика по NISN."""
        with self.db_manager.get_session() as session:
            return session.query(Student).filter(Student.nisn == nisn).first()

    def list_students(self, status: str = None, class_name: str = None) -> List[Student]:
        """
        Получает список учеников с фильтрами.

        Args:
            status: Статус верификации
            class_name: Класс

        Returns:
            List[Student]: Список учеников
        """
        with self.db_manager.get_session() as session:
            query = session.query(Student)

            if status:
                query = query.filter(Student.status == status)

            if class_name:
                query = query.filter(Student.class_name == class_name)

            return query.order_by(Student.class_name, Student.full_name).all()

    def create_student(self, student_data: dict) -> Student:
        """
        Создает ученика.

        Raises:
            AlreadyExistsError: Если NISN уже занят
        """
        with self.db_manager.get_session() as session:
            student = Student(**student_data)
            session.add(student)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AlreadyExistsError(f"NISN {student_data.get('nisn')} sudah terdaftar")
            session.refresh(student)
            return student

    def create_students_with_accounts(self, rows: List[Tuple[dict, dict]]) -> List[Tuple[Student, User]]:
        """
        Создает учеников вместе с учетными записями в одной транзакции.

        Args:
            rows: Пары (данные ученика, данные пользователя без student_id)

        Returns:
            List[Tuple[Student, User]]: Созданные записи
        """
        created = []
        with self.db_manager.get_session() as session:
            try:
                for student_data, user_data in rows:
                    student = Student(**student_data)
                    session.add(student)
                    session.flush()

                    user = User(student_id=student.id, **user_data)
                    session.add(user)
                    session.flush()

                    created.append((student, user))

                session.commit()
                for student, user in created:
                    session.refresh(student)
                    session.refresh(user)
            except IntegrityError as e:
                session.rollback()
                raise AlreadyExistsError(f"Data duplikat pada impor: {e.orig}")

        return created

    def update_student(self, student_id: int, data: dict) -> Optional[Student]:
        """
        Обновляет анкетные поля ученика.

        Returns:
            Optional[Student]: Обновленный ученик или None
        """
        with self.db_manager.get_session() as session:
            student = session.get(Student, student_id)
            if student is None:
                return None

            for key, value in data.items():
                setattr(student, key, value)

            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AlreadyExistsError(f"NISN {data.get('nisn')} sudah terdaftar")
            return student

    def set_verification(self, student_id: int, status: str, verified_by: Optional[int],
                         verification_date: Optional[datetime], notes: Optional[str]) -> Optional[Student]:
        """
        Обновляет статус и реквизиты верификации одним UPDATE.

        Args:
            student_id: ID ученика
            status: Новый статус
            verified_by: ID администратора
            verification_date: Время решения
            notes: Примечание

        Returns:
            Optional[Student]: Обновленный ученик или None, если не найден
        """
        with self.db_manager.get_session() as session:
            result = session.execute(
                update(Student)
                .where(Student.id == student_id)
                .values(
                    status=status,
                    verified_by=verified_by,
                    verification_date=verification_date,
                    verification_notes=notes
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount == 0:
                session.rollback()
                return None

            session.commit()
            return session.get(Student, student_id, populate_existing=True)

    def get_statistics(self) -> Dict[str, int]:
        """Возвращает статистику по статусам учеников."""
        with self.db_manager.get_session() as session:
            counts = dict(
                session.query(Student.status, func.count(Student.id)).group_by(Student.status).all()
            )
            total_classes = session.query(func.count(func.distinct(Student.class_name))).filter(
                Student.class_name != ""
            ).scalar()

            return {
                "total_students": sum(counts.values()),
                "verified_students": counts.get("verified", 0),
                "pending_students": counts.get("pending", 0),
                "rejected_students": counts.get("rejected", 0),
                "total_classes": total_classes or 0,
            }

    # ------------------------------------------------------------------ оценки

    def get_student_grades(self, student_id: int) -> List[Tuple[Grade, Subject]]:
        """
        Получает оценки ученика вместе с предметами.

        Returns:
            List[Tuple[Grade, Subject]]: Пары (оценка, предмет)
        """
        with self.db_manager.get_session() as session:
            rows = session.query(Grade, Subject).join(Subject, Grade.subject_id == Subject.id).filter(
                Grade.student_id == student_id
            ).order_by(Subject.group, Subject.code, Subject.name).all()
            return [(grade, subject) for grade, subject in rows]

    def save_grade(self, student_id: int, subject_id: int, value: float) -> Grade:
        """
        Сохраняет оценку; повторное сохранение по той же паре обновляет значение.

        Returns:
            Grade: Сохраненная оценка
        """
        with self.db_manager.get_session() as session:
            grade = session.query(Grade).filter(
                Grade.student_id == student_id,
                Grade.subject_id == subject_id
            ).first()

            if grade is None:
                grade = Grade(student_id=student_id, subject_id=subject_id, value=value)
                session.add(grade)
            else:
                grade.value = value

            session.commit()
            return grade

    def save_grades(self, rows: List[Tuple[int, int, float]]) -> List[Grade]:
        """
        Сохраняет пакет оценок в одной транзакции.

        Args:
            rows: Тройки (student_id, subject_id, value)

        Returns:
            List[Grade]: Сохраненные оценки в порядке rows
        """
        with self.db_manager.get_session() as session:
            grades = []
            for student_id, subject_id, value in rows:
                grade = session.query(Grade).filter(
                    Grade.student_id == student_id,
                    Grade.subject_id == subject_id
                ).first()

                if grade is None:
                    grade = Grade(student_id=student_id, subject_id=subject_id, value=value)
                    session.add(grade)
                else:
                    grade.value = value
                grades.append(grade)

            session.commit()
            for grade in grades:
                session.refresh(grade)
            return grades

    def delete_grade(self, grade_id: int) -> bool:
        """Удаляет оценку. Возвращает False, если оценка не найдена."""
        with self.db_manager.get_session() as session:
            grade = session.get(Grade, grade_id)
            if grade is None:
                return False

            session.delete(grade)
            session.commit()
            return True

    def get_grades_summary(self) -> List[Dict[str, int]]:
        """Возвращает количество оценок по каждому ученику."""
        with self.db_manager.get_session() as session:
            rows = session.query(Grade.student_id, func.count(Grade.id)).group_by(
                Grade.student_id
            ).order_by(Grade.student_id).all()
            return [{"student_id": student_id, "count": count} for student_id, count in rows]

    # ------------------------------------------------------------------ предметы

    def list_subjects(self, group: str = None) -> List[Subject]:
        """Получает список предметов."""
        with self.db_manager.get_session() as session:
            query = session.query(Subject)
            if group:
                query = query.filter(Subject.group == group)
            return query.order_by(Subject.group, Subject.code).all()

    def get_subject(self, subject_id: int) -> Optional[Subject]:
        """Получает предмет по ID."""
        with self.db_manager.get_session() as session:
            return session.get(Subject, subject_id)

    def get_subject_by_code(self, code: str) -> Optional[Subject]:
        """Получает предмет по коду."""
        with self.db_manager.get_session() as session:
            return session.query(Subject).filter(Subject.code == code).first()

    def create_subject(self, subject_data: dict) -> Subject:
        """Создает предмет."""
        with self.db_manager.get_session() as session:
            subject = Subject(**subject_data)
            session.add(subject)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AlreadyExistsError(f"Kode mata pelajaran {subject_data.get('code')} sudah ada")
            return subject

    def update_subject(self, subject_id: int, data: dict) -> Optional[Subject]:
        """Обновляет предмет."""
        with self.db_manager.get_session() as session:
            subject = session.get(Subject, subject_id)
            if subject is None:
                return None

            for key, value in data.items():
                setattr(subject, key, value)

            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AlreadyExistsError(f"Kode mata pelajaran {data.get('code')} sudah ada")
            return subject

    # ------------------------------------------------------------------ настройки

    def get_school_settings(self) -> Optional[SchoolSettings]:
        """Получает настройки школы."""
        with self.db_manager.get_session() as session:
            return session.query(SchoolSettings).order_by(SchoolSettings.id).first()

    def save_school_settings(self, data: dict) -> SchoolSettings:
        """Создает или обновляет единственную запись настроек."""
        with self.db_manager.get_session() as session:
            record = session.query(SchoolSettings).order_by(SchoolSettings.id).first()

            if record is None:
                record = SchoolSettings(**data)
                session.add(record)
            else:
                for key, value in data.items():
                    setattr(record, key, value)

            session.commit()
            session.refresh(record)
            return record

    # ------------------------------------------------------------------ пользователи

    def get_user(self, user_id: int) -> Optional[User]:
        """Получает пользователя по ID."""
        with self.db_manager.get_session() as session:
            return session.get(User, user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Получает пользователя по логину."""
        with self.db_manager.get_session() as session:
            return session.query(User).filter(User.username == username).first()

    def list_users(self, role: str = None) -> List[User]:
        """Получает список пользователей."""
        with self.db_manager.get_session() as session:
            query = session.query(User)
            if role:
                query = query.filter(User.role == role)
            return query.order_by(User.role, User.username).all()

    def create_user(self, user_data: dict) -> User:
        """Создает пользователя."""
        with self.db_manager.get_session() as session:
            user = User(**user_data)
            session.add(user)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise AlreadyExistsError(f"Username {user_data.get('username')} sudah digunakan")
            session.refresh(user)
            return user

    def update_user_password(self, user_id: int, password_hash: str) -> bool:
        """Меняет хэш пароля. Возвращает False, если пользователь не найден."""
        with self.db_manager.get_session() as session:
            user = session.get(User, user_id)
            if user is None:
                return False

            user.password = password_hash
            session.commit()
            return True

    def count_users(self, role: str) -> int:
        """Считает пользователей с указанной ролью."""
        with self.db_manager.get_session() as session:
            return session.query(User).filter(User.role == role).count()


_db_manager: Optional[DatabaseManager] = None
_repository: Optional[SKLRepository] = None


def get_db_manager() -> DatabaseManager:
    """Возвращает менеджер БД (создается при первом обращении)."""
    global _db_manager
    if _db_manager is None:
        _db_manager = DatabaseManager()
    return _db_manager


def get_repository() -> SKLRepository:
    """Возвращает репозиторий SKL."""
    global _repository
    if _repository is None:
        _repository = SKLRepository(get_db_manager())
    return _repository
