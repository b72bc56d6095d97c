"""
Общие фикстуры для тестов
"""
import pytest
from datetime import date, datetime, timezone

from config.settings import Settings
from skl.database import DatabaseManager, SKLRepository
from skl.models import SchoolSettingsData, UserRecord
from skl.renderer import CertificateRenderer
from skl.security import hash_password
from skl.service import SKLService

FIXED_TODAY = date(2025, 6, 2)
FIXED_NOW = datetime(2025, 6, 1, 9, 30, tzinfo=timezone.utc)

ADMIN_PASSWORD = "admin-secret"
GURU_PASSWORD = "guru-secret"


@pytest.fixture
def db_manager():
    """In-memory SQLite с созданными таблицами"""
    manager = DatabaseManager("sqlite://")
    manager.create_tables()
    yield manager
    manager.drop_tables()
    manager.engine.dispose()


@pytest.fixture
def repository(db_manager):
    return SKLRepository(db_manager)


@pytest.fixture
def school_settings(repository):
    """Настройки школы в БД"""
    return repository.save_school_settings({
        "school_name": "SMA Negeri 1 Contoh",
        "school_address": "Jl. Merdeka No. 1, Bandung",
        "school_email": "info@sman1contoh.sch.id",
        "school_website": "sman1contoh.sch.id",
        "headmaster_name": "Drs. Ahmad Suryadi, M.Pd",
        "headmaster_nip": "196801011990031001",
        "city_name": "Bandung",
        "province_name": "Jawa Barat",
        "academic_year": "2024/2025",
        "graduation_date": "2025-05-05",
    })


@pytest.fixture
def settings_data():
    """Снимок настроек школы без БД"""
    return SchoolSettingsData(
        school_name="SMA Negeri 1 Contoh",
        headmaster_name="Drs. Ahmad Suryadi, M.Pd",
        headmaster_nip="196801011990031001",
        city_name="Bandung",
        province_name="Jawa Barat",
        academic_year="2024/2025",
    )


@pytest.fixture
def subjects(repository):
    """Предметы групп A и C"""
    return {
        "MTK": repository.create_subject({"code": "MTK", "name": "Matematika", "group": "A"}),
        "BIN": repository.create_subject({"code": "BIN", "name": "Bahasa Indonesia", "group": "A"}),
        "FIS": repository.create_subject({"code": "FIS", "name": "Fisika", "group": "C"}),
    }


def _student(nisn: str, full_name: str, class_name: str = "XII IPA 1") -> dict:
    return {
        "nisn": nisn,
        "nis": nisn[-5:],
        "full_name": full_name,
        "birth_place": "Bandung",
        "birth_date": date(2007, 5, 14),
        "parent_name": "Slamet",
        "class_name": class_name,
        "major": "MIPA",
    }


@pytest.fixture
def admin_user(repository):
    row = repository.create_user({
        "username": "admin",
        "password": hash_password(ADMIN_PASSWORD),
        "full_name": "Administrator",
        "role": "admin",
    })
    return UserRecord.model_validate(row)


@pytest.fixture
def guru_user(repository):
    row = repository.create_user({
        "username": "guru",
        "password": hash_password(GURU_PASSWORD),
        "full_name": "Ibu Guru",
        "role": "guru",
    })
    return UserRecord.model_validate(row)


@pytest.fixture
def pending_student(repository):
    return repository.create_student(_student("0051234567", "Budi Santoso"))


@pytest.fixture
def verified_student(repository, admin_user):
    student = repository.create_student(_student("0051234568", "Siti Aminah", "XII IPA 2"))
    return repository.set_verification(student.id, "verified", admin_user.id, FIXED_NOW, None)


@pytest.fixture
def siswa_user(repository, verified_student):
    """Учетная запись ученика verified_student (логин и пароль = NISN)"""
    row = repository.create_user({
        "username": verified_student.nisn,
        "password": hash_password(verified_student.nisn),
        "full_name": verified_student.full_name,
        "role": "siswa",
        "student_id": verified_student.id,
    })
    return UserRecord.model_validate(row)


@pytest.fixture
def service(repository):
    """Сервис с фиксированными датой и временем"""
    return SKLService(
        repository=repository,
        renderer=CertificateRenderer(),
        today=lambda: FIXED_TODAY,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def app_settings(tmp_path):
    return Settings(
        db_url="sqlite://",
        log_file=tmp_path / "logs" / "skl.log",
        assets_path=tmp_path / "uploads",
        admin_username="bootstrap",
        admin_password="bootstrap-secret",
    )
