"""
Тесты сборщика данных SKL
"""
import pytest
from datetime import date, datetime, timezone

from pydantic import ValidationError as PydanticValidationError

from config.settings import Settings
from skl.assembler import CertificateAssembler, average_grade
from skl.exceptions import ConfigurationError, NotFoundError, StudentNotEligibleError, StudentNotFoundError
from skl.models import CertificateOptions, SchoolSettingsData, SubjectGroup

from tests.conftest import FIXED_TODAY


class TestAverageGrade:
    """Тесты среднего балла"""

    def test_simple_average(self):
        assert average_grade([80, 90, 70]) == 80.00

    def test_half_up_rounding(self):
        # 85.125 -> 85.13, а не банковское 85.12
        assert average_grade([85.125]) == 85.13
        assert average_grade([80, 85, 91]) == 85.33

    def test_no_grades(self):
        assert average_grade([]) is None


class TestCertificateAssembler:
    """Тесты сборки CertificateData"""

    @pytest.fixture
    def assembler(self, repository):
        return CertificateAssembler(repository, today=lambda: FIXED_TODAY)

    def test_certificate_number_and_date(self, assembler, repository, verified_student, school_settings):
        data = assembler.assemble(verified_student.id)

        assert data.cert_number == f"421/{verified_student.id:03d}/SMA/2025"
        assert data.issue_date == "2 Juni 2025"
        assert data.issued_on == FIXED_TODAY
        assert data.birth_date == "14 Mei 2007"
        assert data.full_name == "Siti Aminah"
        assert data.school_name == "SMA Negeri 1 Contoh"
        assert data.major_name == "MIPA"

    def test_certificate_number_for_id_7(self, repository, admin_user, settings_data):
        """ID 7 в 2025 году дает 421/007/SMA/2025"""
        for index in range(7):
            student = repository.create_student({
                "nisn": f"00600000{index:02d}",
                "nis": f"{index}",
                "full_name": f"Siswa {index}",
                "birth_place": "Garut",
                "birth_date": date(2007, 1, 1),
                "parent_name": "Orang Tua",
                "class_name": "XII IPS 1",
            })
        repository.set_verification(student.id, "verified", admin_user.id, None, None)

        assembler = CertificateAssembler(repository, today=lambda: date(2025, 6, 2))
        data = assembler.assemble(7, school_settings=settings_data)

        assert data.cert_number == "421/007/SMA/2025"

    def test_number_is_reproducible(self, assembler, verified_student, school_settings):
        first = assembler.assemble(verified_student.id)
        second = assembler.assemble(verified_student.id)
        assert first.cert_number == second.cert_number

    def test_pending_student_not_eligible(self, assembler, pending_student, school_settings):
        with pytest.raises(StudentNotEligibleError):
            assembler.assemble(pending_student.id)

    def test_not_eligible_is_not_found(self, assembler, pending_student, school_settings):
        with pytest.raises(NotFoundError):
            assembler.assemble(pending_student.id)

    def test_rejected_student_not_eligible(self, assembler, repository, pending_student, admin_user,
                                           school_settings):
        repository.set_verification(pending_student.id, "rejected", admin_user.id, None, "Tidak lengkap")
        with pytest.raises(StudentNotEligibleError):
            assembler.assemble(pending_student.id)

    def test_unknown_student(self, assembler, school_settings):
        with pytest.raises(StudentNotFoundError):
            assembler.assemble(9999)

    def test_missing_settings(self, assembler, verified_student):
        with pytest.raises(ConfigurationError):
            assembler.assemble(verified_student.id)

    def test_blank_headmaster(self, assembler, verified_student):
        settings = SchoolSettingsData(school_name="SMA Negeri 1 Contoh", headmaster_name="  ")
        with pytest.raises(ConfigurationError):
            assembler.assemble(verified_student.id, school_settings=settings)

    def test_injected_settings_win(self, assembler, verified_student, school_settings):
        settings = SchoolSettingsData(
            school_name="SMA Swasta Lain",
            headmaster_name="Dra. Rina",
            cert_number_template="SKL-{year}-{id}",
        )
        data = assembler.assemble(verified_student.id, school_settings=settings)

        assert data.school_name == "SMA Swasta Lain"
        assert data.cert_number == f"SKL-2025-{verified_student.id}"

    def test_issue_date_in_school_timezone(self, repository, verified_student, settings_data):
        """31 декабря 17:30 UTC в Джакарте уже 1 января"""
        settings = Settings(timezone="Asia/Jakarta")
        evening_utc = datetime(2025, 12, 31, 17, 30, tzinfo=timezone.utc)
        assembler = CertificateAssembler(repository, today=lambda: settings.local_date(evening_utc))

        data = assembler.assemble(verified_student.id, school_settings=settings_data)

        assert data.issued_on == date(2026, 1, 1)
        assert data.issue_date == "1 Januari 2026"
        assert data.cert_number == f"421/{verified_student.id:03d}/SMA/2026"

    @pytest.mark.parametrize("template", ["{id.real}/{year.foo}", "{id.__class__}"])
    def test_attribute_access_in_template(self, assembler, verified_student, template):
        settings = SchoolSettingsData(
            school_name="SMA Negeri 1 Contoh",
            headmaster_name="Dra. Rina",
            cert_number_template=template,
        )
        with pytest.raises(ConfigurationError):
            assembler.assemble(verified_student.id, school_settings=settings)

    def test_grades_included(self, assembler, repository, verified_student, subjects, school_settings):
        repository.save_grade(verified_student.id, subjects["FIS"].id, 70)
        repository.save_grade(verified_student.id, subjects["MTK"].id, 80)
        repository.save_grade(verified_student.id, subjects["BIN"].id, 90)

        data = assembler.assemble(verified_student.id, CertificateOptions(show_grades=True))

        assert data.show_grades is True
        assert [line.subject_code for line in data.grades] == ["BIN", "MTK", "FIS"]
        assert data.grades[-1].group == SubjectGroup.C
        assert data.average_grade == 80.00

    def test_grades_not_loaded_by_default(self, assembler, repository, verified_student, subjects,
                                          school_settings):
        repository.save_grade(verified_student.id, subjects["MTK"].id, 80)

        data = assembler.assemble(verified_student.id)

        assert data.grades == ()
        assert data.average_grade is None

    def test_show_grades_without_grades(self, assembler, verified_student, school_settings):
        data = assembler.assemble(verified_student.id, CertificateOptions(show_grades=True))
        assert data.grades == ()
        assert data.average_grade is None

    def test_result_is_frozen(self, assembler, verified_student, school_settings):
        data = assembler.assemble(verified_student.id)
        with pytest.raises(PydanticValidationError):
            data.full_name = "Lain"

    def test_download_filename(self, assembler, verified_student, school_settings):
        data = assembler.assemble(verified_student.id)
        assert data.download_filename == f"SKL_421-{verified_student.id:03d}-SMA-2025.pdf"
