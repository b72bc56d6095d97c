"""
Тесты для модуля валидации
"""
import pytest

from skl.exceptions import DecisionValidationError, GradeValidationError, UserValidationError, ValidationError
from skl.models import StudentStatus, UserRole
from skl.validators import Validators


class TestValidators:
    """Тесты для класса Validators"""

    def test_validate_decision_valid(self):
        assert Validators.validate_decision("verified") == StudentStatus.VERIFIED
        assert Validators.validate_decision("REJECTED") == StudentStatus.REJECTED
        assert Validators.validate_decision(StudentStatus.VERIFIED) == StudentStatus.VERIFIED

    def test_validate_decision_invalid(self):
        """pending не является решением, его выставляет только отмена"""
        for decision in ["maybe", "pending", "", None, 1, "lulus"]:
            with pytest.raises(DecisionValidationError):
                Validators.validate_decision(decision)

    def test_decision_error_is_validation_error(self):
        with pytest.raises(ValidationError):
            Validators.validate_decision("maybe")

    def test_validate_grade_value_valid(self):
        for value in [0, 100, 75, 88.5]:
            assert Validators.validate_grade_value(value) == float(value)

    def test_validate_grade_value_invalid(self):
        for value in [-1, 100.01, 150, float("nan"), "90", None, True]:
            with pytest.raises(GradeValidationError):
                Validators.validate_grade_value(value)

    def test_validate_user_role(self):
        assert Validators.validate_user_role("admin", None) == UserRole.ADMIN
        assert Validators.validate_user_role("guru", None) == UserRole.GURU
        assert Validators.validate_user_role("siswa", 3) == UserRole.SISWA

    def test_validate_user_role_invalid(self):
        with pytest.raises(UserValidationError):
            Validators.validate_user_role("siswa", None)

        with pytest.raises(UserValidationError):
            Validators.validate_user_role("guru", 3)

        with pytest.raises(UserValidationError):
            Validators.validate_user_role("kepala", None)

    def test_validate_cert_number_template(self):
        assert Validators.validate_cert_number_template("421/{id:03d}/SMA/{year}") == "421/{id:03d}/SMA/{year}"

        for template in ["", "   ", "421/{nomor}", "{id:s}", "{id.real}/{year.foo}", "{id.__class__}",
                         "{year[0]}", "{}", "421/{id"]:
            with pytest.raises(ValidationError):
                Validators.validate_cert_number_template(template)
