"""
Тесты для API
"""
import io
import pytest
from datetime import date
from fastapi.testclient import TestClient
from PIL import Image as PILImage

from api_server import create_app
from skl.renderer import CertificateRenderer
from skl.service import SKLService

from tests.conftest import ADMIN_PASSWORD, FIXED_NOW, FIXED_TODAY, GURU_PASSWORD

ADMIN = ("admin", ADMIN_PASSWORD)
GURU = ("guru", GURU_PASSWORD)


class TestSKLAPI:
    """Тесты для API SKL"""

    @pytest.fixture
    def app(self, app_settings, service):
        return create_app(settings=app_settings, service=service)

    @pytest.fixture
    def client(self, app, admin_user, guru_user):
        """Тестовый клиент с администратором и учителем в БД"""
        return TestClient(app)

    @pytest.fixture
    def siswa_auth(self, siswa_user):
        return (siswa_user.username, siswa_user.username)

    @pytest.fixture
    def other_verified(self, repository, admin_user):
        """Другой верифицированный ученик"""
        student = repository.create_student({
            "nisn": "0051234569", "nis": "34569", "full_name": "Rina Marlina", "birth_place": "Garut",
            "birth_date": date(2007, 2, 3), "parent_name": "Marlina", "class_name": "XII IPA 2",
        })
        return repository.set_verification(student.id, "verified", admin_user.id, FIXED_NOW, None)

    @pytest.fixture
    def image_client(self, app_settings, repository, admin_user, guru_user):
        """Клиент, у сервиса которого есть директория изображений"""
        service = SKLService(
            repository=repository,
            renderer=CertificateRenderer(app_settings.assets_path),
            today=lambda: FIXED_TODAY,
        )
        return TestClient(create_app(settings=app_settings, service=service))

    # ------------------------------------------------------------------ служебное

    def test_health_check(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["components"]["database"]["status"] == "healthy"

    def test_service_uses_school_timezone(self, app_settings):
        app = create_app(settings=app_settings)
        assert app.state.service.assembler.today == app_settings.local_date

    def test_lifespan_bootstraps_admin(self, app, service):
        with TestClient(app) as client:
            response = client.get("/api/me", auth=("bootstrap", "bootstrap-secret"))
            assert response.status_code == 200
            assert response.json()["role"] == "admin"

    # ------------------------------------------------------------------ аутентификация

    def test_missing_credentials(self, client):
        response = client.get("/api/me")

        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Basic"
        assert "detail" in response.json()

    def test_wrong_password(self, client):
        response = client.get("/api/me", auth=("admin", "salah"))
        assert response.status_code == 401

    def test_me(self, client):
        response = client.get("/api/me", auth=GURU)

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "guru"
        assert data["role"] == "guru"
        assert "password" not in data

    def test_change_password(self, client):
        response = client.post("/api/change-password", auth=GURU,
                               json={"current_password": GURU_PASSWORD, "new_password": "guru-baru"})
        assert response.status_code == 200

        assert client.get("/api/me", auth=GURU).status_code == 401
        assert client.get("/api/me", auth=("guru", "guru-baru")).status_code == 200

    # ------------------------------------------------------------------ верификация

    def test_admin_verifies_student(self, client, pending_student):
        response = client.post(f"/api/students/{pending_student.id}/verify", auth=ADMIN,
                               json={"decision": "verified", "notes": "Berkas lengkap"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "verified"
        assert data["verified_by"] is not None
        assert data["verification_date"] is not None

    def test_guru_cannot_verify(self, client, pending_student):
        response = client.post(f"/api/students/{pending_student.id}/verify", auth=GURU,
                               json={"decision": "verified"})

        assert response.status_code == 403
        assert client.get(f"/api/students/{pending_student.id}", auth=GURU).json()["status"] == "pending"

    def test_invalid_decision(self, client, pending_student):
        response = client.post(f"/api/students/{pending_student.id}/verify", auth=ADMIN,
                               json={"decision": "maybe"})

        assert response.status_code == 400
        assert "maybe" in response.json()["detail"]

    def test_verify_unknown_student(self, client):
        response = client.post("/api/students/9999/verify", auth=ADMIN, json={"decision": "rejected"})
        assert response.status_code == 404

    def test_reopen_requires_confirm(self, client, verified_student):
        url = f"/api/students/{verified_student.id}/reopen"

        assert client.post(url, auth=ADMIN, json={}).status_code == 400

        response = client.post(url, auth=ADMIN, json={"confirm": True, "notes": "Koreksi data"})
        assert response.status_code == 200
        assert response.json()["status"] == "pending"

    # ------------------------------------------------------------------ SKL

    def test_download_certificate(self, client, verified_student, school_settings):
        response = client.get(f"/api/certificates/{verified_student.id}", auth=GURU)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.content.startswith(b"%PDF")
        expected = f'attachment; filename="SKL_421-{verified_student.id:03d}-SMA-2025.pdf"'
        assert response.headers["content-disposition"] == expected

    def test_download_with_grades(self, client, verified_student, school_settings, subjects):
        client.post("/api/grades", auth=GURU,
                    json={"student_id": verified_student.id, "subject_id": subjects["MTK"].id, "value": 88})

        response = client.get(f"/api/certificates/{verified_student.id}?show_grades=true", auth=ADMIN)

        assert response.status_code == 200
        assert response.content.startswith(b"%PDF")

    def test_download_pending_student(self, client, pending_student, school_settings):
        response = client.get(f"/api/certificates/{pending_student.id}", auth=ADMIN)
        assert response.status_code == 404

    def test_download_without_settings(self, client, verified_student):
        response = client.get(f"/api/certificates/{verified_student.id}", auth=ADMIN)

        assert response.status_code == 503
        assert response.json()["detail"]

    def test_siswa_downloads_own_certificate(self, client, verified_student, school_settings, siswa_auth):
        response = client.get(f"/api/certificates/{verified_student.id}", auth=siswa_auth)
        assert response.status_code == 200

    def test_siswa_cannot_download_other(self, client, pending_student, school_settings, siswa_auth):
        response = client.get(f"/api/certificates/{pending_student.id}", auth=siswa_auth)
        assert response.status_code == 403

    @pytest.mark.parametrize("id_format", ["+{}", "{}.0", "%20{}", "0{}"])
    def test_siswa_cannot_reach_other_record_by_id_spelling(self, client, school_settings, siswa_auth,
                                                            other_verified, id_format):
        """Любая запись ID, которую FastAPI приводит к числу, проверяется как число"""
        other_id = id_format.format(other_verified.id)

        for url in (f"/api/certificates/{other_id}", f"/api/students/{other_id}",
                    f"/api/students/{other_id}/grades"):
            response = client.get(url, auth=siswa_auth)
            assert response.status_code in (400, 403), url
            assert not response.content.startswith(b"%PDF")

        assert client.get(f"/api/certificates/{other_verified.id}", auth=GURU).status_code == 200

    # ------------------------------------------------------------------ ученики

    def test_siswa_profile_and_restrictions(self, client, verified_student, pending_student, siswa_auth):
        response = client.get("/api/students/profile", auth=siswa_auth)
        assert response.status_code == 200
        assert response.json()["id"] == verified_student.id

        assert client.get("/api/students", auth=siswa_auth).status_code == 403
        assert client.get(f"/api/students/{pending_student.id}", auth=siswa_auth).status_code == 403
        assert client.get(f"/api/students/{verified_student.id}/grades", auth=siswa_auth).status_code == 200

    def test_list_students(self, client, pending_student, verified_student):
        response = client.get("/api/students?status=pending", auth=GURU)

        assert response.status_code == 200
        assert [s["id"] for s in response.json()] == [pending_student.id]

    def test_create_student(self, client):
        payload = {
            "nisn": "0090000001",
            "nis": "9001",
            "full_name": "Rudi Hartono",
            "birth_place": "Bogor",
            "birth_date": "2007-08-17",
            "parent_name": "Hartono",
            "class_name": "XII IPS 2",
        }

        response = client.post("/api/students?create_account=true", auth=ADMIN, json=payload)
        assert response.status_code == 201
        assert response.json()["status"] == "pending"

        assert client.post("/api/students", auth=ADMIN, json=payload).status_code == 409
        assert client.get("/api/me", auth=("0090000001", "0090000001")).json()["role"] == "siswa"

    def test_create_student_invalid_body(self, client):
        response = client.post("/api/students", auth=ADMIN, json={"nisn": "abc"})

        assert response.status_code == 400
        assert response.json()["detail"]

    def test_guru_cannot_create_student(self, client):
        assert client.post("/api/students", auth=GURU, json={}).status_code in (400, 403)

    def test_update_student(self, client, pending_student):
        response = client.put(f"/api/students/{pending_student.id}", auth=ADMIN, json={"parent_name": "Ibu Slamet"})

        assert response.status_code == 200
        assert response.json()["parent_name"] == "Ibu Slamet"

    def test_import_students(self, client):
        rows = [
            {"nisn": "0091000001", "nis": "1", "full_name": "Ani", "birth_place": "Depok",
             "birth_date": "2007-01-01", "parent_name": "Budi", "class_name": "XII IPA 1"},
            {"nisn": "0091000002", "nis": "2", "full_name": "Bayu", "birth_place": "Depok",
             "birth_date": "2007-02-02", "parent_name": "Candra", "class_name": "XII IPA 1"},
        ]

        response = client.post("/api/students/import", auth=ADMIN, json=rows)

        assert response.status_code == 201
        assert response.json()["imported"] == 2
        assert client.get("/api/me", auth=("0091000002", "0091000002")).status_code == 200

    # ------------------------------------------------------------------ оценки и предметы

    def test_grades_flow(self, client, pending_student, subjects):
        payload = {"student_id": pending_student.id, "subject_id": subjects["BIN"].id, "value": 91.5}

        saved = client.post("/api/grades", auth=GURU, json=payload)
        assert saved.status_code == 200
        assert saved.json()["subject_name"] == "Bahasa Indonesia"

        grades = client.get(f"/api/students/{pending_student.id}/grades", auth=GURU).json()
        assert [g["value"] for g in grades] == [91.5]

        summary = client.get("/api/grades-summary", auth=ADMIN).json()
        assert summary == [{"student_id": pending_student.id, "count": 1}]

        assert client.delete(f"/api/grades/{saved.json()['id']}", auth=GURU).status_code == 204
        assert client.delete(f"/api/grades/{saved.json()['id']}", auth=GURU).status_code == 404

    def test_grade_out_of_range(self, client, pending_student, subjects):
        payload = {"student_id": pending_student.id, "subject_id": subjects["BIN"].id, "value": 120}
        assert client.post("/api/grades", auth=GURU, json=payload).status_code == 400

    def test_subjects(self, client, subjects):
        assert len(client.get("/api/subjects", auth=GURU).json()) == 3

        created = client.post("/api/subjects", auth=ADMIN, json={"code": "SEJ", "name": "Sejarah", "group": "B"})
        assert created.status_code == 201

        updated = client.put(f"/api/subjects/{created.json()['id']}", auth=ADMIN, json={"name": "Sejarah Indonesia"})
        assert updated.json()["name"] == "Sejarah Indonesia"

        assert client.post("/api/subjects", auth=GURU, json={"code": "X", "name": "X"}).status_code == 403

    # ------------------------------------------------------------------ настройки и пользователи

    def test_settings(self, client, siswa_auth):
        assert client.get("/api/settings", auth=ADMIN).json() is None

        response = client.put("/api/settings", auth=ADMIN,
                              json={"school_name": "SMA Negeri 3", "headmaster_name": "Dr. Wati"})
        assert response.status_code == 200

        assert client.get("/api/settings", auth=siswa_auth).json()["school_name"] == "SMA Negeri 3"
        assert client.put("/api/settings", auth=GURU, json={"city_name": "Depok"}).status_code == 403

    def test_settings_invalid_template(self, client, school_settings):
        response = client.put("/api/settings", auth=ADMIN, json={"cert_number_template": "{nomor}"})
        assert response.status_code == 400

        for template in ("{id.real}/{year.foo}", "{id.__class__}"):
            response = client.put("/api/settings", auth=ADMIN, json={"cert_number_template": template})
            assert response.status_code == 400

        assert client.get("/api/settings", auth=ADMIN).json()["cert_number_template"] == "421/{id:03d}/SMA/{year}"

    def test_users(self, client, pending_student):
        response = client.post("/api/users", auth=ADMIN, json={
            "username": "murid1", "password": "murid-123", "full_name": "Budi Santoso",
            "role": "siswa", "student_id": pending_student.id,
        })
        assert response.status_code == 201
        user_id = response.json()["id"]

        assert client.post(f"/api/users/{user_id}/reset-password", auth=ADMIN,
                           json={"new_password": "murid-456"}).status_code == 200
        assert client.get("/api/me", auth=("murid1", "murid-456")).status_code == 200

        usernames = {u["username"] for u in client.get("/api/users", auth=ADMIN).json()}
        assert {"admin", "guru", "murid1"} <= usernames

        assert client.get("/api/users", auth=GURU).status_code == 403

    def test_dashboard(self, client, pending_student, verified_student):
        response = client.get("/api/dashboard", auth=GURU)

        assert response.status_code == 200
        assert response.json() == {
            "total_students": 2,
            "verified_students": 1,
            "pending_students": 1,
            "rejected_students": 0,
            "total_classes": 2,
        }

    # ------------------------------------------------------------------ пакетные оценки

    def test_student_grade_batch(self, client, pending_student, subjects):
        url = f"/api/students/{pending_student.id}/grades"
        payload = [
            {"subject_id": subjects["MTK"].id, "value": 80},
            {"subject_id": subjects["BIN"].id, "value": 92},
        ]

        response = client.post(url, auth=GURU, json=payload)

        assert response.status_code == 201
        assert [g["subject_code"] for g in response.json()] == ["MTK", "BIN"]
        assert len(client.get(url, auth=GURU).json()) == 2

    def test_student_grade_batch_rolls_back(self, client, pending_student, subjects):
        url = f"/api/students/{pending_student.id}/grades"
        payload = [
            {"subject_id": subjects["MTK"].id, "value": 80},
            {"subject_id": subjects["BIN"].id, "value": 105},
        ]

        assert client.post(url, auth=GURU, json=payload).status_code == 400
        assert client.get(url, auth=GURU).json() == []

    def test_student_grade_batch_forbidden_for_siswa(self, client, verified_student, subjects, siswa_auth):
        url = f"/api/students/{verified_student.id}/grades"
        response = client.post(url, auth=siswa_auth, json=[{"subject_id": subjects["MTK"].id, "value": 100}])
        assert response.status_code == 403

    def test_import_class_grades(self, client, pending_student, subjects):
        response = client.post("/api/grades/import-class", auth=ADMIN, json={
            "class_name": "XII IPA 1",
            "rows": [{"nisn": pending_student.nisn, "grades": {"MTK": 77, "FIS": 81}}],
        })

        assert response.status_code == 200
        assert response.json() == {"students": 1, "saved": 2}

        unknown = client.post("/api/grades/import-class", auth=ADMIN, json={
            "class_name": "XII IPA 1",
            "rows": [{"nisn": "0099999999", "grades": {"MTK": 77}}],
        })
        assert unknown.status_code == 404

    # ------------------------------------------------------------------ изображения

    @staticmethod
    def _png(size=(120, 60)) -> bytes:
        buffer = io.BytesIO()
        PILImage.new("RGB", size, (20, 40, 200)).save(buffer, format="PNG")
        return buffer.getvalue()

    def test_upload_signature_used_in_certificate(self, image_client, app_settings, verified_student,
                                                  school_settings):
        response = image_client.post("/api/upload/headmaster-signature", auth=ADMIN,
                                     files={"file": ("ttd.png", self._png(), "image/png")})

        assert response.status_code == 200
        stored = response.json()["headmaster_signature"]
        assert (app_settings.assets_path / stored).exists()

        pdf = image_client.get(f"/api/certificates/{verified_student.id}", auth=ADMIN).content
        assert pdf.startswith(b"%PDF")
        assert b"/Subtype /Image" in pdf

    def test_delete_uploaded_image(self, image_client, app_settings, school_settings):
        stored = image_client.post("/api/upload/school-stamp", auth=ADMIN,
                                   files={"file": ("stempel.png", self._png(), "image/png")}).json()["school_stamp"]

        response = image_client.delete("/api/settings/image/school-stamp", auth=ADMIN)

        assert response.status_code == 200
        assert response.json()["school_stamp"] == ""
        assert not (app_settings.assets_path / stored).exists()

    def test_upload_rejections(self, image_client, school_settings):
        files = {"file": ("logo.png", self._png(), "image/png")}

        assert image_client.post("/api/upload/school-logo", auth=GURU, files=files).status_code == 403
        assert image_client.post("/api/upload/banner", auth=ADMIN, files=files).status_code == 400
        assert image_client.post("/api/upload/school-logo", auth=ADMIN).status_code == 400

        not_image = {"file": ("logo.png", b"bukan gambar", "image/png")}
        assert image_client.post("/api/upload/school-logo", auth=ADMIN, files=not_image).status_code == 400

    def test_upload_without_settings(self, image_client):
        files = {"file": ("logo.png", self._png(), "image/png")}
        assert image_client.post("/api/upload/school-logo", auth=ADMIN, files=files).status_code == 503
