"""
HTTP API для SKL.

Пользователь определяется по HTTP Basic учетным данным, права проверяются
зависимостью require() по таблице CAPABILITIES. Ошибки сервиса переводятся
в HTTP статусы в одном обработчике.
"""
import logging
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, File, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .access import Operation
from .exceptions import *
from .models import (
    ClassGradeImport, ClassGradeImportResult, DashboardStats, GradeCreate, GradeEntry, GradeRecord,
    PasswordChange, PasswordReset, ReopenRequest,
    SchoolSettingsData, SchoolSettingsUpdate, StudentCreate, StudentImportResult, StudentRecord,
    StudentUpdate, SubjectCreate, SubjectRecord, SubjectUpdate, UserCreate, UserRecord, VerificationRequest,
)
from .service import SKLService
from .validators import MAX_IMAGE_SIZE

# Порядок важен: подклассы проверяются раньше базовых классов
ERROR_STATUS = (
    (AuthenticationError, 401),
    (ForbiddenError, 403),
    (ValidationError, 400),
    (NotFoundError, 404),
    (AlreadyExistsError, 409),
    (ConfigurationError, 503),
    (RenderError, 500),
    (DatabaseError, 500),
)


def status_for(error: SKLError) -> int:
    """HTTP статус для ошибки сервиса."""
    for error_class, status_code in ERROR_STATUS:
        if isinstance(error, error_class):
            return status_code
    return 500


class SKLAPI:
    """API для работы с учениками и SKL"""

    def __init__(self, service: SKLService, app: FastAPI = None):
        """
        Args:
            service: Сервис SKL
            app: Приложение, в котором регистрируются маршруты; по умолчанию создается новое
        """
        self.service = service
        self.policy = service.policy
        self.logger = logging.getLogger(__name__)

        self.app = app or FastAPI(
            title="SKL API",
            description="API для выдачи Surat Keterangan Lulus",
            version="1.0.0"
        )

        self.security = HTTPBasic(auto_error=False)

        self._setup_exception_handlers()
        self._setup_routes()

    # ------------------------------------------------------------------ зависимости

    def _current_user(self):
        security = self.security

        def current_user(credentials: Optional[HTTPBasicCredentials] = Depends(security)) -> UserRecord:
            if credentials is None:
                raise AuthenticationError("Kredensial tidak ditemukan")
            return self.service.authenticate(credentials.username, credentials.password)

        return current_user

    def require(self, operation: Operation):
        """Зависимость FastAPI: текущий пользователь с правом на операцию."""
        current_user = self.current_user

        def dependency(user: UserRecord = Depends(current_user)) -> UserRecord:
            self.policy.authorize(user, operation)
            return user

        return dependency

    def require_student(self, operation: Operation):
        """
        То же, что require(), для маршрутов с {student_id}.

        ID берется из провалидированного параметра пути, поэтому siswa
        проверяется на том же числе, которое получит обработчик.
        """
        current_user = self.current_user

        def dependency(student_id: int, user: UserRecord = Depends(current_user)) -> UserRecord:
            self.policy.authorize(user, operation, student_id)
            return user

        return dependency

    # ------------------------------------------------------------------ ошибки

    def _setup_exception_handlers(self):

        @self.app.exception_handler(SKLError)
        async def skl_error_handler(request: Request, exc: SKLError):
            status_code = status_for(exc)
            if status_code >= 500:
                self.logger.error(f"{request.method} {request.url.path}: {exc}")
            else:
                self.logger.warning(f"{request.method} {request.url.path} -> {status_code}: {exc}")

            headers = {"WWW-Authenticate": "Basic"} if status_code == 401 else None
            return JSONResponse(status_code=status_code, content={"detail": str(exc)}, headers=headers)

        @self.app.exception_handler(RequestValidationError)
        async def request_validation_handler(request: Request, exc: RequestValidationError):
            messages = []
            for error in exc.errors():
                location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
                messages.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))

            self.logger.warning(f"{request.method} {request.url.path}: некорректный запрос {messages}")
            return JSONResponse(status_code=400, content={"detail": "; ".join(messages)})

    # ------------------------------------------------------------------ маршруты

    def _setup_routes(self):
        """Настройка маршрутов API"""
        self.current_user = self._current_user()
        service = self.service
        require = self.require
        require_student = self.require_student

        @self.app.get("/api/me", response_model=UserRecord)
        def get_me(user: UserRecord = Depends(self.current_user)):
            """Текущий пользователь"""
            return user

        @self.app.post("/api/change-password")
        def change_password(request: PasswordChange,
                            user: UserRecord = Depends(require(Operation.CHANGE_OWN_PASSWORD))):
            service.change_password(user, request.current_password, request.new_password)
            return {"message": "Password berhasil diubah"}

        @self.app.get("/api/dashboard", response_model=DashboardStats)
        def dashboard(user: UserRecord = Depends(require(Operation.VIEW_DASHBOARD))):
            return service.get_dashboard_stats()

        # Ученики

        @self.app.get("/api/students", response_model=List[StudentRecord])
        def list_students(status: Optional[str] = None, class_name: Optional[str] = None,
                          user: UserRecord = Depends(require(Operation.LIST_STUDENTS))):
            """Список учеников с фильтрами по статусу и классу"""
            return service.list_students(status=status, class_name=class_name)

        @self.app.get("/api/students/profile", response_model=StudentRecord)
        def student_profile(user: UserRecord = Depends(require(Operation.VIEW_OWN_PROFILE))):
            """Запись ученика, связанная с текущей учетной записью"""
            return service.get_student_profile(user)

        @self.app.post("/api/students/import", response_model=StudentImportResult, status_code=201)
        def import_students(rows: List[StudentCreate],
                            user: UserRecord = Depends(require(Operation.MANAGE_STUDENTS))):
            """Массовый импорт; логин и пароль ученика равны NISN"""
            result = service.import_students(rows)
            self.logger.info(f"{user.username} импортировал учеников: {result.imported}")
            return result

        @self.app.post("/api/students", response_model=StudentRecord, status_code=201)
        def create_student(request: StudentCreate, create_account: bool = False,
                           user: UserRecord = Depends(require(Operation.MANAGE_STUDENTS))):
            return service.create_student(request, create_account=create_account)

        @self.app.get("/api/students/{student_id}", response_model=StudentRecord)
        def get_student(student_id: int, user: UserRecord = Depends(require_student(Operation.VIEW_STUDENT))):
            return service.get_student(student_id)

        @self.app.put("/api/students/{student_id}", response_model=StudentRecord)
        def update_student(student_id: int, request: StudentUpdate,
                           user: UserRecord = Depends(require_student(Operation.MANAGE_STUDENTS))):
            return service.update_student(student_id, request)

        @self.app.post("/api/students/{student_id}/verify", response_model=StudentRecord)
        def verify_student(student_id: int, request: VerificationRequest,
                           user: UserRecord = Depends(require_student(Operation.VERIFY_STUDENT))):
            """Решение администратора: verified или rejected"""
            return service.submit_verification(student_id, request.decision, user, request.notes)

        @self.app.post("/api/students/{student_id}/reopen", response_model=StudentRecord)
        def reopen_student(student_id: int, request: ReopenRequest,
                           user: UserRecord = Depends(require_student(Operation.VERIFY_STUDENT))):
            """Возврат ученика в pending (требует confirm=true)"""
            return service.reopen_verification(student_id, user, confirm=request.confirm, notes=request.notes)

        @self.app.get("/api/students/{student_id}/grades", response_model=List[GradeRecord])
        def student_grades(student_id: int, user: UserRecord = Depends(require_student(Operation.VIEW_GRADES))):
            return service.get_student_grades(student_id)

        @self.app.post("/api/students/{student_id}/grades", response_model=List[GradeRecord], status_code=201)
        def save_student_grades(student_id: int, entries: List[GradeEntry],
                                user: UserRecord = Depends(require_student(Operation.MANAGE_GRADES))):
            """Пакет оценок ученика; сохраняется целиком или не сохраняется"""
            return service.save_student_grades(student_id, entries)

        # Оценки

        @self.app.post("/api/grades", response_model=GradeRecord)
        def save_grade(request: GradeCreate, user: UserRecord = Depends(require(Operation.MANAGE_GRADES))):
            return service.save_grade(request)

        @self.app.delete("/api/grades/{grade_id}", status_code=204)
        def delete_grade(grade_id: int, user: UserRecord = Depends(require(Operation.MANAGE_GRADES))):
            service.delete_grade(grade_id)
            return Response(status_code=204)

        @self.app.get("/api/grades-summary", response_model=List[Dict[str, int]])
        def grades_summary(user: UserRecord = Depends(require(Operation.MANAGE_GRADES))):
            return service.get_grades_summary()

        @self.app.post("/api/grades/import-class", response_model=ClassGradeImportResult)
        def import_class_grades(request: ClassGradeImport,
                                user: UserRecord = Depends(require(Operation.MANAGE_GRADES))):
            """Оценки класса по NISN и кодам предметов"""
            result = service.import_class_grades(request)
            self.logger.info(f"{user.username} импортировал оценки класса {request.class_name}: {result.saved}")
            return result

        # Предметы

        @self.app.get("/api/subjects", response_model=List[SubjectRecord])
        def list_subjects(group: Optional[str] = None,
                          user: UserRecord = Depends(require(Operation.LIST_SUBJECTS))):
            return service.list_subjects(group)

        @self.app.post("/api/subjects", response_model=SubjectRecord, status_code=201)
        def create_subject(request: SubjectCreate,
                           user: UserRecord = Depends(require(Operation.MANAGE_SUBJECTS))):
            return service.create_subject(request)

        @self.app.put("/api/subjects/{subject_id}", response_model=SubjectRecord)
        def update_subject(subject_id: int, request: SubjectUpdate,
                           user: UserRecord = Depends(require(Operation.MANAGE_SUBJECTS))):
            return service.update_subject(subject_id, request)

        # Настройки школы

        @self.app.get("/api/settings", response_model=Optional[SchoolSettingsData])
        def get_settings(user: UserRecord = Depends(require(Operation.VIEW_SETTINGS))):
            return service.get_school_settings()

        @self.app.put("/api/settings", response_model=SchoolSettingsData)
        def update_settings(request: SchoolSettingsUpdate,
                            user: UserRecord = Depends(require(Operation.MANAGE_SETTINGS))):
            self.logger.info(f"{user.username} изменяет настройки школы")
            return service.update_school_settings(request)

        @self.app.post("/api/upload/{kind}", response_model=SchoolSettingsData)
        def upload_image(kind: str, file: UploadFile = File(...),
                         user: UserRecord = Depends(require(Operation.MANAGE_SETTINGS))):
            """Загрузка логотипа, шапки, подписи директора или печати (PNG/JPG)"""
            content = file.file.read(MAX_IMAGE_SIZE + 1)
            self.logger.info(f"{user.username} загружает изображение {kind}: {file.filename}")
            return service.save_school_image(kind, file.filename, content)

        @self.app.delete("/api/settings/image/{kind}", response_model=SchoolSettingsData)
        def delete_image(kind: str, user: UserRecord = Depends(require(Operation.MANAGE_SETTINGS))):
            self.logger.info(f"{user.username} удаляет изображение {kind}")
            return service.delete_school_image(kind)

        # Пользователи

        @self.app.get("/api/users", response_model=List[UserRecord])
        def list_users(role: Optional[str] = None, user: UserRecord = Depends(require(Operation.MANAGE_USERS))):
            return service.list_users(role)

        @self.app.post("/api/users", response_model=UserRecord, status_code=201)
        def create_user(request: UserCreate, user: UserRecord = Depends(require(Operation.MANAGE_USERS))):
            return service.create_user(request)

        @self.app.post("/api/users/{user_id}/reset-password")
        def reset_password(user_id: int, request: PasswordReset,
                           user: UserRecord = Depends(require(Operation.MANAGE_USERS))):
            service.reset_password(user_id, request.new_password)
            return {"message": "Password berhasil direset"}

        # SKL

        @self.app.get("/api/certificates/{student_id}")
        def download_certificate(student_id: int, show_grades: bool = False,
                                 user: UserRecord = Depends(require_student(Operation.DOWNLOAD_CERTIFICATE))):
            """PDF SKL; имя файла строится из номера документа"""
            data, pdf = service.generate_certificate(student_id, show_grades=show_grades)
            self.logger.info(f"{user.username} скачал SKL {data.cert_number}")
            return Response(
                content=pdf,
                media_type="application/pdf",
                headers={"Content-Disposition": f'attachment; filename="{data.download_filename}"'}
            )
