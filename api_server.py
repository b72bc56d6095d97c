"""
FastAPI сервер для API SKL
"""
import logging
from datetime import datetime
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config.settings import Settings, get_settings
from skl.api import SKLAPI
from skl.database import DatabaseManager, SKLRepository
from skl.renderer import CertificateRenderer
from skl.service import SKLService


def setup_logging(settings: Settings):
    """Настройка логирования: файл и консоль"""
    settings.log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(settings.log_file, encoding="utf-8"),
            logging.StreamHandler()
        ]
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Управление жизненным циклом приложения"""
    settings = app.state.settings
    logging.info("Запуск API сервера SKL...")

    app.state.db_manager.create_tables()
    app.state.service.ensure_admin(
        settings.admin_username,
        settings.admin_password,
        settings.admin_full_name
    )

    yield

    logging.info("Остановка API сервера SKL...")
    app.state.db_manager.engine.dispose()


def create_app(settings: Settings = None, db_manager: DatabaseManager = None,
               service: SKLService = None) -> FastAPI:
    """
    Создание FastAPI приложения.

    Args:
        settings: Настройки; по умолчанию берутся из окружения
        db_manager: Менеджер БД; по умолчанию создается по settings.database_url
        service: Готовый сервис (для тестов)
    """
    settings = settings or get_settings()
    setup_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        description="API для выдачи Surat Keterangan Lulus",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if service is None:
        db_manager = db_manager or DatabaseManager(settings.database_url, echo=settings.debug)
        service = SKLService(
            repository=SKLRepository(db_manager),
            renderer=CertificateRenderer(settings.assets_path),
            today=settings.local_date
        )
    else:
        db_manager = service.repository.db_manager

    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.service = service

    # Маршруты SKL регистрируются в этом же приложении
    SKLAPI(service, app=app)

    @app.get("/health", tags=["monitoring"])
    def health_check():
        """Проверка здоровья API и БД"""
        database_ok = app.state.db_manager.health_check()

        health_status = {
            "status": "healthy" if database_ok else "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "api": {"status": "healthy", "message": "API is running"},
                "database": {
                    "status": "healthy" if database_ok else "unhealthy",
                    "message": "Database connection is active" if database_ok else "Database is unreachable"
                }
            }
        }

        return JSONResponse(content=health_status, status_code=200 if database_ok else 503)

    return app


def main():
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "api_server:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug
    )


if __name__ == "__main__":
    main()
