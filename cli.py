"""
CLI интерфейс для сервиса SKL
"""
import argparse
import logging
import sys
from pathlib import Path

from config.settings import Settings, create_env_example, get_settings, load_settings_from_file
from skl.database import DatabaseManager, SKLRepository
from skl.exceptions import SKLError
from skl.models import UserRecord
from skl.renderer import CertificateRenderer
from skl.service import SKLService


class SKLCLI:
    """CLI интерфейс для администрирования SKL"""

    def __init__(self, settings: Settings = None, service: SKLService = None):
        self.settings = settings or get_settings()
        self.setup_logging()
        self.setup_service(service)

    def setup_logging(self):
        """Настройка логирования"""
        self.settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        logging.basicConfig(
            level=getattr(logging, self.settings.log_level),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[
                logging.FileHandler(self.settings.log_file, encoding="utf-8"),
                logging.StreamHandler()
            ]
        )
        self.logger = logging.getLogger(__name__)

    def setup_service(self, service: SKLService = None):
        """Настройка БД и сервиса"""
        if service is None:
            db_manager = DatabaseManager(self.settings.database_url)
            service = SKLService(
                repository=SKLRepository(db_manager),
                renderer=CertificateRenderer(self.settings.assets_path),
                today=self.settings.local_date
            )

        self.service = service
        self.db_manager = service.repository.db_manager

    def init_db(self, args):
        """Создание таблиц и первичного администратора"""
        try:
            self.db_manager.create_tables()
            created = self.service.ensure_admin(
                self.settings.admin_username,
                self.settings.admin_password,
                self.settings.admin_full_name
            )
        except Exception as e:
            print(f"✗ Ошибка инициализации БД: {e}")
            self.logger.error(f"Ошибка инициализации БД: {e}")
            sys.exit(1)

        print("✓ Таблицы созданы")
        if created:
            print(f"✓ Создан администратор: {self.settings.admin_username}")
        else:
            print("  Администратор уже существует")

    def env_example(self, args):
        """Создание .env.example"""
        path = create_env_example(args.path)
        self.logger.info(f"Создан {path}")

    def verify_student(self, args):
        """Решение по верификации ученика"""
        try:
            row = self.service.repository.get_user_by_username(args.verifier)
            if row is None:
                print(f"✗ Пользователь {args.verifier} не найден")
                sys.exit(1)

            verifier = UserRecord.model_validate(row)
            student = self.service.submit_verification(args.student_id, args.decision, verifier, args.notes)

        except SKLError as e:
            print(f"✗ Ошибка верификации: {e}")
            self.logger.error(f"Ошибка верификации ученика {args.student_id}: {e}")
            sys.exit(1)

        print("✓ Решение сохранено:")
        print(f"  Ученик: {student.full_name} (NISN {student.nisn})")
        print(f"  Статус: {student.status.value}")
        print(f"  Проверил: {verifier.username}")
        if student.verification_notes:
            print(f"  Примечание: {student.verification_notes}")

    def generate_certificate(self, args):
        """Формирование PDF SKL в файл"""
        try:
            data, pdf = self.service.generate_certificate(args.student_id, show_grades=args.grades)
        except SKLError as e:
            print(f"✗ SKL не сформирован: {e}")
            self.logger.error(f"Ошибка формирования SKL для ученика {args.student_id}: {e}")
            sys.exit(1)

        output = Path(args.output) if args.output else Path(data.download_filename)
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(pdf)

        print("✓ SKL сформирован:")
        print(f"  Номер: {data.cert_number}")
        print(f"  Ученик: {data.full_name}")
        print(f"  Файл: {output}")

    def show_stats(self, args):
        """Статистика по ученикам"""
        try:
            stats = self.service.get_dashboard_stats()
        except SKLError as e:
            print(f"✗ Ошибка получения статистики: {e}")
            sys.exit(1)

        print("Статистика учеников:")
        print(f"  Всего: {stats.total_students}")
        print(f"  Верифицировано: {stats.verified_students}")
        print(f"  Ожидают: {stats.pending_students}")
        print(f"  Отклонено: {stats.rejected_students}")
        print(f"  Классов: {stats.total_classes}")

    def build_parser(self) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            description="Администрирование SKL (Surat Keterangan Lulus)",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Примеры использования:
  %(prog)s init-db
  %(prog)s --env-file /etc/skl/.env stats
  %(prog)s verify 7 verified --verifier admin --notes "Berkas lengkap"
  %(prog)s certificate 7 --grades --output skl_7.pdf
  %(prog)s stats
            """
        )

        parser.add_argument('--env-file', default=None, help='Файл настроек вместо .env')

        subparsers = parser.add_subparsers(dest='command', help='Доступные команды')

        subparsers.add_parser('init-db', help='Создание таблиц и администратора')

        env_parser = subparsers.add_parser('env-example', help='Создание примера .env')
        env_parser.add_argument('--path', default='.env.example', help='Путь к файлу')

        verify_parser = subparsers.add_parser('verify', help='Верификация ученика')
        verify_parser.add_argument('student_id', type=int, help='ID ученика')
        verify_parser.add_argument('decision', help='verified или rejected')
        verify_parser.add_argument('--verifier', required=True, help='Логин администратора')
        verify_parser.add_argument('--notes', default=None, help='Примечание')

        cert_parser = subparsers.add_parser('certificate', help='Формирование PDF SKL')
        cert_parser.add_argument('student_id', type=int, help='ID ученика')
        cert_parser.add_argument('--grades', action='store_true', help='Добавить таблицу оценок')
        cert_parser.add_argument('--output', default=None, help='Файл PDF')

        subparsers.add_parser('stats', help='Статистика учеников')

        return parser

    def main(self, argv=None):
        """Главная функция CLI"""
        parser = self.build_parser()
        args = parser.parse_args(argv)

        if not args.command:
            parser.print_help()
            return

        commands = {
            'init-db': self.init_db,
            'env-example': self.env_example,
            'verify': self.verify_student,
            'certificate': self.generate_certificate,
            'stats': self.show_stats,
        }
        commands[args.command](args)


def main(argv=None):
    """Точка входа: --env-file читается до создания CLI, остальное разбирает SKLCLI"""
    env_parser = argparse.ArgumentParser(add_help=False)
    env_parser.add_argument('--env-file', default=None)
    known, rest = env_parser.parse_known_args(argv)

    settings = load_settings_from_file(known.env_file) if known.env_file else None
    cli = SKLCLI(settings=settings)
    cli.main(rest)


if __name__ == '__main__':
    main()
