"""
Генератор номеров SKL и форматирование дат для документа.
"""

from datetime import date, datetime
from string import Formatter
from typing import List, Union
from .exceptions import ConfigurationError

DEFAULT_CERT_NUMBER_TEMPLATE = "421/{id:03d}/SMA/{year}"

# Поля, доступные в шаблоне номера; обращение к атрибутам и индексам запрещено
TEMPLATE_FIELDS = frozenset({"id", "year"})

INDONESIAN_MONTHS = (
    "Januari", "Februari", "Maret", "April", "Mei", "Juni",
    "Juli", "Agustus", "September", "Oktober", "November", "Desember",
)


class CertificateNumberGenerator:
    """Генератор номеров SKL."""

    def __init__(self, template: str = DEFAULT_CERT_NUMBER_TEMPLATE):
        self.template = template or DEFAULT_CERT_NUMBER_TEMPLATE

    def generate(self, student_id: int, year: int) -> str:
        """
        Формирует номер SKL по шаблону.

        Номер зависит только от ID ученика и календарного года, поэтому
        повторная выдача в том же году дает тот же номер.

        Args:
            student_id: ID ученика
            year: Год выдачи

        Returns:
            str: Номер, например 421/007/SMA/2025

        Raises:
            ConfigurationError: Если шаблон в настройках некорректен
        """
        try:
            unknown = [field for field in template_fields(self.template) if field not in TEMPLATE_FIELDS]
            if unknown:
                raise ValueError(f"kolom tidak dikenal: {', '.join(unknown)}")
            return self.template.format(id=student_id, year=year)
        except (KeyError, IndexError, ValueError, AttributeError, TypeError) as e:
            raise ConfigurationError(f"Template nomor surat tidak valid '{self.template}': {e}")


def template_fields(template: str) -> List[str]:
    """
    Имена полей шаблона в том виде, как они записаны ({id.real} -> "id.real").

    Raises:
        ValueError: Если скобки в шаблоне не сбалансированы
    """
    return [field for _, field, _, _ in Formatter().parse(template) if field is not None]


def format_indonesian_date(value: Union[date, datetime, str]) -> str:
    """
    Форматирует дату в виде "19 Oktober 2026".

    Строки в формате ISO разбираются; нераспознанная строка возвращается как есть.
    """
    if isinstance(value, str):
        try:
            value = date.fromisoformat(value.strip()[:10])
        except ValueError:
            return value

    return f"{value.day} {INDONESIAN_MONTHS[value.month - 1]} {value.year}"
