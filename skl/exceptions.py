"""
Кастомные исключения для системы SKL.
"""


class SKLError(Exception):
    """Базовое исключение для всех ошибок системы SKL."""
    pass


class ValidationError(SKLError):
    """Ошибка валидации входных данных."""
    pass


class DecisionValidationError(ValidationError):
    """Недопустимое решение верификации."""
    pass


class GradeValidationError(ValidationError):
    """Оценка вне допустимого диапазона."""
    pass


class InvalidTransitionError(ValidationError):
    """Недопустимый переход статуса верификации."""
    pass


class UserValidationError(ValidationError):
    """Некорректные данные пользователя."""
    pass


class NotFoundError(SKLError):
    """Сущность не найдена."""
    pass


class StudentNotFoundError(NotFoundError):
    """Ученик не найден."""
    pass


class StudentNotEligibleError(NotFoundError):
    """Ученик не верифицирован, SKL не выдается."""
    pass


class SubjectNotFoundError(NotFoundError):
    """Предмет не найден."""
    pass


class GradeNotFoundError(NotFoundError):
    """Оценка не найдена."""
    pass


class UserNotFoundError(NotFoundError):
    """Пользователь не найден."""
    pass


class AlreadyExistsError(SKLError):
    """Сущность с таким ключом уже существует."""
    pass


class ConfigurationError(SKLError):
    """Отсутствуют обязательные настройки школы."""
    pass


class RenderError(SKLError):
    """Ошибка формирования PDF."""
    pass


class ForbiddenError(SKLError):
    """Недостаточно прав для операции."""
    pass


class AuthenticationError(SKLError):
    """Неверные учетные данные."""
    pass


class DatabaseError(SKLError):
    """Ошибка работы с базой данных."""
    pass
