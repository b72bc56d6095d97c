"""
Хэширование паролей (passlib).
"""

from passlib.hash import pbkdf2_sha256


def hash_password(password: str) -> str:
    """Возвращает хэш пароля."""
    return pbkdf2_sha256.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Проверяет пароль; некорректный хэш считается несовпадением."""
    if not password or not password_hash:
        return False

    try:
        return pbkdf2_sha256.verify(password, password_hash)
    except ValueError:
        return False
