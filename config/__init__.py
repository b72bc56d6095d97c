"""
Модуль конфигурации сервиса SKL.
"""

from .settings import get_settings, Settings, load_settings_from_file, create_env_example, validate_settings

__version__ = "1.0.0"

__all__ = ['get_settings', 'Settings', 'load_settings_from_file', 'create_env_example', 'validate_settings']
