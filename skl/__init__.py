"""
Основной модуль бизнес-логики SKL (Surat Keterangan Lulus).
"""

from .service import SKLService
from .models import CertificateData, CertificateOptions, StudentRecord, StudentStatus, UserRole
from .verification import VerificationService
from .assembler import CertificateAssembler
from .renderer import CertificateRenderer
from .access import AccessPolicy, Operation, CAPABILITIES
from .database import get_db_manager, get_repository

__version__ = "1.0.0"

__all__ = [
    'SKLService',
    'CertificateData',
    'CertificateOptions',
    'StudentRecord',
    'StudentStatus',
    'UserRole',
    'VerificationService',
    'CertificateAssembler',
    'CertificateRenderer',
    'AccessPolicy',
    'Operation',
    'CAPABILITIES',
    'get_db_manager',
    'get_repository'
]
