"""
FUEL STATION COMMISSION ENGINE
Accrual, aggregation and payment lifecycle for station commissions.
"""

from .config import EngineConfig
from .errors import (
    ConcurrencyConflict,
    DataIntegrityWarning,
    InvalidState,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from .models import Caller, CommissionRecord, PaymentRequest, ProgressiveDay
from .processor import CommissionService, build_service
from .store import InMemoryCommissionStore

__all__ = [
    'CommissionService',
    'build_service',
    'EngineConfig',
    'InMemoryCommissionStore',
    'Caller',
    'CommissionRecord',
    'PaymentRequest',
    'ProgressiveDay',
    'ValidationError',
    'PermissionDenied',
    'InvalidState',
    'ConcurrencyConflict',
    'NotFound',
    'DataIntegrityWarning',
]
