"""
Data Quality Module
"""
from .validators import DataValidator, ValidationResult, ValidationSeverity, ValidationStatus
from .integrity import IntegrityChecker, IntegrityReport, check_integrity

__all__ = [
    "DataValidator",
    "ValidationResult",
    "ValidationSeverity",
    "ValidationStatus",
    "IntegrityChecker",
    "IntegrityReport",
    "check_integrity",
]
