"""
Logging structuré JSON avec masquage des secrets.
"""

from .interfaces import (
    # Enums
    LogLevel,
    # Dataclasses
    LogEntry,
    LogConfig,
    # Interfaces
    IStructuredLogger,
    ISensitiveMasker,
)
from .sensitive_masker import SensitiveMasker
from .structured_logger import StructuredLogger, stderr_handler

__all__ = [
    "LogLevel",
    "LogEntry",
    "LogConfig",
    "IStructuredLogger",
    "ISensitiveMasker",
    "SensitiveMasker",
    "StructuredLogger",
    "stderr_handler",
]
