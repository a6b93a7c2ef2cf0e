"""
Logging - Interfaces

Contrats du logging structuré JSON avec masquage des secrets.
Aucun mot de passe, code OTP ou jeton ne doit apparaître en clair.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class LogLevel(Enum):
    """
    Niveaux de log.

    Ordre de sévérité: DEBUG < INFO < WARN < ERROR < CRITICAL
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    @classmethod
    def get_priority(cls, level: "LogLevel") -> int:
        """Retourne la priorité du niveau (plus haut = plus sévère)."""
        return _PRIORITIES.get(level, 0)


_PRIORITIES = {
    LogLevel.DEBUG: 0,
    LogLevel.INFO: 1,
    LogLevel.WARN: 2,
    LogLevel.ERROR: 3,
    LogLevel.CRITICAL: 4,
}


@dataclass
class LogEntry:
    """Enregistrement structuré."""

    timestamp: str  # ISO 8601 UTC
    level: LogLevel
    correlation_id: str
    message: str
    logger_name: str
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convertit en dictionnaire."""
        result = {
            "timestamp": self.timestamp,
            "level": self.level.value,
            "correlation_id": self.correlation_id,
            "logger": self.logger_name,
            "message": self.message,
        }
        if self.extra:
            result["extra"] = self.extra
        return result

    def to_json(self) -> str:
        """Sérialise en une ligne JSON."""
        return json.dumps(self.to_dict(), ensure_ascii=False, default=str)


@dataclass
class LogConfig:
    """Configuration du logger structuré."""

    min_level: LogLevel = LogLevel.INFO
    include_extra: bool = True
    max_entries: int = 1000
    default_correlation_id: Optional[str] = None


class IStructuredLogger(ABC):
    """Interface logger structuré."""

    @abstractmethod
    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Log structuré JSON.

        Returns:
            LogEntry créé ou None si filtré par niveau
        """
        pass

    @abstractmethod
    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        pass

    @abstractmethod
    def get_entries(self) -> List[LogEntry]:
        """Entrées conservées en mémoire (inspection, tests)."""
        pass


class ISensitiveMasker(ABC):
    """
    Interface masquage des secrets.

    Une clé est sensible si elle contient un des motifs ou si elle est
    exactement une des clés exactes.
    """

    SENSITIVE_PATTERNS: List[str] = [
        "password",
        "passwd",
        "pwd",
        "secret",
        "token",
        "cookie",
        "salt",
        "hash",
        "otp",
        "authorization",
        "credential",
        "api_key",
    ]

    SENSITIVE_EXACT_KEYS: FrozenSet[str] = frozenset({"code", "pin", "key"})

    MASK_VALUE: str = "***MASKED***"

    @abstractmethod
    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Retourne une copie avec les valeurs sensibles masquées."""
        pass

    @abstractmethod
    def is_sensitive_key(self, key: str) -> bool:
        pass
