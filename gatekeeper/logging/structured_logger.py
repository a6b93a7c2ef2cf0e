"""
Logging - Structured Logger

Logger JSON: une ligne par enregistrement, champs timestamp, level,
correlation_id, logger, message et extra masqué.
"""

import sys
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, List, Optional

from .interfaces import (
    IStructuredLogger,
    ISensitiveMasker,
    LogConfig,
    LogEntry,
    LogLevel,
)
from .sensitive_masker import SensitiveMasker


def stderr_handler(line: str) -> None:
    """Handler de sortie par défaut."""
    sys.stderr.write(line + "\n")


class StructuredLogger(IStructuredLogger):
    """
    Logger JSON structuré.

    Les entrées sont conservées dans un tampon borné (LogConfig.max_entries)
    et transmises au handler de sortie.

    Example:
        logger = StructuredLogger("gatekeeper.auth")
        logger.info("session issued", principal_id="u-42")
    """

    def __init__(
        self,
        name: str,
        config: Optional[LogConfig] = None,
        masker: Optional[ISensitiveMasker] = None,
        output_handler: Optional[Callable[[str], None]] = stderr_handler,
    ) -> None:
        """
        Args:
            name: Nom du logger (module émetteur)
            config: Configuration optionnelle
            masker: Masker des secrets
            output_handler: Destination des lignes JSON (None = mémoire seule)

        Raises:
            ValueError: Si name vide
        """
        if not name or not name.strip():
            raise ValueError("Logger name cannot be empty")

        self._name = name.strip()
        self._config = config or LogConfig()
        self._masker = masker or SensitiveMasker()
        self._output_handler = output_handler
        self._entries: Deque[LogEntry] = deque(maxlen=self._config.max_entries)
        self._default_correlation_id = self._config.default_correlation_id

    @property
    def name(self) -> str:
        return self._name

    def set_default_correlation(self, correlation_id: Optional[str]) -> None:
        self._default_correlation_id = correlation_id

    def child(self, suffix: str) -> "StructuredLogger":
        """Logger dérivé partageant configuration, masker et sortie."""
        return StructuredLogger(
            f"{self._name}.{suffix}",
            config=self._config,
            masker=self._masker,
            output_handler=self._output_handler,
        )

    def log(
        self,
        level: LogLevel,
        message: str,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> Optional[LogEntry]:
        """
        Crée un enregistrement JSON.

        Processus:
            1. Filtre sur min_level
            2. Résout correlation_id (défaut ou UUID4)
            3. Masque les secrets de extra
            4. Conserve et émet la ligne JSON

        Raises:
            ValueError: Si message vide
        """
        if not self._should_log(level):
            return None

        if not message:
            raise ValueError("Log message cannot be empty")

        resolved_correlation = correlation_id or self._default_correlation_id or str(uuid.uuid4())

        masked_extra = {}
        if extra and self._config.include_extra:
            masked_extra = self._masker.mask(dict(extra))

        entry = LogEntry(
            timestamp=self._generate_timestamp(),
            level=level,
            correlation_id=resolved_correlation,
            message=message,
            logger_name=self._name,
            extra=masked_extra,
        )

        self._entries.append(entry)
        if self._output_handler:
            self._output_handler(entry.to_json())

        return entry

    def _generate_timestamp(self) -> str:
        """Format: 2024-12-04T14:30:00.123Z"""
        now = datetime.now(timezone.utc)
        return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"

    def _should_log(self, level: LogLevel) -> bool:
        return LogLevel.get_priority(level) >= LogLevel.get_priority(self._config.min_level)

    def debug(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.DEBUG, message, **extra)

    def info(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.INFO, message, **extra)

    def warn(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.WARN, message, **extra)

    def error(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.ERROR, message, **extra)

    def critical(self, message: str, **extra: Any) -> Optional[LogEntry]:
        return self.log(LogLevel.CRITICAL, message, **extra)

    def get_entries(self) -> List[LogEntry]:
        return list(self._entries)

    def clear_entries(self) -> None:
        self._entries.clear()

    def get_entries_by_level(self, level: LogLevel) -> List[LogEntry]:
        return [e for e in self._entries if e.level == level]
