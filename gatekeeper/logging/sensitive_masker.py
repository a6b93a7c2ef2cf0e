"""
Logging - Sensitive Masker

Masquage récursif des secrets avant écriture des logs et de l'audit.
"""

from typing import Any, Dict, List, Optional

from .interfaces import ISensitiveMasker


class SensitiveMasker(ISensitiveMasker):
    """
    Masquage des mots de passe, codes OTP, jetons et sels.

    Example:
        masker = SensitiveMasker()
        masker.mask({"password": "Abc12345!", "principal_id": "u-1"})
        # {"password": "***MASKED***", "principal_id": "u-1"}
    """

    def __init__(self, additional_patterns: Optional[List[str]] = None) -> None:
        """
        Args:
            additional_patterns: Motifs supplémentaires (insensibles à la casse)
        """
        self._patterns: List[str] = [p.lower() for p in self.SENSITIVE_PATTERNS]
        for pattern in additional_patterns or []:
            self.add_pattern(pattern)

    @property
    def patterns(self) -> List[str]:
        return list(self._patterns)

    def mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Masque récursivement les valeurs sensibles.

        - Clé sensible → valeur remplacée par MASK_VALUE
        - dict → récursion
        - list → chaque élément dict est masqué

        Returns:
            Copie masquée (l'original n'est pas modifié)
        """
        if not isinstance(data, dict):
            return data

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if self.is_sensitive_key(str(key)):
                result[key] = self.MASK_VALUE
            elif isinstance(value, dict):
                result[key] = self.mask(value)
            elif isinstance(value, (list, tuple)):
                result[key] = self._mask_list(list(value))
            else:
                result[key] = value
        return result

    def _mask_list(self, items: List[Any]) -> List[Any]:
        result = []
        for item in items:
            if isinstance(item, dict):
                result.append(self.mask(item))
            elif isinstance(item, list):
                result.append(self._mask_list(item))
            else:
                result.append(item)
        return result

    def is_sensitive_key(self, key: str) -> bool:
        """Vérifie si la clé désigne un secret (insensible à la casse)."""
        if not key:
            return False

        key_lower = key.lower()
        if key_lower in self.SENSITIVE_EXACT_KEYS:
            return True
        return any(pattern in key_lower for pattern in self._patterns)

    def add_pattern(self, pattern: str) -> None:
        """
        Ajoute un motif sensible.

        Raises:
            ValueError: Si motif vide
        """
        if not pattern or not pattern.strip():
            raise ValueError("Pattern cannot be empty")

        pattern_lower = pattern.lower().strip()
        if pattern_lower not in self._patterns:
            self._patterns.append(pattern_lower)
