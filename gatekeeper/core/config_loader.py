"""
Gatekeeper - Config Loader Implementation
Charge la configuration depuis fichiers YAML et vérifie son intégrité.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .interfaces import AuthSettings, IConfigLoader


CONFIG_ENV_VAR = "GATEKEEPER_CONFIG"


class ConfigIntegrityError(Exception):
    """Erreur d'intégrité de configuration."""

    pass


class ConfigLoader(IConfigLoader):
    """
    Chargement des paramètres depuis fichiers YAML.

    Sans chemin explicite, la variable d'environnement GATEKEEPER_CONFIG
    est consultée; à défaut les valeurs par défaut s'appliquent.

    Example:
        settings = ConfigLoader().load("config/auth.yaml")
    """

    def __init__(self, environ: Optional[Dict[str, str]] = None):
        self._environ = environ if environ is not None else os.environ

    def load(self, path: Optional[str] = None) -> AuthSettings:
        """
        Charge les paramètres.

        Args:
            path: Chemin du fichier YAML (optionnel)

        Returns:
            AuthSettings validés

        Raises:
            ConfigIntegrityError: Fichier inexistant, YAML invalide ou schéma violé
        """
        resolved = path or self._environ.get(CONFIG_ENV_VAR)
        if not resolved:
            return AuthSettings()

        raw = self._read_yaml(Path(resolved))
        if raw is None:
            return AuthSettings()
        if not isinstance(raw, dict):
            raise ConfigIntegrityError("Configuration doit être un objet YAML")

        try:
            return AuthSettings.model_validate(raw)
        except ValidationError as e:
            raise ConfigIntegrityError(f"Configuration invalide: {e}")

    def load_permission_matrix(self, path: str) -> Dict[str, Dict[str, List[str]]]:
        """
        Charge une matrice de permissions.

        Format attendu:
            roles:
              admin:
                properties: [create, read, update, delete]

        Raises:
            ConfigIntegrityError: Structure invalide
        """
        raw = self._read_yaml(Path(path))
        if not isinstance(raw, dict) or not isinstance(raw.get("roles"), dict):
            raise ConfigIntegrityError("Matrice de permissions: clé 'roles' manquante ou invalide")

        table: Dict[str, Dict[str, List[str]]] = {}
        for role, resources in raw["roles"].items():
            if not isinstance(resources, dict):
                raise ConfigIntegrityError(f"roles.{role} doit être un objet")
            table[str(role)] = {}
            for resource, permissions in resources.items():
                if permissions is None:
                    permissions = []
                if not isinstance(permissions, list):
                    raise ConfigIntegrityError(f"roles.{role}.{resource} doit être une liste")
                table[str(role)][str(resource)] = [str(p) for p in permissions]

        return table

    def _read_yaml(self, config_file: Path) -> Any:
        if not config_file.exists():
            raise ConfigIntegrityError(f"Configuration non trouvée: {config_file}")

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigIntegrityError(f"Erreur de parsing YAML: {e}")
        except OSError as e:
            raise ConfigIntegrityError(f"Erreur de lecture fichier: {e}")
