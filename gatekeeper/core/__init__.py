"""
Core: paramètres, chargement de configuration, primitives cryptographiques.
"""

from .interfaces import (
    AuthSettings,
    PasswordSettings,
    OTPSettings,
    SessionSettings,
    DeliverySettings,
    LockoutSettings,
    IConfigLoader,
    ICryptoProvider,
)
from .config_loader import ConfigLoader, ConfigIntegrityError, CONFIG_ENV_VAR
from .crypto_provider import CryptoProvider

__all__ = [
    # Settings
    "AuthSettings",
    "PasswordSettings",
    "OTPSettings",
    "SessionSettings",
    "DeliverySettings",
    "LockoutSettings",
    # Interfaces
    "IConfigLoader",
    "ICryptoProvider",
    # Implementations
    "ConfigLoader",
    "CryptoProvider",
    "CONFIG_ENV_VAR",
    # Exceptions
    "ConfigIntegrityError",
]
