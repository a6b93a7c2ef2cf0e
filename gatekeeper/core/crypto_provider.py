"""
Gatekeeper - Crypto Provider Implementation
Hachage des mots de passe, jetons aléatoires et signatures d'audit.
"""

import hashlib
import hmac
import secrets
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.ec import EllipticCurvePrivateKey
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from .interfaces import ICryptoProvider


class CryptoProvider(ICryptoProvider):
    """
    Implémentation des opérations cryptographiques.

    - Mots de passe: scrypt (n=2^14, r=8, p=1), sel aléatoire 16 octets
    - Codes OTP et jetons de session: HMAC-SHA256 avec clé serveur
    - Événements d'audit: ECDSA-P384 / SHA-384
    """

    SALT_BYTES: int = 16
    KEY_LENGTH: int = 32
    SCRYPT_N: int = 2**14
    SCRYPT_R: int = 8
    SCRYPT_P: int = 1

    def __init__(self, secret_key: Optional[bytes] = None):
        """
        Args:
            secret_key: Clé HMAC serveur (générée si absente)
        """
        self._secret_key = secret_key or secrets.token_bytes(32)
        self._keys: Dict[str, EllipticCurvePrivateKey] = {}

    def _get_or_create_key(self, key_id: str) -> EllipticCurvePrivateKey:
        """Récupère ou crée une clé ECDSA-P384."""
        if key_id not in self._keys:
            self._keys[key_id] = ec.generate_private_key(ec.SECP384R1())
        return self._keys[key_id]

    def _derive(self, password: str, salt: bytes) -> bytes:
        kdf = Scrypt(
            salt=salt,
            length=self.KEY_LENGTH,
            n=self.SCRYPT_N,
            r=self.SCRYPT_R,
            p=self.SCRYPT_P,
        )
        return kdf.derive(password.encode("utf-8"))

    def hash_password(self, password: str, salt: Optional[bytes] = None) -> tuple[str, str]:
        """
        Dérive un hash salé.

        Args:
            password: Mot de passe en clair
            salt: Sel imposé (tests); aléatoire sinon

        Returns:
            (hash hex, sel hex)
        """
        salt = salt or secrets.token_bytes(self.SALT_BYTES)
        return self._derive(password, salt).hex(), salt.hex()

    def verify_password(self, password: str, password_hash: str, salt: str) -> bool:
        """Compare en temps constant un mot de passe à son hash."""
        try:
            expected = bytes.fromhex(password_hash)
            salt_bytes = bytes.fromhex(salt)
        except ValueError:
            return False
        candidate = self._derive(password, salt_bytes)
        return hmac.compare_digest(candidate, expected)

    def keyed_digest(self, data: str, context: str = "") -> str:
        """
        HMAC-SHA256 avec la clé serveur.

        Args:
            data: Donnée à condenser (code OTP, jeton)
            context: Séparation de domaine (ex: identifiant de challenge)
        """
        mac = crypto_hmac.HMAC(self._secret_key, hashes.SHA256())
        mac.update(context.encode("utf-8"))
        mac.update(b"\x00")
        mac.update(data.encode("utf-8"))
        return mac.finalize().hex()

    def generate_token(self, num_bytes: int = 32) -> str:
        """Jeton URL-safe issu d'une source aléatoire cryptographique."""
        return secrets.token_urlsafe(num_bytes)

    def sign(self, data: bytes, key_id: str) -> bytes:
        """
        Signe des données avec ECDSA-P384.

        Returns:
            Signature DER-encoded
        """
        private_key = self._get_or_create_key(key_id)
        return private_key.sign(data, ec.ECDSA(hashes.SHA384()))

    def verify_signature(self, data: bytes, signature: bytes, key_id: str) -> bool:
        """Vérifie une signature ECDSA-P384."""
        public_key = self._get_or_create_key(key_id).public_key()
        try:
            public_key.verify(signature, data, ec.ECDSA(hashes.SHA384()))
        except InvalidSignature:
            return False
        return True

    def hash(self, data: bytes) -> str:
        """Hash SHA-384 hexadécimal (96 caractères)."""
        return hashlib.sha384(data).hexdigest()

    def constant_time_equals(self, left: Any, right: Any) -> bool:
        """Comparaison en temps constant de deux chaînes ou octets."""
        if isinstance(left, str):
            left = left.encode("utf-8")
        if isinstance(right, str):
            right = right.encode("utf-8")
        return hmac.compare_digest(left, right)
