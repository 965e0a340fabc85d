"""
Crypto provider: the platform primitives the envelope is built on.

A provider supplies secure random bytes, a password-based KDF and an AEAD
cipher. The session treats a missing or unsupported provider as an expected
condition and reports it through initialize() returning False.
"""

import os
from abc import ABC, abstractmethod

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC


class CryptoProvider(ABC):
    """Abstract source of cryptographic primitives."""

    @abstractmethod
    def is_supported(self) -> bool:
        """Check the primitives work in this environment."""

    @abstractmethod
    def random_bytes(self, size: int) -> bytes:
        """Return size bytes from a cryptographically secure source."""

    @abstractmethod
    def derive_key(self, seed: bytes, salt: bytes, iterations: int, length: int) -> bytes:
        """Stretch a seed into a key of the given length."""

    @abstractmethod
    def aead_encrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """Encrypt and authenticate; returns ciphertext with the tag appended."""

    @abstractmethod
    def aead_decrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        """
        Verify and decrypt ciphertext+tag.

        Raises:
            cryptography.exceptions.InvalidTag: If authentication fails.
        """


class CryptographyProvider(CryptoProvider):
    """
    Provider backed by the `cryptography` package.

    PBKDF2-HMAC-SHA256 for key derivation, AES-256-GCM for the cipher,
    os.urandom for randomness.
    """

    def __init__(self):
        self._supported = None

    def is_supported(self) -> bool:
        if self._supported is None:
            self._supported = self._probe()
        return self._supported

    def _probe(self) -> bool:
        try:
            key = AESGCM.generate_key(bit_length=256)
            nonce = os.urandom(12)
            sealed = AESGCM(key).encrypt(nonce, b"probe", None)
            return AESGCM(key).decrypt(nonce, sealed, None) == b"probe"
        except (UnsupportedAlgorithm, ValueError, OSError):
            return False

    def random_bytes(self, size: int) -> bytes:
        return os.urandom(size)

    def derive_key(self, seed: bytes, salt: bytes, iterations: int, length: int) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=length,
            salt=salt,
            iterations=iterations,
        )
        return kdf.derive(seed)

    def aead_encrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        return AESGCM(key).encrypt(iv, data, None)

    def aead_decrypt(self, key: bytes, iv: bytes, data: bytes) -> bytes:
        return AESGCM(key).decrypt(iv, data, None)
