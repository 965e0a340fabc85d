"""
Crypto Envelope: session key and authenticated encryption.

One key per application session, never written anywhere:

  seed  = time || random || host fingerprint   (fresh each initialize)
  salt  = random                               (fresh each initialize)
  key   = PBKDF2-HMAC-SHA256(seed, salt)       (held in memory only)

Every payload is serialized canonically and sealed with AES-256-GCM under a
fresh random IV. The stored form is base64(IV || ciphertext || tag).

Unavailable primitives and tampered data are expected conditions. They come
back as False, None or a non-Encrypted outcome; nothing here raises for them.
"""

import asyncio
import base64
import binascii
import json
import os
import platform
import sys
import time
from typing import Any

import structlog
from cryptography.exceptions import InvalidTag

from carevault.config import EnvelopeConfig
from carevault.outcome import Encrypted, EncryptionOutcome, Plaintext, Unavailable
from carevault.provider import CryptoProvider, CryptographyProvider

logger = structlog.get_logger(__name__)

SEED_RANDOM_SIZE = 32
_DEFAULT_PROVIDER = object()


def serialize_payload(payload: Any) -> bytes:
    """
    Canonical JSON serialization (sorted keys, compact separators).

    Raises:
        TypeError: If the payload is not JSON-serializable.
    """
    return json.dumps(
        payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def host_fingerprint() -> str:
    """Locally observable environment details mixed into the session seed."""
    return "|".join([
        platform.node(),
        platform.platform(),
        sys.version,
        str(os.getpid()),
    ])


def build_session_seed(provider: CryptoProvider) -> bytes:
    """High-entropy seed for one session. Never reused, never stored."""
    return b"|".join([
        str(time.time_ns()).encode("ascii"),
        provider.random_bytes(SEED_RANDOM_SIZE),
        host_fingerprint().encode("utf-8"),
    ])


def derive_session_key(
    provider: CryptoProvider, seed: bytes, salt: bytes, config: EnvelopeConfig
) -> bytearray:
    """Run the slow KDF. Returned as a bytearray so clear() can zero it."""
    return bytearray(
        provider.derive_key(seed, salt, config.kdf_iterations, config.key_size)
    )


def _zero(key: bytearray):
    for i in range(len(key)):
        key[i] = 0


def split_ciphertext(text: str, iv_size: int) -> tuple[bytes, bytes] | None:
    """
    Strictly decode a ciphertext string into (iv, ciphertext+tag).

    Returns None for anything that is not canonical base64 of at least
    IV + tag length; a string that decodes but does not re-encode to itself
    carries altered padding bits and is rejected too.
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return None
    if base64.b64encode(raw).decode("ascii") != text:
        return None
    if len(raw) < iv_size + 16:
        return None
    return raw[:iv_size], raw[iv_size:]


def parse_plain(text: str) -> tuple[bool, Any]:
    """Try text as plain serialized data. Returns (parsed_ok, value)."""
    try:
        return True, json.loads(text)
    except (ValueError, TypeError):
        return False, None


class CryptoSession:
    """
    Owner of the session key.

    Constructed once at application start and handed to the storage
    adapter. Pass provider=None to model a platform without crypto
    primitives; initialize() then reports False.

    Args:
        provider: Source of primitives. Defaults to CryptographyProvider.
        config: KDF and wire-format parameters.
    """

    def __init__(self, provider: CryptoProvider | None = _DEFAULT_PROVIDER,
                 config: EnvelopeConfig | None = None):
        if provider is _DEFAULT_PROVIDER:
            provider = CryptographyProvider()
        self._provider = provider
        self.config = config or EnvelopeConfig()
        self._key: bytearray | None = None
        self._generation = 0
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"CryptoSession(ready={self.is_available()})"

    async def initialize(self) -> bool:
        """
        Derive the session key.

        Returns:
            True if the session is ready. False if primitives are missing
            or failed; the caller should continue without encryption.
        """
        async with self._lock:
            if self.is_available():
                return True

            if self._provider is None:
                logger.warning("crypto_provider_missing")
                return False

            generation = self._generation
            try:
                if not self._provider.is_supported():
                    logger.warning("crypto_provider_unsupported")
                    return False
                salt = self._provider.random_bytes(self.config.salt_size)
                seed = build_session_seed(self._provider)
                key = await asyncio.to_thread(
                    derive_session_key, self._provider, seed, salt, self.config
                )
            except Exception as e:
                logger.warning("session_key_derivation_failed", error=type(e).__name__)
                return False

            # clear() ran while the KDF was in flight
            if generation != self._generation:
                _zero(key)
                logger.info("session_key_discarded_after_clear")
                return False

            if len(key) != self.config.key_size:
                _zero(key)
                logger.warning("session_key_wrong_length")
                return False

            self._key = key
            logger.info(
                "crypto_session_initialized",
                kdf_iterations=self.config.kdf_iterations,
                iv_size=self.config.iv_size,
            )
            return True

    def is_available(self) -> bool:
        """Primitives present and key derived."""
        return self._provider is not None and self._key is not None

    def clear(self):
        """
        Zero and drop the session key. Safe to call at any time.

        A key derivation still in flight is discarded when it completes.
        """
        self._generation += 1
        if self._key is not None:
            _zero(self._key)
            logger.info("crypto_session_cleared")
        self._key = None

    async def seal(self, payload: Any) -> EncryptionOutcome:
        """
        Encrypt a structured payload.

        Returns:
            Encrypted when the session holds a key and the cipher worked,
            Plaintext when there is no key, Unavailable when the cipher
            failed. The last two carry the plain serialization.

        Raises:
            TypeError: If the payload is not JSON-serializable.
        """
        plain = serialize_payload(payload)
        key = self._key
        if key is None or self._provider is None:
            return Plaintext(plain)

        try:
            iv = self._provider.random_bytes(self.config.iv_size)
            if len(iv) != self.config.iv_size:
                return Unavailable(plain, "short iv")
            sealed = self._provider.aead_encrypt(key, iv, plain)
        except Exception as e:
            logger.warning("encryption_failed", error=type(e).__name__)
            return Unavailable(plain, type(e).__name__)

        return Encrypted(iv + sealed)

    async def encrypt(self, payload: Any) -> str:
        """
        Encrypt a payload to its stored text form.

        Without a key this returns the plain serialization; whoever stores
        it must mark it unencrypted.
        """
        outcome = await self.seal(payload)
        return outcome.text

    async def decrypt(self, text: str) -> Any:
        """
        Recover a payload from encrypt() output.

        Falls back to parsing the text as plain serialized data (what
        encrypt() emits without a key). Returns None if neither works;
        never returns a partially decrypted value.
        """
        if not isinstance(text, str):
            return None

        key = self._key
        if key is not None and self._provider is not None:
            parts = split_ciphertext(text, self.config.iv_size)
            if parts is not None:
                iv, body = parts
                try:
                    plain = self._provider.aead_decrypt(key, iv, body)
                    return json.loads(plain.decode("utf-8"))
                except InvalidTag:
                    logger.debug("ciphertext_authentication_failed")
                except Exception as e:
                    logger.warning("decryption_failed", error=type(e).__name__)

        ok, value = parse_plain(text)
        if ok:
            return value
        return None

    async def validate(self) -> bool:
        """Round-trip a synthetic payload to prove the envelope works here."""
        if not self.is_available():
            return False
        try:
            probe = {
                "check": "carevault-self-test",
                "nonce": self._provider.random_bytes(8).hex(),
                "values": [1, 2.5, True, None, "ü"],
            }
            outcome = await self.seal(probe)
            if not isinstance(outcome, Encrypted):
                return False
            return await self.decrypt(outcome.text) == probe
        except Exception as e:
            logger.warning("crypto_self_test_failed", error=type(e).__name__)
            return False
