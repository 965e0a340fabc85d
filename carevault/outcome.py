"""
Encryption outcomes.

CryptoSession.seal() never raises for crypto conditions; it returns one of
three outcomes and every caller decides what each means for it:

  Encrypted(data):        IV || ciphertext+tag, ready to store
  Plaintext(data):        the session has no key; data is the plain serialization
  Unavailable(data, why): the session had a key but the cipher failed
"""

import base64
from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class Encrypted:
    data: bytes

    @property
    def text(self) -> str:
        """Base64 form written to storage."""
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True)
class Plaintext:
    data: bytes

    @property
    def text(self) -> str:
        return self.data.decode("utf-8")


@dataclass(frozen=True)
class Unavailable:
    data: bytes
    reason: str = ""

    @property
    def text(self) -> str:
        return self.data.decode("utf-8")


EncryptionOutcome = Union[Encrypted, Plaintext, Unavailable]
