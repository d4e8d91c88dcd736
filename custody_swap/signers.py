"""
Signer capabilities.

ReferenceSigner stands in for an account whose key lives elsewhere (the
custody vault). It can shape instructions and messages that name the
account, but it has no signing method at all. LocalSigner wraps a keypair
held in this process and is the only type the packager accepts for signing.
"""

import logging
from typing import Optional

import base58
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature

from .exceptions import ConfigurationError
from .validators import to_pubkey

logger = logging.getLogger(__name__)

KEYPAIR_LENGTH = 64


class ReferenceSigner:

    __slots__ = ("_pubkey",)

    def __init__(self, pubkey: Pubkey):
        self._pubkey = pubkey

    @classmethod
    def from_address(cls, address: str) -> "ReferenceSigner":
        return cls(to_pubkey(address, "fee_payer"))

    def pubkey(self) -> Pubkey:
        return self._pubkey

    @property
    def address(self) -> str:
        return str(self._pubkey)

    def __repr__(self) -> str:
        return f"ReferenceSigner({self._pubkey})"


class LocalSigner:

    __slots__ = ("_keypair",)

    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_base58(cls, secret: str) -> "LocalSigner":
        try:
            raw = base58.b58decode(secret.strip())
            if len(raw) != KEYPAIR_LENGTH:
                raise ValueError(f"expected {KEYPAIR_LENGTH} bytes, got {len(raw)}")
            return cls(Keypair.from_bytes(raw))
        except ValueError as e:
            raise ConfigurationError(f"Invalid local signer key: {e}") from e

    def pubkey(self) -> Pubkey:
        return self._keypair.pubkey()

    def sign_message(self, message: bytes) -> Signature:
        return self._keypair.sign_message(message)

    def __repr__(self) -> str:
        return f"LocalSigner({self.pubkey()})"


def load_local_signer(secret: Optional[str]) -> Optional[LocalSigner]:
    if not secret:
        return None
    signer = LocalSigner.from_base58(secret)
    logger.info(f"Local signer configured: {signer.pubkey()}")
    return signer


__all__ = ["ReferenceSigner", "LocalSigner", "load_local_signer"]
