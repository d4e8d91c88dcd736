"""
API request signer.

The custody service authenticates every request with a signature over
"{path}|{timestamp}|{body}" made by a locally held EC private key. The
signature is ECDSA over SHA-256, DER encoded, then base64.
"""

import base64
import logging
from pathlib import Path
from typing import Optional, Union

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from .exceptions import AuthSigningError, ConfigurationError
from .models import SigningPayload

logger = logging.getLogger(__name__)


class ApiSigner:

    def __init__(self, private_key: ec.EllipticCurvePrivateKey):
        if not isinstance(private_key, ec.EllipticCurvePrivateKey):
            raise ConfigurationError("API signer key must be an elliptic-curve private key")
        self._private_key = private_key

    @classmethod
    def from_pem(cls, pem: Union[str, bytes], password: Optional[bytes] = None) -> "ApiSigner":
        data = pem.encode() if isinstance(pem, str) else pem
        try:
            key = serialization.load_pem_private_key(data, password=password)
        except (ValueError, TypeError, UnsupportedAlgorithm) as e:
            raise ConfigurationError(f"Could not load API signer key: {e}") from e
        return cls(key)

    @classmethod
    def from_file(cls, path: Union[str, Path], password: Optional[bytes] = None) -> "ApiSigner":
        path = Path(path)
        try:
            pem = path.read_bytes()
        except OSError as e:
            raise ConfigurationError(
                f"Could not read API signer key file: {e}",
                context={"path": str(path)}
            ) from e
        return cls.from_pem(pem, password)

    def sign(self, payload: Union[SigningPayload, str]) -> str:
        text = payload.render() if isinstance(payload, SigningPayload) else payload
        try:
            der = self._private_key.sign(text.encode("utf-8"), ec.ECDSA(hashes.SHA256()))
        except (ValueError, TypeError) as e:
            raise AuthSigningError(f"Failed to sign request payload: {e}") from e
        return base64.b64encode(der).decode("ascii")

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._private_key.public_key()


__all__ = ["ApiSigner"]
