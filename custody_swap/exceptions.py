"""
Exception hierarchy for the custody swap pipeline.

Every error raised by the pipeline derives from CustodySwapError so callers
can branch on the exception type instead of parsing message text.

Each exception includes:
- Unique error code for logging and debugging
- Descriptive message
- Optional context dictionary for additional debugging info
- is_recoverable flag indicating if a fresh attempt may succeed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


# =============================================================================
# BASE EXCEPTIONS
# =============================================================================

@dataclass
class CustodySwapError(Exception):
    """
    Base exception for all custody swap errors.

    Attributes:
        message: Human-readable error description
        error_code: Unique identifier for the error type (e.g., "HTTP_001")
        context: Optional dictionary with debugging information
        is_recoverable: Whether a fresh attempt may succeed
        timestamp: When the error occurred
    """
    message: str
    error_code: str = "GENERAL_001"
    context: dict[str, Any] = field(default_factory=dict)
    is_recoverable: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        super().__init__(self.format_message())

    def format_message(self) -> str:
        """Format the error message with code and context."""
        base = f"[{self.error_code}] {self.message}"
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base += f" | Context: {context_str}"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
            "is_recoverable": self.is_recoverable,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def __str__(self) -> str:
        return self.format_message()

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"is_recoverable={self.is_recoverable})"
        )


@dataclass
class ConfigurationError(CustodySwapError):
    """Error in settings or credentials."""
    error_code: str = "CONFIG_001"


@dataclass
class InitializationError(CustodySwapError):
    """Error while opening the ledger or HTTP connections."""
    error_code: str = "INIT_001"


# =============================================================================
# VALIDATION EXCEPTIONS
# =============================================================================

@dataclass
class ValidationError(CustodySwapError):
    """Base exception for caller input errors."""
    error_code: str = "VAL_000"
    field_name: Optional[str] = None


@dataclass
class InvalidAmountError(ValidationError):
    """Amount is not a positive unsigned 64-bit integer."""
    error_code: str = "VAL_001"


@dataclass
class InvalidAddressError(ValidationError):
    """Address is not a valid base58 Solana public key."""
    error_code: str = "VAL_002"
    address: Optional[str] = None


@dataclass
class InvalidSlippageError(ValidationError):
    """Slippage tolerance is outside 0..10000 basis points."""
    error_code: str = "VAL_003"


# =============================================================================
# SIGNER EXCEPTIONS
# =============================================================================

@dataclass
class SignerError(CustodySwapError):
    """Base exception for local signing errors."""
    error_code: str = "SIGN_000"


@dataclass
class AuthSigningError(SignerError):
    """The API signer could not produce a request signature."""
    error_code: str = "SIGN_001"


# =============================================================================
# REMOTE SERVICE EXCEPTIONS
# =============================================================================

@dataclass
class RemoteServiceError(CustodySwapError):
    """A remote collaborator answered with an error."""
    error_code: str = "REMOTE_000"
    is_recoverable: bool = True


@dataclass
class QuoteError(RemoteServiceError):
    """The quoting service could not build swap instructions."""
    error_code: str = "REMOTE_001"
    status_code: Optional[int] = None
    body: Any = None


@dataclass
class BlockhashNotFoundError(RemoteServiceError):
    """The ledger returned no recent blockhash."""
    error_code: str = "REMOTE_002"


@dataclass
class TipAccountError(RemoteServiceError):
    """The relay published no usable tip accounts."""
    error_code: str = "REMOTE_003"


@dataclass
class CustodyResponseError(RemoteServiceError):
    """The custody service answered 2xx with an unusable body."""
    error_code: str = "REMOTE_004"
    is_recoverable: bool = False


@dataclass
class LookupTableError(RemoteServiceError):
    """An address lookup table named by the quote could not be loaded."""
    error_code: str = "REMOTE_005"
    table_address: Optional[str] = None


# =============================================================================
# TRANSPORT EXCEPTIONS
# =============================================================================

@dataclass
class HttpStatusError(CustodySwapError):
    """The remote service rejected the request with a non-2xx status."""
    error_code: str = "HTTP_001"
    status_code: int = 0
    body: Any = None

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


@dataclass
class NetworkError(CustodySwapError):
    """No response was received (connection failure or timeout)."""
    error_code: str = "NET_001"
    is_recoverable: bool = True


@dataclass
class RelayError(CustodySwapError):
    """Forwarding a custody-signed transaction to the relay failed."""
    error_code: str = "RELAY_001"
    transaction_id: Optional[str] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def is_recoverable(error: Exception) -> bool:
    if isinstance(error, CustodySwapError):
        return error.is_recoverable
    return False


__all__ = [
    "CustodySwapError", "ConfigurationError", "InitializationError",
    "ValidationError", "InvalidAmountError", "InvalidAddressError",
    "InvalidSlippageError", "SignerError", "AuthSigningError",
    "RemoteServiceError", "QuoteError", "BlockhashNotFoundError",
    "TipAccountError", "CustodyResponseError", "LookupTableError", "HttpStatusError",
    "NetworkError", "RelayError", "is_recoverable",
]
