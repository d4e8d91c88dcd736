"""
Data model for one swap attempt.

Each SwapRequest owns a single chain of derived objects
(BuiltInstructions -> TransactionMessage -> SignedEnvelope -> SigningPayload)
with no back-references and no sharing between swaps.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import MessageV0, to_bytes_versioned
from solders.pubkey import Pubkey

NOT_AVAILABLE = "N/A"
SIGNING_PAYLOAD_DELIMITER = "|"


class BroadcastMode(str, Enum):
    DIRECT = "direct"
    RELAY = "relay"

    @property
    def push_mode(self) -> str:
        """Custody push mode: manual hands broadcasting back to us."""
        return "manual" if self is BroadcastMode.RELAY else "auto"


@dataclass(frozen=True)
class SwapRequest:
    pool_address: str
    input_mint: str
    input_amount: int
    fee_payer: str
    broadcast_mode: BroadcastMode = BroadcastMode.DIRECT

    @property
    def uses_relay(self) -> bool:
        return self.broadcast_mode is BroadcastMode.RELAY


@dataclass(frozen=True)
class Quote:
    """Informational only; never checked against a minimum-output guard."""
    estimated_amount_out: int
    price_impact_pct: float
    raw: Dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Quote":
        amount_out = data.get("estimatedAmountOut", data.get("outAmount", 0))
        price_impact = data.get("priceImpactPct", data.get("priceImpact", 0))
        return cls(
            estimated_amount_out=int(amount_out or 0),
            price_impact_pct=float(price_impact or 0),
            raw=data,
        )


@dataclass
class BuiltInstructions:
    instructions: List[Instruction]
    quote: Quote
    lookup_table_addresses: List[Pubkey] = field(default_factory=list)


@dataclass(frozen=True)
class LifetimeAnchor:
    """A message is valid until the ledger passes last_valid_block_height."""
    blockhash: Hash
    last_valid_block_height: int


@dataclass(frozen=True)
class TransactionMessage:
    message: MessageV0
    fee_payer: Pubkey
    lifetime: LifetimeAnchor

    @property
    def version(self) -> int:
        return 0

    @property
    def required_signers(self) -> List[Pubkey]:
        count = self.message.header.num_required_signatures
        return list(self.message.account_keys[:count])

    def serialize(self) -> bytes:
        return bytes(to_bytes_versioned(self.message))


@dataclass(frozen=True)
class SignedEnvelope:
    """
    Serialized message plus the fixed two-slot signature array.

    Slot 0 belongs to the custody-held account and is always None here;
    the custody service fills it. Slot 1 carries the local signature if
    one was produced.
    """
    message_b64: str
    local_signature_b64: Optional[str] = None

    @property
    def custody_signature_slot(self) -> None:
        return None

    @property
    def signature_slots(self) -> Tuple[None, Optional[str]]:
        return (None, self.local_signature_b64)

    def signatures_payload(self) -> List[Dict[str, Optional[str]]]:
        return [{"data": slot} for slot in self.signature_slots]


@dataclass(frozen=True)
class SigningPayload:
    path: str
    timestamp_ms: int
    body: str

    @classmethod
    def create(cls, path: str, body: str) -> "SigningPayload":
        return cls(path=path, timestamp_ms=int(time.time() * 1000), body=body)

    def render(self) -> str:
        return SIGNING_PAYLOAD_DELIMITER.join(
            (self.path, str(self.timestamp_ms), self.body)
        )


@dataclass(frozen=True)
class SubmissionResult:
    transaction_id: str
    correlation_id: str = NOT_AVAILABLE
    body: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def raw_transaction(self) -> Optional[str]:
        return self.body.get("raw_transaction")


@dataclass
class SwapOutcome:
    request: SwapRequest
    submission: SubmissionResult
    duration_ms: int = 0
    bundle_id: Optional[str] = None
    relay_error: Optional[str] = None

    @property
    def broadcast_via(self) -> str:
        if not self.request.uses_relay:
            return "custody"
        return "relay" if self.bundle_id else "custody-only"


__all__ = [
    "BroadcastMode",
    "SwapRequest",
    "Quote",
    "BuiltInstructions",
    "LifetimeAnchor",
    "TransactionMessage",
    "SignedEnvelope",
    "SigningPayload",
    "SubmissionResult",
    "SwapOutcome",
    "NOT_AVAILABLE",
]
