"""
Dual-signature packager.

Turns an assembled message into the custody service's create request. The
signature array always has two entries: slot 0 is the custody vault's and
is sent as {"data": null} for the custody service to fill; slot 1 carries
the local signature when a local signer is part of the message.
"""

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence

from solders.signature import Signature

from .models import BroadcastMode, SignedEnvelope, TransactionMessage
from .signers import LocalSigner

logger = logging.getLogger(__name__)

LOCAL_SIGNATURE_SLOT = 1


def partially_sign(
    tx_message: TransactionMessage,
    signers: Sequence[LocalSigner],
) -> List[Optional[Signature]]:
    """
    Sign with every local signer the message requires.

    Returns one entry per required signer in message order; entries without
    a local signer stay None.
    """
    message_bytes = tx_message.serialize()
    by_pubkey = {signer.pubkey(): signer for signer in signers}

    slots: List[Optional[Signature]] = []
    for required in tx_message.required_signers:
        signer = by_pubkey.get(required)
        slots.append(signer.sign_message(message_bytes) if signer else None)
    return slots


class DualSignaturePackager:

    def __init__(
        self,
        vault_id: str,
        chain: str = "solana_mainnet",
        local_signers: Optional[Sequence[LocalSigner]] = None,
    ):
        self.vault_id = vault_id
        self.chain = chain
        self.local_signers = list(local_signers or [])

    def envelope(self, tx_message: TransactionMessage) -> SignedEnvelope:
        slots = partially_sign(tx_message, self.local_signers)

        local = slots[LOCAL_SIGNATURE_SLOT] if len(slots) > LOCAL_SIGNATURE_SLOT else None
        local_b64 = base64.b64encode(bytes(local)).decode("ascii") if local else None

        return SignedEnvelope(
            message_b64=base64.b64encode(tx_message.serialize()).decode("ascii"),
            local_signature_b64=local_b64,
        )

    def request_body(self, envelope: SignedEnvelope, broadcast_mode: BroadcastMode) -> Dict[str, Any]:
        return {
            "vault_id": self.vault_id,
            "signer_type": "api_signer",
            "sign_mode": "auto",
            "type": "solana_transaction",
            "details": {
                "type": "solana_serialized_transaction_message",
                "push_mode": broadcast_mode.push_mode,
                "chain": self.chain,
                "data": envelope.message_b64,
                "signatures": envelope.signatures_payload(),
            },
            "wait_for_state": "signed",
        }

    def package(self, tx_message: TransactionMessage, broadcast_mode: BroadcastMode) -> Dict[str, Any]:
        envelope = self.envelope(tx_message)
        logger.debug(
            f"Packaged message ({len(envelope.message_b64)} b64 chars), "
            f"local signature={'yes' if envelope.local_signature_b64 else 'no'}, "
            f"push_mode={broadcast_mode.push_mode}"
        )
        return self.request_body(envelope, broadcast_mode)


__all__ = ["DualSignaturePackager", "partially_sign", "LOCAL_SIGNATURE_SLOT"]
