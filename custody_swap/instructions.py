"""
Swap instruction builder.

Asks the quoting/instruction service for executable swap instructions
against a single liquidity pool. The fee payer is passed as a reference-only
signer: the service shapes instructions that name the payer's address, but
nothing here can sign for it.
"""

import asyncio
import base64
import binascii
import logging
from typing import Any, Dict, List

import aiohttp
from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey

from .connection import ConnectionManager
from .exceptions import NetworkError, QuoteError
from .models import BuiltInstructions, Quote
from .signers import ReferenceSigner
from .validators import validate_slippage_bps, validate_solana_address, validate_u64_amount

logger = logging.getLogger(__name__)

DEFAULT_SLIPPAGE_BPS = 100  # 1%

# Jupiter-style responses split instructions by role; this is their on-chain order.
INSTRUCTION_GROUPS = (
    "computeBudgetInstructions",
    "setupInstructions",
    "swapInstruction",
    "cleanupInstruction",
)


def decode_instruction(data: Dict[str, Any]) -> Instruction:
    """Decode a {programId, accounts, data} JSON instruction."""
    try:
        accounts = [
            AccountMeta(
                pubkey=Pubkey.from_string(acc["pubkey"]),
                is_signer=bool(acc.get("isSigner", False)),
                is_writable=bool(acc.get("isWritable", False)),
            )
            for acc in data.get("accounts", [])
        ]
        return Instruction(
            program_id=Pubkey.from_string(data["programId"]),
            data=base64.b64decode(data.get("data", ""), validate=True),
            accounts=accounts,
        )
    except (KeyError, TypeError, ValueError, binascii.Error) as e:
        raise QuoteError(f"Malformed instruction in quote response: {e}") from e


def decode_instructions(payload: Dict[str, Any]) -> List[Instruction]:
    if "instructions" in payload:
        raw = list(payload["instructions"])
    else:
        raw = []
        for key in INSTRUCTION_GROUPS:
            group = payload.get(key)
            if group is None:
                continue
            if isinstance(group, list):
                raw.extend(group)
            else:
                raw.append(group)

    if not raw:
        raise QuoteError("Quote response contained no instructions")

    return [decode_instruction(item) for item in raw]


def decode_lookup_table_addresses(payload: Dict[str, Any]) -> List[Pubkey]:
    """
    Read `addressLookupTableAddresses` from a quote response.

    The swap instruction is sized against these tables, so the assembler
    resolves them on the ledger before compiling.
    """
    raw = payload.get("addressLookupTableAddresses") or []
    if not isinstance(raw, list):
        raise QuoteError(f"Malformed addressLookupTableAddresses: {raw!r}")
    try:
        return [Pubkey.from_string(address) for address in raw]
    except (TypeError, ValueError) as e:
        raise QuoteError(f"Malformed lookup table address in quote response: {e}") from e


class SwapInstructionBuilder:

    def __init__(
        self,
        connections: ConnectionManager,
        api_base: str,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    ):
        self.connections = connections
        self.api_base = api_base.rstrip("/")
        self.slippage_bps = validate_slippage_bps(slippage_bps)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base}/swap-instructions"

    async def build(
        self,
        pool_address: str,
        input_mint: str,
        input_amount: int,
        payer: ReferenceSigner,
    ) -> BuiltInstructions:
        """
        Build swap instructions for one pool.

        Args:
            pool_address: Liquidity pool to trade against
            input_mint: Mint of the token being sold
            input_amount: Amount in smallest units; must be a positive u64
            payer: Reference-only signer for the fee payer

        Returns:
            BuiltInstructions with the ordered instructions and the quote

        Raises:
            InvalidAmountError: If the amount is zero, negative or too large
            QuoteError: If the service rejects the request
            NetworkError: If the service cannot be reached
        """
        validate_u64_amount(input_amount, "input_amount")
        validate_solana_address(pool_address, "pool_address")
        validate_solana_address(input_mint, "input_mint")

        request_body = {
            "pool": pool_address,
            "inputMint": input_mint,
            "amount": str(input_amount),
            "slippageBps": self.slippage_bps,
            "payer": payer.address,
        }

        session = self.connections.get_http_session()
        logger.debug(f"Requesting swap instructions: pool={pool_address} amount={input_amount}")

        try:
            async with session.post(self.endpoint, json=request_body) as response:
                try:
                    data = await response.json(content_type=None)
                except (ValueError, aiohttp.ContentTypeError):
                    data = {"raw": await response.text(errors="replace")}

                if response.status < 200 or response.status >= 300:
                    raise QuoteError(
                        f"Quote service returned status {response.status}: {data}",
                        status_code=response.status,
                        body=data,
                        context={"pool": pool_address, "amount": input_amount},
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                f"Network error occurred: {str(e) or e.__class__.__name__}",
                context={"endpoint": self.endpoint},
            ) from e

        if not isinstance(data, dict):
            raise QuoteError(f"Unexpected quote response: {data!r}")

        instructions = decode_instructions(data)
        lookup_tables = decode_lookup_table_addresses(data)
        quote = Quote.from_dict(data.get("quote") or {})

        logger.info(
            f"Swap instructions: {len(instructions)} ix, {len(lookup_tables)} lookup tables, "
            f"est. out={quote.estimated_amount_out}, impact={quote.price_impact_pct}%"
        )
        return BuiltInstructions(
            instructions=instructions,
            quote=quote,
            lookup_table_addresses=lookup_tables,
        )


__all__ = [
    "SwapInstructionBuilder",
    "decode_instruction",
    "decode_instructions",
    "decode_lookup_table_addresses",
    "DEFAULT_SLIPPAGE_BPS",
]
