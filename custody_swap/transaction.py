import logging
from typing import List, Optional, Sequence

from solana.rpc.commitment import Commitment, Confirmed
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.instruction import Instruction
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer

from .connection import ConnectionManager
from .exceptions import BlockhashNotFoundError, LookupTableError
from .models import LifetimeAnchor, TransactionMessage
from .signers import ReferenceSigner

logger = logging.getLogger(__name__)

# Lookup table account layout: 56-byte metadata header, then 32-byte addresses.
LOOKUP_TABLE_META_SIZE = 56
PUBKEY_SIZE = 32


def create_tip_instruction(payer: Pubkey, tip_account: Pubkey, tip_lamports: int) -> Instruction:
    return transfer(
        TransferParams(
            from_pubkey=payer,
            to_pubkey=tip_account,
            lamports=tip_lamports
        )
    )


def parse_lookup_table(key: Pubkey, data: bytes) -> AddressLookupTableAccount:
    if len(data) < LOOKUP_TABLE_META_SIZE or (len(data) - LOOKUP_TABLE_META_SIZE) % PUBKEY_SIZE:
        raise LookupTableError(
            f"Lookup table {key} has malformed account data ({len(data)} bytes)",
            table_address=str(key),
        )
    addresses = [
        Pubkey.from_bytes(data[i:i + PUBKEY_SIZE])
        for i in range(LOOKUP_TABLE_META_SIZE, len(data), PUBKEY_SIZE)
    ]
    return AddressLookupTableAccount(key, addresses)


class TransactionAssembler:
    """
    Builds v0 messages bound to a freshly fetched blockhash.

    The message expires when the ledger passes the blockhash's
    last_valid_block_height; there is no wall-clock timeout.
    """

    def __init__(self, connections: ConnectionManager, commitment: Commitment = Confirmed):
        self.connections = connections
        self.commitment = commitment

    async def fetch_lifetime(self) -> LifetimeAnchor:
        client = self.connections.get_ledger_client()
        response = await client.get_latest_blockhash(commitment=self.commitment)

        if not response.value:
            raise BlockhashNotFoundError("Failed to get recent blockhash")

        anchor = LifetimeAnchor(
            blockhash=response.value.blockhash,
            last_valid_block_height=response.value.last_valid_block_height,
        )
        logger.debug(
            f"Fetched blockhash {anchor.blockhash} "
            f"(valid until height {anchor.last_valid_block_height})"
        )
        return anchor

    async def fetch_lookup_tables(self, addresses: Sequence[Pubkey]) -> List[AddressLookupTableAccount]:
        if not addresses:
            return []

        client = self.connections.get_ledger_client()
        response = await client.get_multiple_accounts(list(addresses), commitment=self.commitment)
        accounts = list(response.value or [])

        tables = []
        for index, key in enumerate(addresses):
            account = accounts[index] if index < len(accounts) else None
            if account is None:
                raise LookupTableError(f"Lookup table {key} not found", table_address=str(key))
            tables.append(parse_lookup_table(key, bytes(account.data)))

        logger.debug(f"Loaded {len(tables)} lookup tables")
        return tables

    @staticmethod
    def compile(
        fee_payer: Pubkey,
        lifetime: LifetimeAnchor,
        instructions: Sequence[Instruction],
        lookup_tables: Optional[Sequence[AddressLookupTableAccount]] = None,
    ) -> TransactionMessage:
        message = MessageV0.try_compile(
            payer=fee_payer,
            instructions=list(instructions),
            address_lookup_table_accounts=list(lookup_tables or []),
            recent_blockhash=lifetime.blockhash,
        )
        return TransactionMessage(message=message, fee_payer=fee_payer, lifetime=lifetime)

    async def assemble(
        self,
        fee_payer: ReferenceSigner,
        instructions: List[Instruction],
        lookup_table_addresses: Optional[Sequence[Pubkey]] = None,
    ) -> TransactionMessage:
        lookup_tables = await self.fetch_lookup_tables(lookup_table_addresses or [])
        lifetime = await self.fetch_lifetime()
        tx_message = self.compile(fee_payer.pubkey(), lifetime, instructions, lookup_tables)
        logger.debug(
            f"Assembled v0 message: payer={fee_payer.address} "
            f"signers={len(tx_message.required_signers)} ix={len(instructions)} "
            f"lookup_tables={len(lookup_tables)}"
        )
        return tx_message


__all__ = ["TransactionAssembler", "create_tip_instruction", "parse_lookup_table"]
