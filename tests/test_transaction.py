import asyncio

import pytest
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from conftest import FakeConnections, FakeLedger
from custody_swap.exceptions import BlockhashNotFoundError, LookupTableError
from custody_swap.signers import ReferenceSigner
from custody_swap.transaction import TransactionAssembler, create_tip_instruction


def _ix(program_id, *accounts):
    return Instruction(
        program_id=program_id,
        data=b"\x07",
        accounts=[AccountMeta(a, is_signer=False, is_writable=True) for a in accounts],
    )


def test_assemble_binds_fresh_blockhash_and_payer_first():
    ledger = FakeLedger(height=4242)
    payer = ReferenceSigner(Keypair().pubkey())
    ix = _ix(Pubkey.new_unique(), Pubkey.new_unique())

    tx_message = asyncio.run(TransactionAssembler(FakeConnections(ledger)).assemble(payer, [ix]))

    assert tx_message.fee_payer == payer.pubkey()
    assert tx_message.message.account_keys[0] == payer.pubkey()
    assert tx_message.message.recent_blockhash == ledger.blockhash
    assert tx_message.lifetime.last_valid_block_height == 4242
    assert tx_message.required_signers == [payer.pubkey()]
    assert tx_message.version == 0
    assert ledger.calls == 1


def test_instruction_order_is_preserved():
    payer = ReferenceSigner(Keypair().pubkey())
    programs = [Pubkey.new_unique() for _ in range(4)]

    tx_message = asyncio.run(
        TransactionAssembler(FakeConnections()).assemble(payer, [_ix(p) for p in programs])
    )

    keys = tx_message.message.account_keys
    compiled = [keys[ix.program_id_index] for ix in tx_message.message.instructions]
    assert compiled == programs


def test_each_assemble_fetches_a_new_blockhash():
    ledger = FakeLedger()
    assembler = TransactionAssembler(FakeConnections(ledger))
    payer = ReferenceSigner(Keypair().pubkey())

    async def runner():
        await assembler.assemble(payer, [_ix(Pubkey.new_unique())])
        await assembler.assemble(payer, [_ix(Pubkey.new_unique())])

    asyncio.run(runner())

    assert ledger.calls == 2


def test_missing_blockhash():
    assembler = TransactionAssembler(FakeConnections(FakeLedger(empty=True)))

    with pytest.raises(BlockhashNotFoundError):
        asyncio.run(assembler.fetch_lifetime())


def test_tip_instruction_is_system_transfer():
    payer = Pubkey.new_unique()
    tip = Pubkey.new_unique()

    ix = create_tip_instruction(payer, tip, 1000)

    assert ix.program_id == SYSTEM_PROGRAM_ID
    assert [a.pubkey for a in ix.accounts] == [payer, tip]
    assert ix.accounts[0].is_signer


def _table_data(addresses):
    return bytes(56) + b"".join(bytes(a) for a in addresses)


def test_lookup_table_accounts_are_compiled_in():
    table_key = Pubkey.new_unique()
    table_addresses = [Pubkey.new_unique() for _ in range(3)]
    ledger = FakeLedger(accounts={table_key: _table_data(table_addresses)})
    payer = ReferenceSigner(Keypair().pubkey())
    ix = _ix(Pubkey.new_unique(), table_addresses[1])

    tx_message = asyncio.run(
        TransactionAssembler(FakeConnections(ledger)).assemble(payer, [ix], [table_key])
    )

    lookups = tx_message.message.address_table_lookups
    assert len(lookups) == 1
    assert lookups[0].account_key == table_key
    assert list(lookups[0].writable_indexes) == [1]
    assert table_addresses[1] not in tx_message.message.account_keys


def test_missing_lookup_table():
    table_key = Pubkey.new_unique()
    assembler = TransactionAssembler(FakeConnections())
    payer = ReferenceSigner(Keypair().pubkey())

    with pytest.raises(LookupTableError) as exc_info:
        asyncio.run(assembler.assemble(payer, [_ix(Pubkey.new_unique())], [table_key]))

    assert exc_info.value.table_address == str(table_key)


def test_malformed_lookup_table_data():
    table_key = Pubkey.new_unique()
    ledger = FakeLedger(accounts={table_key: bytes(56 + 5)})

    with pytest.raises(LookupTableError):
        asyncio.run(TransactionAssembler(FakeConnections(ledger)).fetch_lookup_tables([table_key]))


def test_no_lookup_tables_skips_account_fetch():
    assembler = TransactionAssembler(FakeConnections())
    assert asyncio.run(assembler.fetch_lookup_tables([])) == []
