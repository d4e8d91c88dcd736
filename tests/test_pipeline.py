import asyncio

import pytest
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from conftest import POOL, SOL_MINT, FakeConnections, RecordingEventSink
from custody_swap.exceptions import HttpStatusError, InvalidAmountError, RelayError
from custody_swap.models import BroadcastMode, BuiltInstructions, Quote, SubmissionResult, SwapRequest
from custody_swap.packager import DualSignaturePackager
from custody_swap.pipeline import SwapPipeline
from custody_swap.relay import BundleResult
from custody_swap.transaction import TransactionAssembler
from custody_swap.validators import validate_u64_amount


class FakeBuilder:
    def __init__(self):
        self.payers = []

    async def build(self, pool_address, input_mint, input_amount, payer):
        validate_u64_amount(input_amount)
        self.payers.append(payer)
        ix = Instruction(
            program_id=Pubkey.new_unique(),
            data=b"\x01",
            accounts=[AccountMeta(Pubkey.new_unique(), is_signer=False, is_writable=True)],
        )
        return BuiltInstructions(instructions=[ix], quote=Quote(estimated_amount_out=5, price_impact_pct=0.0))


class FakeCustody:
    def __init__(self, error=None):
        self.error = error
        self.bodies = []

    async def submit(self, body):
        self.bodies.append(body)
        if self.error:
            raise self.error
        return SubmissionResult(transaction_id="tx-1", correlation_id="req-1", body={"id": "tx-1"})


class FakeForwarder:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    async def forward(self, submission, payer):
        self.calls += 1
        if self.error:
            raise self.error
        return BundleResult(bundle_id="bundle-1", tip_account="tip", tip_lamports=1000)


def _request(mode=BroadcastMode.DIRECT, amount=1000):
    return SwapRequest(
        pool_address=POOL,
        input_mint=SOL_MINT,
        input_amount=amount,
        fee_payer=str(Keypair().pubkey()),
        broadcast_mode=mode,
    )


def _pipeline(custody=None, forwarder=None, events=None):
    return SwapPipeline(
        builder=FakeBuilder(),
        assembler=TransactionAssembler(FakeConnections()),
        packager=DualSignaturePackager("vault-1"),
        custody=custody or FakeCustody(),
        forwarder=forwarder,
        events=events,
    )


def test_direct_swap_submits_once():
    custody = FakeCustody()
    events = RecordingEventSink()
    forwarder = FakeForwarder()
    request = _request()

    outcome = asyncio.run(_pipeline(custody, forwarder, events).execute(request))

    assert outcome.submission.transaction_id == "tx-1"
    assert outcome.broadcast_via == "custody"
    assert forwarder.calls == 0
    assert len(custody.bodies) == 1
    assert custody.bodies[0]["details"]["push_mode"] == "auto"
    assert events.kinds() == ["swap_submitted"]


def test_fee_payer_is_reference_only():
    pipeline = _pipeline()
    request = _request()

    asyncio.run(pipeline.execute(request))

    payer = pipeline.builder.payers[0]
    assert payer.address == request.fee_payer
    assert not hasattr(payer, "sign_message")


def test_relay_swap_forwards_bundle():
    custody = FakeCustody()
    events = RecordingEventSink()

    outcome = asyncio.run(_pipeline(custody, FakeForwarder(), events).execute(_request(BroadcastMode.RELAY)))

    assert outcome.bundle_id == "bundle-1"
    assert outcome.broadcast_via == "relay"
    assert custody.bodies[0]["details"]["push_mode"] == "manual"
    assert events.kinds() == ["relay_forwarded"]


def test_relay_failure_does_not_fail_the_swap():
    events = RecordingEventSink()
    forwarder = FakeForwarder(error=RelayError("sendBundle failed", transaction_id="tx-1"))

    outcome = asyncio.run(_pipeline(forwarder=forwarder, events=events).execute(_request(BroadcastMode.RELAY)))

    assert outcome.submission.transaction_id == "tx-1"
    assert outcome.bundle_id is None
    assert outcome.relay_error == "sendBundle failed"
    assert outcome.broadcast_via == "custody-only"
    assert events.kinds() == ["relay_failed"]


def test_relay_mode_without_forwarder():
    events = RecordingEventSink()

    outcome = asyncio.run(_pipeline(events=events).execute(_request(BroadcastMode.RELAY)))

    assert outcome.relay_error
    assert events.kinds() == ["relay_failed"]


def test_custody_error_propagates():
    error = HttpStatusError("HTTP error occurred: status = 500", status_code=500)

    with pytest.raises(HttpStatusError):
        asyncio.run(_pipeline(custody=FakeCustody(error=error)).execute(_request()))


def test_invalid_amount_stops_before_submission():
    custody = FakeCustody()

    with pytest.raises(InvalidAmountError):
        asyncio.run(_pipeline(custody=custody).execute(_request(amount=0)))

    assert custody.bodies == []
