"""
Per-swap pipeline: build -> assemble -> package -> submit -> (relay).

The first uncaught error aborts the swap and propagates to the caller.
Relay forwarding is the exception: its failures are logged and recorded,
and the swap still counts as submitted to custody.
"""

import logging
from typing import Optional

from .custody import CustodyClient
from .events import EventKind, EventSink, NullEventSink
from .exceptions import RelayError
from .instructions import SwapInstructionBuilder
from .models import SwapOutcome, SwapRequest
from .packager import DualSignaturePackager
from .relay import RelayForwarder
from .signers import ReferenceSigner
from .transaction import TransactionAssembler

logger = logging.getLogger(__name__)


class SwapPipeline:

    def __init__(
        self,
        builder: SwapInstructionBuilder,
        assembler: TransactionAssembler,
        packager: DualSignaturePackager,
        custody: CustodyClient,
        forwarder: Optional[RelayForwarder] = None,
        events: Optional[EventSink] = None,
    ):
        self.builder = builder
        self.assembler = assembler
        self.packager = packager
        self.custody = custody
        self.forwarder = forwarder
        self.events = events or NullEventSink()

    async def execute(self, request: SwapRequest) -> SwapOutcome:
        payer = ReferenceSigner.from_address(request.fee_payer)

        built = await self.builder.build(
            request.pool_address,
            request.input_mint,
            request.input_amount,
            payer,
        )
        tx_message = await self.assembler.assemble(
            payer,
            built.instructions,
            built.lookup_table_addresses,
        )
        body = self.packager.package(tx_message, request.broadcast_mode)
        submission = await self.custody.submit(body)

        outcome = SwapOutcome(request=request, submission=submission)

        if request.uses_relay:
            await self._forward(outcome, payer)
        else:
            logger.info(f"Transaction submitted to custody for broadcast, tx-id: {submission.transaction_id}")
            await self.events.emit(
                EventKind.SWAP_SUBMITTED,
                f"Completed swap via custody, tx-id: {submission.transaction_id}, "
                f"x-request-id: {submission.correlation_id}",
            )

        return outcome

    async def _forward(self, outcome: SwapOutcome, payer: ReferenceSigner) -> None:
        submission = outcome.submission
        if self.forwarder is None:
            outcome.relay_error = "relay mode requested but no relay forwarder configured"
            logger.error(outcome.relay_error)
            await self.events.emit(EventKind.RELAY_FAILED, outcome.relay_error)
            return

        try:
            bundle = await self.forwarder.forward(submission, payer)
        except RelayError as e:
            outcome.relay_error = e.message
            logger.error(f"Failed to push the transaction to the relay: {e.message}")
            await self.events.emit(
                EventKind.RELAY_FAILED,
                f"Error pushing to relay: {e.message}, x-request-id: {submission.correlation_id}",
            )
            return

        outcome.bundle_id = bundle.bundle_id
        await self.events.emit(
            EventKind.RELAY_FORWARDED,
            f"Completed swap via relay, tx-id: {submission.transaction_id}, "
            f"bundle: {bundle.bundle_id}, x-request-id: {submission.correlation_id}",
        )


__all__ = ["SwapPipeline"]
