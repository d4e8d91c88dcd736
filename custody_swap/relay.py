"""
Relay forwarding through a Jito block engine.

In relay mode the custody service signs without broadcasting
(push_mode=manual). The forwarder then reads the signed swap transaction,
has custody sign a tip transfer to a randomly chosen tip account, and submits
both as one bundle. Forwarding is best effort: every failure surfaces as a
RelayError for the caller to log.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, List, Optional

import aiohttp
from solders.pubkey import Pubkey

from .connection import ConnectionManager
from .custody import CustodyClient
from .exceptions import CustodySwapError, RelayError, TipAccountError
from .models import BroadcastMode, SubmissionResult
from .packager import DualSignaturePackager
from .signers import ReferenceSigner
from .transaction import TransactionAssembler, create_tip_instruction

logger = logging.getLogger(__name__)

BUNDLES_PATH = "/api/v1/bundles"


@dataclass
class BundleResult:
    bundle_id: str
    tip_account: str
    tip_lamports: int
    tip_transaction_id: Optional[str] = None


class JitoRelayClient:

    def __init__(self, connections: ConnectionManager, endpoint: str):
        self.connections = connections
        self.endpoint = endpoint.rstrip("/")

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        session = self.connections.get_http_session()
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": method,
            "params": params,
        }
        try:
            async with session.post(f"{self.endpoint}{BUNDLES_PATH}", json=payload) as response:
                try:
                    data = await response.json(content_type=None)
                except ValueError:
                    raise RelayError(
                        f"{method} returned non-JSON response (status {response.status})"
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RelayError(f"Network error calling {method}: {str(e) or e.__class__.__name__}") from e

        if not isinstance(data, dict):
            raise RelayError(f"{method} returned unexpected response: {data!r}")
        if "error" in data:
            raise RelayError(f"{method} failed: {data['error']}")
        return data.get("result")

    async def get_tip_accounts(self) -> List[str]:
        try:
            result = await self._rpc("getTipAccounts", [])
        except RelayError as e:
            raise TipAccountError(f"Failed to get tip accounts: {e.message}") from e

        if result is None:
            return []
        if not isinstance(result, list) or not all(isinstance(a, str) for a in result):
            raise TipAccountError(f"getTipAccounts returned malformed result: {result!r}")
        return result

    async def send_bundle(self, transactions_b64: List[str]) -> str:
        result = await self._rpc("sendBundle", [transactions_b64, {"encoding": "base64"}])
        if not result:
            raise RelayError("sendBundle returned no bundle id")
        return str(result)


class RelayForwarder:

    def __init__(
        self,
        relay: JitoRelayClient,
        custody: CustodyClient,
        assembler: TransactionAssembler,
        packager: DualSignaturePackager,
        tip_lamports: int,
        rng: Optional[random.Random] = None,
    ):
        self.relay = relay
        self.custody = custody
        self.assembler = assembler
        self.packager = packager
        self.tip_lamports = tip_lamports
        self._rng = rng or random.Random()

    async def select_tip_account(self) -> Pubkey:
        accounts = await self.relay.get_tip_accounts()
        if not accounts:
            raise TipAccountError("Relay published no tip accounts")

        index = self._rng.randrange(len(accounts))
        tip_account = Pubkey.from_string(accounts[index])
        logger.info(f"Tip account (index {index}) -> {tip_account}")
        return tip_account

    async def _signed_raw_transaction(self, submission: SubmissionResult) -> str:
        raw = submission.raw_transaction
        if raw:
            return raw
        data = await self.custody.get_transaction(submission.transaction_id)
        raw = data.get("raw_transaction")
        if not raw:
            raise RelayError(
                f"Custody transaction {submission.transaction_id} has no signed raw transaction",
                transaction_id=submission.transaction_id,
            )
        return raw

    async def _tip_transaction(self, payer: ReferenceSigner, tip_account: Pubkey) -> SubmissionResult:
        instruction = create_tip_instruction(payer.pubkey(), tip_account, self.tip_lamports)
        tx_message = await self.assembler.assemble(payer, [instruction])
        body = self.packager.package(tx_message, BroadcastMode.RELAY)
        return await self.custody.submit(body)

    async def forward(self, submission: SubmissionResult, payer: ReferenceSigner) -> BundleResult:
        transaction_id = submission.transaction_id
        try:
            tip_account = await self.select_tip_account()
            swap_raw = await self._signed_raw_transaction(submission)

            tip_submission = await self._tip_transaction(payer, tip_account)
            tip_raw = await self._signed_raw_transaction(tip_submission)

            bundle_id = await self.relay.send_bundle([swap_raw, tip_raw])
        except RelayError:
            raise
        except (CustodySwapError, ValueError, TypeError) as e:
            raise RelayError(
                f"Failed to forward transaction {transaction_id} to relay: {e}",
                transaction_id=transaction_id,
            ) from e

        logger.info(f"Bundle {bundle_id} sent for transaction {transaction_id}")
        return BundleResult(
            bundle_id=bundle_id,
            tip_account=str(tip_account),
            tip_lamports=self.tip_lamports,
            tip_transaction_id=tip_submission.transaction_id,
        )


__all__ = ["JitoRelayClient", "RelayForwarder", "BundleResult", "BUNDLES_PATH"]
