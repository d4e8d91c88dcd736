"""
Authenticated custody client.

Every request body is serialized exactly once. The API signature covers
those literal bytes, and the same bytes are what goes on the wire.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional, Tuple

import aiohttp

from .auth import ApiSigner
from .connection import ConnectionManager
from .events import EventKind, EventSink, NullEventSink
from .exceptions import CustodyResponseError, HttpStatusError, NetworkError
from .models import NOT_AVAILABLE, SigningPayload, SubmissionResult

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "x-request-id"


async def _read_body(response: aiohttp.ClientResponse) -> Tuple[Any, bool]:
    """Return (body, parsed_as_json)."""
    text = await response.text(errors="replace")
    try:
        return json.loads(text), True
    except ValueError:
        return text, False


def _status_error(status: int, body: Any, is_json: bool) -> HttpStatusError:
    message = f"HTTP error occurred: status = {status}"
    if is_json:
        message += f"\nError details: {json.dumps(body)}"
    else:
        message += f"\nRaw response: {body}"
    return HttpStatusError(
        message,
        status_code=status,
        body=body,
        is_recoverable=status >= 500 or status == 429,
    )


class CustodyClient:

    def __init__(
        self,
        connections: ConnectionManager,
        signer: ApiSigner,
        access_token: str,
        base_url: str = "https://api.fordefi.com",
        create_path: str = "/api/v1/transactions/create-and-wait",
        transactions_path: str = "/api/v1/transactions",
        events: Optional[EventSink] = None,
    ):
        self.connections = connections
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.create_path = create_path
        self.transactions_path = transactions_path.rstrip("/")
        self.events = events or NullEventSink()
        self._access_token = access_token

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "Content-Type": "application/json",
        }

    def build_signing_payload(self, body: str) -> SigningPayload:
        return SigningPayload.create(self.create_path, body)

    async def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        data: Optional[bytes] = None,
    ) -> Tuple[Any, str]:
        session = self.connections.get_http_session()
        try:
            async with session.request(method, url, data=data, headers=headers) as response:
                body, is_json = await _read_body(response)
                request_id = response.headers.get(REQUEST_ID_HEADER, NOT_AVAILABLE)

                if response.status < 200 or response.status >= 300:
                    raise _status_error(response.status, body, is_json)

                return body, request_id
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise NetworkError(
                f"Network error occurred: {str(e) or e.__class__.__name__}",
                context={"url": url},
            ) from e

    async def submit(self, request_body: Dict[str, Any]) -> SubmissionResult:
        """
        Sign and POST a create-and-wait request.

        Raises:
            HttpStatusError: The service answered outside 2xx
            NetworkError: No response was received
            CustodyResponseError: 2xx without a transaction id
        """
        body = json.dumps(request_body)
        payload = self.build_signing_payload(body)
        signature = self.signer.sign(payload)

        headers = self._auth_headers()
        headers["x-signature"] = signature
        headers["x-timestamp"] = str(payload.timestamp_ms)

        data, request_id = await self._send(
            "POST",
            f"{self.base_url}{self.create_path}",
            headers,
            data=body.encode("utf-8"),
        )

        transaction_id = data.get("id") if isinstance(data, dict) else None
        logger.info(f"Custody response: tx-id={transaction_id or NOT_AVAILABLE}, x-request-id={request_id}")
        await self.events.emit(
            EventKind.CUSTODY_RESPONSE,
            f"x-request-id: {request_id}, tx-id: {transaction_id or NOT_AVAILABLE}",
        )

        if not transaction_id:
            raise CustodyResponseError(
                "Custody response did not include a transaction id",
                context={"x_request_id": request_id},
            )

        return SubmissionResult(
            transaction_id=str(transaction_id),
            correlation_id=request_id,
            body=data,
        )

    async def get_transaction(self, transaction_id: str) -> Dict[str, Any]:
        data, request_id = await self._send(
            "GET",
            f"{self.base_url}{self.transactions_path}/{transaction_id}",
            self._auth_headers(),
        )
        if not isinstance(data, dict):
            raise CustodyResponseError(
                f"Unexpected transaction lookup response for {transaction_id}",
                context={"x_request_id": request_id},
            )
        return data


__all__ = ["CustodyClient", "REQUEST_ID_HEADER"]
