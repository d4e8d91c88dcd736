from contextlib import asynccontextmanager
from types import SimpleNamespace

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec
from solders.hash import Hash
from solders.keypair import Keypair

from custody_swap.auth import ApiSigner
from custody_swap.events import EventSink

POOL = "Czfq3xZZDmsdGdUyrNLtRhGc47cXcZtLG4crryfu44zE"
SOL_MINT = "So11111111111111111111111111111111111111112"


class RecordingEventSink(EventSink):
    def __init__(self):
        self.events = []

    async def record_event(self, timestamp, kind, detail):
        self.events.append((kind, detail))

    def kinds(self):
        return [kind for kind, _ in self.events]


class FakeLedger:
    """Stands in for solana AsyncClient."""

    def __init__(self, blockhash=None, height=1_000, fail=None, empty=False, accounts=None):
        self.blockhash = blockhash or Hash.new_unique()
        self.height = height
        self.fail = fail
        self.empty = empty
        self.accounts = accounts or {}
        self.calls = 0

    async def get_latest_blockhash(self, commitment=None):
        self.calls += 1
        if self.fail:
            raise self.fail
        if self.empty:
            return SimpleNamespace(value=None)
        value = SimpleNamespace(blockhash=self.blockhash, last_valid_block_height=self.height)
        return SimpleNamespace(value=value)

    async def get_multiple_accounts(self, pubkeys, commitment=None):
        value = [
            SimpleNamespace(data=self.accounts[key]) if key in self.accounts else None
            for key in pubkeys
        ]
        return SimpleNamespace(value=value)

    async def get_slot(self):
        if self.fail:
            raise self.fail
        return SimpleNamespace(value=12345)

    async def close(self):
        pass


class FakeConnections:
    """Duck-typed ConnectionManager backed by a real aiohttp session."""

    def __init__(self, ledger=None, timeout=5.0):
        self.ledger = ledger or FakeLedger()
        self.timeout = timeout
        self._session = None

    def get_ledger_client(self):
        return self.ledger

    def get_http_session(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._session

    async def close(self):
        if self._session is not None:
            await self._session.close()


@asynccontextmanager
async def serve(*routes):
    """Run a local aiohttp app; yields its base URL."""
    app = web.Application()
    for method, path, handler in routes:
        app.router.add_route(method, path, handler)
    server = TestServer(app)
    await server.start_server()
    try:
        yield f"http://{server.host}:{server.port}"
    finally:
        await server.close()


@pytest.fixture
def ec_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def api_signer(ec_key):
    return ApiSigner(ec_key)


@pytest.fixture
def ec_pem(ec_key):
    return ec_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )


@pytest.fixture
def vault():
    return Keypair()


@pytest.fixture
def events():
    return RecordingEventSink()
