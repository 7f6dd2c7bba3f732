"""Shared test fixtures."""

from __future__ import annotations

import pytest

from controlgate.request import create_draft
from controlgate.storage import MemoryBackend
from controlgate.store import LogStore
from controlgate.wallet import SandboxWalletProvider, SignedTransaction, WalletSession
from controlgate.workflow import Workflow

VALID_ADDRESS = "0x" + "0" * 40


class StubSigner:
    """Wallet stand-in with a fixed signing outcome (for tests)."""

    def __init__(self, txid: str = "abc123", signature: str = "sig1", *, error: Exception | None = None):
        self.is_connected = True
        self.txid = txid
        self.signature = signature
        self.error = error
        self.calls: list[tuple[str, str, str]] = []

    async def sign_transaction(self, contract_address, method, parameters):
        self.calls.append((contract_address, method, parameters))
        if self.error is not None:
            raise self.error
        return SignedTransaction(txid=self.txid, signature=self.signature)


@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    return LogStore(backend)


@pytest.fixture
def provider():
    return SandboxWalletProvider(username="alice", uid="uid-alice")


@pytest.fixture
def wallet(provider, backend):
    return WalletSession(provider, backend)


@pytest.fixture
def signer():
    return StubSigner()


@pytest.fixture
def workflow(store, signer):
    return Workflow(store, signer, policy_ticks=0, policy_interval=0)


@pytest.fixture
def valid_fields():
    return {
        "contract_address": VALID_ADDRESS,
        "method": "transfer",
        "parameters": "{}",
        "reason": "test request long enough",
    }


@pytest.fixture
def valid_draft(valid_fields):
    return create_draft(**valid_fields)


@pytest.fixture
def signer_factory():
    return StubSigner
