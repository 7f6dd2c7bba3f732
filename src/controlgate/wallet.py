"""Wallet capability — connection and transaction signing via a wallet SDK.

The SDK itself is an external collaborator. ``WalletProvider`` is the slice
of it this package consumes; ``WalletSession`` adds the persisted connection
and the signing call used by the workflow. ``SandboxWalletProvider`` stands in
for the SDK on testnet and in tests.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Protocol

from controlgate.storage import StorageBackend, StorageError

logger = logging.getLogger(__name__)

CONNECTION_KEY = "pi_wallet_connection"
DEFAULT_PAYMENT_AMOUNT = 0.01


class WalletError(Exception):
    """Raised when the wallet cannot connect or sign."""


class WalletNotConnected(WalletError):  # noqa: N818
    """Raised when signing is requested without a connected wallet."""

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class SigningCancelled(WalletError):  # noqa: N818
    """Raised when the user cancels the signature request."""

    def __init__(self, message: str = "Cancelled"):
        super().__init__(message)


@dataclass(frozen=True)
class AuthResult:
    username: str
    uid: str


@dataclass(frozen=True)
class PaymentRequest:
    """Payment carrying a contract call, as submitted to the wallet SDK."""

    amount: float
    memo: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PaymentCompletion:
    payment_id: str
    txid: str


@dataclass(frozen=True)
class SignedTransaction:
    txid: str
    signature: str


@dataclass(frozen=True)
class WalletConnection:
    username: str
    address: str

    def to_dict(self) -> dict[str, str]:
        return {"username": self.username, "address": self.address}


class WalletProvider(Protocol):
    """The wallet SDK surface this package relies on.

    create_payment() resolves once the payment is ready for server
    completion. It raises SigningCancelled on user cancellation and any
    other exception on SDK errors.
    """

    @property
    def available(self) -> bool: ...

    async def authenticate(self, scopes: list[str]) -> AuthResult: ...
    async def create_payment(self, payment: PaymentRequest) -> PaymentCompletion: ...


class PaymentApprover(Protocol):
    """Server-side approval and completion of a payment. Failures are non-fatal."""

    async def approve_payment(self, payment_id: str) -> bool: ...
    async def complete_payment(self, payment_id: str, txid: str) -> bool: ...


class SandboxWalletProvider:
    """Testnet wallet that signs everything locally.

    txids are sha256 digests of the payment and a nonce. ``cancel`` makes
    every payment raise SigningCancelled; ``error`` makes it raise
    WalletError with that message.
    """

    def __init__(
        self,
        username: str = "sandbox-user",
        uid: str | None = None,
        *,
        cancel: bool = False,
        error: str | None = None,
    ):
        self.username = username
        self.uid = uid or str(uuid.uuid4())
        self.cancel = cancel
        self.error = error
        self.payments: list[PaymentRequest] = []

    @property
    def available(self) -> bool:
        return True

    async def authenticate(self, scopes: list[str]) -> AuthResult:
        return AuthResult(username=self.username, uid=self.uid)

    async def create_payment(self, payment: PaymentRequest) -> PaymentCompletion:
        self.payments.append(payment)
        if self.cancel:
            raise SigningCancelled()
        if self.error:
            raise WalletError(self.error)
        payload = json.dumps({"memo": payment.memo, "metadata": payment.metadata}, sort_keys=True)
        nonce = f"{time.time_ns()}:{uuid.uuid4()}"
        txid = hashlib.sha256(f"{payload}:{nonce}".encode()).hexdigest()
        return PaymentCompletion(payment_id=str(uuid.uuid4()), txid=txid)


class WalletSession:
    """Connection state for one wallet, persisted under CONNECTION_KEY.

    Signing has no timeout unless *signing_timeout* is given: a wallet that
    never answers keeps the caller suspended.
    """

    def __init__(
        self,
        provider: WalletProvider,
        backend: StorageBackend,
        *,
        amount: float = DEFAULT_PAYMENT_AMOUNT,
        signing_timeout: float | None = None,
        approver: PaymentApprover | None = None,
    ):
        self._provider = provider
        self._backend = backend
        self._amount = amount
        self._signing_timeout = signing_timeout
        self._approver = approver
        self._connection: WalletConnection | None = None

    @property
    def provider(self) -> WalletProvider:
        return self._provider

    @property
    def connection(self) -> WalletConnection | None:
        return self._connection

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def restore(self) -> WalletConnection | None:
        """Pick up a connection saved by an earlier session. Corrupt data is removed."""
        try:
            raw = await self._backend.get(CONNECTION_KEY)
        except StorageError as exc:
            logger.error("Failed to read wallet connection: %s", exc)
            return None
        if not raw:
            return None
        try:
            data = json.loads(raw)
            self._connection = WalletConnection(username=str(data["username"]), address=str(data["address"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding corrupt wallet connection data")
            self._connection = None
            await self._backend.delete(CONNECTION_KEY)
        return self._connection

    async def connect(self) -> WalletConnection:
        if not self._provider.available:
            raise WalletError("Wallet SDK not loaded")
        try:
            auth = await self._provider.authenticate(["username"])
        except WalletError:
            raise
        except Exception as exc:
            raise WalletError(f"Connection failed: {str(exc) or 'Unknown error'}") from exc

        connection = WalletConnection(username=auth.username, address=auth.uid)
        try:
            await self._backend.set(CONNECTION_KEY, json.dumps(connection.to_dict()))
        except StorageError as exc:
            raise WalletError(f"Connection failed: {exc}") from exc
        self._connection = connection
        logger.info("Wallet connected as %s", connection.username)
        return connection

    async def disconnect(self) -> None:
        await self._backend.delete(CONNECTION_KEY)
        self._connection = None
        logger.info("Wallet disconnected")

    async def sign_transaction(self, contract_address: str, method: str, parameters: str) -> SignedTransaction:
        """Ask the wallet to sign a contract call.

        The payment id doubles as the signature.
        """
        if not self._provider.available or not self.is_connected:
            raise WalletNotConnected()

        payment = PaymentRequest(
            amount=self._amount,
            memo=f"Contract: {method}",
            metadata={"contractAddress": contract_address, "method": method, "parameters": parameters},
        )
        logger.debug("Requesting wallet signature for %s on %s", method, contract_address)

        pending = self._provider.create_payment(payment)
        if self._signing_timeout is not None:
            try:
                completion = await asyncio.wait_for(pending, self._signing_timeout)
            except TimeoutError as exc:
                raise WalletError(f"Signing timed out after {self._signing_timeout}s") from exc
        else:
            completion = await pending

        logger.info("Transaction signed with txid %s", completion.txid)
        if self._approver is not None:
            await self._notify_approver(completion)
        return SignedTransaction(txid=completion.txid, signature=completion.payment_id)

    async def _notify_approver(self, completion: PaymentCompletion) -> None:
        # The payment is already signed; approver trouble is reported, never raised.
        try:
            await self._approver.approve_payment(completion.payment_id)
            await self._approver.complete_payment(completion.payment_id, completion.txid)
        except Exception as exc:
            logger.warning("Payment approver failed for %s: %s", completion.payment_id, exc)
