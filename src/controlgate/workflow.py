"""Workflow — the draft → preview → policy → execution state machine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import StrEnum
from typing import TYPE_CHECKING, Any, Protocol

from controlgate.evaluation import PolicyCheckResult
from controlgate.logs import ExecutionLog, failure_log, success_log
from controlgate.policy import DEFAULT_TICK_INTERVAL, DEFAULT_TICKS, evaluate_with_progress
from controlgate.request import DRAFT_FIELDS, ContractRequest, RequestStatus, freeze_request
from controlgate.validation import FieldError, ValidationResult, validate_draft, validate_for_execution

if TYPE_CHECKING:
    from controlgate.store import LogStore
    from controlgate.wallet import SignedTransaction

logger = logging.getLogger(__name__)

WALLET_WARNING = (
    "Wallet must be connected before executing transactions. Please connect your wallet and try again."
)


class Step(StrEnum):
    FORM = "form"
    PREVIEW = "preview"
    POLICY = "policy"
    EXECUTION = "execution"


class Page(StrEnum):
    HOME = "home"
    ACTIVITY = "activity"


class ExecutionPhase(StrEnum):
    AWAITING_SIGNATURE = "awaiting-signature"
    SUBMITTING = "submitting"
    COMPLETE = "complete"
    FAILED = "failed"


class TransitionError(Exception):
    """Raised when an operation is not allowed in the current state."""


class ValidationFailed(TransitionError):  # noqa: N818
    """Raised when a forward transition is blocked by validation rules."""

    def __init__(self, result: ValidationResult):
        self.result = result
        super().__init__("; ".join(result.messages()))

    @property
    def errors(self) -> list[FieldError]:
        return self.result.errors


class Signer(Protocol):
    """What the workflow needs from a wallet."""

    @property
    def is_connected(self) -> bool: ...

    async def sign_transaction(self, contract_address: str, method: str, parameters: str) -> SignedTransaction: ...


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot handed to subscribers after every transition."""

    step: Step
    page: Page
    request: ContractRequest
    policy_result: PolicyCheckResult | None = None
    phase: ExecutionPhase | None = None
    log: ExecutionLog | None = None
    error: str | None = None
    warnings: list[str] = field(default_factory=list)


StateListener = Callable[[WorkflowState], Any]
LogCallback = Callable[[ExecutionLog], Any]


class Workflow:
    """Four-stage pipeline for a single contract request.

    Transitions are forward only, except ``back()`` (preview → form),
    ``revise()`` (failed policy → form, draft kept) and ``reset()``
    (execution → form, draft cleared). The page dimension is independent.

    Execution is single-shot: ``awaiting-signature → submitting → complete``
    or straight to ``failed`` on any signing error. There is no retry.
    """

    def __init__(
        self,
        store: LogStore,
        wallet: Signer,
        *,
        policy_ticks: int = DEFAULT_TICKS,
        policy_interval: float = DEFAULT_TICK_INTERVAL,
        submit_delay: float = 0.0,
    ):
        self._store = store
        self._wallet = wallet
        self._policy_ticks = policy_ticks
        self._policy_interval = policy_interval
        self._submit_delay = submit_delay

        self._step = Step.FORM
        self._page = Page.HOME
        self._request = ContractRequest()
        self._policy_result: PolicyCheckResult | None = None
        self._policy_running = False
        self._phase: ExecutionPhase | None = None
        self._execution_started = False
        self._log: ExecutionLog | None = None
        self._error: str | None = None

        self._listeners: list[StateListener] = []
        self._log_callbacks: list[LogCallback] = []

    # -- read side ---------------------------------------------------------

    @property
    def step(self) -> Step:
        return self._step

    @property
    def page(self) -> Page:
        return self._page

    @property
    def request(self) -> ContractRequest:
        return self._request

    @property
    def policy_result(self) -> PolicyCheckResult | None:
        return self._policy_result

    @property
    def phase(self) -> ExecutionPhase | None:
        return self._phase

    @property
    def log(self) -> ExecutionLog | None:
        return self._log

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def can_approve(self) -> bool:
        return (
            self._step == Step.POLICY
            and not self._policy_running
            and self._policy_result is not None
            and self._policy_result.passed
            and self._wallet.is_connected
        )

    @property
    def warnings(self) -> list[str]:
        if self._step == Step.POLICY and not self._wallet.is_connected:
            return [WALLET_WARNING]
        return []

    @property
    def state(self) -> WorkflowState:
        return WorkflowState(
            step=self._step,
            page=self._page,
            request=self._request,
            policy_result=self._policy_result,
            phase=self._phase,
            log=self._log,
            error=self._error,
            warnings=self.warnings,
        )

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_log_listener(self, callback: LogCallback) -> None:
        """Call *callback* with every log this workflow appends. May be async."""
        self._log_callbacks.append(callback)

    # -- draft -------------------------------------------------------------

    def update_draft(self, **fields: str) -> ContractRequest:
        self._require_step(Step.FORM, "edit the draft")
        unknown = set(fields) - set(DRAFT_FIELDS)
        if unknown:
            raise TransitionError(f"Unknown draft field(s): {', '.join(sorted(unknown))}")
        self._request = replace(self._request, **{k: str(v) for k, v in fields.items()})
        self._changed()
        return self._request

    def submit(self) -> ContractRequest:
        """form → preview. Every draft field must be filled in."""
        self._require_step(Step.FORM, "submit")
        result = validate_draft(self._request)
        if not result.is_valid:
            raise ValidationFailed(result)
        self._move(Step.PREVIEW)
        return self._request

    def back(self) -> None:
        """preview → form, keeping the draft."""
        self._require_step(Step.PREVIEW, "go back")
        self._move(Step.FORM)

    def proceed(self) -> None:
        """preview → policy."""
        self._require_step(Step.PREVIEW, "proceed to policy checks")
        if self._request.is_empty():
            raise TransitionError("Cannot run policy checks on an empty draft")
        self._policy_result = None
        self._move(Step.POLICY)

    # -- policy ------------------------------------------------------------

    async def run_policy(self, on_progress: Callable[[int], Any] | None = None) -> PolicyCheckResult:
        self._require_step(Step.POLICY, "run policy checks")
        if self._policy_running:
            raise TransitionError("Policy checks are already running")
        self._policy_running = True
        try:
            result = await evaluate_with_progress(
                self._request,
                ticks=self._policy_ticks,
                interval=self._policy_interval,
                on_progress=on_progress,
            )
        finally:
            self._policy_running = False
        self._policy_result = result
        if not result.passed:
            logger.info(
                "Policy violations detected: %s",
                ", ".join(c.name for c in result.failed_checks),
            )
        self._changed()
        return result

    def revise(self) -> None:
        """policy → form after a failed policy result, keeping the draft."""
        self._require_step(Step.POLICY, "revise the draft")
        if self._policy_result is None or self._policy_result.passed:
            raise TransitionError("Only a failed policy result can be revised")
        self._policy_result = None
        self._move(Step.FORM)

    def approve(self) -> ContractRequest:
        """policy → execution. Freezes the request and awaits a signature."""
        self._require_step(Step.POLICY, "forward for execution")
        if self._policy_result is None or self._policy_running:
            raise TransitionError("Policy checks have not completed")
        if not self._policy_result.passed:
            raise TransitionError("Cannot proceed with policy violations")
        if not self._wallet.is_connected:
            raise TransitionError(WALLET_WARNING)

        result = validate_for_execution(self._request)
        if not result.is_valid:
            raise ValidationFailed(result)

        self._request = freeze_request(self._request, self._policy_result)
        self._phase = ExecutionPhase.AWAITING_SIGNATURE
        self._execution_started = False
        self._log = None
        self._error = None
        logger.info("Request %s approved for execution", self._request.reference_id)
        self._move(Step.EXECUTION)
        return self._request

    # -- execution ---------------------------------------------------------

    async def execute(self) -> ExecutionLog:
        """Sign and record the frozen request. Single-shot."""
        self._require_step(Step.EXECUTION, "execute")
        if self._execution_started:
            raise TransitionError("Execution already started; reset to create a new request")
        self._execution_started = True
        request = self._request

        if not self._wallet.is_connected:
            return await self._fail(request, "Wallet not connected")

        try:
            signed = await self._wallet.sign_transaction(request.contract_address, request.method, request.parameters)
        except Exception as exc:
            logger.warning("Transaction execution failed for %s: %s", request.reference_id, exc)
            return await self._fail(request, str(exc) or "Failed to execute transaction")

        self._phase = ExecutionPhase.SUBMITTING
        self._changed()
        if self._submit_delay > 0:
            await asyncio.sleep(self._submit_delay)

        log = success_log(request, signed.txid)
        await self._record(log)
        self._request = replace(request, status=RequestStatus.EXECUTED, execution_hash=signed.txid)
        self._log = log
        self._phase = ExecutionPhase.COMPLETE
        logger.info("Transaction executed successfully: %s", signed.txid)
        self._changed()
        return log

    def reset(self) -> None:
        """execution → form, clearing the draft."""
        self._require_step(Step.EXECUTION, "reset")
        if self._execution_started and self._phase not in (ExecutionPhase.COMPLETE, ExecutionPhase.FAILED):
            raise TransitionError("Cannot reset while the transaction is in flight")
        self._request = ContractRequest()
        self._policy_result = None
        self._phase = None
        self._execution_started = False
        self._log = None
        self._error = None
        self._move(Step.FORM)

    def navigate(self, page: Page | str) -> None:
        self._page = Page(page)
        self._changed()

    # -- internals ---------------------------------------------------------

    async def _fail(self, request: ContractRequest, error: str) -> ExecutionLog:
        log = failure_log(request, error)
        await self._record(log)
        self._request = replace(request, status=RequestStatus.FAILED)
        self._log = log
        self._error = error
        self._phase = ExecutionPhase.FAILED
        self._changed()
        return log

    async def _record(self, log: ExecutionLog) -> None:
        if not await self._store.append(log):
            logger.error("Execution log %s could not be persisted", log.reference_id)
        for callback in self._log_callbacks:
            try:
                result = callback(log)
                if asyncio.iscoroutine(result):
                    await result
            except Exception:
                logger.exception("Log listener %s raised", getattr(callback, "__name__", "anonymous"))

    def _require_step(self, step: Step, action: str) -> None:
        if self._step != step:
            raise TransitionError(f"Cannot {action} in step '{self._step}' (requires '{step}')")

    def _move(self, step: Step) -> None:
        logger.debug("Workflow step %s -> %s", self._step, step)
        self._step = step
        self._changed()

    def _changed(self) -> None:
        state = self.state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Workflow listener %s raised", getattr(listener, "__name__", "anonymous"))
