"""Policy Evaluator — fixed predicate checks run against a draft."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from controlgate.evaluation import PolicyCheck, PolicyCheckResult
from controlgate.request import ContractRequest

logger = logging.getLogger(__name__)

ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")
METHOD_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9]*")
MIN_REASON_LENGTH = 10

DEFAULT_TICKS = 4
DEFAULT_TICK_INTERVAL = 0.8


def policy_check(name: str, passed_message: str, failed_message: str):
    """Register a predicate as a named policy check.

    The decorated function takes a request and returns a bool. Calling the
    wrapped check yields a PolicyCheck carrying the matching message.
    """

    def decorator(func: Callable[[ContractRequest], bool]) -> Callable[[ContractRequest], PolicyCheck]:
        def check(request: ContractRequest) -> PolicyCheck:
            passed = bool(func(request))
            return PolicyCheck(name=name, passed=passed, message=passed_message if passed else failed_message)

        check.__name__ = func.__name__
        check.__doc__ = func.__doc__
        check._controlgate_check = name
        return check

    return decorator


@policy_check("Contract Address Format", "Valid contract address format", "Invalid address format")
def address_format(request: ContractRequest) -> bool:
    return ADDRESS_PATTERN.fullmatch(request.contract_address) is not None


@policy_check("Method Name Validation", "Method name is valid", "Invalid method name format")
def method_name(request: ContractRequest) -> bool:
    return METHOD_PATTERN.fullmatch(request.method) is not None


def _reject_constant(name: str) -> None:
    # NaN, Infinity and -Infinity are Python extensions, not JSON
    raise ValueError(f"{name} is not valid JSON")


@policy_check("Parameters Format", "Parameters are valid JSON", "Invalid JSON format")
def parameters_format(request: ContractRequest) -> bool:
    """Any JSON value is accepted; the text is not kept parsed."""
    try:
        json.loads(request.parameters, parse_constant=_reject_constant)
    except ValueError:
        return False
    return True


@policy_check("Reason Validation", "Sufficient reason provided", "Reason too short")
def reason_length(request: ContractRequest) -> bool:
    return len(request.reason) >= MIN_REASON_LENGTH


# Order is significant: it is the display order of the report.
POLICY_CHECKS: tuple[Callable[[ContractRequest], PolicyCheck], ...] = (
    address_format,
    method_name,
    parameters_format,
    reason_length,
)


def evaluate(request: ContractRequest) -> PolicyCheckResult:
    """Run every policy check against *request*.

    No check short-circuits another: all of them run and all of them are
    reported, in fixed order, even when earlier ones fail.
    """
    checks = tuple(check(request) for check in POLICY_CHECKS)
    result = PolicyCheckResult(
        passed=all(c.passed for c in checks),
        checks=checks,
        timestamp=datetime.now(UTC),
    )
    logger.debug(
        "Policy evaluation for %s: %s (%d/%d checks passed)",
        request.method or "<no method>",
        "passed" if result.passed else "failed",
        sum(c.passed for c in checks),
        len(checks),
    )
    return result


async def evaluate_with_progress(
    request: ContractRequest,
    *,
    ticks: int = DEFAULT_TICKS,
    interval: float = DEFAULT_TICK_INTERVAL,
    on_progress: Callable[[int], Any] | None = None,
) -> PolicyCheckResult:
    """Stagger a progress indicator, then evaluate.

    The ticks are cosmetic and unrelated to the outcome. *on_progress*
    receives the completed percentage after each tick and may be async.
    """
    for tick in range(1, ticks + 1):
        await asyncio.sleep(interval)
        if on_progress is not None:
            progress = on_progress(tick * 100 // ticks)
            if asyncio.iscoroutine(progress):
                await progress
    return evaluate(request)
