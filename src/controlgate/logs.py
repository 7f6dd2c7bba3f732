"""Execution Log — the durable record of a finished request."""

from __future__ import annotations

import json
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from controlgate.evaluation import PolicyCheckResult, parse_timestamp
from controlgate.request import ContractRequest


class LogStatus(StrEnum):
    SUCCESS = "success"
    FAILED = "failed"


@dataclass(frozen=True)
class ExecutionLog:
    """Immutable record appended to the log store on completion."""

    reference_id: str
    method: str
    status: LogStatus
    execution_hash: str
    contract_address: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    gas_used: str | None = None
    error: str | None = None
    policy_result: PolicyCheckResult | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "referenceId": self.reference_id,
            "timestamp": self.timestamp.isoformat(),
            "method": self.method,
            "status": self.status.value,
            "executionHash": self.execution_hash,
            "contractAddress": self.contract_address,
        }
        if self.gas_used is not None:
            data["gasUsed"] = self.gas_used
        if self.error is not None:
            data["error"] = self.error
        if self.policy_result is not None:
            data["policyCheckResult"] = self.policy_result.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExecutionLog:
        """Rebuild a log from its wire form.

        Raises KeyError, TypeError or ValueError on malformed input.
        """
        policy = data.get("policyCheckResult")
        return cls(
            id=str(data["id"]),
            reference_id=str(data["referenceId"]),
            timestamp=parse_timestamp(data["timestamp"]),
            method=str(data["method"]),
            status=LogStatus(data["status"]),
            execution_hash=str(data["executionHash"]),
            contract_address=str(data["contractAddress"]),
            gas_used=data.get("gasUsed"),
            error=data.get("error"),
            policy_result=PolicyCheckResult.from_dict(policy) if policy else None,
        )


def success_log(request: ContractRequest, txid: str, gas_used: str | None = "Testnet") -> ExecutionLog:
    return ExecutionLog(
        reference_id=request.reference_id,
        method=request.method,
        status=LogStatus.SUCCESS,
        execution_hash=txid,
        contract_address=request.contract_address,
        gas_used=gas_used,
        policy_result=request.policy_result,
    )


def failure_log(request: ContractRequest, error: str) -> ExecutionLog:
    return ExecutionLog(
        reference_id=request.reference_id,
        method=request.method,
        status=LogStatus.FAILED,
        execution_hash="",
        contract_address=request.contract_address,
        error=error,
        policy_result=request.policy_result,
    )


def dump_logs(logs: list[ExecutionLog] | tuple[ExecutionLog, ...]) -> str:
    return json.dumps([log.to_dict() for log in logs])


def parse_logs(raw: str) -> list[ExecutionLog]:
    """Parse a JSON array of logs. Raises ValueError on any malformed entry."""
    try:
        data = json.loads(raw)
    except RecursionError as exc:
        raise ValueError("log collection is nested too deeply") from exc
    if not isinstance(data, list):
        raise ValueError("log collection must be a JSON array")
    try:
        return [ExecutionLog.from_dict(item) for item in data]
    except (KeyError, TypeError, AttributeError) as exc:
        raise ValueError(f"malformed log entry: {exc!r}") from exc
