"""Contract Request — the drafted smart-contract call."""

from __future__ import annotations

import random
import string
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from controlgate.evaluation import PolicyCheckResult

DRAFT_FIELDS = ("contract_address", "method", "parameters", "reason")

_BASE36 = string.digits + string.ascii_uppercase


class RequestStatus(StrEnum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass(frozen=True)
class ContractRequest:
    """Snapshot of a contract call.

    A draft has no id or reference id. The workflow replaces the snapshot
    while drafting and freezes it (id, reference id, timestamp, approved
    status, policy result) when execution starts.
    """

    contract_address: str = ""
    method: str = ""
    parameters: str = ""
    reason: str = ""

    id: str = ""
    reference_id: str = ""
    status: RequestStatus = RequestStatus.DRAFT
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    execution_hash: str | None = None
    policy_result: PolicyCheckResult | None = None

    def is_empty(self) -> bool:
        return not any(getattr(self, name).strip() for name in DRAFT_FIELDS)

    def fields(self) -> dict[str, str]:
        """The user-editable fields, keyed by attribute name."""
        return {name: getattr(self, name) for name in DRAFT_FIELDS}

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "referenceId": self.reference_id,
            "contractAddress": self.contract_address,
            "method": self.method,
            "parameters": self.parameters,
            "reason": self.reason,
            "status": self.status.value,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.execution_hash is not None:
            data["executionHash"] = self.execution_hash
        if self.policy_result is not None:
            data["policyCheckResult"] = self.policy_result.to_dict()
        return data


def create_reference_id(now_ms: int | None = None) -> str:
    """Build a human-readable correlation id: ``REF-<epoch millis>-<BASE36>``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"REF-{now_ms}-{suffix}"


def create_draft(**fields: str) -> ContractRequest:
    """Factory for drafts. Unknown field names raise TypeError."""
    unknown = set(fields) - set(DRAFT_FIELDS)
    if unknown:
        raise TypeError(f"Unknown draft field(s): {', '.join(sorted(unknown))}")
    return ContractRequest(**{k: str(v) for k, v in fields.items()})


def freeze_request(draft: ContractRequest, policy_result: PolicyCheckResult) -> ContractRequest:
    """Assign identity and approval to a draft that passed policy."""
    return replace(
        draft,
        id=str(uuid.uuid4()),
        reference_id=create_reference_id(),
        status=RequestStatus.APPROVED,
        timestamp=datetime.now(UTC),
        policy_result=policy_result,
    )
