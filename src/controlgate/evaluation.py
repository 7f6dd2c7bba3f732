"""Policy evaluation result dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any


@dataclass(frozen=True)
class PolicyCheck:
    """Result of evaluating a single policy check."""

    name: str
    passed: bool
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "passed": self.passed, "message": self.message}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyCheck:
        return cls(name=str(data["name"]), passed=bool(data["passed"]), message=str(data["message"]))


@dataclass(frozen=True)
class PolicyCheckResult:
    """Verdict of a policy evaluation.

    ``checks`` keeps the evaluation order, which is also the display order.
    Attached to a request by value once evaluation completes.
    """

    passed: bool
    checks: tuple[PolicyCheck, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def failed_checks(self) -> list[PolicyCheck]:
        return [c for c in self.checks if not c.passed]

    def to_dict(self) -> dict[str, Any]:
        return {
            "passed": self.passed,
            "checks": [c.to_dict() for c in self.checks],
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyCheckResult:
        return cls(
            passed=bool(data["passed"]),
            checks=tuple(PolicyCheck.from_dict(c) for c in data["checks"]),
            timestamp=parse_timestamp(data["timestamp"]),
        )


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    if not isinstance(value, str):
        raise TypeError(f"timestamp must be a string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
