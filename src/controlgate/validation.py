"""Validation Engine — declarative field rules evaluated against a draft."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from controlgate.request import ContractRequest

logger = logging.getLogger(__name__)

# Looser than the policy check: the 0x prefix is optional here.
_ADDRESS_RE = re.compile(r"(0x)?[0-9a-fA-F]{40}")


class Rule(StrEnum):
    REQUIRED = "required"
    ADDRESS = "address"
    MIN_LENGTH = "minLength"
    MAX_LENGTH = "maxLength"


@dataclass(frozen=True)
class ValidationRule:
    field: str
    rule: str
    message: str
    value: Any = None


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


@dataclass(frozen=True)
class ValidationResult:
    errors: list[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def messages(self) -> list[str]:
        return [e.message for e in self.errors]


# --- Rule implementations ---


def _rule_required(value: Any, _param: Any) -> bool:
    return value is not None and value != ""


def _rule_address(value: Any, _param: Any) -> bool:
    if not isinstance(value, str):
        return False
    return _ADDRESS_RE.fullmatch(value) is not None


def _rule_min_length(value: Any, param: Any) -> bool:
    return len(value) >= param


def _rule_max_length(value: Any, param: Any) -> bool:
    return len(value) <= param


_RULES: dict[Rule, Any] = {
    Rule.REQUIRED: _rule_required,
    Rule.ADDRESS: _rule_address,
    Rule.MIN_LENGTH: _rule_min_length,
    Rule.MAX_LENGTH: _rule_max_length,
}


EXECUTION_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("contract_address", Rule.REQUIRED, "Contract address is required"),
    ValidationRule("contract_address", Rule.ADDRESS, "Invalid contract address format"),
    ValidationRule("method", Rule.REQUIRED, "Method name is required"),
    ValidationRule("parameters", Rule.REQUIRED, "Parameters are required"),
    ValidationRule("reason", Rule.REQUIRED, "Reason is required"),
    ValidationRule("reason", Rule.MIN_LENGTH, "Reason must be at least 10 characters", 10),
)

DRAFT_RULES: tuple[ValidationRule, ...] = (
    ValidationRule("contract_address", Rule.REQUIRED, "Contract address is required"),
    ValidationRule("method", Rule.REQUIRED, "Method name is required"),
    ValidationRule("parameters", Rule.REQUIRED, "Parameters are required"),
    ValidationRule("reason", Rule.REQUIRED, "Reason is required"),
)


def _field_value(data: ContractRequest | dict[str, Any], name: str) -> Any:
    if isinstance(data, dict):
        return data.get(name)
    return getattr(data, name, None)


def validate(
    data: ContractRequest | dict[str, Any],
    rules: list[ValidationRule] | tuple[ValidationRule, ...],
) -> ValidationResult:
    """Evaluate *rules* against *data* and accumulate failures.

    Unknown rule names are logged and treated as passing. A rule that raises
    while evaluating records a generic failure for its field.
    """
    errors: list[FieldError] = []

    for rule in rules:
        value = _field_value(data, rule.field)
        try:
            predicate = _RULES[Rule(rule.rule)]
        except ValueError:
            logger.warning("Unknown validation rule: %s (field %s)", rule.rule, rule.field)
            continue

        try:
            passed = predicate(value, rule.value)
        except Exception:
            logger.exception("Validation error for field %s", rule.field)
            errors.append(FieldError(rule.field, "Validation failed"))
            continue

        if not passed:
            errors.append(FieldError(rule.field, rule.message))

    return ValidationResult(errors=errors)


def validate_for_execution(request: ContractRequest | dict[str, Any]) -> ValidationResult:
    return validate(request, EXECUTION_RULES)


def validate_draft(request: ContractRequest | dict[str, Any]) -> ValidationResult:
    return validate(request, DRAFT_RULES)
