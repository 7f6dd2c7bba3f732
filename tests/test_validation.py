"""Tests for the validation engine."""

from __future__ import annotations

import logging

from controlgate.validation import (
    Rule,
    ValidationRule,
    validate,
    validate_draft,
    validate_for_execution,
)

VALID_ADDRESS = "0x" + "0" * 40


class TestExecutionRules:
    def test_valid_request(self, valid_draft):
        result = validate_for_execution(valid_draft)
        assert result.is_valid
        assert result.errors == []

    def test_address_prefix_is_optional(self, valid_fields):
        valid_fields["contract_address"] = "0" * 40
        assert validate_for_execution(valid_fields).is_valid

    def test_empty_request_accumulates_errors(self):
        result = validate_for_execution({})
        assert not result.is_valid
        assert result.messages() == [
            "Contract address is required",
            "Invalid contract address format",
            "Method name is required",
            "Parameters are required",
            "Reason is required",
            "Validation failed",
        ]

    def test_short_reason(self, valid_fields):
        valid_fields["reason"] = "too short"
        result = validate_for_execution(valid_fields)
        assert [(e.field, e.message) for e in result.errors] == [
            ("reason", "Reason must be at least 10 characters"),
        ]

    def test_bad_address(self, valid_fields):
        valid_fields["contract_address"] = "0x123"
        result = validate_for_execution(valid_fields)
        assert result.messages() == ["Invalid contract address format"]


class TestDraftRules:
    def test_blank_field_blocks_submit(self, valid_fields):
        valid_fields["method"] = ""
        result = validate_draft(valid_fields)
        assert result.messages() == ["Method name is required"]

    def test_draft_rules_do_not_check_format(self, valid_fields):
        valid_fields["contract_address"] = "not-an-address"
        valid_fields["reason"] = "short"
        assert validate_draft(valid_fields).is_valid


class TestRuleEngine:
    def test_unknown_rule_passes_with_warning(self, caplog):
        rules = [ValidationRule("method", "checksum", "never reported")]
        with caplog.at_level(logging.WARNING, logger="controlgate.validation"):
            result = validate({"method": "transfer"}, rules)
        assert result.is_valid
        assert "Unknown validation rule: checksum" in caplog.text

    def test_raising_predicate_records_generic_failure(self):
        rules = [ValidationRule("reason", Rule.MIN_LENGTH, "Reason must be at least 10 characters", 10)]
        result = validate({"reason": None}, rules)
        assert [(e.field, e.message) for e in result.errors] == [("reason", "Validation failed")]

    def test_max_length(self):
        rules = [ValidationRule("method", Rule.MAX_LENGTH, "Method too long", 5)]
        assert validate({"method": "abc"}, rules).is_valid
        assert validate({"method": "abcdef"}, rules).messages() == ["Method too long"]

    def test_rule_names_accept_plain_strings(self):
        rules = [ValidationRule("contract_address", "address", "bad")]
        assert validate({"contract_address": VALID_ADDRESS}, rules).is_valid

    def test_address_rule_rejects_non_strings(self):
        rules = [ValidationRule("contract_address", Rule.ADDRESS, "bad")]
        assert validate({"contract_address": 123}, rules).messages() == ["bad"]
