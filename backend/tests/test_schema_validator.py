"""Unit tests for three-level response validation."""

from __future__ import annotations

import json
import unittest

from app.validation.schema_validator import (
    find_missing_attributes,
    is_valid_json_schema,
    make_schema_nullable,
    strip_markdown_fences,
    validate_response,
)

_AB_SCHEMA = {
    "type": "object",
    "required": ["a", "b"],
    "properties": {
        "a": {"type": "string"},
        "b": {"type": "number"},
    },
}

_CONTRACT_SCHEMA = {
    "type": "object",
    "required": ["contract_name", "parties", "start_date"],
    "properties": {
        "contract_name": {"type": "string"},
        "parties": {
            "type": "object",
            "required": ["supplier_name", "buyer_name"],
            "properties": {
                "supplier_name": {"type": "string"},
                "buyer_name": {"type": "string"},
            },
        },
        "start_date": {"type": "string", "format": "date"},
        "status": {"type": "string", "enum": ["active", "expired"]},
    },
}

_RECORD_SCHEMA = {
    "type": "object",
    "required": ["name"],
    "properties": {"name": {"type": "string"}},
}


def _assert_cumulative(test: unittest.TestCase, outcome) -> None:
    if outcome.formats_valid:
        test.assertTrue(outcome.attributes_valid)
    if outcome.attributes_valid:
        test.assertTrue(outcome.json_valid)


class SingleObjectValidationTests(unittest.TestCase):
    def test_present_attribute_type_error_is_recorded_after_missing_attribute(self) -> None:
        outcome = validate_response('{"a": 1}', _AB_SCHEMA, "single-object")

        self.assertTrue(outcome.json_valid)
        self.assertFalse(outcome.attributes_valid)
        self.assertFalse(outcome.formats_valid)
        self.assertEqual([issue.path for issue in outcome.detail.missing_attributes], ["b"])
        self.assertEqual([issue.path for issue in outcome.detail.type_mismatches], ["a"])
        self.assertEqual(outcome.detail.format_violations, [])
        self.assertEqual(outcome.payload, {"a": 1})

    def test_fully_valid_response_passes_every_level(self) -> None:
        raw = json.dumps(
            {
                "contract_name": "Supply Agreement",
                "parties": {"supplier_name": "Acme", "buyer_name": "Northwind"},
                "start_date": "2024-03-01",
                "status": "active",
            }
        )
        outcome = validate_response(raw, _CONTRACT_SCHEMA, "single-object")

        self.assertTrue(outcome.validation_passed)
        self.assertEqual(outcome.detail.all_issues(), [])
        self.assertEqual(outcome.guidance, [])

    def test_invalid_json_fails_all_levels_with_syntax_error(self) -> None:
        outcome = validate_response('{"a": "x",}', _AB_SCHEMA, "single-object")

        self.assertFalse(outcome.json_valid)
        self.assertFalse(outcome.attributes_valid)
        self.assertFalse(outcome.formats_valid)
        self.assertEqual(len(outcome.detail.syntax_errors), 1)
        self.assertTrue(outcome.detail.syntax_errors[0].message.startswith("Invalid JSON syntax"))
        self.assertIsNone(outcome.payload)
        self.assertTrue(outcome.guidance)

    def test_empty_response_is_a_syntax_error(self) -> None:
        outcome = validate_response("   ", _AB_SCHEMA, "single-object")

        self.assertFalse(outcome.json_valid)
        self.assertEqual(outcome.detail.syntax_errors[0].message, "Empty response")

    def test_markdown_fences_are_stripped_before_parsing(self) -> None:
        outcome = validate_response('```json\n{"a": "x", "b": 2}\n```', _AB_SCHEMA, "single-object")

        self.assertTrue(outcome.validation_passed)
        self.assertEqual(outcome.payload, {"a": "x", "b": 2})
        self.assertEqual(outcome.guidance, ["Return the raw JSON without markdown code fences or a language tag."])

    def test_null_values_count_as_present_and_pass_type_checks(self) -> None:
        outcome = validate_response('{"a": null, "b": null}', _AB_SCHEMA, "single-object")

        self.assertTrue(outcome.validation_passed)

    def test_nested_missing_attribute_uses_dotted_path(self) -> None:
        raw = json.dumps({"contract_name": "X", "parties": {"buyer_name": "B"}, "start_date": None})
        outcome = validate_response(raw, _CONTRACT_SCHEMA, "single-object")

        self.assertTrue(outcome.json_valid)
        self.assertFalse(outcome.attributes_valid)
        self.assertEqual(
            [issue.path for issue in outcome.detail.missing_attributes],
            ["parties.supplier_name"],
        )

    def test_format_and_enum_violations_fail_level_three_only(self) -> None:
        raw = json.dumps(
            {
                "contract_name": "X",
                "parties": {"supplier_name": "A", "buyer_name": "B"},
                "start_date": "01/03/2024",
                "status": "terminated",
            }
        )
        outcome = validate_response(raw, _CONTRACT_SCHEMA, "single-object")

        self.assertTrue(outcome.json_valid)
        self.assertTrue(outcome.attributes_valid)
        self.assertFalse(outcome.formats_valid)
        keywords = sorted(issue.keyword for issue in outcome.detail.format_violations)
        self.assertEqual(keywords, ["enum", "format"])
        self.assertEqual(
            sorted(issue.path for issue in outcome.detail.format_violations),
            ["start_date", "status"],
        )
        self.assertEqual(outcome.detail.type_mismatches, [])

    def test_date_time_and_uri_formats_are_enforced(self) -> None:
        schema = {
            "type": "object",
            "required": ["signed_at", "site"],
            "properties": {
                "signed_at": {"type": "string", "format": "date-time"},
                "site": {"type": "string", "format": "uri"},
            },
        }
        cases = {
            "signed_at": {"signed_at": "last tuesday", "site": "https://example.com/terms"},
            "site": {"signed_at": "2024-01-15T14:30:00Z", "site": "not a uri"},
        }
        for bad_field, payload in cases.items():
            with self.subTest(field=bad_field):
                outcome = validate_response(json.dumps(payload), schema, "single-object")

                self.assertTrue(outcome.attributes_valid)
                self.assertFalse(outcome.formats_valid)
                self.assertEqual(
                    [(issue.path, issue.keyword) for issue in outcome.detail.format_violations],
                    [(bad_field, "format")],
                )

        valid_payload = {"signed_at": "2024-01-15T14:30:00Z", "site": "https://example.com"}
        valid = validate_response(json.dumps(valid_payload), schema, "single-object")
        self.assertTrue(valid.validation_passed)

    def test_required_lists_under_alternatives_are_level_two_only(self) -> None:
        schema = {
            "type": "object",
            "properties": {"email": {"type": "string"}, "phone": {"type": "string"}},
            "anyOf": [{"required": ["email"]}, {"required": ["phone"]}],
        }

        neither = validate_response("{}", schema, "single-object")
        self.assertTrue(neither.json_valid)
        self.assertFalse(neither.attributes_valid)
        self.assertEqual([issue.path for issue in neither.detail.missing_attributes], ["email"])
        self.assertEqual(neither.detail.format_violations, [])

        one_branch = validate_response('{"phone": "555-0100"}', schema, "single-object")
        self.assertTrue(one_branch.validation_passed)

    def test_array_items_report_collapsed_paths(self) -> None:
        schema = {
            "type": "object",
            "required": ["items"],
            "properties": {
                "items": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["sku"],
                        "properties": {"sku": {"type": "string"}, "qty": {"type": "integer"}},
                    },
                }
            },
        }
        outcome = validate_response('{"items": [{"sku": "A", "qty": "two"}, {}]}', schema, "single-object")

        self.assertEqual([issue.path for issue in outcome.detail.missing_attributes], ["items[].sku"])
        self.assertEqual([issue.path for issue in outcome.detail.type_mismatches], ["items[].qty"])

    def test_non_object_root_misses_every_required_attribute(self) -> None:
        outcome = validate_response("[1, 2]", _AB_SCHEMA, "single-object")

        self.assertTrue(outcome.json_valid)
        self.assertEqual(sorted(issue.path for issue in outcome.detail.missing_attributes), ["a", "b"])
        self.assertEqual([issue.path for issue in outcome.detail.type_mismatches], [""])

    def test_cumulative_levels_hold_for_assorted_responses(self) -> None:
        responses = [
            "",
            "not json",
            "{}",
            '{"a": 1}',
            '{"a": "x"}',
            '{"a": "x", "b": "y"}',
            '{"a": "x", "b": 3}',
            "[]",
            "null",
        ]
        for raw in responses:
            with self.subTest(raw=raw):
                _assert_cumulative(self, validate_response(raw, _AB_SCHEMA, "single-object"))


class RecordStreamValidationTests(unittest.TestCase):
    _RAW = '{"name": "first"}\n{"name": \n{"name": "third"}\n'

    def test_any_line_policy_accepts_stream_with_one_malformed_line(self) -> None:
        outcome = validate_response(self._RAW, _RECORD_SCHEMA, "record-stream", record_stream_policy="any_line")

        self.assertTrue(outcome.json_valid)
        self.assertEqual(outcome.payload, [{"name": "first"}, {"name": "third"}])
        self.assertEqual(len(outcome.detail.syntax_errors), 1)
        self.assertEqual(outcome.detail.syntax_errors[0].record, 2)
        self.assertTrue(outcome.attributes_valid)
        self.assertTrue(outcome.formats_valid)
        _assert_cumulative(self, outcome)

    def test_default_policy_rejects_stream_with_one_malformed_line(self) -> None:
        outcome = validate_response(self._RAW, _RECORD_SCHEMA, "record-stream")

        self.assertFalse(outcome.json_valid)
        self.assertFalse(outcome.validation_passed)
        self.assertEqual(len(outcome.detail.syntax_errors), 1)

    def test_all_lines_policy_rejects_stream_with_one_malformed_line(self) -> None:
        outcome = validate_response(self._RAW, _RECORD_SCHEMA, "record-stream", record_stream_policy="all_lines")

        self.assertFalse(outcome.json_valid)
        self.assertFalse(outcome.attributes_valid)
        self.assertFalse(outcome.formats_valid)
        self.assertEqual(outcome.payload, [{"name": "first"}, {"name": "third"}])
        self.assertEqual(len(outcome.detail.syntax_errors), 1)
        self.assertFalse(outcome.validation_passed)

    def test_blank_lines_are_ignored_and_records_are_numbered(self) -> None:
        raw = '{"name": "a"}\n\n{"title": "b"}\n'
        outcome = validate_response(raw, _RECORD_SCHEMA, "record-stream")

        self.assertTrue(outcome.json_valid)
        self.assertFalse(outcome.attributes_valid)
        self.assertEqual(len(outcome.detail.missing_attributes), 1)
        self.assertEqual(outcome.detail.missing_attributes[0].path, "name")
        self.assertEqual(outcome.detail.missing_attributes[0].record, 2)

    def test_stream_with_no_parsable_line_is_invalid_under_both_policies(self) -> None:
        for policy in ("any_line", "all_lines"):
            with self.subTest(policy=policy):
                outcome = validate_response("oops\nstill not json", _RECORD_SCHEMA, "record-stream", record_stream_policy=policy)
                self.assertFalse(outcome.json_valid)
                self.assertIsNone(outcome.payload)
                self.assertEqual(len(outcome.detail.syntax_errors), 2)


class SchemaHelperTests(unittest.TestCase):
    def test_make_schema_nullable_extends_types_and_enums_without_mutating_input(self) -> None:
        original = json.loads(json.dumps(_CONTRACT_SCHEMA))
        nullable = make_schema_nullable(_CONTRACT_SCHEMA)

        self.assertEqual(_CONTRACT_SCHEMA, original)
        self.assertEqual(nullable["type"], ["object", "null"])
        self.assertEqual(nullable["properties"]["parties"]["properties"]["buyer_name"]["type"], ["string", "null"])
        self.assertIn(None, nullable["properties"]["status"]["enum"])

    def test_find_missing_attributes_skips_children_of_null_parents(self) -> None:
        missing = find_missing_attributes({"contract_name": "X", "parties": None, "start_date": None}, _CONTRACT_SCHEMA)

        self.assertEqual(missing, [])

    def test_is_valid_json_schema(self) -> None:
        self.assertTrue(is_valid_json_schema(_CONTRACT_SCHEMA))
        self.assertFalse(is_valid_json_schema({"type": "not-a-type"}))
        self.assertFalse(is_valid_json_schema(["type", "object"]))

    def test_strip_markdown_fences(self) -> None:
        self.assertEqual(strip_markdown_fences('```\n{"a": 1}\n```'), '{"a": 1}')
        self.assertEqual(strip_markdown_fences('  {"a": 1} '), '{"a": 1}')


if __name__ == "__main__":
    unittest.main()
