"""Unit tests for prompt-improvement guidance."""

from __future__ import annotations

import unittest

from app.validation.guidance import build_guidance, schema_for_path
from app.validation.types import ValidationDetail, ValidationIssue

_SCHEMA = {
    "type": "object",
    "properties": {
        "end_date": {"type": "string", "format": "date"},
        "total_value": {"type": ["number", "null"]},
        "status": {"type": "string", "enum": ["active", "expired"]},
        "parties": {
            "type": "array",
            "items": {"type": "object", "properties": {"name": {"type": "string"}}},
        },
    },
}


def _issue(path: str, keyword: str, message: str = "problem", record: int | None = None) -> ValidationIssue:
    return ValidationIssue(path=path, message=message, keyword=keyword, record=record)


class GuidanceTests(unittest.TestCase):
    def test_each_error_kind_maps_to_a_template(self) -> None:
        detail = ValidationDetail(
            missing_attributes=[_issue("end_date", "required")],
            type_mismatches=[_issue("total_value", "type")],
            format_violations=[_issue("end_date", "format"), _issue("status", "enum")],
        )

        guidance = build_guidance(detail, _SCHEMA)

        self.assertEqual(len(guidance), 4)
        self.assertIn("`end_date`", guidance[0])
        self.assertIn("default-null", guidance[0])
        self.assertIn("(number, e.g. 123.45)", guidance[1])
        self.assertIn("YYYY-MM-DD", guidance[2])
        self.assertIn('"active", "expired"', guidance[3])

    def test_syntax_guidance_differs_for_record_streams(self) -> None:
        single = build_guidance(ValidationDetail(syntax_errors=[_issue("", "syntax", "Invalid JSON syntax")]), _SCHEMA)
        stream = build_guidance(ValidationDetail(syntax_errors=[_issue("", "syntax", "Line 2", record=2)]), _SCHEMA)

        self.assertIn("Return only valid JSON", single[0])
        self.assertIn("one complete JSON object per line", stream[0])

    def test_duplicates_are_removed_and_list_is_capped(self) -> None:
        detail = ValidationDetail(
            missing_attributes=[_issue("end_date", "required", record=index) for index in range(1, 4)]
            + [_issue(f"field_{index}", "required") for index in range(10)],
        )

        guidance = build_guidance(detail, _SCHEMA, max_items=5)

        self.assertEqual(len(guidance), 5)
        self.assertEqual(len(set(guidance)), 5)
        self.assertIn("`end_date`", guidance[0])

    def test_provider_guidance_leads_and_is_never_cut(self) -> None:
        provider = ["first provider hint", "second provider hint", "third provider hint"]

        guidance = build_guidance(ValidationDetail(), None, provider_guidance=provider, max_items=2)

        self.assertEqual(guidance, provider)

    def test_schema_for_path_resolves_nested_array_items(self) -> None:
        self.assertEqual(schema_for_path(_SCHEMA, "parties[].name"), {"type": "string"})
        self.assertIsNone(schema_for_path(_SCHEMA, "parties[].missing"))


if __name__ == "__main__":
    unittest.main()
