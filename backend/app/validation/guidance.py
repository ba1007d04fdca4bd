"""Prompt-improvement suggestions derived from validation failures."""

from __future__ import annotations

import re
from typing import Any

from app.validation.payloads import ARRAY_MARKER
from app.validation.types import KEYWORD_TYPE, ValidationDetail, ValidationIssue

_FORMAT_EXAMPLES: dict[str, str] = {
    "date": "ISO-8601 date, YYYY-MM-DD (e.g. 2024-01-15)",
    "date-time": "ISO-8601 date-time, YYYY-MM-DDTHH:MM:SSZ (e.g. 2024-01-15T14:30:00Z)",
    "time": "ISO-8601 time, HH:MM:SS (e.g. 14:30:00)",
    "email": "plain email address (e.g. user@example.com)",
    "uri": "absolute URL including the scheme (e.g. https://example.com)",
    "uuid": "canonical UUID (e.g. 123e4567-e89b-12d3-a456-426614174000)",
}
_TYPE_EXAMPLES: dict[str, str] = {
    "string": '"text here"',
    "number": "123.45",
    "integer": "42",
    "boolean": "true or false",
    "array": "[item1, item2]",
    "object": '{"key": "value"}',
}
_PATH_TOKEN_RE = re.compile(r"[^.\[\]]+|\[\]")


def build_guidance(
    detail: ValidationDetail,
    schema: dict[str, Any] | None,
    *,
    provider_guidance: list[str] | None = None,
    markdown_fenced: bool = False,
    max_items: int = 5,
) -> list[str]:
    """Map each distinct error kind to a fixed suggestion; dedupe and cap the list.

    Provider guidance always leads the list when the call itself failed.
    """

    schema = schema or {}
    suggestions: list[str] = list(provider_guidance or [])

    if detail.syntax_errors:
        suggestions.append(_syntax_guidance(detail.syntax_errors))
    if markdown_fenced:
        suggestions.append("Return the raw JSON without markdown code fences or a language tag.")
    for issue in detail.missing_attributes:
        suggestions.append(
            f"Add an explicit instruction and default-null guidance for field `{issue.path}`: "
            "it must always be present, use null when the document does not contain it."
        )
    for issue in detail.type_mismatches:
        expected = _expected_type(schema, issue.path)
        example = _TYPE_EXAMPLES.get(expected or "", "")
        suffix = f" ({expected}, e.g. {example})" if expected and example else ""
        suggestions.append(f"State the exact expected type for `{issue.path}` in the prompt{suffix}.")
    for issue in detail.format_violations:
        suggestions.append(_format_guidance(schema, issue))

    deduped: list[str] = []
    for suggestion in suggestions:
        if suggestion not in deduped:
            deduped.append(suggestion)
    if provider_guidance:
        # Provider guidance is never cut by the cap.
        return deduped[: max(max_items, len(provider_guidance))]
    return deduped[:max_items]


def schema_for_path(schema: dict[str, Any], path: str) -> dict[str, Any] | None:
    """Resolve the sub-schema for a dotted path such as `parties[].name`."""

    current: Any = schema
    for token in _PATH_TOKEN_RE.findall(path):
        if not isinstance(current, dict):
            return None
        if token == ARRAY_MARKER:
            current = current.get("items")
            continue
        properties = current.get("properties") or {}
        if token not in properties:
            return None
        current = properties[token]
    return current if isinstance(current, dict) else None


def _syntax_guidance(issues: list[ValidationIssue]) -> str:
    if any(issue.record is not None for issue in issues):
        return (
            "Emit exactly one complete JSON object per line: no wrapping array, "
            "no commentary lines, no line breaks inside a record."
        )
    if any(issue.message.startswith("Empty") for issue in issues):
        return "Always return a JSON value, even when the document contains no matching data."
    return (
        "Return only valid JSON: double-quoted strings, no trailing commas, "
        "and no explanatory text before or after the JSON value."
    )


def _format_guidance(schema: dict[str, Any], issue: ValidationIssue) -> str:
    sub_schema = schema_for_path(schema, issue.path) or {}
    if issue.keyword == "format":
        format_name = str(sub_schema.get("format") or "")
        example = _FORMAT_EXAMPLES.get(format_name, f"'{format_name}'" if format_name else "the documented format")
        return f"Specify the exact expected format for `{issue.path}`, e.g. {example}."
    if issue.keyword == "enum":
        allowed = [value for value in sub_schema.get("enum") or [] if value is not None]
        listed = ", ".join(f'"{value}"' for value in allowed)
        return f"List the allowed values for `{issue.path}` in the prompt: {listed}."
    if issue.keyword == "additionalProperties":
        allowed = ", ".join(f'"{name}"' for name in (sub_schema.get("properties") or {}))
        target = f"`{issue.path}`" if issue.path else "the output"
        return f"Use only the schema field names in {target}: {allowed}."
    return (
        f"Describe the `{issue.keyword}` constraint on `{issue.path or 'the output'}` "
        "with a concrete example value."
    )


def _expected_type(schema: dict[str, Any], path: str) -> str | None:
    sub_schema = schema_for_path(schema, path)
    if not sub_schema:
        return None
    declared = sub_schema.get(KEYWORD_TYPE)
    if isinstance(declared, list):
        declared = next((item for item in declared if item != "null"), None)
    return declared if isinstance(declared, str) else None
