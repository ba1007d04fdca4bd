"""Three-level validation of raw model responses against a JSON Schema.

Level 1 parses the response in the declared output shape, level 2 walks the
schema's ``required`` lists over every parsed value, and level 3 runs full
JSON Schema validation restricted to the attributes that are present. The
levels are cumulative: a level can only pass when every level before it
passed.
"""

from __future__ import annotations

import copy
import json
import re
from typing import Any, Literal

from jsonschema import FormatChecker
from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from app.models.batch_job import OUTPUT_SHAPE_RECORD_STREAM
from app.validation.guidance import build_guidance
from app.validation.payloads import format_path
from app.validation.types import (
    KEYWORD_REQUIRED,
    KEYWORD_SYNTAX,
    KEYWORD_TYPE,
    ValidationDetail,
    ValidationIssue,
    ValidationOutcome,
)

RecordStreamPolicy = Literal["any_line", "all_lines"]

_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")
_NESTED_SCHEMA_KEYS = ("oneOf", "anyOf", "allOf")
_ALTERNATIVE_KEYS = ("anyOf", "oneOf")
_NESTED_MAPPING_KEYS = ("properties", "patternProperties", "$defs", "definitions")


def validate_response(
    raw_text: str | None,
    schema: dict[str, Any] | None,
    output_shape: str,
    *,
    record_stream_policy: RecordStreamPolicy = "all_lines",
    max_guidance: int = 5,
) -> ValidationOutcome:
    """Validate one raw response and attach prompt-improvement guidance."""

    schema = schema or {}
    outcome = ValidationOutcome()
    detail = outcome.detail
    fenced = (raw_text or "").lstrip().startswith("```")

    if output_shape == OUTPUT_SHAPE_RECORD_STREAM:
        records, syntax_errors = _parse_record_stream(raw_text or "")
        detail.syntax_errors.extend(syntax_errors)
        if record_stream_policy == "all_lines":
            outcome.json_valid = bool(records) and not syntax_errors
        else:
            outcome.json_valid = bool(records)
        outcome.payload = [record for _, record in records] if records else None
        values = records
    else:
        parsed, syntax_errors = _parse_single_object(raw_text or "")
        detail.syntax_errors.extend(syntax_errors)
        outcome.json_valid = not syntax_errors
        outcome.payload = parsed
        values = [(None, parsed)] if outcome.json_valid else []

    if not values:
        outcome.guidance = build_guidance(detail, schema, markdown_fenced=fenced, max_items=max_guidance)
        return outcome

    for record_index, value in values:
        detail.missing_attributes.extend(find_missing_attributes(value, schema, record=record_index))

    validator = _build_validator(schema)
    for record_index, value in values:
        type_mismatches, format_violations = _collect_present_attribute_errors(validator, value, record_index)
        detail.type_mismatches.extend(type_mismatches)
        detail.format_violations.extend(format_violations)

    outcome.attributes_valid = outcome.json_valid and not detail.missing_attributes
    outcome.formats_valid = (
        outcome.attributes_valid and not detail.type_mismatches and not detail.format_violations
    )
    outcome.guidance = build_guidance(detail, schema, markdown_fenced=fenced, max_items=max_guidance)
    return outcome


def is_valid_json_schema(schema: Any) -> bool:
    """Return True when the candidate is a well-formed JSON Schema document."""

    if not isinstance(schema, dict):
        return False
    try:
        validator_for(schema).check_schema(schema)
    except SchemaError:
        return False
    return True


def strip_markdown_fences(raw_text: str) -> str:
    """Remove a surrounding markdown code fence if the model added one."""

    cleaned = raw_text.strip()
    if cleaned.startswith("```"):
        cleaned = _FENCE_OPEN_RE.sub("", cleaned, count=1)
        cleaned = _FENCE_CLOSE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def find_missing_attributes(
    value: Any,
    schema: dict[str, Any],
    *,
    record: int | None = None,
    prefix: tuple[str | int, ...] = (),
) -> list[ValidationIssue]:
    """Walk `required` lists recursively and report every absent required path."""

    missing: list[ValidationIssue] = []
    if not isinstance(schema, dict):
        return missing

    required = schema.get("required") or []
    properties = schema.get("properties") or {}
    if required and not isinstance(value, dict):
        # A non-object where an object is expected has none of its required attributes.
        for name in required:
            missing.append(_missing_issue((*prefix, name), record))
        return missing

    if isinstance(value, dict):
        for name in required:
            if name not in value:
                missing.append(_missing_issue((*prefix, name), record))
        for name, sub_schema in properties.items():
            child = value.get(name)
            if child is not None:
                missing.extend(find_missing_attributes(child, sub_schema, record=record, prefix=(*prefix, name)))

    items = schema.get("items")
    if isinstance(items, dict) and isinstance(value, list):
        for index, item in enumerate(value):
            if item is not None:
                missing.extend(find_missing_attributes(item, items, record=record, prefix=(*prefix, index)))

    for sub_schema in schema.get("allOf") or []:
        missing.extend(find_missing_attributes(value, sub_schema, record=record, prefix=prefix))

    for key in _ALTERNATIVE_KEYS:
        branches = [sub for sub in schema.get(key) or [] if isinstance(sub, dict)]
        per_branch = [find_missing_attributes(value, sub, record=record, prefix=prefix) for sub in branches]
        # Attributes are missing only when no alternative has all of its own; report the closest one.
        if per_branch and all(per_branch):
            missing.extend(min(per_branch, key=len))

    return _dedupe(missing)


def make_schema_nullable(schema: Any) -> Any:
    """Return a copy of the schema in which every typed node also accepts null."""

    if not isinstance(schema, dict):
        return schema
    transformed = copy.copy(schema)

    declared_type = transformed.get("type")
    if isinstance(declared_type, list):
        if "null" not in declared_type:
            transformed["type"] = [*declared_type, "null"]
    elif isinstance(declared_type, str) and declared_type != "null":
        transformed["type"] = [declared_type, "null"]

    enum_values = transformed.get("enum")
    if isinstance(enum_values, list) and None not in enum_values:
        transformed["enum"] = [*enum_values, None]

    for key in _NESTED_MAPPING_KEYS:
        mapping = transformed.get(key)
        if isinstance(mapping, dict):
            transformed[key] = {name: make_schema_nullable(sub) for name, sub in mapping.items()}

    items = transformed.get("items")
    if isinstance(items, list):
        transformed["items"] = [make_schema_nullable(sub) for sub in items]
    elif isinstance(items, dict):
        transformed["items"] = make_schema_nullable(items)

    additional = transformed.get("additionalProperties")
    if isinstance(additional, dict):
        transformed["additionalProperties"] = make_schema_nullable(additional)

    for key in _NESTED_SCHEMA_KEYS:
        subs = transformed.get(key)
        if isinstance(subs, list):
            transformed[key] = [make_schema_nullable(sub) for sub in subs]

    return transformed


def _parse_single_object(raw_text: str) -> tuple[Any | None, list[ValidationIssue]]:
    cleaned = strip_markdown_fences(raw_text)
    if not cleaned:
        return None, [ValidationIssue(path="", message="Empty response", keyword=KEYWORD_SYNTAX)]
    try:
        return json.loads(cleaned), []
    except json.JSONDecodeError as exc:
        message = f"Invalid JSON syntax: {exc.msg} at line {exc.lineno} column {exc.colno}"
        return None, [ValidationIssue(path="", message=message, keyword=KEYWORD_SYNTAX)]


def _parse_record_stream(raw_text: str) -> tuple[list[tuple[int, Any]], list[ValidationIssue]]:
    cleaned = strip_markdown_fences(raw_text)
    lines = [line for line in cleaned.splitlines() if line.strip()]
    if not lines:
        return [], [ValidationIssue(path="", message="Empty record stream", keyword=KEYWORD_SYNTAX)]

    records: list[tuple[int, Any]] = []
    errors: list[ValidationIssue] = []
    for line_number, line in enumerate(lines, start=1):
        try:
            records.append((line_number, json.loads(line)))
        except json.JSONDecodeError as exc:
            errors.append(
                ValidationIssue(
                    path="",
                    message=f"Line {line_number}: invalid JSON - {exc.msg}",
                    keyword=KEYWORD_SYNTAX,
                    record=line_number,
                )
            )
    return records, errors


def _build_validator(schema: dict[str, Any]):
    nullable = make_schema_nullable(schema)
    validator_cls = validator_for(nullable)
    return validator_cls(nullable, format_checker=FormatChecker())


def _collect_present_attribute_errors(
    validator,
    value: Any,
    record: int | None,
) -> tuple[list[ValidationIssue], list[ValidationIssue]]:
    type_mismatches: list[ValidationIssue] = []
    format_violations: list[ValidationIssue] = []
    for error in validator.iter_errors(value):
        keyword = str(error.validator)
        if keyword == KEYWORD_REQUIRED or _only_missing_in_some_branch(error):
            continue
        issue = ValidationIssue(
            path=format_path(error.absolute_path),
            message=error.message,
            keyword=keyword,
            record=record,
        )
        if keyword == KEYWORD_TYPE:
            type_mismatches.append(issue)
        else:
            format_violations.append(issue)
    return _dedupe(type_mismatches), _dedupe(format_violations)


def _only_missing_in_some_branch(error) -> bool:
    """True for an anyOf/oneOf failure that one alternative would pass once absent attributes are added."""

    if str(error.validator) not in _ALTERNATIVE_KEYS or not error.context:
        return False
    by_branch: dict[Any, list[Any]] = {}
    for sub_error in error.context:
        branch = sub_error.relative_schema_path[0] if sub_error.relative_schema_path else None
        by_branch.setdefault(branch, []).append(sub_error)
    return any(
        all(str(sub_error.validator) == KEYWORD_REQUIRED for sub_error in sub_errors)
        for sub_errors in by_branch.values()
    )


def _missing_issue(parts: tuple[str | int, ...], record: int | None) -> ValidationIssue:
    path = format_path(parts)
    return ValidationIssue(
        path=path,
        message=f"Missing required attribute '{path}'",
        keyword=KEYWORD_REQUIRED,
        record=record,
    )


def _dedupe(issues: list[ValidationIssue]) -> list[ValidationIssue]:
    seen: set[ValidationIssue] = set()
    result: list[ValidationIssue] = []
    for issue in issues:
        if issue in seen:
            continue
        seen.add(issue)
        result.append(issue)
    return result
