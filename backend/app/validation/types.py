"""Typed validation verdicts independent of persistence."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

KEYWORD_SYNTAX = "syntax"
KEYWORD_REQUIRED = "required"
KEYWORD_TYPE = "type"


@dataclass(slots=True, frozen=True)
class ValidationIssue:
    """One validation problem located at a schema path."""

    path: str
    message: str
    keyword: str
    record: int | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "message": self.message,
            "keyword": self.keyword,
            "record": self.record,
        }

    @classmethod
    def from_json(cls, data: dict[str, Any]) -> ValidationIssue:
        return cls(
            path=str(data.get("path") or ""),
            message=str(data.get("message") or ""),
            keyword=str(data.get("keyword") or ""),
            record=data.get("record"),
        )


@dataclass(slots=True)
class ValidationDetail:
    """Per-level error lists recorded on a run."""

    syntax_errors: list[ValidationIssue] = field(default_factory=list)
    missing_attributes: list[ValidationIssue] = field(default_factory=list)
    type_mismatches: list[ValidationIssue] = field(default_factory=list)
    format_violations: list[ValidationIssue] = field(default_factory=list)

    def all_issues(self) -> list[ValidationIssue]:
        return [
            *self.syntax_errors,
            *self.missing_attributes,
            *self.type_mismatches,
            *self.format_violations,
        ]

    def to_json(self) -> dict[str, Any]:
        return {
            "syntax_errors": [issue.to_json() for issue in self.syntax_errors],
            "missing_attributes": [issue.to_json() for issue in self.missing_attributes],
            "type_mismatches": [issue.to_json() for issue in self.type_mismatches],
            "format_violations": [issue.to_json() for issue in self.format_violations],
        }

    @classmethod
    def from_json(cls, data: dict[str, Any] | None) -> ValidationDetail:
        data = data or {}
        return cls(
            syntax_errors=[ValidationIssue.from_json(row) for row in data.get("syntax_errors", [])],
            missing_attributes=[ValidationIssue.from_json(row) for row in data.get("missing_attributes", [])],
            type_mismatches=[ValidationIssue.from_json(row) for row in data.get("type_mismatches", [])],
            format_violations=[ValidationIssue.from_json(row) for row in data.get("format_violations", [])],
        )


@dataclass(slots=True)
class ValidationOutcome:
    """Three cumulative validation levels for one model response."""

    json_valid: bool = False
    attributes_valid: bool = False
    formats_valid: bool = False
    payload: Any | None = None
    detail: ValidationDetail = field(default_factory=ValidationDetail)
    guidance: list[str] = field(default_factory=list)

    @property
    def validation_passed(self) -> bool:
        return self.json_valid and self.attributes_valid and self.formats_valid
