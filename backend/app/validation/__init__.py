"""Response validation: syntax, required attributes, and formats."""

from app.validation.guidance import build_guidance
from app.validation.payloads import count_null_values, flatten_leaf_values, format_path
from app.validation.schema_validator import is_valid_json_schema, validate_response
from app.validation.types import ValidationDetail, ValidationIssue, ValidationOutcome

__all__ = [
    "ValidationDetail",
    "ValidationIssue",
    "ValidationOutcome",
    "build_guidance",
    "count_null_values",
    "flatten_leaf_values",
    "format_path",
    "is_valid_json_schema",
    "validate_response",
]
