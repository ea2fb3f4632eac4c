"""
Render spec validation service.

Turns an untyped request body into a LongformRenderSpec, or raises a single
ValidationError listing every violated field. No I/O happens here: src
fields are checked for an http:// or https:// prefix, never fetched.

Usage:
    try:
        spec = validate_render_spec(request_body)
    except ValidationError as e:
        return 400, e.to_dict()
"""

import logging
from typing import Any, List

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import FieldViolation, ValidationError
from ..schemas.render_spec import MAX_TOTAL_SECONDS, LongformRenderSpec

logger = logging.getLogger(__name__)


def validate_render_spec(payload: Any) -> LongformRenderSpec:
    """
    Validate a render request.

    Per-field checks run first. The cross-field checks (summed audio hints
    and the explicit cap against the 3 hour ceiling) only run once every
    field is individually valid.

    Args:
        payload: Decoded JSON body (expected to be a mapping)

    Returns:
        Immutable LongformRenderSpec with defaults applied

    Raises:
        ValidationError: With every violation found
    """
    if not isinstance(payload, dict):
        raise ValidationError([FieldViolation("$", "render spec must be a JSON object")])

    try:
        spec = LongformRenderSpec.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(_violations_from_pydantic(e)) from e

    violations = check_cross_field_limits(spec)
    if violations:
        raise ValidationError(violations)

    return spec


def check_cross_field_limits(spec: LongformRenderSpec) -> List[FieldViolation]:
    """Checks that span more than one field."""
    violations: List[FieldViolation] = []

    if spec.hinted_audio_seconds > MAX_TOTAL_SECONDS:
        violations.append(
            FieldViolation("audios", "Total hinted audio duration must not exceed 3 hours")
        )

    cap = spec.output.max_duration_seconds
    if cap is not None and cap > MAX_TOTAL_SECONDS:
        violations.append(
            FieldViolation("output.maxDurationSeconds", "maxDurationSeconds cannot exceed 3 hours")
        )

    return violations


def _violations_from_pydantic(error: PydanticValidationError) -> List[FieldViolation]:
    violations = []
    for item in error.errors(include_url=False):
        field = ".".join(str(part) for part in item["loc"]) or "$"
        message = item["msg"]
        if item["type"] == "value_error":
            # "Value error, must be ..." -> "must be ..."
            message = str(item.get("ctx", {}).get("error", message))
        violations.append(FieldViolation(field, message))
    return violations
