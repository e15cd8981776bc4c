"""
engine/validation.py — Shape and value checks for submitted answers.

``validate_response`` either returns the normalised value that will be
stored in the session or raises ``core.errors.ValidationError``.  It never
touches the session.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from datetime import date
from typing import Any, Sequence

from core.errors import ValidationError
from core.regions import normalize_region
from engine.catalog import QuestionTemplate

# Ordered only: a set would make region order (and everything keyed on it)
# vary between processes.
_SEQUENCE_TYPES = (list, tuple)


def _fail(template: QuestionTemplate, code: str, message: str, **details: Any) -> ValidationError:
    return ValidationError(
        message,
        code=code,
        details={"question_id": template.id, "kind": template.kind, **details},
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _check_range(template: QuestionTemplate, value: float, key: str | None = None) -> None:
    lo, hi = template.min_value, template.max_value
    if (lo is not None and value < lo) or (hi is not None and value > hi):
        where = f" for '{key}'" if key else ""
        raise _fail(
            template, "OUT_OF_RANGE",
            f"Value {value}{where} is outside {lo}-{hi}.",
            value=value, key=key,
        )


def _string_list(template: QuestionTemplate, value: Any) -> list[str]:
    if isinstance(value, str) or not isinstance(value, _SEQUENCE_TYPES):
        raise _fail(template, "SHAPE_MISMATCH", "Expected an ordered list of strings.")
    if not all(isinstance(v, str) for v in value):
        raise _fail(template, "SHAPE_MISMATCH", "Every selected item must be a string.")
    deduped: list[str] = []
    for v in value:
        v = v.strip()
        if v and v not in deduped:
            deduped.append(v)
    return deduped


def _validate_shape(template: QuestionTemplate, value: Any, regions: Sequence[str]) -> Any:
    kind = template.kind

    if kind == "text":
        if not isinstance(value, str):
            raise _fail(template, "SHAPE_MISMATCH", "Expected free text.")
        text = value.strip()
        if template.required and not text:
            raise _fail(template, "EMPTY_REQUIRED", "An answer is required.")
        return text

    if kind == "date":
        if not isinstance(value, str):
            raise _fail(template, "SHAPE_MISMATCH", "Expected an ISO date (YYYY-MM-DD).")
        try:
            return date.fromisoformat(value.strip()).isoformat()
        except ValueError:
            raise _fail(template, "SHAPE_MISMATCH", f"'{value}' is not an ISO date (YYYY-MM-DD).") from None

    if kind in ("yes_no", "single_choice"):
        if not isinstance(value, str):
            raise _fail(template, "SHAPE_MISMATCH", "Expected a single option.")
        choice = value.strip()
        if kind == "yes_no":
            choice = choice.lower()
        allowed = template.options_for(regions)
        if choice not in allowed:
            raise _fail(template, "INVALID_OPTION", f"'{value}' is not one of {list(allowed)}.",
                        allowed=list(allowed))
        return choice

    if kind == "multi_choice":
        selected = _string_list(template, value)
        if not selected:
            if template.required:
                raise _fail(template, "EMPTY_REQUIRED", "Select at least one option.")
            return []
        allowed = template.options_for(regions)
        unknown = [v for v in selected if v not in allowed]
        if unknown:
            raise _fail(template, "INVALID_OPTION", f"Unknown option(s): {unknown}.",
                        allowed=list(allowed))
        # string-set semantics: store in option order
        return [opt for opt in allowed if opt in selected]

    if kind == "body_map":
        selected = _string_list(template, value)
        if not selected:
            raise _fail(template, "EMPTY_REQUIRED", "Mark at least one body region.")
        regions_out: list[str] = []
        for name in selected:
            region = normalize_region(name)
            if region not in regions_out:
                regions_out.append(region)
        return regions_out

    if kind == "slider":
        if not _is_number(value):
            raise _fail(template, "SHAPE_MISMATCH", "Expected a number.")
        _check_range(template, value)
        return value

    if kind in ("scale_grid", "measurement"):
        if not isinstance(value, Mapping):
            raise _fail(template, "SHAPE_MISMATCH", "Expected a mapping of item -> number.")
        if not value:
            if template.required:
                raise _fail(template, "EMPTY_REQUIRED", "Record at least one item.")
            return {}
        allowed = template.options_for(regions)
        grid: dict[str, float] = {}
        for key, score in value.items():
            if not isinstance(key, str) or not _is_number(score):
                raise _fail(template, "SHAPE_MISMATCH", "Grid keys must be strings and values numbers.")
            if allowed and key not in allowed:
                raise _fail(template, "INVALID_OPTION", f"'{key}' is not a grid item.",
                            allowed=list(allowed))
            _check_range(template, score, key)
            grid[key] = score
        if allowed:
            return {k: grid[k] for k in allowed if k in grid}
        return grid

    raise _fail(template, "SHAPE_MISMATCH", f"Unsupported input kind '{kind}'.")


def validate_response(template: QuestionTemplate, value: Any, regions: Sequence[str] = ()) -> Any:
    """
    Validate *value* against *template* and return the normalised value.

    Parameters
    ----------
    template : QuestionTemplate
        The question being answered.
    value : Any
        Raw value from the caller.
    regions : sequence of str
        Body regions already chosen in the session; region-adapted option
        lists depend on them.

    Returns
    -------
    Any
        ``str`` for text/date/choice kinds, a number for sliders, a list of
        strings for multi-choice and body-map, a dict for grids.

    Raises
    ------
    ValidationError
        On any shape, option, range or predicate violation.
    """
    normalised = _validate_shape(template, value, regions)
    if template.validator is not None and not template.validator(normalised):
        raise _fail(
            template, "PREDICATE_FAILED",
            template.validator_message or "The answer was not accepted.",
        )
    return normalised
