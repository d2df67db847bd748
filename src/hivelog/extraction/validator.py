"""Per-field, fail-soft validation of extraction candidates.

A candidate without a usable hive reference (``bikupa``) is skipped whole:
a record that cannot be resolved to a hive is of no use downstream. Every
other field is checked independently and copied only when its runtime type
and range match the schema. Nothing is coerced: "3" is not 3, True is not
1, and 6 is not clamped to 5. The one exception is the extraction
confidence, which is clamped into [0, 1] because any number is a signal.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from hivelog.extraction.schemas import (
    APIARY_KEY,
    FIELDS_BY_KEY,
    HIVE_REF_KEY,
    SCALE_MAX,
    SCALE_MIN,
    ExtractionRecord,
    FieldKind,
    YesNo,
)

logger = logging.getLogger(__name__)

_YES_NO_VALUES: frozenset[str] = frozenset(v.value for v in YesNo)

# Sentinel for "field rejected" (None is a legitimate JSON value to reject).
_DROP = object()


@dataclass
class CandidateValidation:
    """Outcome of validating one candidate.

    Attributes:
        record: The validated record, or None when the candidate was skipped.
        rejection: Why the whole candidate was skipped (None if kept).
        dropped_fields: Keys whose values failed their type or range check.
        clamped_fields: Keys whose values were clamped into range.
        unknown_fields: Keys not in the schema (ignored).
    """

    record: ExtractionRecord | None
    rejection: str | None = None
    dropped_fields: list[str] = field(default_factory=list)
    clamped_fields: list[str] = field(default_factory=list)
    unknown_fields: list[str] = field(default_factory=list)


@dataclass
class ValidationReport:
    """Validation outcome for a whole batch of candidates."""

    outcomes: list[CandidateValidation] = field(default_factory=list)

    @property
    def records(self) -> list[ExtractionRecord]:
        return [o.record for o in self.outcomes if o.record is not None]

    @property
    def rejected_count(self) -> int:
        return sum(1 for o in self.outcomes if o.record is None)


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_scale(value: object) -> object:
    if _is_int(value) and SCALE_MIN <= value <= SCALE_MAX:
        return value
    return _DROP


def _check_count(value: object) -> object:
    if _is_int(value) and value >= 0:
        return value
    return _DROP


def _check_yes_no(value: object) -> object:
    if isinstance(value, str) and value in _YES_NO_VALUES:
        return value
    return _DROP


def _check_text(value: object) -> object:
    if isinstance(value, str):
        trimmed = value.strip()
        if trimmed:
            return trimmed
    return _DROP


def _check_confidence(value: object) -> object:
    if not _is_number(value):
        return _DROP
    # Compare ints before converting: JSON integers can exceed float range.
    if isinstance(value, int):
        return 0.0 if value < 0 else 1.0 if value > 1 else float(value)
    if math.isnan(value):
        return _DROP
    return min(1.0, max(0.0, value))


_CHECKS = {
    FieldKind.SCALE: _check_scale,
    FieldKind.COUNT: _check_count,
    FieldKind.YES_NO: _check_yes_no,
    FieldKind.TEXT: _check_text,
    FieldKind.CONFIDENCE: _check_confidence,
}


def check_field(key: str, value: object) -> tuple[bool, object]:
    """Validate one observation value against the schema.

    Args:
        key: JSON key of the field (e.g. ``"binasHälsa"``).
        value: Raw decoded value.

    Returns:
        (True, cleaned value) when acceptable, (False, None) otherwise.

    Raises:
        KeyError: If *key* is not an observation field.
    """
    spec = FIELDS_BY_KEY[key]
    cleaned = _CHECKS[spec.kind](value)
    if cleaned is _DROP:
        return False, None
    return True, cleaned


def validate_candidate(candidate: dict) -> CandidateValidation:
    """Validate a single decoded candidate object.

    Args:
        candidate: Untyped mapping as decoded from the model's JSON.

    Returns:
        CandidateValidation holding the record (or the skip reason) and
        lists of dropped, clamped and unknown fields.
    """
    hive_ref = candidate.get(HIVE_REF_KEY)
    if not isinstance(hive_ref, str) or not hive_ref.strip():
        reason = f"missing or empty '{HIVE_REF_KEY}' (got {hive_ref!r})"
        logger.info("Schema rejection: %s", reason)
        return CandidateValidation(record=None, rejection=reason)

    result = CandidateValidation(record=None)
    clean: dict[str, object] = {HIVE_REF_KEY: hive_ref.strip()}

    apiary = _check_text(candidate.get(APIARY_KEY))
    if apiary is not _DROP:
        clean[APIARY_KEY] = apiary
    elif APIARY_KEY in candidate:
        result.dropped_fields.append(APIARY_KEY)

    for key, value in candidate.items():
        if key in (HIVE_REF_KEY, APIARY_KEY):
            continue
        if key not in FIELDS_BY_KEY:
            result.unknown_fields.append(key)
            continue
        ok, cleaned = check_field(key, value)
        if not ok:
            result.dropped_fields.append(key)
            continue
        if FIELDS_BY_KEY[key].kind is FieldKind.CONFIDENCE and cleaned != value:
            result.clamped_fields.append(key)
        clean[key] = cleaned

    if result.dropped_fields:
        logger.debug(
            "Dropped invalid fields for hive %r: %s", clean[HIVE_REF_KEY], result.dropped_fields
        )

    result.record = ExtractionRecord.model_validate(clean)
    return result


def validate_candidates(candidates: list[dict]) -> ValidationReport:
    """Validate a batch; a bad candidate never affects the others."""
    report = ValidationReport()
    for candidate in candidates:
        report.outcomes.append(validate_candidate(candidate))

    logger.info(
        "Validated %d candidates: %d kept, %d rejected",
        len(report.outcomes),
        len(report.records),
        report.rejected_count,
    )
    return report
