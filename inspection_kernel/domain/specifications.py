"""
Specification criteria (``inspection_kernel.domain.specifications``).

Responsibility
--------------
The four specification variants as a closed tagged union of frozen value
objects, plus the pure rule that turns a caller-entered result into a
recorded ``(actual_value, is_pass, remarks)`` triple.

Architecture position
---------------------
**Kernel domain layer** -- pure functions and value objects.  ZERO I/O.
The ORM stores criteria as JSON via ``criteria_to_dict`` /
``criteria_from_dict``; nothing else in the kernel looks inside.

Invariants enforced
-------------------
* Each variant carries exactly the fields meaningful for its type, so a
  "wrong field populated for this type" state cannot be constructed.
* Dimensional tolerances are either both present or both absent, and
  ``tolerance_min <= tolerance_max``.
* Dimensional pass iff ``tolerance_min <= value <= tolerance_max``, using
  ``Decimal`` (never float).  NaN and infinities are rejected.
* The workflow never auto-decides: evaluation only fills ``is_pass``.

Failure modes
-------------
* ``ValueError`` from constructors on malformed criteria.
* ``ResultInputError`` (a ``ValueError``) from ``evaluate_result`` when an
  input is missing or malformed.  Services translate it to
  ``ValidationError`` with one field error per offending specification.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Union


class SpecificationType(str, Enum):
    DIMENSIONAL = "dimensional"
    VISUAL = "visual"
    FUNCTIONAL = "functional"
    COMPLIANCE = "compliance"


def _require_text(value: str | None, field_name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{field_name} is required")
    return str(value).strip()


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = repr(value)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"{field_name} must be numeric, got {value!r}") from None
    if not number.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got {value!r}")
    return number


@dataclass(frozen=True)
class DimensionalCriteria:
    """Measured value checked against an inclusive numeric tolerance band."""

    standard_value: str
    unit: str | None = None
    tolerance_min: Decimal | None = None
    tolerance_max: Decimal | None = None

    spec_type = SpecificationType.DIMENSIONAL

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "standard_value", _require_text(self.standard_value, "standard_value")
        )
        if self.unit is not None:
            object.__setattr__(self, "unit", self.unit.strip() or None)
        if (self.tolerance_min is None) != (self.tolerance_max is None):
            raise ValueError("tolerance_min and tolerance_max must be given together")
        if self.tolerance_min is not None:
            low = _to_decimal(self.tolerance_min, "tolerance_min")
            high = _to_decimal(self.tolerance_max, "tolerance_max")
            if low > high:
                raise ValueError(
                    f"tolerance_min {low} is greater than tolerance_max {high}"
                )
            object.__setattr__(self, "tolerance_min", low)
            object.__setattr__(self, "tolerance_max", high)

    @property
    def has_tolerance(self) -> bool:
        return self.tolerance_min is not None

    @property
    def standard_text(self) -> str:
        return f"{self.standard_value} {self.unit}" if self.unit else self.standard_value

    @property
    def requirement_text(self) -> str | None:
        if not self.has_tolerance:
            return None
        return f"{self.tolerance_min} - {self.tolerance_max}"

    def within_tolerance(self, value: Decimal) -> bool:
        return self.tolerance_min <= value <= self.tolerance_max


@dataclass(frozen=True)
class VisualCriteria:
    condition_description: str
    photo_required: bool = False

    spec_type = SpecificationType.VISUAL

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "condition_description",
            _require_text(self.condition_description, "condition_description"),
        )

    @property
    def standard_text(self) -> str:
        return self.condition_description

    @property
    def requirement_text(self) -> str | None:
        return "Photo Required" if self.photo_required else None


@dataclass(frozen=True)
class FunctionalCriteria:
    test_description: str
    remarks_required: bool = False

    spec_type = SpecificationType.FUNCTIONAL

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "test_description",
            _require_text(self.test_description, "test_description"),
        )

    @property
    def standard_text(self) -> str:
        return self.test_description

    @property
    def requirement_text(self) -> str | None:
        return "Remarks Required" if self.remarks_required else None


@dataclass(frozen=True)
class ComplianceCriteria:
    check_method: str
    evidence_required: bool = False

    spec_type = SpecificationType.COMPLIANCE

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "check_method", _require_text(self.check_method, "check_method")
        )

    @property
    def standard_text(self) -> str:
        return self.check_method

    @property
    def requirement_text(self) -> str | None:
        return "Evidence Required" if self.evidence_required else None


SpecificationCriteria = Union[
    DimensionalCriteria, VisualCriteria, FunctionalCriteria, ComplianceCriteria
]

_CRITERIA_CLASSES: dict[SpecificationType, type] = {
    SpecificationType.DIMENSIONAL: DimensionalCriteria,
    SpecificationType.VISUAL: VisualCriteria,
    SpecificationType.FUNCTIONAL: FunctionalCriteria,
    SpecificationType.COMPLIANCE: ComplianceCriteria,
}


def criteria_to_dict(criteria: SpecificationCriteria) -> dict[str, Any]:
    """JSON-safe form.  Decimals are stored as strings to keep precision."""
    if isinstance(criteria, DimensionalCriteria):
        return {
            "standard_value": criteria.standard_value,
            "unit": criteria.unit,
            "tolerance_min": (
                str(criteria.tolerance_min) if criteria.has_tolerance else None
            ),
            "tolerance_max": (
                str(criteria.tolerance_max) if criteria.has_tolerance else None
            ),
        }
    if isinstance(criteria, VisualCriteria):
        return {
            "condition_description": criteria.condition_description,
            "photo_required": criteria.photo_required,
        }
    if isinstance(criteria, FunctionalCriteria):
        return {
            "test_description": criteria.test_description,
            "remarks_required": criteria.remarks_required,
        }
    if isinstance(criteria, ComplianceCriteria):
        return {
            "check_method": criteria.check_method,
            "evidence_required": criteria.evidence_required,
        }
    raise TypeError(f"Not a specification criteria: {criteria!r}")


def criteria_from_dict(
    spec_type: SpecificationType | str, data: dict[str, Any]
) -> SpecificationCriteria:
    spec_type = SpecificationType(spec_type)
    cls = _CRITERIA_CLASSES[spec_type]
    if cls is DimensionalCriteria:
        return DimensionalCriteria(
            standard_value=data.get("standard_value"),
            unit=data.get("unit"),
            tolerance_min=data.get("tolerance_min"),
            tolerance_max=data.get("tolerance_max"),
        )
    return cls(**data)


def requires_evidence(criteria: SpecificationCriteria) -> bool:
    """True when the specification demands attached photo or evidence."""
    return bool(
        getattr(criteria, "photo_required", False)
        or getattr(criteria, "evidence_required", False)
    )


# =========================================================================
# Result evaluation
# =========================================================================


class ResultInputError(ValueError):
    """A caller-entered result cannot be recorded against its specification."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


@dataclass(frozen=True)
class ResultInput:
    """What the author enters for one specification.

    ``passed`` is ignored for dimensional specifications with a tolerance
    band (the band decides) and required everywhere else.
    """

    specification_id: Any
    actual_value: str | None = None
    passed: bool | None = None
    remarks: str | None = None


@dataclass(frozen=True)
class EvaluatedResult:
    actual_value: str
    is_pass: bool
    remarks: str | None


def evaluate_result(
    criteria: SpecificationCriteria, result: ResultInput
) -> EvaluatedResult:
    """
    Compute the recorded form of one result.

    Rules:
        dimensional with tolerances -- actual value required and numeric;
            pass iff within the inclusive band.
        dimensional without tolerances -- actual value required; pass flag
            comes from the caller.
        visual / functional -- caller's pass flag; empty actual value
            defaults to ``Pass`` / ``Fail``.
        compliance -- caller's pass flag read as yes/no; empty actual value
            defaults to ``Yes`` / ``No``.
        functional with remarks_required -- non-blank remarks required.

    Raises:
        ResultInputError: on missing or malformed input.
    """
    actual = (result.actual_value or "").strip()
    remarks = (result.remarks or "").strip() or None

    if isinstance(criteria, DimensionalCriteria):
        if not actual:
            raise ResultInputError("actual_value", "measured value is required")
        if criteria.has_tolerance:
            try:
                measured = _to_decimal(actual, "actual_value")
            except ValueError as exc:
                raise ResultInputError("actual_value", str(exc)) from None
            return EvaluatedResult(
                actual_value=actual,
                is_pass=criteria.within_tolerance(measured),
                remarks=remarks,
            )
        if result.passed is None:
            raise ResultInputError(
                "passed", "pass/fail is required when no tolerance band is defined"
            )
        return EvaluatedResult(actual_value=actual, is_pass=result.passed, remarks=remarks)

    if result.passed is None:
        raise ResultInputError("passed", "pass/fail is required")

    if isinstance(criteria, FunctionalCriteria) and criteria.remarks_required and not remarks:
        raise ResultInputError("remarks", "remarks are required for this specification")

    if not actual:
        if isinstance(criteria, ComplianceCriteria):
            actual = "Yes" if result.passed else "No"
        else:
            actual = "Pass" if result.passed else "Fail"

    return EvaluatedResult(actual_value=actual, is_pass=result.passed, remarks=remarks)
