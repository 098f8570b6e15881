"""
Medical standards grading.

A review is scored on three criteria (clinical evidence, safety profile,
transparency), each an integer from 1 to 10. The overall A-F grade is derived
from those sub-scores and never set on its own:

    composite = round_half_up(mean(clinical, safety, transparency))
    A >= 9, B >= 7, C >= 5, D >= 3, F otherwise

Out-of-range or non-integer scores raise InvalidScore; they are never clamped.
"""
import enum
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Optional, Tuple, Union

from medreview.core.exceptions import InvalidScore

MIN_SCORE = 1
MAX_SCORE = 10

SCORE_FIELDS = ("clinical", "safety", "transparency")


class Grade(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    F = "F"


# Inclusive lower bounds on the composite, checked top-down
GRADE_BANDS: Tuple[Tuple[int, Grade], ...] = (
    (9, Grade.A),
    (7, Grade.B),
    (5, Grade.C),
    (3, Grade.D),
)


def validate_score(name: str, value: Any) -> int:
    """Return ``value`` if it is an int in [1, 10], else raise InvalidScore."""
    # bool is an int subclass; True/False are never meaningful scores
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidScore(
            f"{name} score must be an integer between {MIN_SCORE} and {MAX_SCORE}",
            {"field": name, "value": repr(value)},
        )
    if value < MIN_SCORE or value > MAX_SCORE:
        raise InvalidScore(
            f"{name} score {value} is outside {MIN_SCORE}-{MAX_SCORE}",
            {"field": name, "value": value},
        )
    return value


@dataclass(frozen=True)
class ScoreRecord:
    """The three sub-scores of one review. Always complete and in range."""

    clinical: int
    safety: int
    transparency: int

    def __post_init__(self):
        for name in SCORE_FIELDS:
            validate_score(name, getattr(self, name))

    @classmethod
    def from_mapping(cls, scores: Mapping[str, Any]) -> "ScoreRecord":
        missing = [name for name in SCORE_FIELDS if scores.get(name) is None]
        if missing:
            raise InvalidScore(
                "All three scores are required",
                {"missing": missing},
            )
        return cls(
            clinical=scores["clinical"],
            safety=scores["safety"],
            transparency=scores["transparency"],
        )

    def as_dict(self) -> dict:
        return {
            "clinical": self.clinical,
            "safety": self.safety,
            "transparency": self.transparency,
        }


def composite_score(scores: ScoreRecord) -> int:
    """Unweighted mean of the sub-scores, rounded half-up to an integer."""
    total = scores.clinical + scores.safety + scores.transparency
    mean = Decimal(total) / Decimal(len(SCORE_FIELDS))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def grade_for_composite(composite: int) -> Grade:
    for lower_bound, grade in GRADE_BANDS:
        if composite >= lower_bound:
            return grade
    return Grade.F


def calculate_grade(scores: Union[ScoreRecord, Mapping[str, Any]]) -> Grade:
    """
    Authoritative grade for a complete set of scores.

    Accepts a ScoreRecord or a mapping with ``clinical``, ``safety`` and
    ``transparency`` keys. Deterministic and side-effect free.
    """
    if not isinstance(scores, ScoreRecord):
        scores = ScoreRecord.from_mapping(scores)
    return grade_for_composite(composite_score(scores))


def preview_grade(
    clinical: Optional[int] = None,
    safety: Optional[int] = None,
    transparency: Optional[int] = None,
) -> Optional[Grade]:
    """
    Live preview while an operator is still adjusting sliders.

    Returns None until all three scores are present; once they are, the result
    is exactly ``calculate_grade`` for the same values.
    """
    if clinical is None or safety is None or transparency is None:
        return None
    return calculate_grade(ScoreRecord(clinical, safety, transparency))
