"""
Evaluation scoring.

Rubric evaluations score every criterion on the fixed scale 1/4/7/10. The raw
score is the plain sum of the given values; criterion weights only describe
the subject's maximum. A critical criterion scored 1 fails the evaluation
whatever the percentage is.

Percentages are rounded to two decimals with ROUND_HALF_UP on the exact
decimal value (0.125 -> 0.13, 66.665 -> 66.67).

External tests use a separate rule: the mean of the tests that were taken,
compared against a fixed 80 threshold.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Mapping, Optional, Sequence

FAIL_SCORE = 1
ALLOWED_SCORES = (1, 4, 7, 10)

# value -> (Hebrew label, colour)
SCORE_VALUES = {
    1: ("לא עבר", "#dc3545"),
    4: ("בסיסי", "#fd7e14"),
    7: ("טוב", "#0dcaf0"),
    10: ("מצוין", "#198754"),
}

EXTERNAL_TESTS_PASSING_THRESHOLD = 80
EXTERNAL_TEST_MAX_SCORE = 100

_TWO_PLACES = Decimal("0.01")


class ValidationError(ValueError):
    """Input rejected by the evaluation engine."""


class ScoreValidationError(ValidationError):
    pass


@dataclass(frozen=True)
class ScoreEntry:
    criterion_id: int
    value: int
    weight: int
    is_critical: bool = False


@dataclass(frozen=True)
class Verdict:
    raw_score: int
    percentage_score: float
    passing_percentage: float
    has_critical_fail: bool
    is_passing: bool

    @property
    def final_score(self) -> float:
        return self.percentage_score


def round2(value) -> float:
    """Round half up to two decimals."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return float(value.quantize(_TWO_PLACES, rounding=ROUND_HALF_UP))


def round0(value) -> int:
    """Round half up to a whole number (62.5 -> 63)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_score_value(value) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value not in ALLOWED_SCORES:
        raise ScoreValidationError(
            f"Invalid score {value!r}, expected one of {', '.join(map(str, ALLOWED_SCORES))}"
        )
    return value


def _percentage(part: int, whole: int) -> Decimal:
    return Decimal(part) * 100 / Decimal(whole)


def has_critical_fail(scores: Iterable[ScoreEntry]) -> bool:
    return any(entry.is_critical and entry.value == FAIL_SCORE for entry in scores)


def compute_verdict(scores: Sequence[ScoreEntry], max_raw_score: int, passing_raw_score: int,
                    strict: bool = True) -> Verdict:
    """
    Aggregate per-criterion scores into a verdict.

    With strict=True every value must be on the 1/4/7/10 scale. A subject with
    max_raw_score 0 gets a zero result (0%, not passing) instead of a division
    error, and an evaluation with no scores never passes.
    """
    if strict:
        for entry in scores:
            validate_score_value(entry.value)

    raw_score = sum(entry.value for entry in scores)
    critical_fail = has_critical_fail(scores)

    if max_raw_score <= 0:
        return Verdict(
            raw_score=raw_score,
            percentage_score=0.0,
            passing_percentage=0.0,
            has_critical_fail=critical_fail,
            is_passing=False
        )

    percentage = _percentage(raw_score, max_raw_score)
    passing_percentage = _percentage(passing_raw_score, max_raw_score)
    percentage_score = round2(percentage)

    is_passing = (
        len(scores) > 0
        and Decimal(str(percentage_score)) >= passing_percentage
        and not critical_fail
    )

    return Verdict(
        raw_score=raw_score,
        percentage_score=percentage_score,
        passing_percentage=round2(passing_percentage),
        has_critical_fail=critical_fail,
        is_passing=is_passing
    )


def score_label(value) -> str:
    return SCORE_VALUES[value][0] if value in SCORE_VALUES else "-"


def score_color(value) -> str:
    return SCORE_VALUES[value][1] if value in SCORE_VALUES else "#6c757d"


def status_text(is_passing: bool, critical_fail: bool) -> str:
    if critical_fail:
        return "נכשל (פריט קריטי)"
    return "עבר" if is_passing else "נכשל"


# External tests

def _present(value) -> bool:
    return value is not None and value != ""


def compute_external_average(scores: Mapping[str, Optional[float]]) -> float:
    """Mean of the tests that have a score; 0 when none do."""
    present = [Decimal(str(value)) for value in scores.values() if _present(value)]
    if not present:
        return 0.0
    return round2(sum(present) / len(present))


def external_tests_passing(average: Optional[float]) -> bool:
    return average is not None and average >= EXTERNAL_TESTS_PASSING_THRESHOLD


def retake_recommendations(scores: Mapping[str, Optional[float]],
                           names: Optional[Mapping[str, str]] = None) -> List[dict]:
    """
    Suggest which tests to retake, and to what score, to lift the average to
    the passing threshold. Lowest scores are improved first.
    """
    names = names or {}
    entered = [(key, float(value)) for key, value in scores.items() if _present(value)]
    if not entered:
        return []

    current_sum = sum(value for _, value in entered)
    if current_sum / len(entered) >= EXTERNAL_TESTS_PASSING_THRESHOLD:
        return []

    points_needed = EXTERNAL_TESTS_PASSING_THRESHOLD * len(entered) - current_sum
    recommendations = []

    for key, current in sorted(entered, key=lambda item: item[1]):
        if points_needed <= 0:
            break

        max_improvement = EXTERNAL_TEST_MAX_SCORE - current
        if max_improvement <= 0:
            continue

        improvement = min(max_improvement, points_needed)
        recommendations.append({
            "test_key": key,
            "test_name": names.get(key, key),
            "current_score": current,
            "target_score": min(math.ceil(current + improvement), EXTERNAL_TEST_MAX_SCORE),
            "improvement": math.ceil(improvement)
        })
        points_needed -= improvement

    return recommendations
