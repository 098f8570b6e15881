"""
Unit tests for the grade calculator.
"""
import itertools

import pytest

from medreview.core.exceptions import InvalidScore
from medreview.services.grading import (
    Grade,
    ScoreRecord,
    calculate_grade,
    composite_score,
    grade_for_composite,
    preview_grade,
)

GRADE_ORDER = [Grade.F, Grade.D, Grade.C, Grade.B, Grade.A]


class TestCalculateGrade:
    """Composite score and banding."""

    def test_high_scores_round_up_to_a(self):
        # mean 8.67 rounds to 9
        assert calculate_grade(ScoreRecord(9, 9, 8)) == Grade.A

    def test_mean_four_is_d(self):
        assert calculate_grade(ScoreRecord(4, 5, 3)) == Grade.D

    @pytest.mark.parametrize("scores,expected", [
        ((10, 10, 10), Grade.A),
        ((8, 9, 9), Grade.A),
        ((8, 8, 9), Grade.B),
        ((7, 7, 7), Grade.B),
        ((6, 7, 7), Grade.B),
        ((6, 6, 7), Grade.C),
        ((5, 5, 4), Grade.C),
        ((2, 3, 3), Grade.D),
        ((2, 2, 3), Grade.F),
        ((1, 1, 1), Grade.F),
    ])
    def test_band_boundaries(self, scores, expected):
        assert calculate_grade(ScoreRecord(*scores)) == expected

    def test_composite_rounds_half_up(self):
        assert composite_score(ScoreRecord(9, 9, 8)) == 9
        assert composite_score(ScoreRecord(9, 8, 8)) == 8

    def test_band_table(self):
        assert grade_for_composite(9) == Grade.A
        assert grade_for_composite(7) == Grade.B
        assert grade_for_composite(5) == Grade.C
        assert grade_for_composite(3) == Grade.D
        assert grade_for_composite(2) == Grade.F

    def test_accepts_mapping(self):
        assert calculate_grade({"clinical": 9, "safety": 9, "transparency": 8}) == Grade.A

    def test_mapping_with_missing_score_rejected(self):
        with pytest.raises(InvalidScore) as exc:
            calculate_grade({"clinical": 9, "safety": 9})
        assert exc.value.details["missing"] == ["transparency"]

    def test_deterministic(self):
        for triple in itertools.product(range(1, 11), repeat=3):
            assert calculate_grade(ScoreRecord(*triple)) == calculate_grade(ScoreRecord(*triple))

    def test_monotonic_in_each_score(self):
        for triple in itertools.product(range(1, 11), repeat=3):
            base = GRADE_ORDER.index(calculate_grade(ScoreRecord(*triple)))
            for i in range(3):
                if triple[i] == 10:
                    continue
                bumped = list(triple)
                bumped[i] += 1
                assert GRADE_ORDER.index(calculate_grade(ScoreRecord(*bumped))) >= base


class TestScoreValidation:
    """Scores are never clamped or coerced."""

    @pytest.mark.parametrize("bad", [0, 11, -3, 5.5, 7.0, "7", None, True])
    def test_invalid_values_rejected(self, bad):
        with pytest.raises(InvalidScore):
            ScoreRecord(clinical=bad, safety=5, transparency=5)

    def test_error_names_the_field(self):
        with pytest.raises(InvalidScore) as exc:
            ScoreRecord(clinical=5, safety=12, transparency=5)
        assert exc.value.details["field"] == "safety"
        assert exc.value.kind == "InvalidScore"


class TestPreviewGrade:
    """Live preview while sliders are moving."""

    def test_incomplete_input_has_no_grade(self):
        assert preview_grade() is None
        assert preview_grade(clinical=9) is None
        assert preview_grade(clinical=9, safety=9) is None

    def test_complete_input_matches_calculate_grade(self):
        assert preview_grade(9, 9, 8) == calculate_grade(ScoreRecord(9, 9, 8))
        assert preview_grade(4, 5, 3) == Grade.D

    def test_out_of_range_preview_rejected(self):
        with pytest.raises(InvalidScore):
            preview_grade(0, 5, 5)
