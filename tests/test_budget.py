"""
Unit tests for the per-course weight budget.
"""

import pytest
from dataclasses import replace

from coursework.domain.models import Assignment
from coursework.domain.outcomes import ErrorCode
from coursework.rules.budget import (
    check_assignment_budget,
    check_budget,
    live_weights,
    normalize_weight,
)

from conftest import NOW


class TestCheckBudget:
    """Tests for check_budget."""

    def test_within_budget(self):
        decision = check_budget([30, 20], 40)
        assert decision.ok
        assert decision.value == 90

    def test_exactly_full_passes(self):
        assert check_budget([60], 40).ok

    def test_over_budget_rejected(self):
        """60 + 50 = 110 exceeds the 100 ceiling."""
        decision = check_budget([60], 50)
        assert not decision.ok
        assert decision.rejection.code == ErrorCode.ASSIGNMENT_WEIGHT_EXCEEDED
        assert decision.rejection.details == {"total": 110, "ceiling": 100}

    def test_empty_course(self):
        assert check_budget([], 100).ok
        assert not check_budget([], 101).ok


class TestLiveWeights:
    def test_deleted_and_excluded_rows_ignored(self, sample_assignment: Assignment, draft_assignment: Assignment):
        deleted = replace(draft_assignment, id="gone", deleted_at=NOW)
        weights = live_weights([sample_assignment, draft_assignment, deleted], exclude_id=draft_assignment.id)
        assert weights == [sample_assignment.points_weight]

    def test_update_excludes_own_previous_weight(self, sample_assignment: Assignment):
        """Raising an assignment from 40 to 100 is fine when it is alone."""
        assert check_assignment_budget([sample_assignment], 100, exclude_id=sample_assignment.id).ok
        assert not check_assignment_budget([sample_assignment], 100).ok

    def test_soft_deleted_weight_returns_to_budget(self, sample_assignment: Assignment):
        deleted = replace(sample_assignment, deleted_at=NOW)
        assert check_assignment_budget([deleted], 100).ok


class TestNormalizeWeight:
    """Tests for weight unit normalization."""

    @pytest.mark.parametrize("value,unit,expected", [
        (40, "percent", 40),
        (40.0, "percent", 40),
        (0.4, "fraction", 40),
        (0.3, "fraction", 30),
        (1, "fraction", 100),
        (0, "fraction", 0),
    ])
    def test_converts_to_integer_percent(self, value, unit, expected):
        weight, rejection = normalize_weight(value, unit)
        assert rejection is None
        assert weight == expected
        assert isinstance(weight, int)

    def test_fractional_percent_rejected(self):
        weight, rejection = normalize_weight(33.5, "percent")
        assert weight is None
        assert rejection.details["reason"] == "precision"

    def test_invalid_value_rejected(self):
        weight, rejection = normalize_weight(60, "fraction")
        assert weight is None
        assert rejection.code == ErrorCode.INVALID_INPUT
