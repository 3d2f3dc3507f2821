"""
Tests for earning days, distribution weights and benchmark version resolution.
"""
import pytest
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.data.records import BenchmarkVersion
from attribution.data.semantic import AssignmentKey
from attribution.metrics.calendar import (
    MonthCalendar,
    distribution_weights,
    enumerate_days,
    month_key,
    next_month_bounds,
)
from attribution.modeling.benchmarks import BenchmarkIndex


class TestEarningDays:
    """Tests for business-day and calendar-day enumeration."""

    def test_march_2025_business_days(self):
        cal = MonthCalendar(business_days_only=True)
        assert len(cal.month_days(date(2025, 3, 10))) == 21

    def test_holidays_are_not_earning_days(self):
        cal = MonthCalendar(business_days_only=True, holidays=[date(2025, 3, 17)])
        days = cal.month_days(date(2025, 3, 1))
        assert date(2025, 3, 17) not in days
        assert len(days) == 20

    def test_calendar_days_mode_counts_every_day(self):
        cal = MonthCalendar(business_days_only=False)
        assert len(cal.month_days(date(2025, 2, 1))) == 28

    def test_enumerate_days_inclusive_and_empty_when_reversed(self):
        assert len(enumerate_days(date(2025, 3, 1), date(2025, 3, 31))) == 31
        assert enumerate_days(date(2025, 3, 2), date(2025, 3, 1)) == []

    def test_month_helpers(self):
        assert month_key(date(2025, 3, 9)) == "2025-03"
        assert next_month_bounds(date(2025, 12, 15)) == (date(2026, 1, 1), date(2026, 1, 31))


class TestDistributionWeights:
    """Weights always sum to one."""

    @pytest.mark.parametrize("kind", ["linear", "front_loaded", "back_loaded", "Front-Loaded", "bogus", None])
    def test_weights_sum_to_one(self, kind):
        days = MonthCalendar(True).month_days(date(2025, 3, 1))
        weights = distribution_weights(days, kind)
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_front_loaded_falls_and_back_loaded_rises(self):
        days = MonthCalendar(True).month_days(date(2025, 3, 1))
        front = distribution_weights(days, "front loaded")
        back = distribution_weights(days, "back_loaded")
        assert front[days[0]] > front[days[-1]]
        assert back[days[0]] < back[days[-1]]
        assert front[days[0]] == pytest.approx(back[days[-1]])

    def test_single_day_month_gets_full_weight(self):
        assert distribution_weights([date(2025, 3, 3)], "front_loaded") == {date(2025, 3, 3): 1.0}

    def test_no_days_no_weights(self):
        assert distribution_weights([], "linear") == {}


def _version(effective, target, role="CFO"):
    return BenchmarkVersion(
        client_id="C1", consultant_id="K1", role=role, effective_date=effective,
        low=0.0, target=target, high=0.0, bill_rate=0.0,
    )


class TestBenchmarkIndex:
    """Tests for version resolution by effective date."""

    def test_latest_version_on_or_before_day(self):
        index = BenchmarkIndex([_version(date(2025, 3, 15), 50.0), _version(date(2025, 1, 1), 40.0)])
        key = AssignmentKey.of("C1", "K1", "CFO")

        assert index.version_for(key, date(2024, 12, 31)) is None
        assert index.version_for(key, date(2025, 3, 14)).target == 40.0
        assert index.version_for(key, date(2025, 3, 15)).target == 50.0

    def test_roles_are_normalised_into_one_key(self):
        index = BenchmarkIndex([_version(date(2025, 1, 1), 40.0, "CFO"),
                                _version(date(2025, 2, 1), 45.0, "  cfo ")])
        assert len(index) == 1
        assert index.keys() == [AssignmentKey("C1", "K1", "cfo")]

    def test_active_keys_and_has_client(self):
        index = BenchmarkIndex([_version(date(2025, 1, 1), 40.0, "CFO"),
                                _version(date(2025, 4, 1), 10.0, "Controller")])
        active = index.active_keys_for("C1", "K1", date(2025, 3, 1))
        assert active == [AssignmentKey("C1", "K1", "cfo")]
        assert index.has_client("C1", date(2025, 3, 1)) is True
        assert index.has_client("C1", date(2024, 3, 1)) is False
        assert index.has_client("C2") is False
