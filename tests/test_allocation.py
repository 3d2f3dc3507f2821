"""
Tests for expected hours accumulation and actual hours allocation.
"""
import pytest
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.config import PerformanceSettings
from attribution.data.records import BenchmarkVersion, TimecardLine
from attribution.data.semantic import UNBENCHMARKED_ROLE, AssignmentKey
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import ActualHoursAllocator, split_hours
from attribution.metrics.expected_hours import ExpectedHoursAccumulator
from attribution.modeling.benchmarks import BenchmarkIndex


def _ctx(split_equally=True, role_filter=None, client_active=None, today=date(2025, 3, 14)):
    return ReportContext.build(
        start=date(2025, 3, 1), end=date(2025, 3, 31), as_of=date(2025, 3, 14), today=today,
        settings=PerformanceSettings(split_zero_targets_equally=split_equally),
        role_filter=role_filter, client_active=client_active,
    )


def _version(role, target, client="C1", effective=date(2025, 1, 1), low=0.0, high=0.0):
    return BenchmarkVersion(client_id=client, consultant_id="K1", role=role, effective_date=effective,
                            low=low, target=target, high=high, bill_rate=200.0)


def _line(day, hours, client="C1"):
    return TimecardLine(work_date=day, client_id=client, consultant_id="K1", project_id=None,
                        client_facing_hours=hours, non_client_facing_hours=0.0, other_hours=0.0)


class TestSplitHours:
    """Proportional splits always sum back to the row."""

    def test_parts_sum_exactly(self):
        parts = split_hours(1.0, [1.0, 1.0, 1.0])
        assert sum(parts) == 1.0
        assert parts[0] == pytest.approx(1 / 3)

    def test_proportional_to_targets(self):
        assert split_hours(6.0, [30.0, 10.0]) == pytest.approx([4.5, 1.5])

    def test_zero_targets_equal_split_or_none(self):
        assert split_hours(4.0, [0.0, 0.0]) == [2.0, 2.0]
        assert split_hours(4.0, [0.0, 0.0], equal_when_zero=False) is None


class TestExpectedHours:
    """Tests for the weighted expectation per key."""

    def test_full_month_equals_monthly_target(self):
        index = BenchmarkIndex([_version("CFO", 42.0, low=30.0, high=60.0)])
        expected = ExpectedHoursAccumulator(_ctx(), index).accumulate()
        acc = expected[AssignmentKey("C1", "K1", "cfo")]

        assert acc.target_period == pytest.approx(42.0)
        assert acc.target_to_date == pytest.approx(20.0)
        assert acc.high_period == pytest.approx(60.0)
        assert sum(acc.target_daily.values()) == pytest.approx(42.0)

    def test_mid_month_version_change(self):
        index = BenchmarkIndex([
            _version("CFO", 21.0),
            _version("CFO", 42.0, effective=date(2025, 3, 17)),
        ])
        acc = ExpectedHoursAccumulator(_ctx(), index).accumulate()[AssignmentKey("C1", "K1", "cfo")]
        # 10 business days at 1h, then 11 at 2h
        assert acc.target_period == pytest.approx(10 * 1.0 + 11 * 2.0)

    def test_key_starting_after_period_end_is_skipped(self):
        index = BenchmarkIndex([_version("CFO", 42.0, effective=date(2025, 4, 1))])
        assert ExpectedHoursAccumulator(_ctx(), index).accumulate() == {}

    def test_role_filter(self):
        index = BenchmarkIndex([_version("CFO", 42.0), _version("Controller", 21.0)])
        expected = ExpectedHoursAccumulator(_ctx(role_filter="controller"), index).accumulate()
        assert list(expected) == [AssignmentKey("C1", "K1", "controller")]

    def test_inactive_client_has_no_forward_expectation(self):
        index = BenchmarkIndex([_version("CFO", 42.0)])
        ctx = _ctx(client_active={"C1": False})
        acc = ExpectedHoursAccumulator(ctx, index).accumulate()[AssignmentKey("C1", "K1", "cfo")]
        assert acc.target_period == pytest.approx(acc.target_to_date)


class TestActualHoursAllocator:
    """Tests for attributing timecard rows to assignment keys."""

    def _allocate(self, versions, lines, split_equally=True, time_off=None):
        ctx = _ctx(split_equally)
        index = BenchmarkIndex(versions)
        acc = ExpectedHoursAccumulator(ctx, index)
        acc.accumulate()
        allocator = ActualHoursAllocator(ctx, index, acc.keys_by_pair(), time_off_client_id=time_off)
        return allocator, allocator.allocate(lines)

    def test_single_key_takes_everything(self):
        _, actual = self._allocate([_version("CFO", 40.0)], [_line(date(2025, 3, 3), 5.0)])
        assert actual[AssignmentKey("C1", "K1", "cfo")].period == 5.0

    def test_split_by_target_on_the_day(self):
        _, actual = self._allocate(
            [_version("CFO", 30.0), _version("Controller", 10.0)],
            [_line(date(2025, 3, 3), 8.0)],
        )
        assert actual[AssignmentKey("C1", "K1", "cfo")].period == pytest.approx(6.0)
        assert actual[AssignmentKey("C1", "K1", "controller")].period == pytest.approx(2.0)

    def test_unbenchmarked_pair(self):
        _, actual = self._allocate([_version("CFO", 40.0)], [_line(date(2025, 3, 3), 3.0, client="C9")])
        assert actual[AssignmentKey("C9", "K1", UNBENCHMARKED_ROLE)].period == 3.0

    def test_zero_targets_without_equal_split_go_unbenchmarked(self):
        _, actual = self._allocate(
            [_version("CFO", 0.0), _version("Controller", 0.0)],
            [_line(date(2025, 3, 3), 4.0)],
            split_equally=False,
        )
        assert list(actual) == [AssignmentKey("C1", "K1", UNBENCHMARKED_ROLE)]

    def test_to_date_split_and_time_off_bucket(self):
        allocator, actual = self._allocate(
            [_version("CFO", 40.0)],
            [_line(date(2025, 3, 3), 5.0), _line(date(2025, 3, 20), 7.0), _line(date(2025, 3, 4), 8.0, "TO")],
            time_off="TO",
        )
        acc = actual[AssignmentKey("C1", "K1", "cfo")]
        assert (acc.period, acc.to_date) == (12.0, 5.0)
        assert allocator.time_off["K1"].to_date == 8.0
