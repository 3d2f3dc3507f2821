"""
Tests for contract line items and revenue recognition.
"""
import pytest
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.config import PerformanceSettings
from attribution.data.records import Contract, StaffLine
from attribution.data.semantic import UNASSIGNED, AssignmentKey
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import ActualHours
from attribution.metrics.revenue_attribution import (
    ContractKind,
    RevenueAttributor,
    build_line_items,
)


def _ctx(start=date(2025, 3, 1), end=date(2025, 3, 31), as_of=None):
    return ReportContext.build(
        start=start, end=end, as_of=as_of or end, today=end, settings=PerformanceSettings(),
    )


def _contract(**kwargs):
    defaults = dict(contract_id="CT1", client_id="C1", contract_type="Recurring",
                    start_date=date(2025, 1, 1), end_date=None)
    defaults.update(kwargs)
    return Contract(**defaults)


def _attribute(contracts, ctx=None, known=("K1",)):
    attributor = RevenueAttributor(ctx or _ctx(), set(known))
    return attributor, attributor.attribute(contracts)


class TestContractKind:

    @pytest.mark.parametrize("raw,kind", [
        ("Recurring", ContractKind.RECURRING),
        ("M&A", ContractKind.PROJECT),
        (" project ", ContractKind.PROJECT),
        ("Hourly", ContractKind.HOURLY),
        ("Retainer", ContractKind.OTHER),
        (None, ContractKind.OTHER),
    ])
    def test_parse(self, raw, kind):
        assert ContractKind.parse(raw) is kind


class TestLineItems:
    """Tests for line item extraction from a contract."""

    def test_known_and_unknown_consultants(self):
        items = build_line_items(
            _contract(assigned_cfo="K1", assigned_cfo_rate=6000.0,
                      assigned_controller="Jane Smith", assigned_controller_rate=3000.0),
            {"K1"},
        )
        assert [(i.role, i.consultant_id) for i in items] == [("CFO", "K1"), ("Controller", UNASSIGNED)]

    def test_software_and_additional_staff(self):
        items = build_line_items(
            _contract(software_name="QBO", software_rate=50.0, software_quantity=3, software_cost=20.0,
                      additional_staff=(StaffLine("Bookkeeper", "Sam", 800.0),)),
            set(),
        )
        software, staff = items
        assert software.is_software and software.monthly_amount == 150.0
        assert staff.role == "Bookkeeper: Sam" and staff.consultant_id == UNASSIGNED

    def test_free_software_keeps_cost(self):
        (item,) = build_line_items(_contract(software_rate=50.0, software_cost=20.0,
                                             software_provided_free=True), set())
        assert item.monthly_amount == 0.0
        assert item.software_cost == 20.0

    def test_monthly_fee_only_when_no_other_items(self):
        (item,) = build_line_items(_contract(monthly_fee=2500.0), set())
        assert item.role == "Monthly Fee"
        items = build_line_items(_contract(monthly_fee=2500.0, assigned_cfo="K1", assigned_cfo_rate=6000.0), {"K1"})
        assert [i.role for i in items] == ["CFO"]


class TestRecurringRevenue:
    """Recurring revenue is prorated over earning days."""

    def test_full_month_recognises_monthly_amount(self):
        _, revenue = _attribute([_contract(assigned_cfo="K1", assigned_cfo_rate=6000.0)])
        ledger = revenue[AssignmentKey("C1", "K1", "cfo")]
        assert ledger.period == pytest.approx(6000.0)
        assert len(ledger.daily) == 21

    def test_partial_month_start(self):
        _, revenue = _attribute([_contract(start_date=date(2025, 3, 17),
                                           assigned_cfo="K1", assigned_cfo_rate=6000.0)])
        assert revenue[AssignmentKey("C1", "K1", "cfo")].period == pytest.approx(6000.0 * 11 / 21)

    def test_to_date_portion(self):
        _, revenue = _attribute([_contract(assigned_cfo="K1", assigned_cfo_rate=6000.0)],
                                ctx=_ctx(as_of=date(2025, 3, 14)))
        assert revenue[AssignmentKey("C1", "K1", "cfo")].to_date == pytest.approx(6000.0 * 10 / 21)

    def test_onboarding_fee_in_start_month_only(self):
        contracts = [_contract(start_date=date(2025, 3, 1), onboarding_fee=1000.0, monthly_fee=500.0)]
        _, march = _attribute(contracts)
        _, april = _attribute(contracts, ctx=_ctx(date(2025, 4, 1), date(2025, 4, 30)))
        key = AssignmentKey.of("C1", UNASSIGNED, "Onboarding Fee")
        assert march[key].period == pytest.approx(1000.0)
        assert key not in april

    def test_software_sub_ledger(self):
        attributor, revenue = _attribute([_contract(software_name="QBO", software_rate=100.0,
                                                    software_quantity=2, software_cost=80.0)])
        key = AssignmentKey.of("C1", UNASSIGNED, "Software: QBO")
        assert revenue[key].contract_type == "Software"
        assert attributor.software_revenue[key].period == pytest.approx(200.0)
        assert attributor.software_cost[key].period == pytest.approx(80.0)

    def test_consultant_filter_drops_other_consultants(self):
        attributor = RevenueAttributor(_ctx(), {"K1", "K2"}, consultant_filter={"K2"})
        revenue = attributor.attribute([_contract(assigned_cfo="K1", assigned_cfo_rate=6000.0,
                                                  assigned_controller="K2", assigned_controller_rate=3000.0)])
        assert list(revenue) == [AssignmentKey("C1", "K2", "controller")]


class TestProjectRevenue:
    """A project fee is recognised exactly once across any partition."""

    def test_recognised_once_across_periods(self):
        contracts = [_contract(contract_type="Project", start_date=date(2025, 1, 10),
                               end_date=date(2025, 3, 12), total_project_fee=12000.0)]
        periods = [
            (date(2025, 2, 1), date(2025, 2, 28)),
            (date(2025, 3, 1), date(2025, 3, 15)),
            (date(2025, 3, 16), date(2025, 3, 31)),
        ]
        total = 0.0
        for start, end in periods:
            _, revenue = _attribute(contracts, ctx=_ctx(start, end))
            total += sum(ledger.period for ledger in revenue.values())
        assert total == pytest.approx(12000.0)

    def test_recognised_on_completion_day(self):
        _, revenue = _attribute([_contract(contract_type="M&A", start_date=date(2025, 1, 10),
                                           end_date=date(2025, 3, 12), total_project_fee=12000.0)])
        ledger = revenue[AssignmentKey.of("C1", UNASSIGNED, "Project Fee")]
        assert ledger.daily == {date(2025, 3, 12): 12000.0}

    def test_no_fee_without_completion_date(self):
        _, revenue = _attribute([_contract(contract_type="Project", total_project_fee=12000.0)])
        assert revenue == {}


class TestHourlyRevenue:

    def test_bill_rate_times_allocated_hours(self):
        attributor, revenue = _attribute([_contract(contract_type="Hourly",
                                                    assigned_controller="K1", assigned_controller_rate=90.0)])
        key = AssignmentKey("C1", "K1", "controller")
        actual = ActualHours(key=key)
        actual.add(date(2025, 3, 3), 4.0, True)
        actual.add(date(2025, 3, 4), 1.5, True)

        attributor.apply_hourly({key: actual})

        assert revenue[key].period == pytest.approx(5.5 * 90.0)
        assert revenue[key].daily[date(2025, 3, 4)] == pytest.approx(135.0)
