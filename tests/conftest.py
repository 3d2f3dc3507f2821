"""
Shared March 2025 dataset for engine tests.

Business days in March 2025: 21. As of 2025-03-14, 10 of them have passed.
"""
import pytest
import pandas as pd
import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from attribution.data.loader import FrameDataSource
from attribution.metrics.calendar import MonthCalendar


MARCH_DAYS_TO_14 = MonthCalendar(True).earning_days(date(2025, 3, 1), date(2025, 3, 14))


def timecard(day, client_id, consultant_id, hours, status="Approved"):
    return {
        "timesheet_date": str(day),
        "client_id": client_id,
        "consultant_id": consultant_id,
        "status": status,
        "client_facing_hours": hours,
        "non_client_facing_hours": 0.0,
        "other_task_hours": 0.0,
        "project_id": None,
    }


def benchmark(client_id, consultant_id, role, target, low=0.0, high=0.0, effective="2025-01-01",
              bill_rate=150.0, distribution_type=None):
    return {
        "client_id": client_id,
        "consultant_id": consultant_id,
        "role": role,
        "effective_date": effective,
        "low_range_hours": low,
        "target_hours": target,
        "high_range_hours": high,
        "bill_rate": bill_rate,
        "distribution_type": distribution_type,
    }


def contract(contract_id, client_id, contract_type, start, end=None, **extra):
    row = {
        "contract_id": contract_id,
        "client_id": client_id,
        "contract_type": contract_type,
        "contract_start_date": start,
        "contract_end_date": end,
    }
    row.update(extra)
    return row


@pytest.fixture
def frames():
    """
    K1 (salaried CFO at Acme) logs 2.25h a day against a 2h/day benchmark;
    K2 logs exactly to plan at Acme and Beta.
    """
    timecards = []
    for d in MARCH_DAYS_TO_14:
        timecards.append(timecard(d, "C1", "K1", 2.25))
        timecards.append(timecard(d, "C1", "K2", 1.0))
        timecards.append(timecard(d, "C2", "K2", 0.5))
    timecards.append(timecard("2025-03-05", "C2", "K1", 4.0))
    timecards.append(timecard("2025-03-07", "TO", "K1", 8.0))
    timecards.append(timecard("2025-03-12", "IN", "K2", 2.0))
    timecards.append(timecard("2025-03-12", "C1", "K2", 5.0, status="Submitted"))

    return {
        "clients": pd.DataFrame([
            {"client_id": "C1", "client_name": "Acme", "active_status": True},
            {"client_id": "C2", "client_name": "Beta", "active_status": True},
            {"client_id": "TO", "client_name": "X - Time Off", "active_status": True},
            {"client_id": "IN", "client_name": "X - Internal", "active_status": True},
        ]),
        "consultants": pd.DataFrame([
            {"consultant_id": "K1", "first_name": "Ann", "last_name": "Lee", "pay_type": "Salary",
             "pay_rate": 8000.0, "hourly_rate": 0.0, "capacity_hours_per_week": 40,
             "timecard_cycle": "Monthly", "status": "Active"},
            {"consultant_id": "K2", "first_name": "Bob", "last_name": "Ray", "pay_type": "Hourly",
             "pay_rate": 0.0, "hourly_rate": 50.0, "capacity_hours_per_week": 40,
             "timecard_cycle": "Bi-Weekly", "status": "Active"},
        ]),
        "benchmarks": pd.DataFrame([
            benchmark("C1", "K1", "CFO", 42.0, low=30.0, high=60.0, bill_rate=250.0),
            benchmark("C1", "K2", "Controller", 21.0),
            benchmark("C2", "K2", "Controller", 10.5, bill_rate=90.0),
        ]),
        "contracts": pd.DataFrame([
            contract("CT1", "C1", "Recurring", "2025-01-01",
                     assigned_cfo="K1", assigned_cfo_rate=6000.0,
                     assigned_controller="K2", assigned_controller_rate=3000.0,
                     assigned_software="QBO", assigned_software_rate=100.0,
                     assigned_software_quantity=2, assigned_software_cost=80.0),
            contract("CT2", "C2", "Hourly", "2025-02-01",
                     assigned_controller="K2", assigned_controller_rate=90.0),
        ]),
        "holidays": pd.DataFrame({"holiday_date": ["2025-12-25"], "holiday_name": ["Christmas"]}),
        "timecard_lines": pd.DataFrame(timecards),
    }


@pytest.fixture
def source(frames):
    return FrameDataSource(frames)


@pytest.fixture
def today():
    return date(2025, 3, 14)
