"""
Revenue attribution metrics pack.

Single source of truth for: contract line items, revenue recognition per
contract kind, and the software revenue / cost sub-ledger.

Revenue lands under the same AssignmentKey as expected and actual hours so the
three can be joined into one assignment row.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Set

from attribution.data.records import Contract
from attribution.data.semantic import OPEN_END_DATE, UNASSIGNED, AssignmentKey, normalize_id
from attribution.engine.context import ReportContext
from attribution.metrics.actual_hours import ActualHours
from attribution.metrics.calendar import month_key

logger = logging.getLogger(__name__)

ONBOARDING_FEE_ROLE = "Onboarding Fee"
PROJECT_FEE_ROLE = "Project Fee"
MONTHLY_FEE_ROLE = "Monthly Fee"
SOFTWARE_ROLE_PREFIX = "Software: "


class ContractKind(Enum):
    RECURRING = "Recurring"
    PROJECT = "Project"
    HOURLY = "Hourly"
    OTHER = "Other"

    @classmethod
    def parse(cls, contract_type: Optional[str]) -> "ContractKind":
        t = (contract_type or "").strip().lower()
        if t == "recurring":
            return cls.RECURRING
        if t in ("project", "m&a", "m & a"):
            return cls.PROJECT
        if t == "hourly":
            return cls.HOURLY
        return cls.OTHER


@dataclass(frozen=True)
class LineItem:
    role: str
    consultant_id: str
    rate: float
    quantity: float = 1.0
    software_cost: float = 0.0
    provided_free: bool = False

    @property
    def is_software(self) -> bool:
        return self.role.startswith(SOFTWARE_ROLE_PREFIX)

    @property
    def monthly_amount(self) -> float:
        if self.provided_free:
            return 0.0
        return self.rate * self.quantity


@dataclass
class Ledger:
    """Period, to-date and per-day amounts for one key."""

    key: AssignmentKey
    contract_type: Optional[str] = None
    bill_rate: float = 0.0
    period: float = 0.0
    to_date: float = 0.0
    daily: Dict[date, float] = field(default_factory=dict)

    def add(self, day: date, amount: float, to_date: bool) -> None:
        self.period += amount
        self.daily[day] = self.daily.get(day, 0.0) + amount
        if to_date:
            self.to_date += amount


def build_line_items(contract: Contract, known_consultants: Set[str]) -> List[LineItem]:
    """
    Monthly line items of a contract.

    Assigned roles link to a consultant when the stored reference is a known
    consultant id; everything else sits under the unassigned consultant.
    """
    items: List[LineItem] = []

    for role, ref, rate in contract.assigned_roles:
        if not ref or rate <= 0:
            continue
        consultant_id = normalize_id(ref)
        if consultant_id not in known_consultants:
            consultant_id = UNASSIGNED
        items.append(LineItem(role=role, consultant_id=consultant_id, rate=rate))

    if contract.software_rate > 0 or contract.software_cost > 0 or contract.software_provided_free:
        items.append(LineItem(
            role=f"{SOFTWARE_ROLE_PREFIX}{contract.software_name or 'Software'}",
            consultant_id=UNASSIGNED,
            rate=contract.software_rate,
            quantity=contract.software_quantity,
            software_cost=contract.software_cost,
            provided_free=contract.software_provided_free,
        ))

    for staff in contract.additional_staff:
        items.append(LineItem(role=staff.label, consultant_id=UNASSIGNED, rate=staff.rate))

    if not items and contract.monthly_fee > 0:
        items.append(LineItem(role=MONTHLY_FEE_ROLE, consultant_id=UNASSIGNED, rate=contract.monthly_fee))

    return items


def contract_overlaps(contract: Contract, start: date, end: date) -> bool:
    if contract.start_date is None:
        return False
    contract_end = contract.end_date or OPEN_END_DATE
    return contract.start_date <= end and contract_end >= start


class RevenueAttributor:
    """
    Recognises contract revenue per assignment key.

    One strategy per ContractKind, dispatched from a table. Hourly revenue
    depends on allocated actual hours and is applied afterwards through
    apply_hourly().
    """

    def __init__(self, ctx: ReportContext, known_consultants: Iterable[str],
                 consultant_filter: Optional[Set[str]] = None):
        self.ctx = ctx
        self.known_consultants = set(known_consultants)
        self.consultant_filter = consultant_filter

        self.revenue: Dict[AssignmentKey, Ledger] = {}
        self.software_revenue: Dict[AssignmentKey, Ledger] = {}
        self.software_cost: Dict[AssignmentKey, Ledger] = {}

        self._strategies: Dict[ContractKind, Callable[[Contract, List[LineItem]], None]] = {
            ContractKind.RECURRING: self._recognise_recurring,
            ContractKind.OTHER: self._recognise_recurring,
            ContractKind.PROJECT: self._recognise_project,
            ContractKind.HOURLY: self._register_hourly,
        }

    # Ledgers -----------------------------------------------------------------

    @staticmethod
    def _ensure(ledgers: Dict[AssignmentKey, Ledger], key: AssignmentKey) -> Ledger:
        if key not in ledgers:
            ledgers[key] = Ledger(key=key)
        return ledgers[key]

    def _include(self, item: LineItem) -> bool:
        if self.consultant_filter is None or item.consultant_id == UNASSIGNED:
            return True
        return item.consultant_id in self.consultant_filter

    # Entry points ------------------------------------------------------------

    def attribute(self, contracts: Iterable[Contract]) -> Dict[AssignmentKey, Ledger]:
        ctx = self.ctx
        for contract in contracts:
            if not contract_overlaps(contract, ctx.start, ctx.end):
                continue
            kind = ContractKind.parse(contract.contract_type)
            items = [li for li in build_line_items(contract, self.known_consultants) if self._include(li)]
            self._strategies[kind](contract, items)
        return self.revenue

    def apply_hourly(self, actuals: Mapping[AssignmentKey, ActualHours]) -> None:
        """Hourly revenue is bill rate times the hours allocated to the key."""
        for key, ledger in self.revenue.items():
            if ledger.contract_type != ContractKind.HOURLY.value or ledger.bill_rate <= 0:
                continue
            act = actuals.get(key)
            ledger.period = 0.0
            ledger.to_date = 0.0
            ledger.daily = {}
            if act is None:
                continue
            for day, hours in act.daily.items():
                ledger.add(day, hours * ledger.bill_rate, self.ctx.is_to_date(day))

    # Strategies --------------------------------------------------------------

    def _active_days_by_month(self, contract: Contract) -> Dict[str, List[date]]:
        ctx = self.ctx
        contract_end = contract.end_date or OPEN_END_DATE
        by_month: Dict[str, List[date]] = defaultdict(list)
        for day in ctx.earning_days:
            if ctx.suppress_forward(contract.client_id, day):
                continue
            if day < contract.start_date or day > contract_end:
                continue
            by_month[month_key(day)].append(day)
        return by_month

    def _recognise_recurring(self, contract: Contract, items: List[LineItem]) -> None:
        """
        Prorate each monthly amount by the contract's share of the month's
        earning days, spread evenly across those days. A full month therefore
        sums to the nominal amount.
        """
        ctx = self.ctx
        kind = ContractKind.parse(contract.contract_type)
        type_hint = ContractKind.RECURRING.value if kind is ContractKind.RECURRING else (
            contract.contract_type or ContractKind.RECURRING.value)
        start_month = month_key(contract.start_date)

        for mk, days in self._active_days_by_month(contract).items():
            month_days = len(ctx.calendar.month_days(days[0])) or 1
            factor = len(days) / month_days

            for li in items:
                daily_amount = li.monthly_amount * factor / len(days)
                daily_cost = li.software_cost * factor / len(days) if li.is_software else 0.0
                key = AssignmentKey.of(contract.client_id, li.consultant_id, li.role)
                ledger = self._ensure(self.revenue, key)
                ledger.contract_type = "Software" if li.is_software else type_hint

                for day in days:
                    to_date = ctx.is_to_date(day)
                    ledger.add(day, daily_amount, to_date)
                    if li.is_software:
                        self._ensure(self.software_revenue, key).add(day, daily_amount, to_date)
                        if daily_cost > 0:
                            self._ensure(self.software_cost, key).add(day, daily_cost, to_date)

            if contract.onboarding_fee > 0 and mk == start_month:
                daily_amount = contract.onboarding_fee * factor / len(days)
                key = AssignmentKey.of(contract.client_id, UNASSIGNED, ONBOARDING_FEE_ROLE)
                ledger = self._ensure(self.revenue, key)
                ledger.contract_type = type_hint
                for day in days:
                    ledger.add(day, daily_amount, ctx.is_to_date(day))

    def _recognise_project(self, contract: Contract, items: List[LineItem]) -> None:
        """
        The whole fee is earned once, at completion.

        Completion inside the period is recognised on that day. Completion
        before the period is caught up on the period start (this can repeat
        across back-dated queries; contracts that ended before the period
        normally never get here because they do not overlap it). Completion
        after the period is recognised only once as-of has reached it.
        """
        ctx = self.ctx
        fee = contract.total_project_fee
        completion = contract.end_date
        if fee <= 0 or completion is None:
            return

        recognition: Optional[date] = None
        if ctx.start <= completion <= ctx.end:
            recognition = completion
        elif completion < ctx.start and contract.start_date < ctx.end:
            recognition = ctx.start
        elif completion > ctx.end and contract.start_date <= ctx.end and ctx.as_of >= completion:
            recognition = completion

        if recognition is None or recognition > ctx.end:
            return

        key = AssignmentKey.of(contract.client_id, UNASSIGNED, PROJECT_FEE_ROLE)
        ledger = self._ensure(self.revenue, key)
        ledger.contract_type = ContractKind.PROJECT.value
        if recognition == ctx.start and completion < ctx.start:
            logger.info("Catch-up recognition of project fee for contract %s at %s",
                        contract.contract_id, recognition)
            ledger.add(recognition, fee, True)
        else:
            ledger.add(recognition, fee, ctx.is_to_date(recognition))

    def _register_hourly(self, contract: Contract, items: List[LineItem]) -> None:
        for li in items:
            key = AssignmentKey.of(contract.client_id, li.consultant_id, li.role)
            ledger = self._ensure(self.revenue, key)
            ledger.contract_type = ContractKind.HOURLY.value
            ledger.bill_rate = li.rate
