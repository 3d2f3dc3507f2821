"""
Actual hours metrics pack.

Single source of truth for: logged hours per assignment key, time off and
internal hours per consultant.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional

from attribution.data.records import TimecardLine
from attribution.data.semantic import UNBENCHMARKED_ROLE, AssignmentKey
from attribution.engine.context import ReportContext
from attribution.modeling.benchmarks import BenchmarkIndex

logger = logging.getLogger(__name__)


@dataclass
class ActualHours:
    key: AssignmentKey
    period: float = 0.0
    to_date: float = 0.0
    daily: Dict[date, float] = field(default_factory=dict)

    def add(self, day: date, hours: float, to_date: bool) -> None:
        self.period += hours
        self.daily[day] = self.daily.get(day, 0.0) + hours
        if to_date:
            self.to_date += hours


@dataclass
class HoursBucket:
    """Period and to-date hours for one consultant."""
    period: float = 0.0
    to_date: float = 0.0


def split_hours(total: float, targets: List[float], equal_when_zero: bool = True) -> Optional[List[float]]:
    """
    Split total across keys in proportion to their targets.

    The last share absorbs the rounding residual so the parts always sum
    back to total. Returns None when every target is zero and equal
    splitting is disabled.
    """
    n = len(targets)
    if n == 0:
        return None
    sum_targets = sum(targets)
    if sum_targets > 0:
        shares = [t / sum_targets for t in targets]
    elif equal_when_zero:
        shares = [1.0 / n] * n
    else:
        return None

    parts = [total * s for s in shares[:-1]]
    parts.append(total - sum(parts))
    return parts


class ActualHoursAllocator:
    """Attributes each timecard row to the assignment keys active on its day."""

    def __init__(self, ctx: ReportContext, index: BenchmarkIndex,
                 keys_by_pair: Mapping[tuple, List[AssignmentKey]],
                 time_off_client_id: Optional[str] = None,
                 internal_client_id: Optional[str] = None):
        self.ctx = ctx
        self.index = index
        self.keys_by_pair = keys_by_pair
        self.time_off_client_id = time_off_client_id
        self.internal_client_id = internal_client_id

        self.by_key: Dict[AssignmentKey, ActualHours] = {}
        self.time_off: Dict[str, HoursBucket] = defaultdict(HoursBucket)
        self.internal: Dict[str, HoursBucket] = defaultdict(HoursBucket)

    def _ensure(self, key: AssignmentKey) -> ActualHours:
        if key not in self.by_key:
            self.by_key[key] = ActualHours(key=key)
        return self.by_key[key]

    def _unbenchmarked(self, row: TimecardLine) -> AssignmentKey:
        return AssignmentKey(row.client_id, row.consultant_id, UNBENCHMARKED_ROLE)

    def allocate(self, rows: Iterable[TimecardLine]) -> Dict[AssignmentKey, ActualHours]:
        ctx = self.ctx
        for row in rows:
            day = row.work_date
            hours = row.total_hours
            to_date = ctx.is_to_date(day)

            if self.time_off_client_id and row.client_id == self.time_off_client_id:
                bucket = self.time_off[row.consultant_id]
                bucket.period += hours
                if to_date:
                    bucket.to_date += hours
                continue

            if self.internal_client_id and row.client_id == self.internal_client_id:
                bucket = self.internal[row.consultant_id]
                bucket.period += hours
                if to_date:
                    bucket.to_date += hours
                continue

            candidates = self.keys_by_pair.get((row.client_id, row.consultant_id), [])
            active = [k for k in candidates if self.index.version_for(k, day) is not None]

            if not active:
                self._ensure(self._unbenchmarked(row)).add(day, hours, to_date)
                continue

            if len(active) == 1:
                self._ensure(active[0]).add(day, hours, to_date)
                continue

            targets = [self.index.version_for(k, day).target for k in active]
            parts = split_hours(hours, targets, ctx.settings.split_zero_targets_equally)
            if parts is None:
                logger.debug("Zero targets for %s|%s on %s; hours left unbenchmarked",
                             row.client_id, row.consultant_id, day)
                self._ensure(self._unbenchmarked(row)).add(day, hours, to_date)
                continue

            for key, part in zip(active, parts):
                self._ensure(key).add(day, part, to_date)

        return self.by_key
