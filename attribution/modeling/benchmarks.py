"""
Benchmark version resolution.

Benchmarks are versioned per (client, consultant, role); the version in force
on a day is the latest one whose effective date is on or before that day.
"""
from __future__ import annotations

from bisect import bisect_right
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional

from attribution.data.records import BenchmarkVersion
from attribution.data.semantic import AssignmentKey


class BenchmarkIndex:
    """Versions grouped by AssignmentKey and sorted by effective date."""

    def __init__(self, versions: Iterable[BenchmarkVersion]):
        grouped: Dict[AssignmentKey, List[BenchmarkVersion]] = defaultdict(list)
        for v in versions:
            grouped[AssignmentKey.of(v.client_id, v.consultant_id, v.role)].append(v)

        # Stable sort keeps load order for equal effective dates
        self._versions = {k: sorted(vs, key=lambda v: v.effective_date) for k, vs in grouped.items()}
        self._dates = {k: [v.effective_date for v in vs] for k, vs in self._versions.items()}

        self._by_pair: Dict[tuple, List[AssignmentKey]] = defaultdict(list)
        for key in sorted(self._versions):
            self._by_pair[(key.client_id, key.consultant_id)].append(key)

    def __len__(self) -> int:
        return len(self._versions)

    def __contains__(self, key: AssignmentKey) -> bool:
        return key in self._versions

    def keys(self) -> List[AssignmentKey]:
        return sorted(self._versions)

    def versions(self, key: AssignmentKey) -> List[BenchmarkVersion]:
        return list(self._versions.get(key, []))

    def version_for(self, key: AssignmentKey, day: date) -> Optional[BenchmarkVersion]:
        """Latest version effective on or before day, None when nothing applies yet."""
        dates = self._dates.get(key)
        if not dates:
            return None
        idx = bisect_right(dates, day)
        if idx == 0:
            return None
        return self._versions[key][idx - 1]

    def keys_for(self, client_id: str, consultant_id: str) -> List[AssignmentKey]:
        return list(self._by_pair.get((client_id, consultant_id), []))

    def active_keys_for(self, client_id: str, consultant_id: str, day: date) -> List[AssignmentKey]:
        return [k for k in self.keys_for(client_id, consultant_id) if self.version_for(k, day) is not None]

    def has_client(self, client_id: str, as_of: Optional[date] = None) -> bool:
        """True when any key of the client has a version in force by as_of."""
        for key in self._versions:
            if key.client_id != client_id:
                continue
            if as_of is None or self.version_for(key, as_of) is not None:
                return True
        return False

    def roles(self) -> List[str]:
        labels = {}
        for vs in self._versions.values():
            for v in vs:
                label = (v.role or "").strip()
                if label:
                    labels.setdefault(label.lower(), label)
        return sorted(labels.values(), key=str.lower)
