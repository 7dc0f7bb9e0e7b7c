"""
Run metrics with Prometheus text exposition.

A sync run is a batch job: dispatched operations are counted per kind and
outcome, the diff and plan sizes are kept as gauges, and the whole set is
written once to a textfile for a node-exporter textfile collector.
"""

from __future__ import annotations

import os
import time
from collections import Counter
from enum import Enum
from pathlib import Path
from typing import Optional

from .models import MembershipDiff, OperationKind, OperationPlan


class Outcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


class MetricsCollector:
    """Operation counters and diff/plan gauges for one sync run."""

    def __init__(self, prefix: str = "gm_sync") -> None:
        self._prefix = prefix
        self._operations: Counter[tuple[OperationKind, Outcome]] = Counter()
        self._gauges: dict[str, int] = {}
        self._started = time.monotonic()

    def record_operation(self, kind: OperationKind, outcome: Outcome) -> None:
        self._operations[(kind, outcome)] += 1

    def operations(
        self,
        outcome: Optional[Outcome] = None,
        kind: Optional[OperationKind] = None,
    ) -> int:
        """Operations counted so far, optionally narrowed to one outcome or kind."""
        return sum(
            count
            for (k, o), count in self._operations.items()
            if (outcome is None or o == outcome) and (kind is None or k == kind)
        )

    def record_diff(self, diff: MembershipDiff) -> None:
        self._gauges["pending_additions"] = len(diff.additions)
        self._gauges["pending_removals"] = len(diff.removals)

    def record_plan(self, plan: OperationPlan) -> None:
        self._gauges["planned_independent_operations"] = len(plan.independent)
        self._gauges["planned_dependent_operations"] = len(plan.dependent)
        self._gauges["skipped_rows"] = len(plan.skipped)
        self._gauges["rejected_rows"] = len(plan.rejected)

    def gauge(self, name: str) -> int:
        return self._gauges.get(name, 0)

    def to_prometheus(self) -> str:
        p = self._prefix
        lines = [f"# TYPE {p}_operations_total counter"]
        for (kind, outcome), count in sorted(
            self._operations.items(), key=lambda item: (item[0][0].value, item[0][1].value)
        ):
            lines.append(
                f'{p}_operations_total{{kind="{kind.value}",outcome="{outcome.value}"}} {count}'
            )
        for name, value in sorted(self._gauges.items()):
            lines.append(f"# TYPE {p}_{name} gauge")
            lines.append(f"{p}_{name} {value}")
        lines.append(f"# TYPE {p}_run_duration_seconds gauge")
        lines.append(f"{p}_run_duration_seconds {time.monotonic() - self._started:.1f}")
        return "\n".join(lines) + "\n"

    def write_textfile(self, path: str | Path) -> None:
        """Atomically replace `path` with the Prometheus text export."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(path.suffix + ".tmp")
        tmp.write_text(self.to_prometheus())
        os.replace(tmp, path)
