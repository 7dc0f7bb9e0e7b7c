"""
Sync run orchestrator.

Threads one run through snapshot → diff → plan → execution. Each stage
produces a value consumed by the next; nothing is accumulated on the
orchestrator besides the current stage.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

import structlog

from .config import SyncConfig
from .executor import ExecutionReport, QueueExecutor
from .metrics import MetricsCollector
from .models import MembershipDiff, MembershipFile, OperationPlan
from .planner import plan_operations
from .reconciler import reconcile
from .roles import RoleResolver
from .snapshot import Requester, build_snapshot

log = structlog.get_logger()


class RunStage(str, Enum):
    IDLE = "idle"
    SNAPSHOT_BUILT = "snapshot_built"
    RECONCILED = "reconciled"
    PLANNED = "planned"
    EXECUTING_INDEPENDENT = "executing_independent"
    EXECUTING_DEPENDENT = "executing_dependent"
    DONE = "done"


@dataclass
class RunReport:
    stage: RunStage
    dry_run: bool = False
    diff: Optional[MembershipDiff] = None
    plan: Optional[OperationPlan] = None
    independent: Optional[ExecutionReport] = None
    dependent: Optional[ExecutionReport] = None

    @property
    def dispatched(self) -> int:
        """Operations actually sent to the directory."""
        count = 0
        for report in (self.independent, self.dependent):
            if report:
                count += len(report.succeeded) + len(report.failed)
        return count


class GroupSync:
    """One reconciliation run of a group against a membership file."""

    def __init__(
        self,
        client: Requester,
        group_id: str,
        source: MembershipFile,
        options: Optional[SyncConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self._client = client
        self._group_id = group_id
        self._source = source
        self._options = options or SyncConfig()
        self._metrics = metrics or MetricsCollector()
        self._stage = RunStage.IDLE

    @property
    def stage(self) -> RunStage:
        return self._stage

    def _advance(self, stage: RunStage) -> None:
        self._stage = stage
        log.info("sync.stage", stage=stage.value)

    async def run(self) -> RunReport:
        opts = self._options
        structlog.contextvars.bind_contextvars(
            group_id=self._group_id, group=self._source.group_label
        )
        try:
            return await self._run(opts)
        finally:
            structlog.contextvars.unbind_contextvars("group_id", "group")

    async def _run(self, opts: SyncConfig) -> RunReport:
        log.info(
            "sync.starting",
            rows=len(self._source.members),
            auto_provision=opts.auto_provision,
            dry_run=opts.dry_run,
            invite_to_all_orgs=opts.invite_to_all_orgs,
        )

        snapshot = await build_snapshot(
            self._client, self._group_id, self._source, opts.auto_provision
        )
        self._advance(RunStage.SNAPSHOT_BUILT)

        resolver = RoleResolver(snapshot.roles)
        diff = reconcile(snapshot, resolver, self._source.members)
        diff = MembershipDiff(
            additions=diff.additions if opts.add_new else (),
            removals=diff.removals if opts.delete_missing else (),
        )
        self._advance(RunStage.RECONCILED)
        self._log_diff(diff)

        if opts.dry_run:
            log.info("sync.dry_run", **diff.summary)
            self._advance(RunStage.DONE)
            return RunReport(stage=self._stage, dry_run=True, diff=diff)

        plan = plan_operations(
            snapshot,
            resolver,
            diff,
            auto_provision=opts.auto_provision,
            invite_to_all_orgs=opts.invite_to_all_orgs,
        )
        self._metrics.record_plan(plan)
        self._advance(RunStage.PLANNED)

        executor = QueueExecutor(self._client, opts.concurrency, self._metrics)

        self._advance(RunStage.EXECUTING_INDEPENDENT)
        independent = await executor.execute(plan.independent, name="independent")

        self._advance(RunStage.EXECUTING_DEPENDENT)
        dependent = await executor.execute(
            plan.dependent,
            name="dependent",
            prerequisites=frozenset(independent.succeeded),
        )

        self._advance(RunStage.DONE)
        report = RunReport(
            stage=self._stage,
            diff=diff,
            plan=plan,
            independent=independent,
            dependent=dependent,
        )
        log.info("sync.finished", dispatched=report.dispatched, **diff.summary)
        return report

    def _log_diff(self, diff: MembershipDiff) -> None:
        self._metrics.record_diff(diff)

        log.info("sync.memberships_to_add", count=len(diff.additions))
        for row in diff.additions:
            log.info(
                "sync.addition",
                org=row.org, email=row.user_email, role=row.role,
                user_exists_in_org=row.user_exists_in_org,
            )
        log.info("sync.memberships_to_remove", count=len(diff.removals))
        for i, row in enumerate(diff.removals, start=1):
            log.info(
                "sync.removal",
                position=f"{i}/{len(diff.removals)}",
                org=row.org, email=row.user_email, role=row.role,
            )
