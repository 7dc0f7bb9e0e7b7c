"""
Bounded-concurrency dispatch of planned operations.

Each operation's failure is logged and recorded; it never cancels siblings.
Operations gated on a prerequisite only run if that prerequisite succeeded in
an earlier queue. Retry and rate limiting belong to the directory client.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Collection, Optional, Sequence

import structlog

from .errors import DirectoryRequestError
from .metrics import MetricsCollector, Outcome
from .models import PlannedOperation
from .snapshot import Requester

log = structlog.get_logger()

DEFAULT_CONCURRENCY = 10


@dataclass
class ExecutionReport:
    total: int = 0
    succeeded: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    results: dict[str, Any] = field(default_factory=dict)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "total": self.total,
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }


class QueueExecutor:
    """Runs a queue of operations with at most `concurrency` requests in flight."""

    def __init__(
        self,
        client: Requester,
        concurrency: int = DEFAULT_CONCURRENCY,
        metrics: Optional[MetricsCollector] = None,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._client = client
        self._concurrency = concurrency
        self._metrics = metrics

    async def execute(
        self,
        queue: Sequence[PlannedOperation],
        name: str = "queue",
        prerequisites: Collection[str] = (),
    ) -> ExecutionReport:
        """Dispatch every operation in `queue` and wait for all outcomes."""
        report = ExecutionReport(total=len(queue))
        if not queue:
            return report

        log.info("executor.processing", queue=name, requests=len(queue))
        semaphore = asyncio.Semaphore(self._concurrency)
        completed = 0

        def advance() -> None:
            nonlocal completed
            completed += 1
            log.info("executor.progress", queue=name, progress=f"{completed}/{len(queue)}")

        async def dispatch(op: PlannedOperation) -> None:
            if op.depends_on is not None and op.depends_on not in prerequisites:
                log.warning(
                    "executor.prerequisite_not_met",
                    op_id=op.op_id, depends_on=op.depends_on, url=op.url,
                )
                report.skipped.append(op.op_id)
                self._record(op, Outcome.SKIPPED)
                advance()
                return

            async with semaphore:
                try:
                    log.debug("executor.dispatch", op_id=op.op_id, verb=op.verb, url=op.url)
                    result = await self._client.request(
                        op.verb, op.url, op.body, use_rest_api=op.use_rest_api
                    )
                except DirectoryRequestError as exc:
                    log.error(
                        "executor.operation_failed",
                        op_id=op.op_id, verb=op.verb, url=op.url, error=exc.data.message,
                    )
                    report.failed.append(op.op_id)
                    self._record(op, Outcome.FAILED)
                except Exception as exc:
                    log.exception(
                        "executor.operation_error",
                        op_id=op.op_id, verb=op.verb, url=op.url, error=str(exc),
                    )
                    report.failed.append(op.op_id)
                    self._record(op, Outcome.FAILED)
                else:
                    report.succeeded.append(op.op_id)
                    report.results[op.op_id] = result
                    self._record(op, Outcome.SUCCEEDED)

            advance()

        await asyncio.gather(*(dispatch(op) for op in queue))
        log.info("executor.done", queue=name, **report.summary)
        return report

    def _record(self, op: PlannedOperation, outcome: Outcome) -> None:
        if self._metrics:
            self._metrics.record_operation(op.kind, outcome)
