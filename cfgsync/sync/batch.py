"""Batched, partially-failing sync runs and their reports."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from .errors import AuthFailure
from .store import SyncPair
from .unit import Direction, FileSyncUnit, OutcomeKind, TransferOutcome

logger = logging.getLogger("cfgsync.sync.batch")

DEFAULT_BATCH_SIZE = 5

ProgressCallback = Callable[[str, int, int], None]


@dataclass(frozen=True)
class FailureRecord:
    path: str
    error: str


@dataclass(frozen=True)
class BatchReport:
    """Summary of a completed run. Immutable."""

    direction: Direction
    success_count: int
    failure_count: int
    skipped_count: int
    total_count: int
    failures: Tuple[FailureRecord, ...] = ()
    outcome_counts: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    @property
    def ok(self) -> bool:
        return self.failure_count == 0

    def summary(self) -> str:
        parts = [
            f"succeeded: {self.success_count}",
            f"failed: {self.failure_count}",
        ]
        if self.skipped_count:
            parts.append(f"missing remotely: {self.skipped_count}")
        parts.append(f"total: {self.total_count}")
        return ", ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "direction": self.direction.value,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "skipped_count": self.skipped_count,
            "total_count": self.total_count,
            "failures": [{"path": f.path, "error": f.error} for f in self.failures],
            "outcome_counts": dict(self.outcome_counts),
        }


class ReportBuilder:
    """Accumulates outcomes from concurrently finishing units."""

    def __init__(self, direction: Direction, total: int) -> None:
        self.direction = direction
        self.total = total
        self._lock = asyncio.Lock()
        self._success = 0
        self._skipped = 0
        self._failures: List[FailureRecord] = []
        self._kinds: Counter = Counter()

    async def record(self, outcome: TransferOutcome) -> None:
        async with self._lock:
            if outcome.succeeded:
                self._success += 1
                self._kinds[outcome.kind.value] += 1
            elif self.direction is Direction.PULL and outcome.remote_absent:
                # A remote file that was never pushed is a steady state, not an error.
                self._skipped += 1
                self._kinds["missing_remote"] += 1
            else:
                self._failures.append(FailureRecord(outcome.path, outcome.reason))
                self._kinds[OutcomeKind.FAILED.value] += 1

    def freeze(self) -> BatchReport:
        return BatchReport(
            direction=self.direction,
            success_count=self._success,
            failure_count=len(self._failures),
            skipped_count=self._skipped,
            total_count=self.total,
            failures=tuple(self._failures),
            outcome_counts=MappingProxyType(dict(self._kinds)),
        )


def partition(pairs: Sequence[SyncPair], size: int) -> Iterator[Sequence[SyncPair]]:
    """Contiguous slices of ``size``; the last one may be shorter."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    for start in range(0, len(pairs), size):
        yield pairs[start:start + size]


class BatchCoordinator:
    """Runs sync units batch by batch, concurrently within a batch."""

    def __init__(
        self,
        unit: FileSyncUnit,
        batch_size: int = DEFAULT_BATCH_SIZE,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self.unit = unit
        self.batch_size = batch_size
        self.progress_callback = progress_callback

    async def run(
        self,
        pairs: Sequence[SyncPair],
        direction: Direction,
        force: bool,
    ) -> BatchReport:
        pairs = list(pairs)
        self._warn_duplicates(pairs)
        builder = ReportBuilder(direction, len(pairs))
        logger.info("Starting %s of %d file(s) (force=%s)", direction.value, len(pairs), force)

        done = 0
        for batch in partition(pairs, self.batch_size):
            self._report_progress(
                f"{direction.value} {done + 1}-{done + len(batch)}/{len(pairs)}",
                done,
                len(pairs),
            )
            results = await asyncio.gather(
                *(self._run_one(pair, direction, force, builder) for pair in batch),
                return_exceptions=True,
            )
            done += len(batch)
            # Fatal errors only surface once every sibling in the batch has settled.
            for result in results:
                if isinstance(result, AuthFailure):
                    logger.error("Aborting %s: %s", direction.value, result)
                    raise result
                if isinstance(result, BaseException):
                    raise result

        report = builder.freeze()
        self._report_progress(f"{direction.value} complete", len(pairs), len(pairs))
        if report.ok:
            logger.info("%s finished: %s", direction.value.capitalize(), report.summary())
        else:
            logger.warning("%s finished with failures: %s", direction.value.capitalize(), report.summary())
            for failure in report.failures:
                logger.warning("  %s: %s", failure.path, failure.error)
        return report

    async def _run_one(
        self,
        pair: SyncPair,
        direction: Direction,
        force: bool,
        builder: ReportBuilder,
    ) -> TransferOutcome:
        try:
            outcome = await self.unit.sync(pair, direction, force)
        except AuthFailure:
            raise
        except Exception as exc:
            logger.exception("Unexpected error syncing %s", pair.remote_path)
            outcome = TransferOutcome.failed(pair.remote_path, exc)
        await builder.record(outcome)
        return outcome

    def _warn_duplicates(self, pairs: Sequence[SyncPair]) -> None:
        counts = Counter(pair.remote_path for pair in pairs)
        for path, count in counts.items():
            if count > 1:
                logger.warning("Remote path %s appears %d times; later writes win", path, count)

    def _report_progress(self, message: str, current: int, total: int) -> None:
        if self.progress_callback:
            self.progress_callback(message, current, total)
        logger.debug("Sync progress: %s (%d/%d)", message, current, total)


__all__ = [
    "BatchCoordinator",
    "BatchReport",
    "FailureRecord",
    "ReportBuilder",
    "partition",
    "DEFAULT_BATCH_SIZE",
]
