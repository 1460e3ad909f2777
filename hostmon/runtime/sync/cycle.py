from __future__ import annotations

"""Fan-out join for one refresh cycle.

Each metric kind is fetched independently; :func:`settle` waits for every
request to finish and reports success or failure per kind without letting
one failure cancel the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Mapping

from . import metrics as sync_metrics
from .kinds import MetricKind

logger = logging.getLogger(__name__)

HISTORICAL = "historical"
INCREMENTAL = "incremental"


@dataclass
class KindOutcome:
    kind: MetricKind
    mode: str
    samples: list[dict[str, Any]] = field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class CycleReport:
    """What one cycle did, returned to the scheduler."""

    mode: str
    generation: int
    outcomes: dict[MetricKind, KindOutcome] = field(default_factory=dict)
    discarded: bool = False
    applied_points: int = 0

    @property
    def failed_kinds(self) -> list[MetricKind]:
        return [kind for kind, outcome in self.outcomes.items() if not outcome.ok]

    @property
    def all_failed(self) -> bool:
        return bool(self.outcomes) and len(self.failed_kinds) == len(self.outcomes)


async def settle(
    requests: Mapping[MetricKind, tuple[str, Awaitable[list[dict[str, Any]]]]],
) -> dict[MetricKind, KindOutcome]:
    """Await every request and return one :class:`KindOutcome` per kind."""

    kinds = list(requests)
    for kind in kinds:
        sync_metrics.observe_fetch(kind.value, requests[kind][0])
    results = await asyncio.gather(
        *(requests[kind][1] for kind in kinds), return_exceptions=True
    )
    outcomes: dict[MetricKind, KindOutcome] = {}
    for kind, result in zip(kinds, results):
        mode = requests[kind][0]
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            sync_metrics.observe_fetch_failure(kind.value, mode)
            logger.warning(
                "sync.fetch.failed",
                extra={"kind": kind.value, "mode": mode, "error": str(result)},
            )
            outcomes[kind] = KindOutcome(kind=kind, mode=mode, error=str(result) or type(result).__name__)
            continue
        outcomes[kind] = KindOutcome(kind=kind, mode=mode, samples=list(result))
    return outcomes


__all__ = ["CycleReport", "HISTORICAL", "INCREMENTAL", "KindOutcome", "settle"]
