"""Read-only query surface over learning state.

Shapes consumed by status commands and dashboards. Nothing here writes.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from typing import Any

from promptbandit.config import DEFAULT_MIN_PULLS, SEED_ARM_IDS
from promptbandit.learning.beta import BetaParams, beta_credible_interval
from promptbandit.learning.store import (
    BaselineComparison,
    PosteriorStore,
    TokenBucket,
    TraceSummary,
)
from promptbandit.learning.types import ArmId, ArmPosterior, RunTrace

LOW_CONFIDENCE_PULLS = 5
HIGH_CONFIDENCE_PULLS = 20
DEFAULT_BUCKET_MS = 60 * 60 * 1000


def confidence_bucket(pulls: int) -> str:
    if pulls >= HIGH_CONFIDENCE_PULLS:
        return "high"
    if pulls >= LOW_CONFIDENCE_PULLS:
        return "medium"
    return "low"


@dataclass(frozen=True)
class PosteriorView:
    arm_id: ArmId
    alpha: float
    beta: float
    mean: float
    lower: float  # 95% credible interval
    upper: float
    pulls: int
    last_updated: int
    confidence: str
    is_seed: bool
    is_underexplored: bool

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def posterior_views(
    posteriors: Mapping[ArmId, ArmPosterior],
    seed_arm_ids: Iterable[ArmId] = SEED_ARM_IDS,
    min_pulls: int = DEFAULT_MIN_PULLS,
) -> list[PosteriorView]:
    """One view per stored posterior, best mean first."""
    seeds = frozenset(seed_arm_ids)
    views = []
    for posterior in posteriors.values():
        ci = beta_credible_interval(BetaParams(posterior.alpha, posterior.beta))
        views.append(PosteriorView(
            arm_id=posterior.arm_id,
            alpha=posterior.alpha,
            beta=posterior.beta,
            mean=posterior.mean,
            lower=ci.lower,
            upper=ci.upper,
            pulls=posterior.pulls,
            last_updated=posterior.last_updated,
            confidence=confidence_bucket(posterior.pulls),
            is_seed=posterior.arm_id in seeds,
            is_underexplored=posterior.pulls < min_pulls,
        ))
    views.sort(key=lambda v: (-v.mean, v.arm_id))
    return views


@dataclass(frozen=True)
class LearningSummary:
    summary: TraceSummary
    baseline: BaselineComparison

    def to_dict(self) -> dict[str, Any]:
        return {"summary": asdict(self.summary), "baseline": asdict(self.baseline)}


async def learning_summary(store: PosteriorStore) -> LearningSummary:
    return LearningSummary(
        summary=await store.summary(),
        baseline=await store.baseline_comparison(),
    )


@dataclass(frozen=True)
class TracePage:
    traces: list[RunTrace]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + len(self.traces) < self.total

    def to_dict(self) -> dict[str, Any]:
        return {
            "traces": [t.to_dict() for t in self.traces],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


async def trace_page(
    store: PosteriorStore,
    session_key: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> TracePage:
    """Newest-first page of traces plus the unpaged total."""
    limit = max(limit, 0)
    offset = max(offset, 0)
    traces = await store.list_traces(session_key=session_key, limit=limit, offset=offset)
    total = await store.count_traces(session_key=session_key)
    return TracePage(traces=traces, total=total, limit=limit, offset=offset)


async def token_series(
    store: PosteriorStore, bucket_ms: int = DEFAULT_BUCKET_MS
) -> list[TokenBucket]:
    """Token totals per time bucket, split into baseline and selected runs."""
    return await store.token_series(bucket_ms)
