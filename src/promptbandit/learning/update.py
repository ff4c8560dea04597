"""Posterior updates: apply observed rewards to stored Beta posteriors.

Trace feedback:
    included + referenced      -> "referenced"   (1.0 by default)
    included + not referenced  -> "unreferenced" (0.0 by default)
    excluded                   -> no update (counterfactual not observed)

Each arm is loaded, updated and saved on its own, so a store failure
for one arm never stops the others.
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field

from promptbandit.config import LearningConfig, Phase
from promptbandit.learning.beta import BetaParams, get_initial_prior, update_beta
from promptbandit.learning.errors import StoreError
from promptbandit.learning.report import confidence_bucket
from promptbandit.learning.reward import RewardModel, TernaryReward, reference_outcome
from promptbandit.learning.store import PosteriorStore
from promptbandit.learning.types import (
    ArmId,
    ArmPosterior,
    ArmSource,
    Observation,
    RunTrace,
    arm_source,
    parse_arm_id,
)
from promptbandit.observability import emit
from promptbandit.observability.events import (
    LearningObservationRecorded,
    LearningPosteriorUpdated,
    LearningStoreFailed,
)
from promptbandit.observability.logging import get_logger


@dataclass
class UpdateReport:
    updated: int = 0  # existing posteriors changed
    created: int = 0  # posteriors created from a prior
    failures: dict[ArmId, str] = field(default_factory=dict)

    def merge(self, other: UpdateReport) -> UpdateReport:
        return UpdateReport(
            updated=self.updated + other.updated,
            created=self.created + other.created,
            failures={**self.failures, **other.failures},
        )


@dataclass(frozen=True)
class PosteriorStats:
    mean: float
    pulls: int
    confidence: str  # "low" | "medium" | "high"


def infer_prior(arm_id: ArmId) -> BetaParams:
    """Prior by arm source; unparseable ids get the curated prior."""
    parsed = parse_arm_id(arm_id)
    if parsed is None:
        return get_initial_prior(ArmSource.CURATED)
    return get_initial_prior(arm_source(parsed.type))


async def update_posteriors(
    store: PosteriorStore,
    observations: Iterable[Observation],
    now: int | None = None,
    learner_name: str = "promptbandit",
) -> UpdateReport:
    """Apply each observation as one conjugate update and persist it.

    Rewards outside [0, 1] are rejected into ``failures`` for that arm.
    """
    now = now if now is not None else int(time.time() * 1000)
    report = UpdateReport()

    for obs in observations:
        if not (math.isfinite(obs.reward) and 0.0 <= obs.reward <= 1.0):
            get_logger(__name__).warning(
                "learning.update.rejected", arm_id=obs.arm_id, reward=obs.reward
            )
            report.failures[obs.arm_id] = f"reward must be in [0, 1], got {obs.reward}"
            continue
        try:
            existing = await store.get_posterior(obs.arm_id)
            if existing is not None:
                params = update_beta(BetaParams(existing.alpha, existing.beta), obs.reward)
                pulls = existing.pulls + 1
            else:
                params = update_beta(infer_prior(obs.arm_id), obs.reward)
                pulls = 1
            posterior = ArmPosterior(
                arm_id=obs.arm_id,
                alpha=params.alpha,
                beta=params.beta,
                pulls=pulls,
                last_updated=now,
            )
            await store.save_posterior(posterior)
        except StoreError as exc:
            get_logger(__name__).warning(
                "learning.update.failed", arm_id=obs.arm_id, error=str(exc)
            )
            report.failures[obs.arm_id] = str(exc)
            emit(LearningStoreFailed(
                learner=learner_name,
                operation=exc.operation,
                error=str(exc),
                arm_id=obs.arm_id,
            ))
            continue

        if existing is not None:
            report.updated += 1
        else:
            report.created += 1

        emit(LearningObservationRecorded(
            learner=learner_name,
            arm_id=obs.arm_id,
            reward=obs.reward,
            outcome=obs.outcome,
        ))
        emit(LearningPosteriorUpdated(
            learner=learner_name,
            arm_id=posterior.arm_id,
            alpha=posterior.alpha,
            beta=posterior.beta,
            pulls=posterior.pulls,
            mean=posterior.mean,
        ))

    get_logger(__name__).debug(
        "learning.update.done",
        updated=report.updated,
        created=report.created,
        failed=len(report.failures),
    )
    return report


def observations_from_trace(
    trace: RunTrace, reward_model: RewardModel | None = None
) -> list[Observation]:
    """Included arms only, scored by their reference outcome."""
    model = reward_model or TernaryReward()
    observations = []
    for arm in trace.arms:
        if not arm.included:
            continue
        outcome = reference_outcome(arm.referenced)
        observations.append(
            Observation(arm_id=arm.arm_id, reward=model.compute(outcome), outcome=outcome)
        )
    return observations


async def apply_trace(
    store: PosteriorStore,
    trace: RunTrace,
    config: LearningConfig,
    now: int | None = None,
    reward_model: RewardModel | None = None,
) -> UpdateReport:
    """Update posteriors from one trace.

    Passive phase, aborted runs and errored runs produce an empty report.
    """
    if config.phase != Phase.ACTIVE:
        return UpdateReport()
    if trace.aborted or trace.error:
        get_logger(__name__).debug(
            "learning.update.skipped", run_id=trace.run_id, reason="aborted_or_errored"
        )
        return UpdateReport()
    return await update_posteriors(
        store,
        observations_from_trace(trace, reward_model),
        now=now,
        learner_name=config.learner_name,
    )


async def replay_traces(
    store: PosteriorStore,
    traces: Iterable[RunTrace],
    config: LearningConfig,
    reward_model: RewardModel | None = None,
) -> UpdateReport:
    """Bootstrap posteriors from historic traces, in the order given."""
    report = UpdateReport()
    for trace in traces:
        report = report.merge(
            await apply_trace(store, trace, config, reward_model=reward_model)
        )
    return report


def posterior_stats(
    posteriors: Mapping[ArmId, ArmPosterior], arm_id: ArmId
) -> PosteriorStats | None:
    posterior = posteriors.get(arm_id)
    if posterior is None:
        return None
    return PosteriorStats(
        mean=posterior.mean,
        pulls=posterior.pulls,
        confidence=confidence_bucket(posterior.pulls),
    )
