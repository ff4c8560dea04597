"""Selection strategies: protocol and the Thompson Sampling implementation.

SelectionStrategy is the protocol. ThompsonSampling is the default
Beta-Bernoulli implementation with a counterfactual baseline, seed
arms, and cold-start surfacing of underexplored arms.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from promptbandit.config import DEFAULT_BASELINE_RATE, DEFAULT_MIN_PULLS, SEED_ARM_IDS
from promptbandit.learning.baseline import should_run_baseline
from promptbandit.learning.beta import (
    BetaParams,
    RandomSource,
    default_rng,
    get_initial_prior,
    sample_beta,
)
from promptbandit.learning.types import (
    Arm,
    ArmId,
    ArmPosterior,
    SelectionContext,
    SelectionResult,
)


@runtime_checkable
class SelectionStrategy(Protocol):
    """Protocol for budget-constrained arm selection."""

    def select(
        self,
        arms: Sequence[Arm],
        posteriors: Mapping[ArmId, ArmPosterior],
        context: SelectionContext,
        token_budget: int,
    ) -> SelectionResult:
        """Split arms into selected and excluded within token_budget."""
        ...


@dataclass
class _Ranked:
    arm: Arm
    score: float
    is_seed: bool
    is_underexplored: bool


class ThompsonSampling:
    """Beta-Bernoulli Thompson Sampling with greedy budget packing.

    Each arm's score is one draw from its posterior (or its source
    prior when nothing is stored yet). Arms are ranked seed first, then
    underexplored, then by score, and accepted first-fit while they fit
    the budget. No arm is skipped to make room for a cheaper one.
    """

    def __init__(
        self,
        baseline_rate: float = DEFAULT_BASELINE_RATE,
        min_pulls: int = DEFAULT_MIN_PULLS,
        seed_arm_ids: Iterable[ArmId] | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.baseline_rate = baseline_rate
        self.min_pulls = min_pulls
        self.seed_arm_ids = frozenset(SEED_ARM_IDS if seed_arm_ids is None else seed_arm_ids)
        self.rng = rng or default_rng()

    def select(
        self,
        arms: Sequence[Arm],
        posteriors: Mapping[ArmId, ArmPosterior],
        context: SelectionContext,
        token_budget: int,
    ) -> SelectionResult:
        if not arms:
            return SelectionResult(
                selected_arms=[],
                excluded_arms=[],
                is_baseline=False,
                total_token_budget=token_budget,
                used_tokens=0,
            )

        if should_run_baseline(self, self.rng):
            return self._select_in_order(arms, token_budget)

        ranked = [
            _Ranked(
                arm=arm,
                score=self.sample_score(arm, posteriors),
                is_seed=arm.id in self.seed_arm_ids,
                is_underexplored=self.is_underexplored(arm.id, posteriors),
            )
            for arm in arms
        ]
        # sorted() is stable: equal keys keep input order
        ranked.sort(key=lambda r: (not r.is_seed, not r.is_underexplored, -r.score))

        selected, excluded, used = _pack((r.arm for r in ranked), token_budget)
        return SelectionResult(
            selected_arms=selected,
            excluded_arms=excluded,
            is_baseline=False,
            total_token_budget=token_budget,
            used_tokens=used,
            scores={r.arm.id: r.score for r in ranked},
        )

    def _select_in_order(self, arms: Sequence[Arm], token_budget: int) -> SelectionResult:
        """Baseline run: input order, no sampling, same budget."""
        selected, excluded, used = _pack(arms, token_budget)
        return SelectionResult(
            selected_arms=selected,
            excluded_arms=excluded,
            is_baseline=True,
            total_token_budget=token_budget,
            used_tokens=used,
        )

    def sample_score(self, arm: Arm, posteriors: Mapping[ArmId, ArmPosterior]) -> float:
        """Draw from the posterior, not its mean: uncertain arms get explored."""
        posterior = posteriors.get(arm.id)
        if posterior is not None:
            params = BetaParams(alpha=posterior.alpha, beta=posterior.beta)
        else:
            params = get_initial_prior(arm.source)
        return sample_beta(params, self.rng)

    def is_underexplored(self, arm_id: ArmId, posteriors: Mapping[ArmId, ArmPosterior]) -> bool:
        posterior = posteriors.get(arm_id)
        return posterior is None or posterior.pulls < self.min_pulls


def _pack(arms: Iterable[Arm], token_budget: int) -> tuple[list[ArmId], list[ArmId], int]:
    selected: list[ArmId] = []
    excluded: list[ArmId] = []
    used = 0
    for arm in arms:
        if used + arm.token_cost <= token_budget:
            selected.append(arm.id)
            used += arm.token_cost
        else:
            excluded.append(arm.id)
    return selected, excluded, used
