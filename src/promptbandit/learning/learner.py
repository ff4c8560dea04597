"""Learner: per-turn orchestration of selection and feedback.

Composes candidate builder + strategy + store + reward model. Exposes
select(), observe(), observe_outcome(), posteriors(), summary() and
traces(). Emits observability events.

Nothing here raises into the agent turn. Selection fails open: when
the strategy or backend breaks, every candidate is included.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from promptbandit.config import LearningConfig, get_config
from promptbandit.learning.beta import RandomSource, default_rng
from promptbandit.learning.candidates import (
    ToolSpec,
    build_candidates,
    coerce_context_files,
    coerce_skills,
    coerce_tools,
    file_arm_id,
    skill_arm_id,
    tool_arm_id,
)
from promptbandit.learning.errors import StoreError
from promptbandit.learning.report import (
    DEFAULT_BUCKET_MS,
    LearningSummary,
    PosteriorView,
    TracePage,
    learning_summary,
    posterior_views,
    token_series,
    trace_page,
)
from promptbandit.learning.reward import RewardModel, TernaryReward
from promptbandit.learning.store import PosteriorStore, SqlitePosteriorStore, TokenBucket
from promptbandit.learning.strategy import SelectionStrategy, ThompsonSampling
from promptbandit.learning.trace import TurnOutcome, capture_run_trace, has_tool_activity
from promptbandit.learning.types import (
    Arm,
    ArmId,
    ArmPosterior,
    Observation,
    RunTrace,
    SelectionContext,
    SelectionResult,
)
from promptbandit.learning.update import UpdateReport, apply_trace, update_posteriors
from promptbandit.observability import emit
from promptbandit.observability.events import (
    LearningSelectionMade,
    LearningStoreFailed,
    LearningTraceCaptured,
)
from promptbandit.observability.logging import get_logger
from promptbandit.observability.tracing import traced


@dataclass
class ComponentSelection:
    """A selection mapped back onto the runtime's components."""

    selection: SelectionResult
    arms: list[Arm]
    selected_tools: list[ToolSpec]
    selected_skill_names: list[str]
    selected_file_paths: list[str]
    degraded: bool = False

    @property
    def excluded_arms(self) -> list[ArmId]:
        return self.selection.excluded_arms


@dataclass
class ObserveReport:
    trace: RunTrace | None
    update: UpdateReport = field(default_factory=UpdateReport)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def include_all(arms: Sequence[Arm], token_budget: int) -> SelectionResult:
    """Implicit baseline: every arm, regardless of budget."""
    return SelectionResult(
        selected_arms=[arm.id for arm in arms],
        excluded_arms=[],
        is_baseline=True,
        total_token_budget=token_budget,
        used_tokens=sum(arm.token_cost for arm in arms),
    )


class Learner:
    """Selects prompt components per turn and learns from what gets used.

    Usage::

        learner = Learner(LearningConfig(phase="active"), SqlitePosteriorStore(path))
        chosen = await learner.select(tools, skills, files, SelectionContext(session_key="s1"))
        # ... run the turn with chosen.selected_tools ...
        await learner.observe(chosen, turn, run_id="r1", session_id="s1")
    """

    def __init__(
        self,
        config: LearningConfig | None = None,
        store: PosteriorStore | None = None,
        strategy: SelectionStrategy | None = None,
        rng: RandomSource | None = None,
        reward_model: RewardModel | None = None,
    ) -> None:
        self.config = config or get_config()
        self.store = store or SqlitePosteriorStore(self.config.db_path)
        self.rng = rng or default_rng()
        self.strategy = strategy or ThompsonSampling(
            baseline_rate=self.config.baseline_rate,
            min_pulls=self.config.min_pulls,
            seed_arm_ids=self.config.seed_arm_ids,
            rng=self.rng,
        )
        self.reward_model = reward_model or TernaryReward()

    @property
    def name(self) -> str:
        return self.config.learner_name

    # -- Selection ----------------------------------------------------------

    @traced("learning.select")
    async def select(
        self,
        tools: Iterable[Any] | None = None,
        skill_entries: Iterable[Any] | None = None,
        context_files: Iterable[Any] | None = None,
        context: SelectionContext | None = None,
    ) -> ComponentSelection:
        """Choose which components go into this turn's prompt.

        Disabled or passive: everything is included. Active: Thompson
        Sampling over stored posteriors within the token budget.
        """
        ctx = context or SelectionContext()
        tool_specs = coerce_tools(tools)
        skills = coerce_skills(skill_entries)
        files = coerce_context_files(context_files)
        arms = build_candidates(tool_specs, skills, files)
        budget = self.config.token_budget
        degraded = False

        if not self.config.is_active:
            selection = include_all(arms, budget)
        else:
            try:
                posteriors = await self._load_posteriors()
                selection = self.strategy.select(arms, posteriors, ctx, budget)
            except Exception as exc:
                get_logger(__name__).warning(
                    "learning.select.degraded",
                    error=str(exc),
                    error_type=type(exc).__name__,
                    candidates=len(arms),
                )
                selection = include_all(arms, budget)
                degraded = True

        chosen = set(selection.selected_arms)
        result = ComponentSelection(
            selection=selection,
            arms=arms,
            selected_tools=[t for t in tool_specs if tool_arm_id(t.name) in chosen],
            selected_skill_names=[s.name for s in skills if skill_arm_id(s.name) in chosen],
            selected_file_paths=[f.path for f in files if file_arm_id(f.path) in chosen],
            degraded=degraded,
        )

        get_logger(__name__).debug(
            "learning.select.done",
            selected=len(selection.selected_arms),
            candidates=len(arms),
            used_tokens=selection.used_tokens,
            token_budget=budget,
            baseline=selection.is_baseline,
        )
        emit(LearningSelectionMade(
            learner=self.name,
            candidate_count=len(arms),
            selected_count=len(selection.selected_arms),
            excluded_count=len(selection.excluded_arms),
            is_baseline=selection.is_baseline,
            token_budget=budget,
            used_tokens=selection.used_tokens,
            phase=self.config.phase.value,
            degraded=degraded,
        ))
        return result

    async def _load_posteriors(self) -> dict[ArmId, ArmPosterior]:
        """Stored posteriors, or none (every arm on its prior) if the read fails."""
        try:
            return await self.store.load_posteriors()
        except StoreError as exc:
            get_logger(__name__).warning("learning.posteriors.unavailable", error=str(exc))
            emit(LearningStoreFailed(
                learner=self.name, operation=exc.operation, error=str(exc)
            ))
            return {}

    # -- Feedback -----------------------------------------------------------

    @traced("learning.observe")
    async def observe(
        self,
        selection: ComponentSelection,
        turn: TurnOutcome,
        run_id: str,
        session_id: str,
        context: SelectionContext | None = None,
    ) -> ObserveReport:
        """Record the turn's trace and, when allowed, update posteriors.

        Posteriors move only in the active phase, for turns that were
        not aborted or errored and that invoked at least one tool.
        """
        report = ObserveReport(trace=None)
        try:
            trace = capture_run_trace(
                selection.arms, selection.selection, turn, run_id, session_id, context
            )
            report.trace = trace

            try:
                await self.store.insert_trace(trace)
            except StoreError as exc:
                get_logger(__name__).warning(
                    "learning.trace.store_failed", trace_id=trace.trace_id, error=str(exc)
                )
                report.errors.append(str(exc))
                emit(LearningStoreFailed(
                    learner=self.name, operation=exc.operation, error=str(exc)
                ))

            emit(LearningTraceCaptured(
                learner=self.name,
                trace_id=trace.trace_id,
                run_id=run_id,
                arm_count=len(trace.arms),
                referenced_count=sum(1 for a in trace.arms if a.referenced),
                is_baseline=trace.is_baseline,
                aborted=trace.aborted,
                total_tokens=trace.usage.total,
            ))

            if self.config.enabled and has_tool_activity(turn):
                report.update = await apply_trace(
                    self.store, trace, self.config, reward_model=self.reward_model
                )
                report.errors.extend(
                    f"{arm_id}: {msg}" for arm_id, msg in report.update.failures.items()
                )
        except Exception as exc:
            get_logger(__name__).exception("learning.observe.failed", run_id=run_id)
            report.errors.append(f"{type(exc).__name__}: {exc}")

        return report

    async def observe_outcome(
        self,
        arm_id: ArmId,
        outcome: str = "",
        reward: float | None = None,
    ) -> UpdateReport:
        """One explicit observation, e.g. a user accepting or rejecting output.

        Without an explicit reward the outcome label is mapped through
        the reward model. Only the active phase learns; otherwise the
        report is empty. An out-of-range reward is reported as a failure
        for the arm.
        """
        if not self.config.is_active:
            get_logger(__name__).debug(
                "learning.outcome.skipped", arm_id=arm_id, phase=self.config.phase.value
            )
            return UpdateReport()
        value = reward if reward is not None else self.reward_model.compute(outcome)
        return await update_posteriors(
            self.store,
            [Observation(arm_id=arm_id, reward=value, outcome=outcome)],
            learner_name=self.name,
        )

    # -- Read paths ---------------------------------------------------------

    async def posteriors(self) -> list[PosteriorView]:
        stored = await self.store.load_posteriors()
        return posterior_views(stored, self.config.seed_arm_ids, self.config.min_pulls)

    async def summary(self) -> LearningSummary:
        return await learning_summary(self.store)

    async def traces(
        self, session_key: str | None = None, limit: int = 50, offset: int = 0
    ) -> TracePage:
        return await trace_page(self.store, session_key=session_key, limit=limit, offset=offset)

    async def token_series(self, bucket_ms: int = DEFAULT_BUCKET_MS) -> list[TokenBucket]:
        return await token_series(self.store, bucket_ms)

    async def close(self) -> None:
        await self.store.close()


# Process-wide default
_learner: Learner | None = None


def get_learner() -> Learner:
    """Get the process-wide Learner, built from get_config() on first use."""
    global _learner
    if _learner is None:
        _learner = Learner(get_config())
    return _learner


async def reset_learner() -> None:
    """Close and drop the process-wide Learner. For tests."""
    global _learner
    if _learner is not None:
        learner, _learner = _learner, None
        await learner.close()
