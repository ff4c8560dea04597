"""promptbandit.learning: budget-constrained prompt component selection.

Public API:
    Learner             Orchestrator: select() before a turn, observe() after
    ThompsonSampling    Default SelectionStrategy
    SqlitePosteriorStore  Default PosteriorStore (aiosqlite, WAL)
    build_candidates    Runtime components -> Arms
    capture_run_trace   Turn outcome -> RunTrace
    update_posteriors   Observations -> Beta updates
"""

from promptbandit.learning.baseline import (
    generate_baseline_seed,
    recommended_baseline_rate,
    should_run_baseline,
    should_run_baseline_seeded,
)
from promptbandit.learning.beta import (
    BetaParams,
    CredibleInterval,
    RandomSource,
    beta_credible_interval,
    beta_mean,
    beta_variance,
    get_initial_prior,
    sample_beta,
    update_beta,
)
from promptbandit.learning.candidates import (
    DEFAULT_TOOL_TOKEN_COST,
    ContextFile,
    SkillEntry,
    ToolSpec,
    build_candidates,
    infer_tool_category,
)
from promptbandit.learning.errors import StoreError, StoreTimeoutError
from promptbandit.learning.guidance import build_excluded_tools_guidance
from promptbandit.learning.learner import (
    ComponentSelection,
    Learner,
    ObserveReport,
    get_learner,
    reset_learner,
)
from promptbandit.learning.references import ToolInvocation, detect_reference
from promptbandit.learning.report import (
    LearningSummary,
    PosteriorView,
    TracePage,
    confidence_bucket,
    learning_summary,
    posterior_views,
    token_series,
    trace_page,
)
from promptbandit.learning.reward import (
    BinaryReward,
    RewardModel,
    TernaryReward,
    reference_outcome,
)
from promptbandit.learning.store import (
    BaselineComparison,
    PosteriorStore,
    SqlitePosteriorStore,
    TokenBucket,
    TraceSummary,
)
from promptbandit.learning.strategy import SelectionStrategy, ThompsonSampling
from promptbandit.learning.trace import TurnOutcome, capture_run_trace, has_tool_activity
from promptbandit.learning.types import (
    Arm,
    ArmId,
    ArmOutcome,
    ArmPosterior,
    ArmSource,
    ArmType,
    Observation,
    RunTrace,
    SelectionContext,
    SelectionResult,
    TokenUsage,
    build_arm_id,
    parse_arm_id,
)
from promptbandit.learning.update import (
    PosteriorStats,
    UpdateReport,
    apply_trace,
    observations_from_trace,
    posterior_stats,
    replay_traces,
    update_posteriors,
)

__all__ = [
    # Orchestration
    "Learner",
    "ComponentSelection",
    "ObserveReport",
    "get_learner",
    "reset_learner",
    # Types
    "Arm",
    "ArmId",
    "ArmOutcome",
    "ArmPosterior",
    "ArmSource",
    "ArmType",
    "Observation",
    "RunTrace",
    "SelectionContext",
    "SelectionResult",
    "TokenUsage",
    "build_arm_id",
    "parse_arm_id",
    # Beta math
    "BetaParams",
    "CredibleInterval",
    "RandomSource",
    "beta_credible_interval",
    "beta_mean",
    "beta_variance",
    "get_initial_prior",
    "sample_beta",
    "update_beta",
    # Baseline
    "generate_baseline_seed",
    "recommended_baseline_rate",
    "should_run_baseline",
    "should_run_baseline_seeded",
    # Strategy
    "SelectionStrategy",
    "ThompsonSampling",
    # Store
    "PosteriorStore",
    "SqlitePosteriorStore",
    "TraceSummary",
    "BaselineComparison",
    "TokenBucket",
    "StoreError",
    "StoreTimeoutError",
    # Update
    "UpdateReport",
    "PosteriorStats",
    "update_posteriors",
    "observations_from_trace",
    "apply_trace",
    "replay_traces",
    "posterior_stats",
    "RewardModel",
    "BinaryReward",
    "TernaryReward",
    "reference_outcome",
    # Candidates
    "ToolSpec",
    "SkillEntry",
    "ContextFile",
    "DEFAULT_TOOL_TOKEN_COST",
    "build_candidates",
    "infer_tool_category",
    # Trace
    "TurnOutcome",
    "ToolInvocation",
    "capture_run_trace",
    "detect_reference",
    "has_tool_activity",
    # Query surface
    "LearningSummary",
    "PosteriorView",
    "TracePage",
    "confidence_bucket",
    "learning_summary",
    "posterior_views",
    "token_series",
    "trace_page",
    # Guidance
    "build_excluded_tools_guidance",
]
