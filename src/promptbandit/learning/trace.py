"""Trace capture: turn outcome + selection -> immutable RunTrace."""

from __future__ import annotations

import time
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field

from promptbandit.learning.references import ToolInvocation, detect_reference
from promptbandit.learning.types import (
    Arm,
    ArmOutcome,
    RunTrace,
    SelectionContext,
    SelectionResult,
    TokenUsage,
)


@dataclass(frozen=True)
class TurnOutcome:
    """What the runtime reports after a turn finishes."""

    assistant_texts: tuple[str, ...] = ()
    tool_invocations: tuple[ToolInvocation, ...] = ()
    usage: TokenUsage = field(default_factory=TokenUsage)
    duration_ms: int | None = None
    system_prompt_chars: int = 0
    aborted: bool = False
    error: str | None = None


def has_tool_activity(turn: TurnOutcome) -> bool:
    """Turns without any tool call carry no usage signal for arms."""
    return len(turn.tool_invocations) > 0


def capture_run_trace(
    arms: Sequence[Arm],
    selection: SelectionResult,
    turn: TurnOutcome,
    run_id: str,
    session_id: str,
    context: SelectionContext | None = None,
    now: int | None = None,
) -> RunTrace:
    """One ArmOutcome per candidate arm, in candidate order.

    Excluded arms are recorded with referenced=False: whatever the
    agent said about them, they were not in its context.
    """
    ctx = context or SelectionContext()
    selected = set(selection.selected_arms)
    outcomes = tuple(
        ArmOutcome(
            arm_id=arm.id,
            included=arm.id in selected,
            referenced=arm.id in selected
            and detect_reference(arm, turn.assistant_texts, turn.tool_invocations),
            token_cost=arm.token_cost,
        )
        for arm in arms
    )
    return RunTrace(
        trace_id=str(uuid.uuid4()),
        run_id=run_id,
        session_id=session_id,
        timestamp=now if now is not None else int(time.time() * 1000),
        is_baseline=selection.is_baseline,
        arms=outcomes,
        usage=turn.usage,
        system_prompt_chars=turn.system_prompt_chars,
        session_key=ctx.session_key,
        provider=ctx.provider,
        model=ctx.model,
        channel=ctx.channel,
        context=ctx.to_dict(),
        duration_ms=turn.duration_ms,
        aborted=turn.aborted,
        error=turn.error,
    )
