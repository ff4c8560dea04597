"""Reference detection: was an included arm actually used this turn?"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from promptbandit.learning.types import Arm, ArmType


@dataclass(frozen=True)
class ToolInvocation:
    tool_name: str
    meta: str | None = None  # free-form summary of the call (args, target path)


def detect_reference(
    arm: Arm,
    assistant_texts: Sequence[str],
    tool_invocations: Sequence[ToolInvocation],
) -> bool:
    """Tools match by exact invoked name. Skills and files match by
    case-insensitive substring of their label in assistant text or in
    invocation meta."""
    if arm.type == ArmType.TOOL:
        return any(inv.tool_name == arm.label for inv in tool_invocations)

    needle = arm.label.lower()
    if not needle:
        return False
    if any(needle in text.lower() for text in assistant_texts):
        return True
    return any(inv.meta is not None and needle in inv.meta.lower() for inv in tool_invocations)
