"""Prompt guidance naming the tools the selector excluded this turn."""

from __future__ import annotations

from collections.abc import Iterable

from promptbandit.learning.types import ArmId, ArmType, parse_arm_id


def build_excluded_tools_guidance(excluded_arms: Iterable[ArmId] | None) -> str | None:
    """Prompt fragment naming excluded tools; None when no tool was excluded."""
    names = []
    for arm_id in excluded_arms or ():
        parsed = parse_arm_id(arm_id)
        if parsed is not None and parsed.type == ArmType.TOOL:
            names.append(parsed.label)

    if not names:
        return None

    return (
        f"Note: The following tools are currently unavailable: {', '.join(names)}. "
        "If the user requests a capability that requires an unavailable tool, "
        "briefly explain that the capability is temporarily unavailable and "
        "suggest alternatives or ask them to try again later."
    )
