"""PromptbanditEventLinker: isolated event namespace for promptbandit.

All promptbandit subscribers register here. Separate from any other
pyventus usage in the host process.
"""

from __future__ import annotations

from pyventus.events import EventLinker


class PromptbanditEventLinker(EventLinker):
    """Isolated event namespace for promptbandit observability."""

    pass
