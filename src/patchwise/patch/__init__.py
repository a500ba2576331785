from __future__ import annotations

from typing import Optional, Sequence

from patchwise.settings import Settings

from .diff import Hunk, apply_hunks, diff, fingerprint, unified_diff  # noqa: F401
from .engine import (  # noqa: F401
    MSG_ALREADY_APPLIED,
    MSG_NO_REPLACEMENTS,
    ConvergenceGuard,
    PatchEngine,
)
from .formats import (  # noqa: F401
    decode_edits,
    get_supported_formats,
    get_system_instruction,
)
from .locator import BlockLocator, find_block, locate  # noqa: F401
from .models import (  # noqa: F401
    EditDecodeError,
    EditOperation,
    EditResult,
    EditStatus,
    Match,
    PatchError,
    PatchResult,
    Span,
)
from .syntax import SyntaxTreeProvider, language_for_path


def build_engine(
    settings: Optional[Settings] = None,
    syntax: Optional[SyntaxTreeProvider] = None,
    path: str = "",
) -> PatchEngine:
    """PatchEngine wired from Settings, with the structural stage keyed by path's language."""
    settings = settings or Settings()
    locator = BlockLocator(
        settings=settings.locator,
        syntax=syntax,
        language=language_for_path(path) if path else None,
    )
    return PatchEngine(locator=locator, settings=settings.patch)


def apply_edits(
    content: Sequence[str],
    edits: Sequence[EditOperation],
    *,
    path: str = "",
    settings: Optional[Settings] = None,
    syntax: Optional[SyntaxTreeProvider] = None,
) -> PatchResult:
    """Apply an edit batch to a line sequence with an engine configured from settings."""
    return build_engine(settings, syntax, path).apply(content, edits, path=path)
