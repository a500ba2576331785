"""
Hunk-by-hunk review of a proposed change to one file.

A ReviewState holds the immutable baseline, the live buffer (`current`) and the
hunks still awaiting a decision. The functions below are the only way to move it
forward; every terminal path (last hunk resolved, accept_all, cancel, implicit
close) funnels into _finalize, which emits exactly one TerminalEvent.
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from patchwise.host import ContentAccessor, DiagnosticsProvider, ReviewSurface
from patchwise.logger import logger
from patchwise.patch.diff import Hunk, diff, fingerprint, unified_diff
from patchwise.settings import ReviewSettings


class ReviewError(RuntimeError):
    pass


class ReviewStatus(str, Enum):
    REVIEWING = "reviewing"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class TerminalAction(str, Enum):
    # All hunks resolved and the result persisted
    WRITTEN = "written"
    # All hunks resolved; result kept in memory only
    RESOLVED = "resolved"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class Direction(str, Enum):
    NEXT = "next"
    PREV = "prev"


class _Reason(Enum):
    RESOLVE = "resolve"
    CANCEL = "cancel"
    CLOSE = "close"


class TerminalEvent(BaseModel):
    """
    The single notification a review emits when it ends.
    """

    action: TerminalAction = Field(..., description="How the review ended")
    path: str = Field(..., description="Reviewed file path")
    diff: str = Field(..., description="Unified diff of baseline vs final content")
    diff_hash: str = Field(..., description="Fingerprint of diff")
    diagnostics_count: int = Field(
        default=0, description="Issues reported for the final content"
    )
    final_content: List[str] = Field(default_factory=list)
    persisted: bool = Field(
        default=False, description="Whether final_content was written back"
    )


TerminalListener = Callable[[TerminalEvent], Any]


@dataclass
class ReviewState:
    path: str
    baseline: Tuple[str, ...]
    current: List[str]
    pending_hunks: List[Hunk]
    settings: ReviewSettings = field(default_factory=ReviewSettings)
    accessor: Optional[ContentAccessor] = None
    diagnostics: Optional[DiagnosticsProvider] = None
    surface: Optional[ReviewSurface] = None
    status: ReviewStatus = ReviewStatus.REVIEWING
    terminal_fired: bool = False
    # 1-based line the reviewer is focused on
    cursor: int = 1
    event: Optional[TerminalEvent] = None
    listeners: List[TerminalListener] = field(default_factory=list)
    done: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def is_active(self) -> bool:
        return self.status == ReviewStatus.REVIEWING


def begin_review(
    path: str,
    baseline: Sequence[str],
    proposed: Sequence[str],
    *,
    accessor: Optional[ContentAccessor] = None,
    diagnostics: Optional[DiagnosticsProvider] = None,
    surface: Optional[ReviewSurface] = None,
    settings: Optional[ReviewSettings] = None,
) -> Optional[ReviewState]:
    """
    Start reviewing proposed against baseline. Returns None when there is nothing
    to review.
    """
    hunks = diff(baseline, proposed)
    if not hunks:
        logger.info("review skipped: no changes", path=path)
        return None

    state = ReviewState(
        path=path,
        baseline=tuple(baseline),
        current=list(proposed),
        pending_hunks=hunks,
        settings=settings or ReviewSettings(),
        accessor=accessor,
        diagnostics=diagnostics,
        surface=surface,
    )
    _render(state)
    _goto(state, hunks[0])
    logger.info("review started", path=path, hunks=len(hunks))
    return state


def _render(state: ReviewState) -> None:
    if state.surface is not None:
        state.surface.render(state)


def _goto(state: ReviewState, hunk: Optional[Hunk]) -> None:
    if hunk is None:
        return
    state.cursor = max(1, min(hunk.new_range.start_line, max(1, len(state.current))))
    if state.surface is not None:
        state.surface.focus(state.cursor)


def _require_active(state: ReviewState) -> None:
    if not state.is_active:
        raise ReviewError(f"Review of {state.path} already {state.status.value}")


def hunk_at(state: ReviewState, line: int) -> Optional[Hunk]:
    """Pending hunk covering line; a pure deletion is found at its insertion point."""
    for h in state.pending_hunks:
        rng = h.new_range
        if rng.start_line <= line <= rng.end_line:
            return h
        if not h.new_lines and line == min(rng.start_line, max(1, len(state.current))):
            return h
    return None


def hint_line(state: ReviewState, hunk: Hunk) -> int:
    """Line for the key hint: above the hunk, or the second line for a hunk at the top."""
    start = hunk.new_range.start_line
    if start > 1:
        return start - 1
    return 2 if len(state.current) >= 2 else 1


def _index_of(state: ReviewState, hunk: Optional[Hunk]) -> Optional[int]:
    if hunk is None:
        hunk = hunk_at(state, state.cursor)
        if hunk is None:
            return None
    for idx, h in enumerate(state.pending_hunks):
        if h is hunk:
            return idx
    raise ReviewError("Hunk is not pending in this review")


def navigate(state: ReviewState, direction: Direction) -> Optional[Hunk]:
    """Focus the nearest hunk after (or before) the cursor, wrapping around."""
    hunks = state.pending_hunks
    if not hunks:
        return None
    target: Optional[Hunk] = None
    if direction == Direction.NEXT:
        target = next((h for h in hunks if h.new_range.start_line > state.cursor), hunks[0])
    else:
        target = next(
            (h for h in reversed(hunks) if h.new_range.start_line < state.cursor),
            hunks[-1],
        )
    _goto(state, target)
    return target


async def _resolve(state: ReviewState, hunk: Optional[Hunk], keep_new: bool) -> Optional[Hunk]:
    _require_active(state)
    idx = _index_of(state, hunk)
    if idx is None:
        return None
    resolved = state.pending_hunks.pop(idx)
    if not keep_new:
        start = resolved.new_range.start_line - 1
        state.current[start : start + len(resolved.new_lines)] = resolved.old_lines
        delta = resolved.delta
        if delta:
            for later in state.pending_hunks[idx:]:
                later.new_range = later.new_range.shifted(delta)
    logger.debug(
        "hunk resolved",
        path=state.path,
        kept="theirs" if keep_new else "ours",
        remaining=len(state.pending_hunks),
    )

    if not state.pending_hunks:
        await _finalize(state, _Reason.RESOLVE)
        return resolved
    _render(state)
    navigate(state, Direction.NEXT)
    return resolved


async def accept(state: ReviewState, hunk: Optional[Hunk] = None) -> Optional[Hunk]:
    """Keep a hunk's proposed lines. Without a hunk, acts on the one under the cursor."""
    return await _resolve(state, hunk, keep_new=True)


async def revert(state: ReviewState, hunk: Optional[Hunk] = None) -> Optional[Hunk]:
    """Restore a hunk's baseline lines and shift the hunks after it."""
    return await _resolve(state, hunk, keep_new=False)


async def accept_all(state: ReviewState) -> Optional[TerminalEvent]:
    _require_active(state)
    state.pending_hunks.clear()
    return await _finalize(state, _Reason.RESOLVE)


async def cancel(state: ReviewState) -> Optional[TerminalEvent]:
    """Drop every pending hunk and restore the baseline. No-op once the review ended."""
    if not state.is_active:
        return None
    return await _finalize(state, _Reason.CANCEL)


async def close(state: ReviewState) -> Optional[TerminalEvent]:
    """
    The host tore the review surface down without a decision. With nothing pending
    this resolves (persisting if possible); otherwise the review is closed with
    whatever content it has.
    """
    if not state.is_active:
        return None
    return await _finalize(state, _Reason.CLOSE)


async def wait_terminal(state: ReviewState) -> TerminalEvent:
    await state.done.wait()
    if state.event is None:
        raise ReviewError(f"Review of {state.path} ended without a terminal event")
    return state.event


def _persist(state: ReviewState) -> Optional[bool]:
    """True if written, False if the write failed, None without an accessor."""
    if state.accessor is None:
        return None
    try:
        state.accessor.write(state.path, state.current)
    except Exception as e:
        logger.warning("review persist failed", path=state.path, err=str(e))
        return False
    return True


async def count_diagnostics(
    provider: Optional[DiagnosticsProvider],
    path: str,
    lines: Sequence[str],
    timeout: float,
) -> int:
    """Issue count for lines, or 0 if the provider is missing, slow or failing."""
    if provider is None:
        return 0
    try:
        return await asyncio.wait_for(provider.count(path, list(lines)), timeout=timeout)
    except asyncio.TimeoutError:
        logger.debug("diagnostics timed out", path=path)
    except Exception as e:
        logger.warning("diagnostics failed", path=path, err=str(e))
    return 0


async def _finalize(state: ReviewState, reason: _Reason) -> Optional[TerminalEvent]:
    if state.terminal_fired:
        return None
    # Set before the first await so a racing path cannot fire a second event
    state.terminal_fired = True

    persisted = False
    if reason == _Reason.CANCEL:
        state.pending_hunks.clear()
        state.current = list(state.baseline)
        status, action = ReviewStatus.CANCELLED, TerminalAction.CANCELLED
    elif reason == _Reason.CLOSE and state.pending_hunks:
        status, action = ReviewStatus.CLOSED, TerminalAction.CLOSED
    else:
        written = _persist(state)
        persisted = bool(written)
        if written:
            status, action = ReviewStatus.RESOLVED, TerminalAction.WRITTEN
        elif written is False and reason == _Reason.CLOSE:
            status, action = ReviewStatus.CLOSED, TerminalAction.CLOSED
        else:
            status, action = ReviewStatus.RESOLVED, TerminalAction.RESOLVED
    state.status = status

    if state.surface is not None:
        state.surface.clear()

    diff_text = unified_diff(state.baseline, state.current, state.path)
    diagnostics_count = await count_diagnostics(
        state.diagnostics,
        state.path,
        state.current,
        state.settings.diagnostics_timeout_s,
    )
    event = TerminalEvent(
        action=action,
        path=state.path,
        diff=diff_text,
        diff_hash=fingerprint(diff_text),
        diagnostics_count=diagnostics_count,
        final_content=list(state.current),
        persisted=persisted,
    )
    state.event = event
    logger.info(
        "review finished",
        path=state.path,
        action=action.value,
        diagnostics=diagnostics_count,
    )

    for listener in list(state.listeners):
        try:
            res = listener(event)
            if inspect.isawaitable(res):
                await res
        except Exception as exc:
            logger.exception("review listener exception", exc=exc)
    state.done.set()
    return event
