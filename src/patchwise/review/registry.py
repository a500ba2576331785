from __future__ import annotations

import inspect
from typing import Dict, List, Optional, Sequence

from patchwise.host import ContentAccessor, DiagnosticsProvider, ReviewSurface
from patchwise.logger import logger
from patchwise.settings import ReviewSettings

from .session import (
    ReviewError,
    ReviewState,
    TerminalEvent,
    TerminalListener,
    begin_review,
    cancel,
)


class ReviewRegistry:
    """
    Tracks the review in progress for each path. A path has at most one pending
    review; it is released when that review's terminal event fires.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, ReviewState] = {}
        self._listeners: List[TerminalListener] = []

    def is_pending(self, path: str) -> bool:
        return path in self._sessions

    def get(self, path: str) -> Optional[ReviewState]:
        return self._sessions.get(path)

    def pending_paths(self) -> List[str]:
        return list(self._sessions.keys())

    def add_listener(self, listener: TerminalListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TerminalListener) -> None:
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    def start(
        self,
        path: str,
        baseline: Sequence[str],
        proposed: Sequence[str],
        *,
        accessor: Optional[ContentAccessor] = None,
        diagnostics: Optional[DiagnosticsProvider] = None,
        surface: Optional[ReviewSurface] = None,
        settings: Optional[ReviewSettings] = None,
    ) -> Optional[ReviewState]:
        if self.is_pending(path):
            raise ReviewError(f"A review is already pending for {path}")
        state = begin_review(
            path,
            baseline,
            proposed,
            accessor=accessor,
            diagnostics=diagnostics,
            surface=surface,
            settings=settings,
        )
        if state is None:
            return None
        state.listeners.append(self._on_terminal)
        self._sessions[path] = state
        return state

    async def _on_terminal(self, event: TerminalEvent) -> None:
        self._sessions.pop(event.path, None)
        for listener in list(self._listeners):
            try:
                res = listener(event)
                if inspect.isawaitable(res):
                    await res
            except Exception as exc:
                logger.exception("review registry listener exception", exc=exc)


async def discard_all(registry: ReviewRegistry) -> List[TerminalEvent]:
    """Cancel every pending review, restoring each baseline."""
    events: List[TerminalEvent] = []
    for path in registry.pending_paths():
        state = registry.get(path)
        if state is None:
            continue
        event = await cancel(state)
        if event is not None:
            events.append(event)
    if events:
        logger.info("pending reviews discarded", count=len(events))
    return events
