import asyncio
from typing import List, Optional, Sequence

import pytest

from patchwise.host import (
    BufferFirstContentAccessor,
    ContentAccessor,
    ReviewSurface,
    StaticDiagnostics,
)
from patchwise.patch import fingerprint
from patchwise.review import (
    Direction,
    ReviewError,
    ReviewStatus,
    TerminalAction,
    TerminalEvent,
    accept,
    accept_all,
    begin_review,
    cancel,
    close,
    hint_line,
    hunk_at,
    navigate,
    revert,
    wait_terminal,
)
from patchwise.settings import ReviewSettings


BASELINE = ["a", "b", "c", "d", "e", "f", "g"]
PROPOSED = ["a", "B1", "B2", "c", "d", "g", "h"]


class RecordingSurface(ReviewSurface):
    def __init__(self) -> None:
        self.renders = 0
        self.focused: List[int] = []
        self.cleared = 0

    def render(self, state) -> None:
        self.renders += 1

    def focus(self, line: int) -> None:
        self.focused.append(line)

    def clear(self) -> None:
        self.cleared += 1


class FailingAccessor(ContentAccessor):
    def read(self, path: str) -> Optional[List[str]]:
        return None

    def write(self, path: str, lines: Sequence[str]) -> None:
        raise OSError("disk full")


class SlowDiagnostics(StaticDiagnostics):
    async def count(self, path: str, lines: Sequence[str]) -> int:
        await asyncio.sleep(10)
        return 99


def _start(**kwargs):
    state = begin_review("f.txt", BASELINE, PROPOSED, **kwargs)
    assert state is not None
    return state


def test_no_changes_never_enters_review():
    assert begin_review("f.txt", ["a"], ["a"]) is None


def test_begin_review_builds_hunks_and_focuses_first():
    surface = RecordingSurface()
    state = _start(surface=surface)
    assert state.status == ReviewStatus.REVIEWING
    assert state.current == PROPOSED
    assert state.baseline == tuple(BASELINE)
    assert [h.new_range.start_line for h in state.pending_hunks] == [2, 6, 7]
    assert surface.renders == 1
    assert surface.focused == [2]
    assert state.cursor == 2


def test_hunk_at_and_hint_line():
    state = _start()
    first, deletion, insertion = state.pending_hunks
    assert hunk_at(state, 3) is first
    assert hunk_at(state, 4) is None
    # Pure deletion of e/f sits right before line 6
    assert deletion.new_lines == []
    assert hunk_at(state, 6) is deletion
    assert hunk_at(state, 7) is insertion
    assert hint_line(state, first) == 1
    assert hint_line(state, insertion) == 6

    top = begin_review("t.txt", ["x", "y"], ["X", "y"])
    assert top is not None
    assert hint_line(top, top.pending_hunks[0]) == 2


def test_navigate_wraps_around():
    surface = RecordingSurface()
    state = _start(surface=surface)
    assert navigate(state, Direction.NEXT) is state.pending_hunks[1]
    assert navigate(state, Direction.NEXT) is state.pending_hunks[2]
    assert navigate(state, Direction.NEXT) is state.pending_hunks[0]
    assert navigate(state, Direction.PREV) is state.pending_hunks[2]
    assert surface.focused[-1] == 7
    assert state.current == PROPOSED


@pytest.mark.asyncio
async def test_revert_shifts_later_hunks():
    state = _start()
    first = state.pending_hunks[0]
    await revert(state, first)
    assert state.current == ["a", "b", "c", "d", "g", "h"]
    assert [h.new_range.start_line for h in state.pending_hunks] == [5, 6]
    assert hunk_at(state, 6) is state.pending_hunks[1]
    assert state.status == ReviewStatus.REVIEWING


@pytest.mark.asyncio
async def test_revert_then_accept_all_keeps_other_hunks():
    for idx in range(3):
        state = _start()
        target = state.pending_hunks[idx]
        await revert(state, target)
        event = await accept_all(state)
        assert event is not None

        expected = list(PROPOSED)
        # Rebuild the expectation from the untouched proposal
        fresh = begin_review("f.txt", BASELINE, PROPOSED)
        assert fresh is not None
        h = fresh.pending_hunks[idx]
        start = h.new_range.start_line - 1
        expected[start : start + len(h.new_lines)] = h.old_lines
        assert state.current == expected
        assert event.final_content == expected


@pytest.mark.asyncio
async def test_accept_every_hunk_resolves_and_persists():
    accessor = BufferFirstContentAccessor()
    diagnostics = StaticDiagnostics(3)
    events: List[TerminalEvent] = []
    state = _start(accessor=accessor, diagnostics=diagnostics)
    state.listeners.append(events.append)

    while state.pending_hunks:
        await accept(state, state.pending_hunks[0])

    assert state.status == ReviewStatus.RESOLVED
    assert len(events) == 1
    event = events[0]
    assert event.action == TerminalAction.WRITTEN
    assert event.persisted is True
    assert event.diagnostics_count == 3
    assert event.final_content == PROPOSED
    assert event.diff_hash == fingerprint(event.diff)
    assert "+B1" in event.diff
    assert accessor.read("f.txt") == PROPOSED
    assert diagnostics.calls == [("f.txt", len(PROPOSED))]
    assert (await wait_terminal(state)) is event


@pytest.mark.asyncio
async def test_accept_without_hunk_uses_cursor():
    state = _start()
    resolved = await accept(state)
    assert resolved is not None
    assert resolved.new_lines == ["B1", "B2"]
    # Focus moved to the next hunk
    assert state.cursor == 6


@pytest.mark.asyncio
async def test_unknown_hunk_is_rejected():
    state = _start()
    other = begin_review("g.txt", ["x"], ["y"])
    assert other is not None
    with pytest.raises(ReviewError):
        await accept(state, other.pending_hunks[0])


@pytest.mark.asyncio
async def test_resolved_without_accessor_reports_resolved():
    state = _start()
    event = await accept_all(state)
    assert event is not None
    assert event.action == TerminalAction.RESOLVED
    assert event.persisted is False
    assert state.status == ReviewStatus.RESOLVED


@pytest.mark.asyncio
async def test_persist_failure_degrades_to_in_memory_content():
    state = _start(accessor=FailingAccessor())
    event = await accept_all(state)
    assert event is not None
    assert event.action == TerminalAction.RESOLVED
    assert event.persisted is False
    assert event.final_content == PROPOSED


@pytest.mark.asyncio
async def test_cancel_restores_baseline_and_is_idempotent():
    surface = RecordingSurface()
    accessor = BufferFirstContentAccessor()
    events: List[TerminalEvent] = []
    state = _start(surface=surface, accessor=accessor)
    state.listeners.append(events.append)
    await accept(state, state.pending_hunks[0])

    event = await cancel(state)
    assert event is not None
    assert event.action == TerminalAction.CANCELLED
    assert event.diff == "(no changes)"
    assert state.current == BASELINE
    assert state.pending_hunks == []
    assert state.status == ReviewStatus.CANCELLED
    assert surface.cleared == 1
    # Nothing is written on cancel
    assert accessor.read("f.txt") is None

    assert await cancel(state) is None
    assert len(events) == 1


@pytest.mark.asyncio
async def test_operations_after_finish_are_rejected():
    state = _start()
    await cancel(state)
    with pytest.raises(ReviewError):
        await accept(state)
    with pytest.raises(ReviewError):
        await accept_all(state)
    assert await close(state) is None


@pytest.mark.asyncio
async def test_close_with_pending_hunks_keeps_current():
    accessor = BufferFirstContentAccessor()
    state = _start(accessor=accessor)
    await revert(state, state.pending_hunks[0])
    snapshot = list(state.current)
    event = await close(state)
    assert event is not None
    assert event.action == TerminalAction.CLOSED
    assert state.status == ReviewStatus.CLOSED
    assert event.final_content == snapshot
    assert accessor.read("f.txt") is None


@pytest.mark.asyncio
async def test_close_with_nothing_pending_resolves_or_closes():
    state = _start(accessor=BufferFirstContentAccessor())
    state.pending_hunks.clear()
    event = await close(state)
    assert event is not None
    assert event.action == TerminalAction.WRITTEN
    assert state.status == ReviewStatus.RESOLVED

    failing = _start(accessor=FailingAccessor())
    failing.pending_hunks.clear()
    event = await close(failing)
    assert event is not None
    assert event.action == TerminalAction.CLOSED
    assert failing.status == ReviewStatus.CLOSED


@pytest.mark.asyncio
async def test_cancel_and_close_in_same_tick_fire_once():
    events: List[TerminalEvent] = []
    state = _start(diagnostics=StaticDiagnostics(1))
    state.listeners.append(events.append)

    results = await asyncio.gather(cancel(state), close(state), cancel(state))
    assert len(events) == 1
    assert [r is not None for r in results].count(True) == 1
    assert events[0].action == TerminalAction.CANCELLED
    assert state.current == BASELINE


@pytest.mark.asyncio
async def test_slow_diagnostics_time_out():
    settings = ReviewSettings(diagnostics_timeout_s=0.01)
    state = _start(diagnostics=SlowDiagnostics(), settings=settings)
    event = await accept_all(state)
    assert event is not None
    assert event.diagnostics_count == 0


@pytest.mark.asyncio
async def test_listener_errors_do_not_block_others():
    seen: List[str] = []

    def broken(event: TerminalEvent) -> None:
        raise RuntimeError("boom")

    async def ok(event: TerminalEvent) -> None:
        seen.append(event.action.value)

    state = _start()
    state.listeners.extend([broken, ok])
    await accept_all(state)
    assert seen == ["resolved"]


@pytest.mark.asyncio
async def test_wait_terminal_without_event_raises():
    state = begin_review("f.txt", BASELINE, PROPOSED)
    assert state is not None
    state.done.set()
    with pytest.raises(ReviewError):
        await wait_terminal(state)
