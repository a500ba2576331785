from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from patchwise.logger import logger
from patchwise.settings import PatchSettings

from .diff import fingerprint, unified_diff
from .locator import BlockLocator, find_verbatim_match
from .models import (
    EditOperation,
    EditResult,
    EditStatus,
    Match,
    PatchResult,
    Span,
)
from .text import base_indent, preview, reindent

MSG_NO_REPLACEMENTS = "No replacements made."
MSG_ALREADY_APPLIED = "Already applied, nothing to do."


@dataclass
class _Located:
    edit: EditOperation
    match: Match


@dataclass
class _PassState:
    working: List[str]
    pending: List[EditOperation]
    results: Dict[int, EditResult] = field(default_factory=dict)


class PatchEngine:
    """
    Applies a batch of old/new block edits to one document.

    Edits are located independently against the current content on every pass, so
    input order carries no meaning. Spans found in a pass are applied left to right
    with overlapping ones deferred to the next pass; an edit whose new block is
    already present is skipped as already applied. Whatever is still pending after
    max_passes is reported unresolved; successful edits are kept.
    """

    def __init__(
        self,
        locator: Optional[BlockLocator] = None,
        settings: Optional[PatchSettings] = None,
    ) -> None:
        self.locator = locator or BlockLocator()
        self.settings = settings or PatchSettings()

    def _already_applied(
        self, working: Sequence[str], edit: EditOperation, old_span: Optional[Span]
    ) -> bool:
        if not edit.new_block:
            return False
        if old_span is None:
            return self.locator.find(working, edit.new_block) is not None
        # The old block only matched inside text that already reads as the new block
        span = find_verbatim_match(working, edit.new_block, 1, len(working))
        return (
            span is not None
            and span.start_line <= old_span.start_line
            and old_span.end_line <= span.end_line
        )

    def _locate_pass(self, st: _PassState) -> List[_Located]:
        located: List[_Located] = []
        still_pending: List[EditOperation] = []
        for edit in st.pending:
            if edit.is_insertion:
                still_pending.append(edit)
                continue
            found = self.locator.find(st.working, edit.old_block)
            if self._already_applied(st.working, edit, found.span if found else None):
                edit.status = EditStatus.SKIPPED_ALREADY_APPLIED
                st.results[edit.index] = EditResult(index=edit.index, status=edit.status)
                continue
            still_pending.append(edit)
            if found is not None:
                located.append(_Located(edit, found))
        st.pending = still_pending
        return located

    @staticmethod
    def _select(located: List[_Located]) -> List[_Located]:
        ordered = sorted(
            located,
            key=lambda l: (l.match.span.start_line, l.match.span.length, l.edit.index),
        )
        selected: List[_Located] = []
        last_end = 0
        for loc in ordered:
            if loc.match.span.start_line <= last_end:
                continue
            selected.append(loc)
            last_end = loc.match.span.end_line
        return selected

    def _splice(self, working: List[str], span: Span, new_block: List[str]) -> Tuple[List[str], int]:
        region = working[span.start_line - 1 : span.end_line]
        adjusted = reindent(new_block, base_indent(region))
        result = working[: span.start_line - 1] + adjusted + working[span.end_line :]
        return result, len(adjusted) - span.length

    def _apply_selected(self, st: _PassState, selected: List[_Located]) -> int:
        applied = 0
        delta = 0
        for loc in selected:
            edit = loc.edit
            expected = loc.match.span.shifted(delta)
            found = self.locator.find(st.working, edit.old_block, expected.start_line)
            if found is None:
                # Shifted out from under us; try again next pass
                continue
            st.working, change = self._splice(st.working, found.span, edit.new_block)
            delta += change
            edit.status = EditStatus.APPLIED
            st.results[edit.index] = EditResult(
                index=edit.index,
                status=edit.status,
                span=found.span,
                strategy=found.strategy,
            )
            applied += 1
        st.pending = [e for e in st.pending if e.status == EditStatus.PENDING]
        return applied

    def _apply_insertions(self, st: _PassState) -> Tuple[int, int]:
        # Insertions have no anchor: all go to the top of the file, in input order
        applied = 0
        skipped = 0
        inserts: List[str] = []
        for edit in st.pending:
            if not edit.is_insertion:
                continue
            if not edit.new_block or self.locator.find(st.working, edit.new_block) is not None:
                edit.status = EditStatus.SKIPPED_ALREADY_APPLIED
                st.results[edit.index] = EditResult(index=edit.index, status=edit.status)
                skipped += 1
                continue
            at = 1 + len(inserts)
            inserts.extend(edit.new_block)
            edit.status = EditStatus.APPLIED
            st.results[edit.index] = EditResult(
                index=edit.index,
                status=edit.status,
                span=Span(at, at + len(edit.new_block) - 1),
                strategy="insert",
            )
            applied += 1
        if inserts:
            st.working = inserts + st.working
        st.pending = [e for e in st.pending if e.status == EditStatus.PENDING]
        return applied, skipped

    def apply(
        self,
        content: Sequence[str],
        edits: Sequence[EditOperation],
        path: str = "",
    ) -> PatchResult:
        for i, edit in enumerate(edits, start=1):
            edit.index = i
            edit.status = EditStatus.PENDING

        st = _PassState(working=list(content), pending=list(edits))
        pass_count = 0
        for pass_no in range(1, self.settings.max_passes + 1):
            if not st.pending:
                break
            pass_count = pass_no
            before = len(st.pending)

            located = self._locate_pass(st)
            selected = self._select(located)
            applied = self._apply_selected(st, selected)
            ins_applied, _ = self._apply_insertions(st)

            logger.debug(
                "patch pass",
                path=path,
                pass_no=pass_no,
                located=len(located),
                selected=len(selected),
                applied=applied + ins_applied,
                pending=len(st.pending),
            )
            if len(st.pending) == before:
                # Nothing changed; later passes would see the same content
                break

        for edit in st.pending:
            edit.status = EditStatus.UNRESOLVED
            limit = self.settings.preview_chars
            st.results[edit.index] = EditResult(
                index=edit.index,
                status=edit.status,
                preview=(
                    f"old:\n{preview(edit.old_block, limit)}\n"
                    f"new:\n{preview(edit.new_block, limit)}"
                ),
            )
            logger.warning("edit unresolved", path=path, edit=edit.index)

        results = [st.results[e.index] for e in edits]
        applied_count = sum(1 for r in results if r.status == EditStatus.APPLIED)
        skipped_count = sum(
            1 for r in results if r.status == EditStatus.SKIPPED_ALREADY_APPLIED
        )
        unresolved_count = sum(1 for r in results if r.status == EditStatus.UNRESOLVED)

        if applied_count == 0 and skipped_count == 0:
            message = MSG_NO_REPLACEMENTS
        elif applied_count == 0:
            message = MSG_ALREADY_APPLIED
        else:
            message = f"Applied {applied_count} edit(s)."
            if skipped_count:
                message += f" {skipped_count} already applied."
            if unresolved_count:
                message += f" {unresolved_count} could not be located."

        diff_text = unified_diff(content, st.working, path)
        return PatchResult(
            new_content=st.working,
            results=results,
            applied_count=applied_count,
            skipped_count=skipped_count,
            unresolved_count=unresolved_count,
            pass_count=pass_count,
            diff=diff_text,
            diff_hash=fingerprint(diff_text),
            message=message,
        )


class ConvergenceGuard:
    """
    Iteration cap for hosts that re-drive the AI against the same file: stops once
    a path's diff fingerprint repeats or max_iterations attempts were recorded.
    """

    def __init__(self, max_iterations: int = 5) -> None:
        self.max_iterations = max_iterations
        self._history: Dict[str, List[str]] = {}

    def record(self, path: str, diff_hash: str) -> bool:
        """Record an attempt; returns True if the host should stop iterating."""
        history = self._history.setdefault(path, [])
        repeated = bool(history) and history[-1] == diff_hash
        history.append(diff_hash)
        return repeated or len(history) >= self.max_iterations

    def attempts(self, path: str) -> int:
        return len(self._history.get(path, []))

    def reset(self, path: Optional[str] = None) -> None:
        if path is None:
            self._history.clear()
        else:
            self._history.pop(path, None)
