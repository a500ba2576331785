"""
Line diffs between two versions of a file.

diff() produces zero-context hunks for hunk-by-hunk review; unified_diff() and
fingerprint() produce the textual summary handed back to the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import SequenceMatcher, unified_diff as _unified_diff
from typing import List, Sequence

from .models import Span

NO_CHANGES = "(no changes)"


@dataclass
class Hunk:
    old_lines: List[str] = field(default_factory=list)
    new_lines: List[str] = field(default_factory=list)
    # Position of new_lines in the new content; empty for pure deletions
    new_range: Span = field(default_factory=lambda: Span(1, 0))
    # Position of old_lines in the old content; empty for pure insertions
    old_range: Span = field(default_factory=lambda: Span(1, 0))

    @property
    def delta(self) -> int:
        """Line count change of reverting this hunk."""
        return len(self.old_lines) - len(self.new_lines)


def diff(old_lines: Sequence[str], new_lines: Sequence[str]) -> List[Hunk]:
    """
    Zero-context hunks between old_lines and new_lines, sorted by new_range.
    Never empty when the inputs differ.
    """
    old = list(old_lines)
    new = list(new_lines)
    if old == new:
        return []

    matcher = SequenceMatcher(None, old, new, autojunk=False)
    runs: List[List[int]] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        if runs and runs[-1][1] == i1 and runs[-1][3] == j1:
            # Adjacent insert/delete runs form a single hunk
            runs[-1][1] = i2
            runs[-1][3] = j2
        else:
            runs.append([i1, i2, j1, j2])

    if not runs:
        runs = [[0, len(old), 0, len(new)]]

    hunks = [
        Hunk(
            old_lines=old[i1:i2],
            new_lines=new[j1:j2],
            new_range=Span(j1 + 1, j2),
            old_range=Span(i1 + 1, i2),
        )
        for i1, i2, j1, j2 in runs
    ]
    hunks.sort(key=lambda h: h.new_range.start_line)
    return hunks


def apply_hunks(old_lines: Sequence[str], hunks: Sequence[Hunk]) -> List[str]:
    """Splice every hunk's new_lines into old_lines at its old_range."""
    result: List[str] = []
    cursor = 0
    for h in sorted(hunks, key=lambda h: h.old_range.start_line):
        start = h.old_range.start_line - 1
        result.extend(old_lines[cursor:start])
        result.extend(h.new_lines)
        cursor = start + len(h.old_lines)
    result.extend(old_lines[cursor:])
    return result


def unified_diff(
    old_lines: Sequence[str],
    new_lines: Sequence[str],
    path: str = "",
) -> str:
    if list(old_lines) == list(new_lines):
        return NO_CHANGES
    fromfile = f"a/{path}" if path else "a"
    tofile = f"b/{path}" if path else "b"
    return "\n".join(
        _unified_diff(
            list(old_lines),
            list(new_lines),
            fromfile=fromfile,
            tofile=tofile,
            lineterm="",
        )
    )


def fingerprint(text: str) -> str:
    """
    Compact digest of a diff: two rolling 32-bit sums over the UTF-8 bytes plus
    the byte length.
    """
    data = text.encode("utf-8")
    h1 = 0
    h2 = 0
    for b in data:
        h1 = (h1 + b) % 4294967296
        h2 = (h2 * 31 + b) % 4294967296
    return f"{h1:08x}{h2:08x}_{len(data)}"
