from __future__ import annotations

import re
from typing import List, Sequence, Tuple

BLOCK_COMMENT_RES = (
    re.compile(r"/\*.*?\*/", re.DOTALL),
    re.compile(r"<!--.*?-->", re.DOTALL),
    re.compile(r"--\[\[.*?\]\]", re.DOTALL),
)
LINE_COMMENT_RE = re.compile(r"(//|#|--|;;)[^\n]*")
WHITESPACE_RE = re.compile(r"\s+")
LEADING_WS_RE = re.compile(r"^[ \t]*")


def normalize_eol(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "")


def _split_lines(text: str) -> List[str]:
    # Only "\n" ends a line; form feeds and Unicode separators stay in the text
    if not text:
        return []
    lines = text.split("\n")
    if lines[-1] == "":
        lines.pop()
    return lines


def split_content(text: str) -> Tuple[List[str], bool]:
    """
    Split file content into lines. Returns (lines, had_eol) so the trailing
    newline can be restored by join_content.
    """
    text = normalize_eol(text)
    had_eol = text.endswith("\n")
    return _split_lines(text), had_eol


def join_content(lines: Sequence[str], *, eol: bool) -> str:
    s = "\n".join(lines)
    return s + ("\n" if eol and lines else "")


def split_block(text: str) -> List[str]:
    """
    Split an edit block into lines. A block that reduces to a single empty line
    is empty (an insertion when used as the old block).
    """
    lines = _split_lines(normalize_eol(text))
    if len(lines) == 1 and lines[0] == "":
        return []
    return lines


def leading_whitespace(line: str) -> str:
    m = LEADING_WS_RE.match(line)
    return m.group(0) if m else ""


def base_indent(lines: Sequence[str]) -> str:
    """Indentation of the least indented non-blank line (or of the single line)."""
    if len(lines) == 1:
        return leading_whitespace(lines[0])
    best: str | None = None
    for line in lines:
        if not line.strip():
            continue
        ws = leading_whitespace(line)
        if best is None or len(ws) < len(best):
            best = ws
    return best or ""


def reindent(lines: Sequence[str], indent: str) -> List[str]:
    """
    Dedent lines to their own common indentation, then prefix every non-blank
    line with indent. Blank lines become empty.
    """
    widths = [len(leading_whitespace(l)) for l in lines if l.strip()]
    common = min(widths) if widths else 0
    out: List[str] = []
    for line in lines:
        if not line.strip():
            out.append("")
            continue
        out.append(indent + line[common:])
    return out


def strip_comments(text: str) -> str:
    for rx in BLOCK_COMMENT_RES:
        text = rx.sub(" ", text)
    return LINE_COMMENT_RE.sub(" ", text)


def normalize_code(text: str) -> str:
    """Comments removed, whitespace collapsed, lowercased."""
    return WHITESPACE_RE.sub(" ", strip_comments(text)).strip().lower()


def preview(lines: Sequence[str], limit: int) -> str:
    text = "\n".join(lines)
    if limit and len(text) > limit:
        return text[:limit] + "..."
    return text
