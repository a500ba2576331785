from __future__ import annotations

import base64
import binascii
import re
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, StrictStr, ValidationError

from .models import EditDecodeError, EditOperation, PatchError
from .text import normalize_eol, split_block

EditBatch = Dict[str, List[EditOperation]]


JSON_SYSTEM_INSTRUCTION = r"""# Edit format: old_string / new_string pairs

Call the edit tool with the file path and a list of edits. Each edit names a block
of the CURRENT file content (`old_string`) and the text that replaces it
(`new_string`).

## Rules
1. Copy `old_string` from the file. Whitespace and letter case may be approximate,
   but include enough lines to identify the block uniquely.
2. An empty `old_string` inserts `new_string` at the top of the file.
3. Edits are located independently; list them in any order, but they must not
   overlap.
4. Indent `new_string` relative to itself; it is re-indented to match the block
   it replaces.
5. If an edit's `new_string` is already present, it is reported as already applied.
"""


SEARCH_REPLACE_SYSTEM_INSTRUCTION = r"""# Edit format: SEARCH/REPLACE blocks

**OUTPUT:** Only edit blocks. No prose before/between/after.

Emit one SEARCH/REPLACE fenced block per change using the file's language tag:

```<lang>
<relative/path/to/file>
<<<<<<< SEARCH
<contiguous lines of the current content>
=======
<replacement lines>
>>>>>>> REPLACE
```

## Rules
1. SEARCH should match the current content; small whitespace and case differences
   are tolerated.
2. Include enough lines in SEARCH to uniquely identify the lines being replaced.
3. Leave SEARCH empty to insert REPLACE at the top of the file.
4. Blocks for one file may come in any order but must not overlap.
5. Keep changes small: prefer several blocks over one large block.
"""


class JsonEdit(BaseModel):
    old_string: StrictStr
    new_string: StrictStr
    encoding: Optional[Literal["base64"]] = None


def _describe(err: ValidationError) -> str:
    first = err.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ()))
    if first.get("type") == "missing":
        return f"'{loc}' is required"
    if first.get("type") in ("string_type", "string_strict_type"):
        return f"'{loc}' must be a string"
    return f"'{loc}': {first.get('msg')}"


def _decode_text(raw: str, encoding: Optional[str], index: int, field_name: str) -> str:
    if encoding is None:
        return raw
    try:
        data = base64.b64decode(raw, validate=True)
    except (binascii.Error, ValueError):
        raise EditDecodeError(index, f"'{field_name}' is not valid base64")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        raise EditDecodeError(index, f"'{field_name}' is not valid UTF-8")


def decode_json_edits(payload: Any) -> Tuple[EditBatch, List[PatchError]]:
    """
    Decode edit tool arguments:
    {"file_path": "...", "edits": [{"old_string": "...", "new_string": "...", "encoding"?: "base64"}]}

    Any malformed edit rejects the whole batch with EditDecodeError naming its
    1-based position.
    """
    if not isinstance(payload, dict):
        raise ValueError("Edit arguments must be an object")
    path = payload.get("file_path")
    if not isinstance(path, str) or not path:
        raise ValueError("file_path must be a string")
    raw_edits = payload.get("edits")
    if not isinstance(raw_edits, list):
        raise ValueError("edits must be an array")

    edits: List[EditOperation] = []
    for index, raw in enumerate(raw_edits, start=1):
        if not isinstance(raw, dict):
            raise EditDecodeError(index, "must be an object")
        try:
            item = JsonEdit.model_validate(raw)
        except ValidationError as e:
            raise EditDecodeError(index, _describe(e)) from e
        old = _decode_text(item.old_string, item.encoding, index, "old_string")
        new = _decode_text(item.new_string, item.encoding, index, "new_string")
        edits.append(
            EditOperation(old_block=split_block(old), new_block=split_block(new), index=index)
        )
    return {path: edits}, []


FENCE_RE = re.compile(r"^```")
SEARCH_MARK = "<<<<<<< SEARCH"
SPLIT_MARK = "======="
REPLACE_MARK = ">>>>>>> REPLACE"


def _is_relative_path(p: str) -> bool:
    if not p:
        return False
    if p.startswith("/") or p.startswith("\\") or p.startswith("~"):
        return False
    if re.match(r"^[A-Za-z]:[\\/]", p):
        return False
    return True


def parse_search_replace(text: str) -> Tuple[EditBatch, List[PatchError]]:
    """
    Parse fenced SEARCH/REPLACE blocks:

    ```<lang>
    <relative/path>
    <<<<<<< SEARCH
    <current content, empty for an insertion>
    =======
    <replacement content>
    >>>>>>> REPLACE
    ```
    Blocks are grouped by path in order of appearance. A malformed block is left
    out and reported as a PatchError carrying its 1-based line.
    """
    errors: List[PatchError] = []
    batch: EditBatch = {}
    lines = normalize_eol(text).split("\n")
    i = 0

    def add_error(
        msg: str,
        *,
        line: Optional[int] = None,
        hint: Optional[str] = None,
        filename: Optional[str] = None,
    ):
        errors.append(PatchError(msg=msg, line=line, hint=hint, filename=filename))

    def skip_to_fence_end() -> None:
        nonlocal i
        while i < len(lines) and not FENCE_RE.match(lines[i].strip()):
            i += 1
        if i < len(lines):
            i += 1

    while i < len(lines):
        if not FENCE_RE.match(lines[i].strip()):
            i += 1
            continue

        fence_start_line = i + 1
        i += 1
        if i >= len(lines):
            add_error(
                "Unterminated code fence",
                line=fence_start_line,
                hint="Add a closing ``` for the edit block",
            )
            break

        # First line inside fence must be the file path
        path_line_no = i + 1
        path = lines[i].strip()
        i += 1
        if not _is_relative_path(path):
            add_error(
                f"Path must be relative: {path!r}",
                line=path_line_no,
                hint="Use a relative repo path",
                filename=path,
            )
            skip_to_fence_end()
            continue

        if i >= len(lines) or lines[i].strip() != SEARCH_MARK:
            add_error("Missing <<<<<<< SEARCH marker", line=i + 1, filename=path)
            skip_to_fence_end()
            continue
        i += 1

        search_lines: List[str] = []
        while i < len(lines) and lines[i].strip() != SPLIT_MARK:
            if FENCE_RE.match(lines[i].strip()):
                break
            search_lines.append(lines[i])
            i += 1
        if i >= len(lines) or lines[i].strip() != SPLIT_MARK:
            add_error("Missing ======= split marker", line=i + 1, filename=path)
            skip_to_fence_end()
            continue
        i += 1

        replace_lines: List[str] = []
        while i < len(lines) and lines[i].strip() != REPLACE_MARK:
            if FENCE_RE.match(lines[i].strip()):
                break
            replace_lines.append(lines[i])
            i += 1
        if i >= len(lines) or lines[i].strip() != REPLACE_MARK:
            add_error("Missing >>>>>>> REPLACE marker", line=i + 1, filename=path)
            skip_to_fence_end()
            continue
        i += 1

        if i >= len(lines) or not FENCE_RE.match(lines[i].strip()):
            add_error(
                "Missing closing code fence ```",
                line=i + 1 if i < len(lines) else None,
                filename=path,
            )
            skip_to_fence_end()
            continue
        i += 1

        old_block = split_block("\n".join(search_lines))
        new_block = split_block("\n".join(replace_lines))
        if not old_block and not new_block:
            add_error(
                "Empty edit block (no SEARCH and no REPLACE content)",
                line=path_line_no,
                filename=path,
            )
            continue
        edits = batch.setdefault(path, [])
        edits.append(
            EditOperation(old_block=old_block, new_block=new_block, index=len(edits) + 1)
        )

    return batch, errors


# Internal registry of supported edit formats
_REGISTRY: Dict[str, Dict[str, object]] = {
    "json": {
        "decoder": decode_json_edits,
        "system_prompt": JSON_SYSTEM_INSTRUCTION,
    },
    "search_replace": {
        "decoder": parse_search_replace,
        "system_prompt": SEARCH_REPLACE_SYSTEM_INSTRUCTION,
    },
}


def get_supported_formats() -> Tuple[str, ...]:
    return tuple(_REGISTRY.keys())


def _entry(fmt: str) -> Dict[str, object]:
    key = (fmt or "").lower()
    entry = _REGISTRY.get(key)
    if not entry:
        raise ValueError(f"Unsupported edit format: {fmt}")
    return entry


def get_system_instruction(fmt: str) -> str:
    return _entry(fmt)["system_prompt"]  # type: ignore[return-value]


def decode_edits(fmt: str, payload: Any) -> Tuple[EditBatch, List[PatchError]]:
    """
    Decode an edit payload in the given format into per-path edit batches.
    Raises EditDecodeError for a malformed JSON edit. SEARCH/REPLACE parse
    problems come back as PatchError entries next to the blocks that parsed.
    """
    decoder: Callable[[Any], Tuple[EditBatch, List[PatchError]]] = _entry(fmt)["decoder"]  # type: ignore[assignment]
    return decoder(payload)
