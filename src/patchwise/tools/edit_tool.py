from typing import Any, Dict, List, Optional

from patchwise.logger import logger
from patchwise.patch import (
    EditDecodeError,
    EditOperation,
    EditStatus,
    PatchResult,
    apply_edits,
    decode_edits,
    get_supported_formats,
    get_system_instruction,
)
from patchwise.review import ReviewError, count_diagnostics
from patchwise.settings import ToolSpec
from patchwise.tools import base as tools_base


class EditTool(tools_base.BaseTool):
    """
    Apply old/new block edits to files through the context's content accessor.
    Edit format comes from the tool config (ToolSpec.config['format']), defaulting
    to PatchSettings.default_format. Headless contexts write the result directly;
    otherwise an inline review is opened for each changed file.
    """

    name = "edit"

    def _format(self, spec: ToolSpec) -> str:
        fmt = (spec.config or {}).get("format") or self.ctx.settings.patch.default_format
        return str(fmt).lower().strip()

    def _auto_approve(self, spec: ToolSpec) -> bool:
        if spec.auto_approve is not None:
            return spec.auto_approve
        return self.ctx.headless and self.ctx.settings.review.auto_approve_headless

    async def run(self, spec: ToolSpec, args: Any):
        fmt = self._format(spec)
        supported = set(get_supported_formats())
        if fmt not in supported:
            supported_list = ", ".join(sorted(supported))
            return tools_base.ToolTextResponse(
                text=f"Unsupported edit format: {fmt}. Supported formats: {supported_list}"
            )

        payload: Any = args
        if fmt == "search_replace" and isinstance(args, dict):
            payload = args.get("text")
        if fmt == "search_replace" and (not isinstance(payload, str) or not payload.strip()):
            raise ValueError("EditTool requires 'text' (SEARCH/REPLACE blocks)")

        try:
            batch, errors = decode_edits(fmt, payload)
        except (EditDecodeError, ValueError) as e:
            return tools_base.ToolTextResponse(text=f"Error: {e}")
        if errors:
            # Partially parsed text is not applied
            lines = ["Error: edit blocks could not be parsed:"]
            for err in errors:
                where = f" (line {err.line})" if err.line else ""
                hint = f" Hint: {err.hint}" if err.hint else ""
                lines.append(f"- {err.msg}{where}.{hint}")
            return tools_base.ToolTextResponse(text="\n".join(lines))

        auto_approve = self._auto_approve(spec)
        outputs: List[str] = []
        for path, edits in batch.items():
            try:
                outputs.append(await self._edit_file(path, edits, auto_approve))
            except Exception as e:
                logger.warning("edit failed", path=path, err=str(e))
                outputs.append(f"Error editing {path}: {e}")
        return tools_base.ToolTextResponse(text="\n\n".join(outputs))

    async def _edit_file(
        self, path: str, edits: List[EditOperation], auto_approve: bool
    ) -> str:
        ctx = self.ctx
        if ctx.registry.is_pending(path):
            return (
                f"A review is already pending for {path}. "
                "Wait for it to finish before editing this file again."
            )

        content = ctx.accessor.read(path)
        if content is None:
            # Missing file: the first insertion creates it
            content = []

        result = apply_edits(
            content, edits, path=path, settings=ctx.settings, syntax=ctx.syntax
        )
        logger.info(
            "edit applied",
            path=path,
            applied=result.applied_count,
            skipped=result.skipped_count,
            unresolved=result.unresolved_count,
            passes=result.pass_count,
        )

        if result.applied_count == 0 and result.skipped_count == 0:
            return self._with_unresolved(f"No replacements made in {path}.", result)
        if result.applied_count == 0:
            return self._with_unresolved(f"Already applied, nothing to do in {path}.", result)

        if auto_approve:
            return await self._write(path, result)
        if ctx.surface_factory is None:
            return f"Review required for {path}, but no review surface is available."

        try:
            state = ctx.registry.start(
                path,
                content,
                result.new_content,
                accessor=ctx.accessor,
                diagnostics=ctx.diagnostics,
                surface=ctx.surface_factory(path),
                settings=ctx.settings.review,
            )
        except ReviewError as e:
            return f"Error: {e}"
        if state is None:
            return f"No changes for {path}."
        return self._with_unresolved(
            f"Inline diff for {len(state.pending_hunks)} change(s). "
            f"Review it in {path}; the outcome is reported when the review finishes.",
            result,
        )

    async def _write(self, path: str, result: PatchResult) -> str:
        ctx = self.ctx
        ctx.accessor.write(path, result.new_content)
        result.diagnostics_count = await count_diagnostics(
            ctx.diagnostics,
            path,
            result.new_content,
            ctx.settings.review.diagnostics_timeout_s,
        )
        summary = f"{result.message} Written to {path}."
        parts = [
            summary,
            f"```diff\n{result.diff}\n```",
            f"Diagnostics: {result.diagnostics_count}",
        ]
        return self._with_unresolved("\n".join(parts), result)

    @staticmethod
    def _with_unresolved(text: str, result: PatchResult) -> str:
        unresolved = [r for r in result.results if r.status == EditStatus.UNRESOLVED]
        if not unresolved:
            return text
        lines = [text, "", "Could not locate:"]
        for r in unresolved:
            lines.append(f"Edit {r.index}:\n{r.preview or ''}")
        return "\n".join(lines)

    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        fmts = sorted(get_supported_formats())
        fmt = self._format(spec)

        description = (
            "Edit files in the current project by replacing blocks of text. "
            "Edit format is configured in this tool's config (format="
            + "/".join(fmts)
            + "). Returns a human-readable summary of changes or errors."
        )
        if fmt in get_supported_formats():
            description = (
                description
                + "\n\n"
                + "Edits must follow these format-specific instructions:\n"
                + get_system_instruction(fmt)
            )

        parameters: Dict[str, Any]
        if fmt == "search_replace":
            parameters = {
                "type": "object",
                "properties": {
                    "text": {
                        "type": "string",
                        "description": "SEARCH/REPLACE blocks to apply.",
                    },
                },
                "required": ["text"],
                "additionalProperties": False,
            }
        else:
            parameters = {
                "type": "object",
                "properties": {
                    "file_path": {
                        "type": "string",
                        "description": "Relative path of the file to edit.",
                    },
                    "edits": {
                        "type": "array",
                        "items": {
                            "type": "object",
                            "properties": {
                                "old_string": {
                                    "type": "string",
                                    "description": "Block of current content to replace; empty to insert.",
                                },
                                "new_string": {
                                    "type": "string",
                                    "description": "Replacement text.",
                                },
                                "encoding": {
                                    "type": "string",
                                    "enum": ["base64"],
                                    "description": "Set when both strings are base64 encoded.",
                                },
                            },
                            "required": ["old_string", "new_string"],
                            "additionalProperties": False,
                        },
                    },
                },
                "required": ["file_path", "edits"],
                "additionalProperties": False,
            }

        return {
            "name": self.name,
            "description": description,
            "parameters": parameters,
        }


tools_base.register_tool(EditTool.name, EditTool)
