from typing import Any, Dict, List, Optional
from enum import Enum
from pydantic import BaseModel, Field, field_validator, model_validator


class LogLevel(str, Enum):
    debug = "debug"
    info = "info"
    warning = "warning"
    error = "error"
    critical = "critical"


class LoggingSettings(BaseModel):
    # Default level for the patchwise logger if not overridden.
    default_level: LogLevel = LogLevel.info
    # Mapping of logger name -> level override (e.g., {"asyncio": "debug"})
    enabled_loggers: Dict[str, LogLevel] = Field(default_factory=dict)
    # Optional file that receives a copy of every log record.
    log_file: Optional[str] = None


class LocatorSettings(BaseModel):
    # Normalised-text stage window: target length +/- (ratio * length + lines)
    normalized_slack_ratio: float = 0.1
    normalized_slack_lines: int = 5
    # Shrinking-window stage stops at this fraction of the original target length
    shrink_min_ratio: float = 0.5
    # Structural stage runs only if a syntax-tree provider is available as well
    enable_structural: bool = True

    @field_validator("shrink_min_ratio")
    @classmethod
    def _validate_ratio(cls, v: float) -> float:
        if not 0.0 < v <= 1.0:
            raise ValueError("shrink_min_ratio must be in (0, 1]")
        return v


class PatchSettings(BaseModel):
    max_passes: int = Field(default=3, ge=1)
    # Characters of old/new text quoted for unresolved edits
    preview_chars: int = Field(default=200, ge=0)
    default_format: str = "json"


class ReviewKeys(BaseModel):
    """
    Host key bindings for the five review operations. The review core never reads
    these; they are carried so every host renders the same hint line.
    """

    ours: str = "co"
    theirs: str = "ct"
    all: str = "ca"
    prev: str = "[d"
    next: str = "]d"
    cancel: str = "q"


class ReviewSettings(BaseModel):
    # How long finalisation waits for the diagnostics collaborator
    diagnostics_timeout_s: float = 1.5
    # Write straight to disk when no review surface is available
    auto_approve_headless: bool = True
    keys: ReviewKeys = Field(default_factory=ReviewKeys)


class ToolSpec(BaseModel):
    """
    Per-tool configuration. A bare string is accepted as the tool name.
    """

    name: str
    enabled: bool = True
    # None defers to ReviewSettings.auto_approve_headless
    auto_approve: Optional[bool] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _coerce(cls, v: Any) -> Any:
        if isinstance(v, str):
            return {"name": v}
        if isinstance(v, dict):
            name = v.get("name")
            if not isinstance(name, str) or not name:
                raise ValueError("Tool spec must include non-empty 'name'")
            return {
                "name": name,
                "enabled": v.get("enabled", True),
                "auto_approve": v.get("auto_approve", None),
                "config": v.get("config", {}) or {},
            }
        return v


class Settings(BaseModel):
    locator: LocatorSettings = Field(default_factory=LocatorSettings)
    patch: PatchSettings = Field(default_factory=PatchSettings)
    review: ReviewSettings = Field(default_factory=ReviewSettings)
    tools: List[ToolSpec] = Field(default_factory=list)
    logging: Optional[LoggingSettings] = Field(default=None)

    def tool_spec(self, name: str) -> ToolSpec:
        """Configured spec for a tool, or a default one."""
        for spec in self.tools:
            if spec.name == name:
                return spec
        return ToolSpec(name=name)
