from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Type

from pydantic import BaseModel, Field

from patchwise.host import ContentAccessor, DiagnosticsProvider, ReviewSurface
from patchwise.patch.syntax import SyntaxTreeProvider
from patchwise.review import ReviewRegistry
from patchwise.settings import Settings, ToolSpec


# Models
class ToolResponseType(str, Enum):
    text = "text"


class ToolTextResponse(BaseModel):
    type: ToolResponseType = Field(default=ToolResponseType.text)
    text: Optional[str] = None


ToolResponse = ToolTextResponse


@dataclass
class ToolContext:
    """
    Everything a tool needs from its host. A context without a surface_factory
    is headless: changes are written directly instead of being reviewed.
    """

    accessor: ContentAccessor
    settings: Settings = field(default_factory=Settings)
    registry: ReviewRegistry = field(default_factory=ReviewRegistry)
    diagnostics: Optional[DiagnosticsProvider] = None
    surface_factory: Optional[Callable[[str], ReviewSurface]] = None
    syntax: Optional[SyntaxTreeProvider] = None

    @property
    def headless(self) -> bool:
        return self.surface_factory is None


# Global registry of tool name -> tool class
_registry: Dict[str, Type["BaseTool"]] = {}


def register_tool(name: str, tool: Type["BaseTool"]) -> None:
    """Registers a tool class."""
    if name in _registry:
        raise ValueError(f"Tool with name '{name}' already registered.")
    _registry[name] = tool


def unregister_tool(name: str) -> bool:
    """Unregister a tool by name. Returns True if removed, False if not present."""
    return _registry.pop(name, None) is not None


def get_tool(name: str) -> Optional[Type["BaseTool"]]:
    return _registry.get(name)


def get_all_tools() -> Dict[str, Type["BaseTool"]]:
    """Returns a copy of the tool registry."""
    return dict(_registry)


class BaseTool(ABC):
    # Subclasses must set this to a unique string
    name: str

    def __init__(self, ctx: ToolContext) -> None:
        self.ctx = ctx

    @abstractmethod
    async def run(self, spec: ToolSpec, args: Any) -> Optional[ToolResponse]:
        """
        Execute this tool against the context's content.
        Args:
            spec: ToolSpec with name, auto_approve and optional config for this invocation.
            args: Parsed arguments structure (e.g., dict). Not a JSON string.
        Returns:
            ToolTextResponse with a human-readable outcome.
        """
        pass

    @abstractmethod
    async def openapi_spec(self, spec: ToolSpec) -> Dict[str, Any]:
        """
        Return this tool's definition in OpenAI 'function' tool format,
        using JSON Schema for parameters.
        """
        pass
