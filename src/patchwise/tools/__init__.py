# Re-export the base tool interfaces and registry
from .base import (  # noqa: F401
    BaseTool,
    ToolContext,
    ToolResponse,
    ToolResponseType,
    ToolTextResponse,
    get_all_tools,
    get_tool,
    register_tool,
    unregister_tool,
)

# Register built-in tools
from . import edit_tool  # noqa: F401,E402
