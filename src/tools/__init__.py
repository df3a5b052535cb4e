"""Tool calling package."""

from src.tools.definitions import TOOL_DEFINITIONS, TOOLS_BY_NAME, ToolName
from src.tools.gateway import ToolGateway, ToolInputError

__all__ = [
    "TOOL_DEFINITIONS",
    "TOOLS_BY_NAME",
    "ToolGateway",
    "ToolInputError",
    "ToolName",
]
