from .executor import ToolExecutor
from .schema import TOOL_SCHEMAS, ToolCall, parse_tool_call

__all__ = ["TOOL_SCHEMAS", "ToolCall", "ToolExecutor", "parse_tool_call"]
