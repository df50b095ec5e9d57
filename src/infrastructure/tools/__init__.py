from src.infrastructure.tools.local_tool_invoker import LocalToolInvoker, ToolName

__all__ = ["LocalToolInvoker", "ToolName"]
