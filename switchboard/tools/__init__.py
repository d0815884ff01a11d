"""Tool definitions, sandbox policy filtering, routing, and execution."""

from switchboard.tools.executor import ToolExecutionResult, ToolExecutor
from switchboard.tools.registry import (
    SplitTools,
    ToolDefinition,
    filter_tools_by_policy,
    split_sdk_tools,
)

__all__ = [
    "SplitTools",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolExecutor",
    "filter_tools_by_policy",
    "split_sdk_tools",
]
