#!/usr/bin/env python3
"""Exceptions raised by workflow execution."""


class WorkflowError(Exception):
    """Base class for workflow execution failures."""
    pass


class WorkflowConfigError(WorkflowError):
    """
    Exception raised when a workflow definition cannot be used.

    Used for:
    - Unreadable or malformed workflow files
    - Unknown tool or action kinds
    - Fields that fail model validation
    """
    pass


class ToolExecutionError(WorkflowError):
    """Raised by a tool configured to fail hard (e.g. validate with onFailure=error)."""

    def __init__(self, tool_id: str, message: str):
        super().__init__(f"Tool {tool_id}: {message}")
        self.tool_id = tool_id
