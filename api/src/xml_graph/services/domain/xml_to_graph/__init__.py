"""
XML to Graph Workflow Domain

Runs XML documents through user-authored workflows of tools and actions and
produces flat property graphs.
"""

from .errors import ToolExecutionError, WorkflowConfigError, WorkflowError
from .executor import execute_workflow, load_workflow

__all__ = [
    "ToolExecutionError",
    "WorkflowConfigError",
    "WorkflowError",
    "execute_workflow",
    "load_workflow",
]
