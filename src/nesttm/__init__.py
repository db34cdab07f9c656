"""
Nest Task Manager - hierarchical task lists with cascading completion,
cost and effort tracking, and cross-list references.

The core is the task tree engine: locate, mutate, undo and drag tasks in a
forest, and aggregate their statistics.
"""

from .version import VERSION, APP_SCHEMA_VERSION
from .models import (
    Priority,
    NoteColor,
    TimeEntry,
    CustomMetric,
    TaskNode,
    TaskList,
    ListCollection,
)
from .stats import Stats, aggregate, aggregate_forest
from .tree import TaskEngine, History, DragResolver, SortKey, SortOrder
from .data import DataCore, ListStore

__version__ = VERSION

__all__ = [
    "VERSION",
    "APP_SCHEMA_VERSION",
    "Priority",
    "NoteColor",
    "TimeEntry",
    "CustomMetric",
    "TaskNode",
    "TaskList",
    "ListCollection",
    "Stats",
    "aggregate",
    "aggregate_forest",
    "TaskEngine",
    "History",
    "DragResolver",
    "SortKey",
    "SortOrder",
    "DataCore",
    "ListStore",
]
