"""
Task tree submodule: locating, mutating, undoing and dragging tasks.
"""

from .locator import Location, find, find_with_parent, ancestors, walk
from .engine import TaskEngine, SortKey, SortOrder
from .history import History
from .drag import DragResolver, IntoTarget, BesideTarget, RootEdgeTarget, Side, Edge, parse_drop_target

__all__ = [
    'Location',
    'find',
    'find_with_parent',
    'ancestors',
    'walk',
    'TaskEngine',
    'SortKey',
    'SortOrder',
    'History',
    'DragResolver',
    'IntoTarget',
    'BesideTarget',
    'RootEdgeTarget',
    'Side',
    'Edge',
    'parse_drop_target',
]
