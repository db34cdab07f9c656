"""
Tree Locator - depth-first lookups over a forest of TaskNodes.

Every function returns None (or an empty list) when the id is absent; callers
decide whether that is an error.
"""
from typing import Iterable, Iterator, List, NamedTuple, Optional, Sequence

from nesttm.models import TaskNode


class Location(NamedTuple):
    node: TaskNode
    parent: Optional[TaskNode]
    index: int


def walk(nodes: Iterable[TaskNode]) -> Iterator[TaskNode]:
    """Yield every node of the forest in depth-first, index order."""
    for node in nodes:
        yield from node.walk()


def find(nodes: Sequence[TaskNode], node_id: str) -> Optional[TaskNode]:
    """Find a node by id."""
    return next((n for n in walk(nodes) if n.id == node_id), None)


def find_with_parent(nodes: Sequence[TaskNode], node_id: str,
                     parent: Optional[TaskNode] = None) -> Optional[Location]:
    """Find a node together with its parent (None for roots) and its index among its siblings."""
    for index, node in enumerate(nodes):
        if node.id == node_id:
            return Location(node, parent, index)
        found = find_with_parent(node.children, node_id, node)
        if found is not None:
            return found
    return None


def ancestors(nodes: Sequence[TaskNode], node_id: str) -> List[TaskNode]:
    """Return the chain from the root down to the node itself, or [] if absent."""
    for node in nodes:
        if node.id == node_id:
            return [node]
        chain = ancestors(node.children, node_id)
        if chain:
            return [node] + chain
    return []


def is_descendant(node: TaskNode, candidate_id: str) -> bool:
    """True if candidate_id names a node strictly below node."""
    return find(node.children, candidate_id) is not None


def siblings(nodes: List[TaskNode], parent: Optional[TaskNode]) -> List[TaskNode]:
    """The list a node lives in: the parent's children, or the roots."""
    return parent.children if parent is not None else nodes
