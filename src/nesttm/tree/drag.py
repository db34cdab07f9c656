"""
Drag Resolution - turns pointer gestures into a single move.

A gesture is drag_start, any number of drag_over events and a drag_end. Drop
targets that the tree cannot accept (the dragged task itself, one of its
descendants, stale ids, due date conflicts) are hover states the UI cannot
always prevent, so they resolve to no-ops instead of errors.
"""
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, Field, TypeAdapter, ValidationError

from nesttm.logs import get_logger
from nesttm.recovery import InvalidArgumentError, NotFoundError
from . import locator
from .engine import TaskEngine

log = get_logger("tree.drag")


class Side(Enum):
    BEFORE = "before"
    AFTER = "after"

class Edge(Enum):
    FIRST = "first"
    LAST = "last"


class IntoTarget(BaseModel):
    """Drop onto a task: becomes its last child."""
    kind: Literal["into"] = "into"
    node_id: str = Field(validation_alias=AliasChoices("node_id", "nodeId"))

class BesideTarget(BaseModel):
    """Drop just before or after a task, as its sibling."""
    kind: Literal["beforeOrAfter"] = "beforeOrAfter"
    node_id: str = Field(validation_alias=AliasChoices("node_id", "nodeId"))
    side: Side

class RootEdgeTarget(BaseModel):
    """Drop at the very top or bottom of the root list."""
    kind: Literal["rootEdge"] = "rootEdge"
    side: Edge

DropTarget = Annotated[Union[IntoTarget, BesideTarget, RootEdgeTarget], Field(discriminator="kind")]

_target_adapter = TypeAdapter(DropTarget)


def parse_drop_target(raw: Any) -> Union[IntoTarget, BesideTarget, RootEdgeTarget]:
    """Validate a raw drop payload (mapping or target model)."""
    if isinstance(raw, (IntoTarget, BesideTarget, RootEdgeTarget)):
        return raw
    try:
        return _target_adapter.validate_python(raw)
    except ValidationError as e:
        raise InvalidArgumentError(f"Malformed drop target {raw!r}: {e}") from e


class DragResolver:
    """Tracks the single active drag gesture for one TaskEngine."""

    def __init__(self, engine: TaskEngine):
        self.engine = engine
        self.active_id: Optional[str] = None

    def drag_start(self, node_id: str):
        if self.active_id is not None:
            log.debug(f"Drag of {self.active_id} cancelled by a new drag of {node_id}")
        self.active_id = node_id

    def drag_over(self, target: Any):
        """Expand a collapsed task under the pointer so its drop zones become visible."""
        if self.active_id is None:
            return
        target = parse_drop_target(target)
        node_id = getattr(target, "node_id", None)
        if node_id is None:
            return
        node = locator.find(self.engine.todos, node_id)
        if node is not None and node.collapsed:
            node.collapsed = False

    def drag_cancel(self):
        self.active_id = None

    def drag_end(self, target: Any = None) -> bool:
        """
        Finish the gesture.

        Returns:
            True if the dragged task was moved, False for a cancelled or
            impossible drop
        """
        dragged_id, self.active_id = self.active_id, None
        if dragged_id is None or target is None:
            return False

        destination = self.resolve(dragged_id, parse_drop_target(target))
        if destination is None:
            return False
        parent_id, index = destination
        try:
            self.engine.move(dragged_id, parent_id, index)
        except (InvalidArgumentError, NotFoundError) as e:
            log.info(f"Ignoring drop of {dragged_id}: {e}")
            return False
        return True

    def resolve(self, dragged_id: str, target) -> Optional[Tuple[Optional[str], Optional[int]]]:
        """Map a drop target to (parent_id, index) for TaskEngine.move, or None for a no-op."""
        found = self.engine.locate(dragged_id)
        if found is None:
            log.info(f"Dragged task {dragged_id} no longer exists")
            return None

        if isinstance(target, RootEdgeTarget):
            return None, 0 if target.side == Edge.FIRST else None

        if target.node_id == dragged_id or locator.is_descendant(found.node, target.node_id):
            log.info(f"Ignoring drop of {dragged_id} onto itself or its subtree")
            return None

        if isinstance(target, IntoTarget):
            return target.node_id, None

        anchor = self.engine.locate(target.node_id)
        if anchor is None:
            log.info(f"Drop anchor {target.node_id} no longer exists")
            return None
        remaining = [n for n in locator.siblings(self.engine.todos, anchor.parent) if n.id != dragged_id]
        index = next(i for i, n in enumerate(remaining) if n.id == target.node_id)
        if target.side == Side.AFTER:
            index += 1
        return anchor.parent.id if anchor.parent else None, index
