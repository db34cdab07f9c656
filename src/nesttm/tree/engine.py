"""
TaskEngine - the mutation API over one task list.

Every structural or content change is validated first and then applied as a
single command, so a raised NestError always leaves the forest untouched.
Applied commands are recorded in the engine's History for undo/redo; view
state (collapse/expand) is changed directly and never recorded.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, List, Optional, Union
from uuid import uuid4

from nesttm.logs import get_logger
from nesttm.models import CustomMetric, NoteColor, Priority, TaskList, TaskNode
from nesttm.recovery import InvalidArgumentError, NotFoundError
from nesttm.stats import LinkedListResolver, Stats, aggregate, aggregate_forest
from . import locator
from .commands import (
    Batch, Command, InsertNode, MoveNode, RemoveNode, ReplaceChildren,
    SetBookmark, SetField, ToggleCompletion,
)
from .history import History
from .invariants import assert_forest

log = get_logger("tree.engine")


class SortOrder(Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"

class SortKey(Enum):
    TEXT = "text"
    COST = "cost"
    STORY_POINTS = "story_points"
    TIME_ESTIMATE = "time_estimate"


def _new_id() -> str:
    return str(uuid4())


def _topmost_completed(nodes: List[TaskNode]):
    for node in nodes:
        if node.completed:
            yield node.id
        else:
            yield from _topmost_completed(node.children)


class TaskEngine:
    """Validated, undoable mutations and queries for a single TaskList."""

    def __init__(self, task_list: TaskList,
                 history: Optional[History] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 id_factory: Callable[[], str] = _new_id,
                 resolve_linked_list: Optional[LinkedListResolver] = None):
        self.task_list = task_list
        self.history = history if history is not None else History()
        self.clock = clock
        self.id_factory = id_factory
        self.resolve_linked_list = resolve_linked_list

    # --- Queries ---

    @property
    def todos(self) -> List[TaskNode]:
        return self.task_list.todos

    @property
    def bookmarked_id(self) -> Optional[str]:
        return self.task_list.bookmarked_id

    def locate(self, node_id: str) -> Optional[locator.Location]:
        return locator.find_with_parent(self.todos, node_id)

    def get(self, node_id: str) -> TaskNode:
        """Return the node with node_id or raise NotFoundError."""
        return self._require(node_id).node

    def ancestors(self, node_id: str) -> List[TaskNode]:
        return locator.ancestors(self.todos, node_id)

    def aggregate(self, node_id: Optional[str] = None) -> Stats:
        """Stats for one subtree, or for the whole forest when node_id is None."""
        if node_id is None:
            return aggregate_forest(self.todos, self.resolve_linked_list)
        return aggregate(self.get(node_id), self.resolve_linked_list)

    def pinned(self) -> List[TaskNode]:
        return [n for n in locator.walk(self.todos) if n.pinned]

    def overdue(self) -> List[TaskNode]:
        now = self.clock()
        return [n for n in locator.walk(self.todos)
                if not n.completed and n.due_date is not None and n.due_date < now]

    def due_within(self, days: int) -> List[TaskNode]:
        """Incomplete tasks due before now + days, overdue ones included."""
        horizon = self.clock() + timedelta(days=days)
        return [n for n in locator.walk(self.todos)
                if not n.completed and n.due_date is not None and n.due_date <= horizon]

    def verify(self):
        """Raise InvariantViolationError if the forest is corrupt."""
        assert_forest(self.task_list)

    # --- Internals ---

    def _require(self, node_id: str) -> locator.Location:
        found = locator.find_with_parent(self.todos, node_id)
        if found is None:
            raise NotFoundError(f"Task not found: {node_id}")
        return found

    def _require_parent(self, parent_id: Optional[str]) -> Optional[TaskNode]:
        if parent_id is None:
            return None
        parent = locator.find(self.todos, parent_id)
        if parent is None:
            raise NotFoundError(f"Parent task not found: {parent_id}")
        return parent

    @staticmethod
    def _validate_text(text: str):
        if text is None or not text.strip():
            raise InvalidArgumentError("Task text must not be blank")

    def _execute(self, command: Command):
        command.apply(self.task_list)
        self.history.record(command)
        log.debug(f"Applied {command!r} to list {self.task_list.id}")

    # --- Structure ---

    def insert(self, text: str, parent_id: Optional[str] = None, index: Optional[int] = None) -> str:
        """Add a new leaf task under parent_id (or as a root) and return its id."""
        self._validate_text(text)
        parent = self._require_parent(parent_id)
        target = locator.siblings(self.todos, parent)
        if index is not None and not 0 <= index <= len(target):
            raise InvalidArgumentError(f"Insert position {index} out of range 0..{len(target)}")

        node = TaskNode(id=self.id_factory(), text=text)
        self._execute(InsertNode(node, parent_id, index))
        return node.id

    def remove(self, node_id: str):
        """Delete a task and its entire subtree."""
        self._require(node_id)
        self._execute(RemoveNode(node_id))

    def edit(self, node_id: str, text: str):
        self._require(node_id)
        self._validate_text(text)
        self._execute(SetField(node_id, "text", text))

    def toggle_completion(self, node_id: str, elapsed: Optional[float] = None):
        """
        Flip a task's completed flag.

        Completing a task completes every descendant; un-completing only
        affects the task itself. Elapsed seconds are added to time_spent and
        logged as a time entry ending now, but only on the completing
        transition.
        """
        self._require(node_id)
        if elapsed is not None and elapsed < 0:
            raise InvalidArgumentError("Elapsed time must not be negative")
        self._execute(ToggleCompletion(node_id, self.clock(), elapsed))

    def move(self, node_id: str, parent_id: Optional[str] = None, index: Optional[int] = None):
        """
        Reparent and/or reorder a task.

        index is interpreted against the destination's children with the
        moved task already removed; None appends at the end.
        """
        node, old_parent, old_index = self._require(node_id)
        parent = self._require_parent(parent_id)

        if parent is not None:
            if parent.id == node_id or locator.is_descendant(node, parent.id):
                raise InvalidArgumentError(f"Cannot move task {node_id} under itself or its descendant")
            if parent.due_date and node.due_date and node.due_date > parent.due_date:
                raise InvalidArgumentError(
                    f"Task {node_id} is due after its new parent {parent.id}")

        same_parent = (old_parent.id if old_parent else None) == parent_id
        size = len(locator.siblings(self.todos, parent)) - (1 if same_parent else 0)
        if index is not None and not 0 <= index <= size:
            raise InvalidArgumentError(f"Move position {index} out of range 0..{size}")

        if same_parent and (size if index is None else index) == old_index:
            log.debug(f"Move of {node_id} is a no-op")
            return
        self._execute(MoveNode(node_id, parent_id, index))

    def duplicate(self, node_id: str) -> str:
        """Deep copy a subtree with fresh ids and insert it as the next sibling."""
        node, parent, index = self._require(node_id)
        clone = node.model_copy(deep=True)
        for n in clone.walk():
            n.id = self.id_factory()
        self._execute(InsertNode(clone, parent.id if parent else None, index + 1))
        return clone.id

    def combine(self, node_id: str):
        """Fold the children's text into the task and drop the children."""
        node = self.get(node_id)
        if not node.children:
            log.debug(f"Task {node_id} has no children to combine")
            return

        text = f"{node.text}: {', '.join(child.text for child in node.children)}"
        commands = [SetField(node_id, "text", text), ReplaceChildren(node_id, [])]
        bookmark = self.task_list.bookmarked_id
        if bookmark and locator.find(node.children, bookmark):
            commands.append(SetBookmark(None))
        self._execute(Batch("combine", commands))

    def split(self, node_id: str, offset: int) -> str:
        """
        Split a task's text at offset into two siblings.

        The original keeps the first half along with all of its metadata and
        children; the new sibling holds the second half and nothing else.
        """
        node, parent, index = self._require(node_id)
        if not 0 < offset < len(node.text):
            raise InvalidArgumentError(f"Split offset {offset} must fall inside the text")
        first, second = node.text[:offset], node.text[offset:]
        if not first.strip() or not second.strip():
            raise InvalidArgumentError("Split would leave a blank task")

        new_node = TaskNode(id=self.id_factory(), text=second)
        self._execute(Batch("split", [
            SetField(node_id, "text", first),
            InsertNode(new_node, parent.id if parent else None, index + 1),
        ]))
        return new_node.id

    def sort_children(self, parent_id: Optional[str] = None,
                      order: Union[SortOrder, str] = SortOrder.ASCENDING,
                      key: Union[SortKey, str] = SortKey.TEXT):
        """
        Stable sort of the direct children of parent_id (the roots when None).

        Tasks without a value for key go last when ascending and first when
        descending.
        """
        try:
            order, key = SortOrder(order), SortKey(key)
        except ValueError as e:
            raise InvalidArgumentError(str(e)) from e
        parent = self._require_parent(parent_id)
        children = locator.siblings(self.todos, parent)

        def sort_value(node):
            value = node.text.casefold() if key == SortKey.TEXT else getattr(node, key.value)
            return (value is None, value if value is not None else 0)

        ordered = sorted(children, key=sort_value, reverse=order == SortOrder.DESCENDING)
        if [n.id for n in ordered] == [n.id for n in children]:
            return
        self._execute(ReplaceChildren(parent_id, ordered))

    def clear_completed(self) -> int:
        """Remove every completed subtree; returns how many subtrees went."""
        ids = list(_topmost_completed(self.todos))
        if ids:
            self._execute(Batch("clear_completed", [RemoveNode(i) for i in ids]))
        return len(ids)

    def clear_all(self):
        self._execute(Batch("clear_all", [ReplaceChildren(None, []), SetBookmark(None)]))

    def replace_text(self, search: str, replacement: str) -> int:
        """Replace search with replacement in every task's text; returns the number of tasks changed."""
        if not search:
            raise InvalidArgumentError("Search text must not be empty")
        commands = []
        for node in locator.walk(self.todos):
            if search in node.text:
                text = node.text.replace(search, replacement)
                if text.strip():
                    commands.append(SetField(node.id, "text", text))
        if commands:
            self._execute(Batch("replace_text", commands))
        return len(commands)

    # --- Fields ---

    def set_due_date(self, node_id: str, due_date: Optional[datetime]):
        """Set or clear a due date; it may not fall after the parent's or before a child's."""
        node, parent, _ = self._require(node_id)
        if due_date is not None:
            if parent is not None and parent.due_date and due_date > parent.due_date:
                raise InvalidArgumentError(
                    f"Due date cannot be later than the parent's due date {parent.due_date:%Y-%m-%d %H:%M}")
            if any(c.due_date and c.due_date > due_date for c in node.children):
                raise InvalidArgumentError("Due date cannot be earlier than a subtask's due date")
        self._execute(SetField(node_id, "due_date", due_date))

    def _set_amount(self, node_id: str, field: str, value: Optional[float]):
        self._require(node_id)
        if value is not None and value < 0:
            raise InvalidArgumentError(f"{field} must not be negative")
        self._execute(SetField(node_id, field, value))

    def set_cost(self, node_id: str, cost: Optional[float]):
        self._set_amount(node_id, "cost", cost)

    def set_time_estimate(self, node_id: str, seconds: Optional[float]):
        self._set_amount(node_id, "time_estimate", seconds)

    def set_story_points(self, node_id: str, points: Optional[float]):
        self._set_amount(node_id, "story_points", points)

    def set_priority(self, node_id: str, priority: Optional[Union[Priority, str]]):
        self._require(node_id)
        if priority is not None:
            try:
                priority = Priority(priority)
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e
        self._execute(SetField(node_id, "priority", priority))

    def set_linked_list(self, node_id: str, list_id: Optional[str]):
        self._require(node_id)
        if list_id is not None and list_id == self.task_list.id:
            raise InvalidArgumentError("A task cannot link to its own list")
        self._execute(SetField(node_id, "linked_list_id", list_id))

    def set_note(self, node_id: str, note: str, color: Optional[Union[NoteColor, str]] = None):
        self._require(node_id)
        if color is not None:
            try:
                color = NoteColor(color)
            except ValueError as e:
                raise InvalidArgumentError(str(e)) from e
        self._execute(Batch("note", [
            SetField(node_id, "note", note),
            SetField(node_id, "note_color", color),
        ]))

    def remove_note(self, node_id: str):
        self.set_note(node_id, None)

    def toggle_pinned(self, node_id: str):
        node = self.get(node_id)
        self._execute(SetField(node_id, "pinned", not node.pinned))

    def add_custom_metric(self, node_id: str, unit: str, value: float):
        """Add a metric, replacing any existing value for the same unit."""
        node = self.get(node_id)
        if not unit or not unit.strip():
            raise InvalidArgumentError("Metric unit must not be blank")
        metric = CustomMetric(unit=unit, value=value)
        metrics = [metric if m.unit == unit else m for m in node.custom_metrics]
        if node.metric(unit) is None:
            metrics.append(metric)
        self._execute(SetField(node_id, "custom_metrics", metrics))

    def remove_custom_metric(self, node_id: str, unit: str):
        node = self.get(node_id)
        if node.metric(unit) is None:
            log.debug(f"Task {node_id} has no metric {unit!r}")
            return
        metrics = [m for m in node.custom_metrics if m.unit != unit]
        self._execute(SetField(node_id, "custom_metrics", metrics))

    def toggle_bookmark(self, node_id: str):
        """Move the list's single bookmark to node_id, or clear it if node_id already holds it."""
        self._require(node_id)
        target = None if self.task_list.bookmarked_id == node_id else node_id
        self._execute(SetBookmark(target))

    # --- View state ---

    def toggle_collapse(self, node_id: str):
        node = self.get(node_id)
        node.collapsed = not node.collapsed

    def expand(self, node_id: str):
        """Expand a task and all of its ancestors."""
        chain = self.ancestors(node_id)
        if not chain:
            raise NotFoundError(f"Task not found: {node_id}")
        for node in chain:
            node.collapsed = False

    def expand_all(self):
        for node in locator.walk(self.todos):
            node.collapsed = False

    def collapse_all(self):
        for node in locator.walk(self.todos):
            node.collapsed = bool(node.children)

    def collapse_completed(self):
        for node in locator.walk(self.todos):
            if node.completed and node.children:
                node.collapsed = True

    # --- History ---

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    def undo(self) -> bool:
        return self.history.undo(self.task_list) is not None

    def redo(self) -> bool:
        return self.history.redo(self.task_list) is not None
