import abc
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from nesttm.models import TaskList, TaskNode, TimeEntry
from nesttm.recovery import InvariantViolationError
from . import locator


def _children_of(task_list: TaskList, parent_id: Optional[str]) -> List[TaskNode]:
    if parent_id is None:
        return task_list.todos
    parent = locator.find(task_list.todos, parent_id)
    if parent is None:
        raise InvariantViolationError(f"Parent {parent_id} vanished from list {task_list.id}")
    return parent.children


def _node(task_list: TaskList, node_id: str) -> TaskNode:
    node = locator.find(task_list.todos, node_id)
    if node is None:
        raise InvariantViolationError(f"Task {node_id} vanished from list {task_list.id}")
    return node


def _detach(task_list: TaskList, node_id: str) -> Tuple[TaskNode, Optional[str], int]:
    found = locator.find_with_parent(task_list.todos, node_id)
    if found is None:
        raise InvariantViolationError(f"Task {node_id} vanished from list {task_list.id}")
    node, parent, index = found
    locator.siblings(task_list.todos, parent).pop(index)
    return node, parent.id if parent is not None else None, index


class Command(abc.ABC):
    """
    A single undoable change to a task list.

    Each concrete command captures whatever it needs to undo itself when it
    is applied, so apply() must always run before revert().
    """
    LABEL = None

    @abc.abstractmethod
    def apply(self, task_list: TaskList) -> None:
        """Perform the change on task_list."""
        pass

    @abc.abstractmethod
    def revert(self, task_list: TaskList) -> None:
        """Undo the change made by the last apply()."""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.LABEL}>"


class InsertNode(Command):
    LABEL = "insert"

    def __init__(self, node: TaskNode, parent_id: Optional[str], index: Optional[int] = None):
        self.node = node
        self.parent_id = parent_id
        self.index = index

    def apply(self, task_list):
        target = _children_of(task_list, self.parent_id)
        index = len(target) if self.index is None else self.index
        target.insert(index, self.node)

    def revert(self, task_list):
        _detach(task_list, self.node.id)


class RemoveNode(Command):
    LABEL = "remove"

    def __init__(self, node_id: str):
        self.node_id = node_id
        self.node = None
        self.parent_id = None
        self.index = 0
        self.bookmarked_id = None

    def apply(self, task_list):
        self.node, self.parent_id, self.index = _detach(task_list, self.node_id)
        self.bookmarked_id = task_list.bookmarked_id
        if task_list.bookmarked_id and locator.find([self.node], task_list.bookmarked_id):
            task_list.bookmarked_id = None

    def revert(self, task_list):
        _children_of(task_list, self.parent_id).insert(self.index, self.node)
        task_list.bookmarked_id = self.bookmarked_id


class MoveNode(Command):
    LABEL = "move"

    def __init__(self, node_id: str, parent_id: Optional[str], index: Optional[int] = None):
        self.node_id = node_id
        self.parent_id = parent_id
        self.index = index
        self.from_parent_id = None
        self.from_index = 0

    def apply(self, task_list):
        node, self.from_parent_id, self.from_index = _detach(task_list, self.node_id)
        target = _children_of(task_list, self.parent_id)
        index = len(target) if self.index is None else self.index
        target.insert(index, node)

    def revert(self, task_list):
        node, _, _ = _detach(task_list, self.node_id)
        _children_of(task_list, self.from_parent_id).insert(self.from_index, node)


class SetField(Command):
    LABEL = "set"

    def __init__(self, node_id: str, field: str, value: Any):
        self.node_id = node_id
        self.field = field
        self.value = value
        self.previous = None

    def apply(self, task_list):
        node = _node(task_list, self.node_id)
        self.previous = getattr(node, self.field)
        setattr(node, self.field, self.value)

    def revert(self, task_list):
        setattr(_node(task_list, self.node_id), self.field, self.previous)

    def __repr__(self) -> str:
        return f"<SetField {self.field}={self.value!r}>"


class ToggleCompletion(Command):
    LABEL = "toggle"

    def __init__(self, node_id: str, now: datetime, elapsed: Optional[float] = None):
        self.node_id = node_id
        self.now = now
        self.elapsed = elapsed
        self.previous: Dict[str, Tuple[bool, Optional[datetime]]] = {}
        self.previous_time_spent = 0
        self.previous_entries = 0

    def apply(self, task_list):
        node = _node(task_list, self.node_id)
        self.previous = {n.id: (n.completed, n.checked_at) for n in node.walk()}
        self.previous_time_spent = node.time_spent
        self.previous_entries = len(node.time_entries)

        if node.completed:
            # Un-completing never cascades: children keep their own state
            node.completed = False
            node.checked_at = None
            return

        for n in node.walk():
            if not n.completed:
                n.completed = True
                n.checked_at = self.now
        if self.elapsed:
            node.time_spent += self.elapsed
            node.time_entries.append(TimeEntry(
                start_time=self.now - timedelta(seconds=self.elapsed),
                end_time=self.now,
                duration=self.elapsed,
            ))

    def revert(self, task_list):
        node = _node(task_list, self.node_id)
        for n in node.walk():
            if n.id in self.previous:
                n.completed, n.checked_at = self.previous[n.id]
        node.time_spent = self.previous_time_spent
        del node.time_entries[self.previous_entries:]


class ReplaceChildren(Command):
    LABEL = "replace"

    def __init__(self, parent_id: Optional[str], children: Sequence[TaskNode]):
        self.parent_id = parent_id
        self.children = list(children)
        self.previous: List[TaskNode] = []

    def apply(self, task_list):
        target = _children_of(task_list, self.parent_id)
        self.previous = list(target)
        target[:] = self.children

    def revert(self, task_list):
        _children_of(task_list, self.parent_id)[:] = self.previous


class SetBookmark(Command):
    LABEL = "bookmark"

    def __init__(self, node_id: Optional[str]):
        self.node_id = node_id
        self.previous = None

    def apply(self, task_list):
        self.previous = task_list.bookmarked_id
        task_list.bookmarked_id = self.node_id

    def revert(self, task_list):
        task_list.bookmarked_id = self.previous


class Batch(Command):
    """Several commands applied as one history step."""
    LABEL = "batch"

    def __init__(self, label: str, commands: Sequence[Command]):
        self.LABEL = label
        self.commands = list(commands)

    def apply(self, task_list):
        for command in self.commands:
            command.apply(task_list)

    def revert(self, task_list):
        for command in reversed(self.commands):
            command.revert(task_list)
