from typing import List, Optional

from nesttm.logs import get_logger
from nesttm.models import TaskList
from .commands import Command

log = get_logger("tree.history")


class History:
    """
    Linear undo/redo log of applied commands.

    Recording a new command after an undo discards the redo branch. The log is
    unbounded unless a limit is given, in which case the oldest entries are
    evicted first.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit
        self._past: List[Command] = []
        self._future: List[Command] = []

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    def record(self, command: Command):
        """Append an already applied command and truncate the redo branch."""
        self._past.append(command)
        self._future.clear()
        if self.limit is not None and len(self._past) > self.limit:
            del self._past[:len(self._past) - self.limit]

    def undo(self, task_list: TaskList) -> Optional[Command]:
        """Revert the most recent command; returns it, or None when there is nothing to undo."""
        if not self._past:
            return None
        command = self._past.pop()
        command.revert(task_list)
        self._future.append(command)
        log.debug(f"Undid {command!r}")
        return command

    def redo(self, task_list: TaskList) -> Optional[Command]:
        """Re-apply the most recently undone command."""
        if not self._future:
            return None
        command = self._future.pop()
        command.apply(task_list)
        self._past.append(command)
        log.debug(f"Redid {command!r}")
        return command

    def clear(self):
        self._past.clear()
        self._future.clear()

    def __len__(self) -> int:
        return len(self._past)
