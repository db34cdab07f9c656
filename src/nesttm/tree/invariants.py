from typing import List, Optional

from nesttm.logs import get_logger
from nesttm.models import TaskList, TaskNode
from nesttm.recovery import InvariantViolationError

log = get_logger("tree.invariants")


def check_forest(task_list: TaskList) -> List[str]:
    """
    Collect every structural problem in a task list.

    Checks id uniqueness (which also rules out a node appearing twice, and so
    cycles), that the bookmark points at an existing task, that no task is due
    after its parent, and that custom metric units are unique per task.

    Returns:
        A list of human readable problems; empty when the forest is sound
    """
    problems = []
    seen = set()

    def visit(node: TaskNode, parent: Optional[TaskNode]):
        if node.id in seen:
            problems.append(f"Duplicate task id {node.id}")
            return
        seen.add(node.id)
        if not node.text.strip():
            problems.append(f"Task {node.id} has blank text")
        if parent is not None and parent.due_date and node.due_date and node.due_date > parent.due_date:
            problems.append(f"Task {node.id} is due after its parent {parent.id}")
        units = [m.unit for m in node.custom_metrics]
        if len(units) != len(set(units)):
            problems.append(f"Task {node.id} repeats a custom metric unit")
        for child in node.children:
            visit(child, node)

    for root in task_list.todos:
        visit(root, None)

    if task_list.bookmarked_id is not None and task_list.bookmarked_id not in seen:
        problems.append(f"Bookmark points at missing task {task_list.bookmarked_id}")
    return problems


def assert_forest(task_list: TaskList):
    """Raise InvariantViolationError when check_forest finds anything."""
    problems = check_forest(task_list)
    if problems:
        error_msg = f"List {task_list.id} is corrupt: {'; '.join(problems)}"
        log.critical(error_msg)
        raise InvariantViolationError(error_msg)
