"""
Command Line Interface for Nest Task Manager.
"""

import click
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Optional

from .version import VERSION
from .data import DataCore, ListStore, validate_file
from .models import Priority, NoteColor, TaskNode
from .recovery import NestError, NotFoundError, InvalidArgumentError
from .stats import Stats
from .tree import TaskEngine, SortKey, walk


@contextmanager
def open_store(ctx, save=True):
    """Open the lists file, save it if the block succeeds, report NestErrors."""
    try:
        store = DataCore.open(ctx.obj['data_dir'])
        if save:
            with store:
                yield store
        else:
            yield store
    except NestError as e:
        click.echo(f"❌ {e}", err=True)
        ctx.exit(1)


def resolve_prefix(prefix: str, ids: Iterable[str], what: str) -> str:
    """Expand an abbreviated id to the single id it prefixes."""
    ids = list(ids)
    if prefix in ids:
        return prefix
    matches = [i for i in ids if i.startswith(prefix)]
    if not matches:
        raise NotFoundError(f"No {what} matches '{prefix}'")
    if len(matches) > 1:
        raise InvalidArgumentError(f"'{prefix}' is ambiguous: matches {len(matches)} {what}s")
    return matches[0]


def task_id(engine: TaskEngine, prefix: Optional[str]) -> Optional[str]:
    if prefix is None:
        return None
    return resolve_prefix(prefix, (n.id for n in walk(engine.todos)), "task")


def list_id(store: ListStore, prefix: str) -> str:
    return resolve_prefix(prefix, (l.id for l in store.lists), "list")


def format_duration(seconds: float) -> str:
    minutes = int(seconds) // 60
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m"
    return f"{int(seconds)}s"


def format_task(node: TaskNode, bookmarked: bool) -> str:
    parts = [f"{'[x]' if node.completed else '[ ]'} {node.id[:8]} {node.text}"]
    if node.collapsed and node.children:
        parts.append(f"(+{len(node.children)})")
    if node.priority:
        parts.append(f"!{node.priority.value}")
    if node.cost is not None:
        parts.append(f"${node.cost:g}")
    if node.story_points is not None:
        parts.append(f"{node.story_points:g}sp")
    if node.time_estimate is not None:
        parts.append(f"~{format_duration(node.time_estimate)}")
    if node.due_date is not None:
        parts.append(f"due {node.due_date:%Y-%m-%d}")
    if node.linked_list_id:
        parts.append(f"-> {node.linked_list_id[:8]}")
    if node.pinned:
        parts.append("📌")
    if bookmarked:
        parts.append("🔖")
    return " ".join(parts)


def echo_tree(nodes, bookmarked_id, show_all, depth=0):
    for node in nodes:
        click.echo("  " * depth + format_task(node, node.id == bookmarked_id))
        if show_all or not node.collapsed:
            echo_tree(node.children, bookmarked_id, show_all, depth + 1)


def echo_stats(stats: Stats):
    click.echo(f"📋 Tasks: {stats.completed}/{stats.total} completed ({stats.completion_percentage}%)")
    click.echo(f"💰 Outstanding cost: {stats.cumulative_cost:g}")
    click.echo(f"   Paid: {stats.paid_cost:g}  Unpaid: {stats.unpaid_cost:g}")
    click.echo(f"⏱️  Time spent: {format_duration(stats.cumulative_time_spent)}")
    click.echo(f"   Estimated remaining: {format_duration(stats.cumulative_time_estimate)}")
    if stats.time_efficiency:
        click.echo(f"   Efficiency: {stats.time_efficiency:.2f}")
    click.echo(f"🎯 Story points: {stats.cumulative_story_points:g}")
    for unit, value in sorted(stats.custom_metrics.items()):
        click.echo(f"📏 {unit}: {value:g}")


@click.group()
@click.version_option(version=VERSION, prog_name="nest")
@click.option('--data-dir', type=click.Path(file_okay=False, path_type=Path), default=None,
              help='Directory holding lists.yml (default: $NESTTM_DATA_DIR or ~/.local/share/nesttm/data)')
@click.pass_context
def main(ctx, data_dir):
    """
    Nest Task Manager - hierarchical task lists.

    Tasks are addressed by id; any unique prefix of an id works.
    """
    ctx.ensure_object(dict)
    ctx.obj['data_dir'] = data_dir


@main.command()
@click.option('--name', default='Inbox', help='Name of the first list')
@click.pass_context
def init(ctx, name):
    """Create the lists file with a first, empty list."""
    lists_file = DataCore.lists_file(ctx.obj['data_dir'])
    if lists_file.exists():
        click.echo(f"❌ Already initialized ({lists_file} exists)")
        ctx.exit(1)

    with open_store(ctx) as store:
        task_list = store.add_list(name)
    click.echo(f"🚀 Created {lists_file}")
    click.echo(f"📋 Active list: {task_list.name} ({task_list.id[:8]})")


@main.command(name='lists')
@click.pass_context
def show_lists(ctx):
    """Show all lists and their progress."""
    with open_store(ctx, save=False) as store:
        if not store.lists:
            click.echo("📭 No lists yet, run 'nest init'")
            return
        for task_list in store.lists:
            marker = "👉" if task_list is store.active else "  "
            archived = " (archived)" if task_list.archived else ""
            click.echo(f"{marker} {task_list.id[:8]} {task_list.name}{archived} "
                       f"{store.progress(task_list.id)}%")


@main.command(name='new-list')
@click.argument('name')
@click.pass_context
def new_list(ctx, name):
    """Create a new list."""
    with open_store(ctx) as store:
        task_list = store.add_list(name)
    click.echo(f"✅ Created list {task_list.name} ({task_list.id[:8]})")


@main.command()
@click.argument('list_prefix')
@click.pass_context
def use(ctx, list_prefix):
    """Make another list the active one."""
    with open_store(ctx) as store:
        store.set_active(list_id(store, list_prefix))
        click.echo(f"👉 Active list: {store.active.name}")


@main.command()
@click.option('--all', 'show_all', is_flag=True, help='Also show children of collapsed tasks')
@click.pass_context
def show(ctx, show_all):
    """Show the active list as a tree."""
    with open_store(ctx, save=False) as store:
        engine = store.engine_for()
        click.echo(f"📋 {engine.task_list.name}")
        if not engine.todos:
            click.echo("📭 No tasks")
            return
        echo_tree(engine.todos, engine.bookmarked_id, show_all)


@main.command()
@click.argument('text')
@click.option('-p', '--parent', help='Parent task id (default: new root task)')
@click.option('-i', '--index', type=int, help='Position among the siblings (default: last)')
@click.pass_context
def add(ctx, text, parent, index):
    """Add a task."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        new_id = engine.insert(text, task_id(engine, parent), index)
    click.echo(f"✅ Added {new_id[:8]}")


@main.command()
@click.argument('task')
@click.argument('text')
@click.pass_context
def edit(ctx, task, text):
    """Change a task's text."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        engine.edit(task_id(engine, task), text)
    click.echo("✅ Updated")


@main.command()
@click.argument('task')
@click.pass_context
def rm(ctx, task):
    """Delete a task and all of its subtasks."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        engine.remove(task_id(engine, task))
    click.echo("🗑️  Removed")


@main.command()
@click.argument('task')
@click.option('--elapsed', type=float, help='Seconds worked, logged when the task gets completed')
@click.pass_context
def done(ctx, task, elapsed):
    """Toggle a task's completion (completing also completes its subtasks)."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        node_id = task_id(engine, task)
        engine.toggle_completion(node_id, elapsed)
        completed = engine.get(node_id).completed
    click.echo("✅ Completed" if completed else "↩️  Reopened")


@main.command()
@click.argument('task')
@click.option('-p', '--parent', help='New parent task id (default: root level)')
@click.option('-i', '--index', type=int, help='Position among the new siblings (default: last)')
@click.pass_context
def mv(ctx, task, parent, index):
    """Move a task to another parent and/or position."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        engine.move(task_id(engine, task), task_id(engine, parent), index)
    click.echo("✅ Moved")


@main.command()
@click.argument('task')
@click.pass_context
def dup(ctx, task):
    """Duplicate a task and its subtasks."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        new_id = engine.duplicate(task_id(engine, task))
    click.echo(f"✅ Duplicated as {new_id[:8]}")


@main.command()
@click.argument('task')
@click.pass_context
def combine(ctx, task):
    """Merge a task's children into its text."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        node_id = task_id(engine, task)
        engine.combine(node_id)
        click.echo(f"✅ {engine.get(node_id).text}")


@main.command()
@click.argument('task')
@click.argument('offset', type=int)
@click.pass_context
def split(ctx, task, offset):
    """Split a task's text at a character offset."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        new_id = engine.split(task_id(engine, task), offset)
    click.echo(f"✅ Split off {new_id[:8]}")


@main.command()
@click.option('-p', '--parent', help='Sort this task\'s children (default: root tasks)')
@click.option('--key', type=click.Choice([k.value for k in SortKey]), default=SortKey.TEXT.value)
@click.option('--desc', is_flag=True, help='Sort descending')
@click.pass_context
def sort(ctx, parent, key, desc):
    """Sort the direct children of a task, or the root tasks."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        engine.sort_children(task_id(engine, parent), "descending" if desc else "ascending", key)
    click.echo("✅ Sorted")


@main.command(name='set')
@click.argument('task')
@click.option('--cost', type=float)
@click.option('--estimate', type=float, help='Time estimate in seconds')
@click.option('--points', type=float, help='Story points')
@click.option('--priority', type=click.Choice([p.value for p in Priority]))
@click.option('--due', type=click.DateTime())
@click.option('--link', help='Id of a list whose stats fold into this task')
@click.option('--pin', is_flag=True, help='Toggle the pinned flag')
@click.pass_context
def set_fields(ctx, task, cost, estimate, points, priority, due, link, pin):
    """Set a task's cost, estimate, story points, priority, due date or linked list."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        node_id = task_id(engine, task)
        if cost is not None:
            engine.set_cost(node_id, cost)
        if estimate is not None:
            engine.set_time_estimate(node_id, estimate)
        if points is not None:
            engine.set_story_points(node_id, points)
        if priority is not None:
            engine.set_priority(node_id, priority)
        if due is not None:
            engine.set_due_date(node_id, due)
        if link is not None:
            engine.set_linked_list(node_id, list_id(store, link))
        if pin:
            engine.toggle_pinned(node_id)
        click.echo(format_task(engine.get(node_id), node_id == engine.bookmarked_id))


@main.command()
@click.argument('task')
@click.argument('unit')
@click.argument('value', type=float, required=False)
@click.option('--remove', is_flag=True, help='Remove the metric instead of setting it')
@click.pass_context
def metric(ctx, task, unit, value, remove):
    """Set or remove a custom metric on a task."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        node_id = task_id(engine, task)
        if remove:
            engine.remove_custom_metric(node_id, unit)
        elif value is None:
            raise click.UsageError("VALUE is required unless --remove is given")
        else:
            engine.add_custom_metric(node_id, unit, value)
    click.echo("✅ Updated")


@main.command()
@click.argument('task')
@click.argument('text', required=False)
@click.option('--color', type=click.Choice([c.value for c in NoteColor]))
@click.pass_context
def note(ctx, task, text, color):
    """Attach a note to a task, or remove it when TEXT is omitted."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        node_id = task_id(engine, task)
        if text:
            engine.set_note(node_id, text, color)
        else:
            engine.remove_note(node_id)
    click.echo("✅ Updated")


@main.command()
@click.argument('task')
@click.pass_context
def bookmark(ctx, task):
    """Bookmark a task (or clear the bookmark if it already holds it)."""
    with open_store(ctx) as store:
        engine = store.engine_for()
        engine.toggle_bookmark(task_id(engine, task))
        click.echo("🔖 Bookmarked" if engine.bookmarked_id else "🔖 Bookmark cleared")


@main.command()
@click.argument('task', required=False)
@click.pass_context
def stats(ctx, task):
    """Show aggregated statistics for a task or the whole active list."""
    with open_store(ctx, save=False) as store:
        engine = store.engine_for()
        echo_stats(engine.aggregate(task_id(engine, task)))


@main.command()
@click.pass_context
def validate(ctx):
    """Check the lists file against its schema and the tree invariants."""
    lists_file = DataCore.lists_file(ctx.obj['data_dir'])
    problems = validate_file(lists_file)
    if problems:
        for problem in problems:
            click.echo(f"❌ {problem}")
        ctx.exit(1)
    click.echo(f"✅ {lists_file} is valid")


if __name__ == "__main__":
    main()
