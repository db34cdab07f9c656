"""Tests for TaskEngine mutations and queries."""

import pytest
from datetime import datetime, timedelta

from nesttm.models import Priority, NoteColor
from nesttm.recovery import InvalidArgumentError, NotFoundError, InvariantViolationError
from nesttm.tree import SortKey, SortOrder, locator


def build(engine, shape, parent_id=None):
    """Insert a nested {text: {child_text: {...}}} shape; returns text -> id."""
    ids = {}
    for text, children in shape.items():
        ids[text] = engine.insert(text, parent_id)
        ids.update(build(engine, children, ids[text]))
    return ids


def texts(nodes):
    return [n.text for n in nodes]


class TestInsert:
    """Test adding tasks."""

    def test_insert_root_and_child(self, engine):
        """Test that inserts land where asked."""
        a = engine.insert("A")
        b = engine.insert("B", a)
        assert texts(engine.todos) == ["A"]
        assert engine.get(b).text == "B"
        assert engine.locate(b).parent.id == a

    def test_insert_at_index(self, engine):
        """Test inserting at a position."""
        engine.insert("A")
        engine.insert("C")
        engine.insert("B", index=1)
        assert texts(engine.todos) == ["A", "B", "C"]

    def test_blank_text_rejected(self, engine):
        """Test that blank tasks are refused."""
        with pytest.raises(InvalidArgumentError):
            engine.insert("   ")
        assert engine.todos == []

    def test_missing_parent(self, engine):
        """Test that an unknown parent is an error."""
        with pytest.raises(NotFoundError):
            engine.insert("A", "nope")

    def test_index_out_of_range(self, engine):
        """Test that positions past the end are refused."""
        with pytest.raises(InvalidArgumentError):
            engine.insert("A", index=1)


class TestRemoveAndEdit:
    """Test removing and editing tasks."""

    def test_remove_subtree(self, engine):
        """Test that removing a task removes its descendants."""
        ids = build(engine, {"A": {"B": {"C": {}}}, "D": {}})
        engine.remove(ids["A"])
        assert texts(engine.todos) == ["D"]
        assert locator.find(engine.todos, ids["C"]) is None

    def test_remove_missing(self, engine):
        """Test that removing an unknown id is an error."""
        with pytest.raises(NotFoundError):
            engine.remove("nope")

    def test_remove_clears_bookmark_inside(self, engine):
        """Test that removing a bookmarked descendant clears the bookmark."""
        ids = build(engine, {"A": {"B": {}}})
        engine.toggle_bookmark(ids["B"])
        engine.remove(ids["A"])
        assert engine.bookmarked_id is None

    def test_remove_keeps_unrelated_bookmark(self, engine):
        """Test that other bookmarks survive a removal."""
        ids = build(engine, {"A": {}, "B": {}})
        engine.toggle_bookmark(ids["B"])
        engine.remove(ids["A"])
        assert engine.bookmarked_id == ids["B"]

    def test_edit(self, engine):
        """Test editing text, and refusing blank text."""
        a = engine.insert("A")
        engine.edit(a, "Renamed")
        assert engine.get(a).text == "Renamed"
        with pytest.raises(InvalidArgumentError):
            engine.edit(a, "")
        assert engine.get(a).text == "Renamed"


class TestToggleCompletion:
    """Test completing and un-completing tasks."""

    def test_completion_cascades_down(self, engine, clock):
        """Test that completing a task completes its whole subtree."""
        ids = build(engine, {"A": {"B": {"C": {}}, "D": {}}})
        engine.toggle_completion(ids["A"])
        for text in "ABCD":
            node = engine.get(ids[text])
            assert node.completed
            assert node.checked_at == clock()

    def test_uncomplete_does_not_cascade(self, engine):
        """Test that un-completing leaves descendants completed."""
        ids = build(engine, {"A": {"B": {}}})
        engine.toggle_completion(ids["A"])
        engine.toggle_completion(ids["A"])
        assert not engine.get(ids["A"]).completed
        assert engine.get(ids["A"]).checked_at is None
        assert engine.get(ids["B"]).completed

    def test_no_upward_completion(self, engine):
        """Test that completing the last child leaves the parent alone."""
        ids = build(engine, {"A": {"B": {}}})
        engine.toggle_completion(ids["B"])
        assert not engine.get(ids["A"]).completed

    def test_elapsed_time_recorded_once(self, engine, clock):
        """Test that elapsed time is only added when completing."""
        a = engine.insert("A")
        engine.toggle_completion(a, elapsed=90)
        node = engine.get(a)
        assert node.time_spent == 90
        assert len(node.time_entries) == 1
        assert node.time_entries[0].end_time == clock()
        assert node.time_entries[0].start_time == clock() - timedelta(seconds=90)

        engine.toggle_completion(a, elapsed=30)
        assert not node.completed
        assert node.time_spent == 90

    def test_double_toggle_restores_flag(self, engine):
        """Test that toggling twice returns the task to its original flag."""
        a = engine.insert("A")
        engine.toggle_completion(a)
        engine.toggle_completion(a)
        assert not engine.get(a).completed

    def test_negative_elapsed(self, engine):
        """Test that negative elapsed time is refused."""
        a = engine.insert("A")
        with pytest.raises(InvalidArgumentError):
            engine.toggle_completion(a, elapsed=-1)
        assert not engine.get(a).completed


class TestMove:
    """Test reparenting and reordering."""

    def test_reorder_siblings(self, engine):
        """Test moving a root to the front."""
        ids = build(engine, {"A": {}, "B": {}, "C": {}})
        engine.move(ids["C"], None, 0)
        assert texts(engine.todos) == ["C", "A", "B"]

    def test_index_is_after_removal(self, engine):
        """Test that the index counts siblings without the moved task."""
        ids = build(engine, {"A": {}, "B": {}, "C": {}})
        engine.move(ids["A"], None, 1)
        assert texts(engine.todos) == ["B", "A", "C"]

    def test_reorder_round_trip_at_root(self, engine):
        """Test moving a root down and back restores the original order."""
        ids = build(engine, {"A": {}, "B": {}, "C": {}, "D": {}})
        engine.move(ids["A"], None, 2)
        assert texts(engine.todos) == ["B", "C", "A", "D"]
        engine.move(ids["A"], None, 0)
        assert texts(engine.todos) == ["A", "B", "C", "D"]

    def test_reorder_round_trip_under_parent(self, engine):
        """Test reordering a child in both directions restores the original order."""
        ids = build(engine, {"P": {"X": {}, "Y": {}, "Z": {}}})
        engine.move(ids["X"], ids["P"], 2)
        assert texts(engine.get(ids["P"]).children) == ["Y", "Z", "X"]
        engine.move(ids["X"], ids["P"], 0)
        assert texts(engine.get(ids["P"]).children) == ["X", "Y", "Z"]

        engine.move(ids["Z"], ids["P"], 0)
        assert texts(engine.get(ids["P"]).children) == ["Z", "X", "Y"]
        engine.move(ids["Z"], ids["P"], 2)
        assert texts(engine.get(ids["P"]).children) == ["X", "Y", "Z"]

    def test_reparent(self, engine):
        """Test moving a task under another task."""
        ids = build(engine, {"A": {"X": {}}, "B": {}})
        engine.move(ids["B"], ids["A"], 0)
        assert texts(engine.get(ids["A"]).children) == ["B", "X"]
        assert texts(engine.todos) == ["A"]

    def test_move_to_root_end(self, engine):
        """Test appending a nested task at the root."""
        ids = build(engine, {"A": {"B": {}}, "C": {}})
        engine.move(ids["B"])
        assert texts(engine.todos) == ["A", "C", "B"]

    def test_cycle_refused(self, engine):
        """Test that a task cannot move under its own descendant."""
        ids = build(engine, {"A": {"B": {"C": {}}}})
        before = [n.model_copy(deep=True) for n in engine.todos]
        with pytest.raises(InvalidArgumentError):
            engine.move(ids["A"], ids["C"])
        with pytest.raises(InvalidArgumentError):
            engine.move(ids["A"], ids["A"])
        assert engine.todos == before
        assert len(engine.history) == 3

    def test_due_after_new_parent_refused(self, engine):
        """Test that a task may not move under a parent due earlier."""
        ids = build(engine, {"A": {}, "B": {}})
        engine.set_due_date(ids["A"], datetime(2024, 6, 1))
        engine.set_due_date(ids["B"], datetime(2024, 7, 1))
        with pytest.raises(InvalidArgumentError):
            engine.move(ids["B"], ids["A"])

    def test_same_position_is_noop(self, engine):
        """Test that moving a task onto itself records nothing."""
        ids = build(engine, {"A": {}, "B": {}})
        recorded = len(engine.history)
        engine.move(ids["B"], None, 1)
        engine.move(ids["B"])
        assert len(engine.history) == recorded

    def test_index_out_of_range(self, engine):
        """Test that positions past the end are refused."""
        ids = build(engine, {"A": {}, "B": {}})
        with pytest.raises(InvalidArgumentError):
            engine.move(ids["A"], None, 2)


class TestDuplicate:
    """Test duplicating subtrees."""

    def test_duplicate_subtree(self, engine):
        """Test the copy lands right after the original with fresh ids."""
        ids = build(engine, {"A": {"B": {"C": {}}}, "D": {}})
        engine.set_cost(ids["B"], 12)
        copy_id = engine.duplicate(ids["A"])

        assert texts(engine.todos) == ["A", "A", "D"]
        assert engine.todos[1].id == copy_id
        original = {n.id for n in engine.todos[0].walk()}
        copied = {n.id for n in engine.todos[1].walk()}
        assert len(copied) == 3
        assert original.isdisjoint(copied)
        assert engine.todos[1].children[0].cost == 12

    def test_copy_is_independent(self, engine):
        """Test that editing the copy leaves the original alone."""
        ids = build(engine, {"A": {"B": {}}})
        copy_id = engine.duplicate(ids["A"])
        engine.edit(engine.get(copy_id).children[0].id, "Changed")
        assert engine.get(ids["B"]).text == "B"


class TestCombineAndSplit:
    """Test folding children into a task and splitting text."""

    def test_combine(self, engine):
        """Test children's text is folded into the parent."""
        ids = build(engine, {"Shop": {"milk": {"skim": {}}, "eggs": {}}})
        engine.combine(ids["Shop"])
        node = engine.get(ids["Shop"])
        assert node.text == "Shop: milk, eggs"
        assert node.children == []

    def test_combine_childless_is_noop(self, engine):
        """Test combining a leaf changes nothing."""
        a = engine.insert("A")
        recorded = len(engine.history)
        engine.combine(a)
        assert engine.get(a).text == "A"
        assert len(engine.history) == recorded

    def test_combine_clears_inner_bookmark(self, engine):
        """Test that a bookmark on a folded child is cleared."""
        ids = build(engine, {"A": {"B": {}}})
        engine.toggle_bookmark(ids["B"])
        engine.combine(ids["A"])
        assert engine.bookmarked_id is None

    def test_split(self, engine):
        """Test splitting text into a clean next sibling."""
        ids = build(engine, {"Buy milk": {"brand": {}}, "Z": {}})
        engine.set_cost(ids["Buy milk"], 3)
        new_id = engine.split(ids["Buy milk"], 4)

        assert texts(engine.todos) == ["Buy ", "milk", "Z"]
        original, new = engine.get(ids["Buy milk"]), engine.get(new_id)
        assert original.cost == 3
        assert texts(original.children) == ["brand"]
        assert new.cost is None
        assert new.children == []

    @pytest.mark.parametrize("offset", [0, 5, -1, 99])
    def test_split_outside_text(self, engine, offset):
        """Test offsets on or past the text boundaries are refused."""
        a = engine.insert("Hello")
        with pytest.raises(InvalidArgumentError):
            engine.split(a, offset)
        assert texts(engine.todos) == ["Hello"]

    def test_split_blank_half(self, engine):
        """Test that a split leaving only whitespace is refused."""
        a = engine.insert("ab   ")
        with pytest.raises(InvalidArgumentError):
            engine.split(a, 2)


class TestSort:
    """Test sorting a task's children."""

    def test_text_ascending_case_insensitive(self, engine):
        """Test text sort ignores case."""
        build(engine, {"banana": {}, "Apple": {}, "cherry": {}})
        engine.sort_children()
        assert texts(engine.todos) == ["Apple", "banana", "cherry"]

    def test_cost_missing_last_ascending(self, engine):
        """Test tasks without a cost go last when ascending."""
        ids = build(engine, {"none": {}, "ten": {}, "two": {}})
        engine.set_cost(ids["ten"], 10)
        engine.set_cost(ids["two"], 2)
        engine.sort_children(key=SortKey.COST)
        assert texts(engine.todos) == ["two", "ten", "none"]

    def test_cost_missing_first_descending(self, engine):
        """Test tasks without a cost go first when descending."""
        ids = build(engine, {"ten": {}, "none": {}, "two": {}})
        engine.set_cost(ids["ten"], 10)
        engine.set_cost(ids["two"], 2)
        engine.sort_children(order="descending", key="cost")
        assert texts(engine.todos) == ["none", "ten", "two"]

    def test_stable(self, engine):
        """Test equal keys keep their relative order in both directions."""
        ids = build(engine, {"x1": {}, "x2": {}, "x3": {}})
        for text in ids:
            engine.set_story_points(ids[text], 5)
        engine.sort_children(key=SortKey.STORY_POINTS)
        assert texts(engine.todos) == ["x1", "x2", "x3"]
        engine.sort_children(order=SortOrder.DESCENDING, key=SortKey.STORY_POINTS)
        assert texts(engine.todos) == ["x1", "x2", "x3"]

    def test_sort_nested_children_only(self, engine):
        """Test sorting one parent leaves the roots alone."""
        ids = build(engine, {"Z": {"b": {}, "a": {}}, "A": {}})
        engine.sort_children(ids["Z"])
        assert texts(engine.get(ids["Z"]).children) == ["a", "b"]
        assert texts(engine.todos) == ["Z", "A"]

    def test_unknown_key(self, engine):
        """Test an unknown key is refused."""
        with pytest.raises(InvalidArgumentError):
            engine.sort_children(key="color")


class TestFields:
    """Test setting task fields."""

    def test_due_date_after_parent_refused(self, engine):
        """Test a child cannot be due after its parent."""
        ids = build(engine, {"A": {"B": {}}})
        engine.set_due_date(ids["A"], datetime(2024, 6, 1))
        with pytest.raises(InvalidArgumentError):
            engine.set_due_date(ids["B"], datetime(2024, 6, 2))
        engine.set_due_date(ids["B"], datetime(2024, 5, 30))
        assert engine.get(ids["B"]).due_date == datetime(2024, 5, 30)

    def test_due_date_before_child_refused(self, engine):
        """Test a parent cannot be due before its children."""
        ids = build(engine, {"A": {"B": {}}})
        engine.set_due_date(ids["B"], datetime(2024, 6, 10))
        with pytest.raises(InvalidArgumentError):
            engine.set_due_date(ids["A"], datetime(2024, 6, 1))

    def test_clear_due_date(self, engine):
        """Test clearing a due date."""
        a = engine.insert("A")
        engine.set_due_date(a, datetime(2024, 6, 1))
        engine.set_due_date(a, None)
        assert engine.get(a).due_date is None

    @pytest.mark.parametrize("setter", ["set_cost", "set_time_estimate", "set_story_points"])
    def test_negative_amounts_refused(self, engine, setter):
        """Test that amounts cannot be negative."""
        a = engine.insert("A")
        with pytest.raises(InvalidArgumentError):
            getattr(engine, setter)(a, -5)

    def test_priority(self, engine):
        """Test setting priority by enum or string."""
        a = engine.insert("A")
        engine.set_priority(a, "blocker")
        assert engine.get(a).priority == Priority.BLOCKER
        with pytest.raises(InvalidArgumentError):
            engine.set_priority(a, "urgent")

    def test_note(self, engine):
        """Test adding and removing a note."""
        a = engine.insert("A")
        engine.set_note(a, "call first", "orange")
        assert engine.get(a).note == "call first"
        assert engine.get(a).note_color == NoteColor.ORANGE
        engine.remove_note(a)
        assert engine.get(a).note is None
        assert engine.get(a).note_color is None

    def test_link_to_own_list(self, engine):
        """Test a task cannot link to the list it lives in."""
        a = engine.insert("A")
        with pytest.raises(InvalidArgumentError):
            engine.set_linked_list(a, engine.task_list.id)
        engine.set_linked_list(a, "other")
        assert engine.get(a).linked_list_id == "other"

    def test_custom_metrics(self, engine):
        """Test adding, replacing and removing custom metrics."""
        a = engine.insert("A")
        engine.add_custom_metric(a, "pages", 3)
        engine.add_custom_metric(a, "kWh", 1.5)
        engine.add_custom_metric(a, "pages", 7)
        node = engine.get(a)
        assert [(m.unit, m.value) for m in node.custom_metrics] == [("pages", 7), ("kWh", 1.5)]

        engine.remove_custom_metric(a, "pages")
        engine.remove_custom_metric(a, "missing")
        assert [m.unit for m in engine.get(a).custom_metrics] == ["kWh"]

    def test_pin_and_query(self, engine):
        """Test pinned tasks can be listed."""
        ids = build(engine, {"A": {"B": {}}})
        engine.toggle_pinned(ids["B"])
        assert texts(engine.pinned()) == ["B"]
        engine.toggle_pinned(ids["B"])
        assert engine.pinned() == []

    def test_bookmark_toggle(self, engine):
        """Test the bookmark moves and clears."""
        ids = build(engine, {"A": {}, "B": {}})
        engine.toggle_bookmark(ids["A"])
        engine.toggle_bookmark(ids["B"])
        assert engine.bookmarked_id == ids["B"]
        engine.toggle_bookmark(ids["B"])
        assert engine.bookmarked_id is None


class TestBulkOperations:
    """Test operations touching many tasks."""

    def test_clear_completed(self, engine):
        """Test completed subtrees are removed, incomplete ones stay."""
        ids = build(engine, {"A": {"B": {}, "C": {}}, "D": {}})
        engine.toggle_completion(ids["B"])
        engine.toggle_completion(ids["D"])
        assert engine.clear_completed() == 2
        assert texts(engine.todos) == ["A"]
        assert texts(engine.get(ids["A"]).children) == ["C"]

    def test_clear_all(self, engine):
        """Test clearing everything, and undoing it."""
        ids = build(engine, {"A": {}, "B": {}})
        engine.toggle_bookmark(ids["A"])
        engine.clear_all()
        assert engine.todos == []
        assert engine.bookmarked_id is None
        engine.undo()
        assert texts(engine.todos) == ["A", "B"]
        assert engine.bookmarked_id == ids["A"]

    def test_replace_text(self, engine):
        """Test search and replace across the tree."""
        build(engine, {"buy milk": {"milk brand": {}}, "eggs": {}})
        assert engine.replace_text("milk", "oat milk") == 2
        assert engine.todos[0].text == "buy oat milk"
        assert engine.todos[0].children[0].text == "oat milk brand"


class TestQueries:
    """Test read-only queries."""

    def test_ancestors(self, engine):
        """Test the ancestor chain."""
        ids = build(engine, {"A": {"B": {"C": {}}}})
        assert texts(engine.ancestors(ids["C"])) == ["A", "B", "C"]

    def test_overdue_and_due_within(self, engine, clock):
        """Test due date queries skip completed tasks."""
        ids = build(engine, {"late": {}, "soon": {}, "later": {}, "done": {}})
        engine.set_due_date(ids["late"], clock() - timedelta(days=1))
        engine.set_due_date(ids["soon"], clock() + timedelta(days=2))
        engine.set_due_date(ids["later"], clock() + timedelta(days=30))
        engine.set_due_date(ids["done"], clock() - timedelta(days=1))
        engine.toggle_completion(ids["done"])

        assert texts(engine.overdue()) == ["late"]
        assert texts(engine.due_within(7)) == ["late", "soon"]

    def test_verify_detects_corruption(self, engine):
        """Test verify flags a duplicated id."""
        ids = build(engine, {"A": {}})
        engine.verify()
        engine.todos.append(engine.get(ids["A"]))
        with pytest.raises(InvariantViolationError):
            engine.verify()


class TestViewState:
    """Test collapse and expand."""

    def test_expand_reveals_ancestors(self, engine):
        """Test expanding a task opens its ancestors."""
        ids = build(engine, {"A": {"B": {"C": {}}}})
        engine.collapse_all()
        assert engine.get(ids["A"]).collapsed
        assert not engine.get(ids["C"]).collapsed
        engine.expand(ids["C"])
        assert not engine.get(ids["A"]).collapsed
        assert not engine.get(ids["B"]).collapsed

    def test_view_changes_not_recorded(self, engine):
        """Test collapse state is not part of undo history."""
        ids = build(engine, {"A": {"B": {}}})
        recorded = len(engine.history)
        engine.toggle_collapse(ids["A"])
        engine.expand_all()
        engine.collapse_completed()
        assert len(engine.history) == recorded

    def test_collapse_completed(self, engine):
        """Test only completed parents collapse."""
        ids = build(engine, {"A": {"B": {}}, "C": {"D": {}}})
        engine.toggle_completion(ids["A"])
        engine.collapse_completed()
        assert engine.get(ids["A"]).collapsed
        assert not engine.get(ids["C"]).collapsed
