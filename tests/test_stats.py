"""Tests for the stats aggregator."""

import pytest

from nesttm.models import CustomMetric
from nesttm.stats import Stats, aggregate, aggregate_forest
from conftest import make_node


class TestAggregate:
    """Test aggregating one subtree."""

    def test_completed_child_is_paid(self):
        """Test a completed child's cost moves from unpaid to paid."""
        tree = make_node("a", cost=20, children=[make_node("b", cost=5, completed=True)])
        stats = aggregate(tree)
        assert stats.cumulative_cost == 20
        assert stats.paid_cost == 5
        assert stats.unpaid_cost == 20
        assert stats.total == 2
        assert stats.completed == 1

    def test_completed_parent_is_fully_paid(self):
        """Test a completed subtree has no outstanding cost."""
        tree = make_node("a", cost=20, completed=True,
                         children=[make_node("b", cost=5, completed=True)])
        stats = aggregate(tree)
        assert stats.cumulative_cost == 0
        assert stats.paid_cost == 25
        assert stats.unpaid_cost == 0

    def test_completed_parent_with_incomplete_child(self):
        """Test outstanding amounts stop at a completed parent."""
        tree = make_node("a", cost=10, completed=True, children=[make_node("b", cost=5)])
        stats = aggregate(tree)
        assert stats.cumulative_cost == 0
        assert stats.paid_cost == 10
        assert stats.total == 2

    def test_time_and_points(self):
        """Test time, estimate and story point totals."""
        tree = make_node("a", time_estimate=3600, story_points=3, time_spent=600, children=[
            make_node("b", time_estimate=1800, story_points=2, time_spent=1200),
            make_node("c", time_estimate=600, story_points=8, time_spent=300, completed=True),
        ])
        stats = aggregate(tree)
        assert stats.cumulative_time_estimate == 5400
        assert stats.cumulative_story_points == 5
        assert stats.cumulative_time_spent == 2100
        assert stats.time_efficiency == pytest.approx(2100 / 5400)

    def test_no_estimate_efficiency(self):
        """Test efficiency is 0 without an estimate."""
        assert aggregate(make_node("a", time_spent=50)).time_efficiency == 0

    def test_custom_metrics(self):
        """Test custom metrics are summed per unit."""
        tree = make_node("a", custom_metrics=[CustomMetric(unit="pages", value=4)], children=[
            make_node("b", custom_metrics=[CustomMetric(unit="pages", value=6),
                                           CustomMetric(unit="kWh", value=2)]),
            make_node("c", completed=True, custom_metrics=[CustomMetric(unit="pages", value=100)]),
        ])
        assert aggregate(tree).custom_metrics == {"pages": 10, "kWh": 2}

    def test_linked_list(self):
        """Test a linked list's stats are folded into the linking task."""
        linked = Stats(total=3, completed=1, cumulative_cost=7, unpaid_cost=7, paid_cost=2)
        tree = make_node("a", cost=1, linked_list_id="other")
        stats = aggregate(tree, lambda list_id: linked if list_id == "other" else None)
        assert stats.total == 4
        assert stats.cumulative_cost == 8
        assert stats.paid_cost == 2

    def test_missing_linked_list(self):
        """Test a broken list link contributes nothing."""
        tree = make_node("a", cost=1, linked_list_id="gone")
        stats = aggregate(tree, lambda list_id: None)
        assert stats.total == 1
        assert stats.cumulative_cost == 1

    def test_completion_percentage(self):
        """Test percentages round to the nearest whole number."""
        tree = make_node("a", children=[make_node("b", completed=True), make_node("c")])
        assert aggregate(tree).completion_percentage == 33
        assert Stats().completion_percentage == 0


class TestForest:
    """Test aggregating whole forests."""

    def test_sum_of_roots(self):
        """Test the forest total is the sum of its roots."""
        roots = [make_node("a", cost=3), make_node("b", cost=4, completed=True)]
        stats = aggregate_forest(roots)
        assert stats.total == 2
        assert stats.cumulative_cost == 3
        assert stats.paid_cost == 4

    def test_merge(self):
        """Test merging two aggregates."""
        merged = Stats(total=1, cumulative_cost=2, custom_metrics={"x": 1}).merge(
            Stats(total=2, completed=1, cumulative_cost=3, custom_metrics={"x": 2, "y": 5}))
        assert merged.total == 3
        assert merged.cumulative_cost == 5
        assert merged.custom_metrics == {"x": 3, "y": 5}

    def test_engine_completion_scenario(self, engine):
        """Test completing a parent through the engine settles its cost."""
        a = engine.insert("A")
        b = engine.insert("B", a)
        engine.set_cost(a, 20)
        engine.set_cost(b, 5)
        engine.toggle_completion(b)
        assert (engine.aggregate(a).cumulative_cost, engine.aggregate(a).paid_cost) == (20, 5)

        engine.toggle_completion(a)
        stats = engine.aggregate()
        assert stats.cumulative_cost == 0
        assert stats.paid_cost == 25
        assert stats.unpaid_cost == 0
