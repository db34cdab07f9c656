"""
Stats Aggregator - cumulative cost, time, story point and custom metric totals.

Aggregation is a read-only recursive walk. Counts and actual time always
accumulate; the "outstanding" side (cumulative cost, unpaid cost, time
estimate, story points, custom metrics) stops at the first completed node on
the way down, so a finished subtree is considered paid in full.
"""
from pydantic import BaseModel, Field, computed_field
from typing import Callable, Dict, Iterable, Optional

from .models import TaskNode

LinkedListResolver = Callable[[str], Optional['Stats']]


class Stats(BaseModel):
    """Aggregated statistics for a task subtree or a whole forest."""

    total: int = Field(default=0, description="Number of tasks counted")
    completed: int = Field(default=0, description="Number of completed tasks counted")
    cumulative_cost: float = Field(default=0, description="Outstanding cost of incomplete work")
    paid_cost: float = Field(default=0, description="Cost of completed tasks")
    unpaid_cost: float = Field(default=0, description="Cost of incomplete tasks")
    cumulative_time_spent: float = Field(default=0, description="Tracked seconds, completed work included")
    cumulative_time_estimate: float = Field(default=0, description="Estimated seconds of incomplete work")
    cumulative_story_points: float = Field(default=0, description="Story points of incomplete work")
    custom_metrics: Dict[str, float] = Field(default_factory=dict, description="Outstanding custom metrics by unit")

    @computed_field
    @property
    def time_efficiency(self) -> float:
        """Actual over estimated time; 0 when there is no estimate to compare with."""
        if self.cumulative_time_estimate:
            return self.cumulative_time_spent / self.cumulative_time_estimate
        return 0

    @computed_field
    @property
    def completion_percentage(self) -> int:
        if self.total == 0:
            return 0
        return int(self.completed * 100 / self.total + 0.5)

    def add_counts(self, other: 'Stats'):
        """Add the parts of other that accumulate regardless of completion."""
        self.total += other.total
        self.completed += other.completed
        self.cumulative_time_spent += other.cumulative_time_spent
        self.paid_cost += other.paid_cost

    def add_outstanding(self, other: 'Stats'):
        """Add the parts of other that only count while work is incomplete."""
        self.cumulative_cost += other.cumulative_cost
        self.unpaid_cost += other.unpaid_cost
        self.cumulative_time_estimate += other.cumulative_time_estimate
        self.cumulative_story_points += other.cumulative_story_points
        for unit, value in other.custom_metrics.items():
            self.custom_metrics[unit] = self.custom_metrics.get(unit, 0) + value

    def merge(self, other: 'Stats') -> 'Stats':
        """Return the sum of two aggregates."""
        merged = self.model_copy(deep=True)
        merged.add_counts(other)
        merged.add_outstanding(other)
        return merged


def aggregate(node: TaskNode, resolve_linked_list: Optional[LinkedListResolver] = None) -> Stats:
    """
    Compute the cumulative statistics of node and its subtree.

    Args:
        node: Root of the subtree to aggregate
        resolve_linked_list: Optional callback returning the Stats of another
            list by id, or None when the reference is broken

    Returns:
        The aggregated Stats
    """
    stats = Stats(
        total=1,
        completed=1 if node.completed else 0,
        cumulative_time_spent=node.time_spent,
        paid_cost=(node.cost or 0) if node.completed else 0,
    )

    if not node.completed:
        stats.cumulative_cost = node.cost or 0
        stats.unpaid_cost = node.cost or 0
        stats.cumulative_time_estimate = node.time_estimate or 0
        stats.cumulative_story_points = node.story_points or 0
        stats.custom_metrics = {m.unit: m.value for m in node.custom_metrics}

    if node.linked_list_id and resolve_linked_list is not None:
        linked = resolve_linked_list(node.linked_list_id)
        if linked is not None:
            stats.add_counts(linked)
            if not node.completed:
                stats.add_outstanding(linked)

    for child in node.children:
        child_stats = aggregate(child, resolve_linked_list)
        stats.add_counts(child_stats)
        if not node.completed:
            stats.add_outstanding(child_stats)

    return stats


def aggregate_forest(nodes: Iterable[TaskNode], resolve_linked_list: Optional[LinkedListResolver] = None) -> Stats:
    """Sum the aggregates of every root in a forest."""
    stats = Stats()
    for node in nodes:
        node_stats = aggregate(node, resolve_linked_list)
        stats.add_counts(node_stats)
        stats.add_outstanding(node_stats)
    return stats
