from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from enum import Enum
from typing import Optional, List, Iterator
import yaml


class Priority(Enum):
    BLOCKER = "blocker"
    IMPORTANT = "important"
    LOW = "low"
    LOWEST = "lowest"

class NoteColor(Enum):
    RED = "red"
    ORANGE = "orange"
    GREEN = "green"
    BLUE = "blue"


class BaseYAMLModel(BaseModel):
    """Pydantic model that round trips through YAML files."""

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode="json"), default_flow_style=False,
                              sort_keys=False, indent=2, allow_unicode=True)

    @classmethod
    def from_yaml(cls, text: str):
        data = yaml.safe_load(text) or {}
        return cls.model_validate(data)


class TimeEntry(BaseModel):
    start_time: datetime = Field(description="When the tracked interval started")
    end_time: datetime = Field(description="When the tracked interval ended")
    duration: float = Field(ge=0, description="Length of the interval in seconds")

    @model_validator(mode='after')
    def validate_dates(self):
        if self.end_time < self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class CustomMetric(BaseModel):
    unit: str = Field(description="Unit label the value is measured in, ie. 'pages' or 'kWh'")
    value: float = Field(description="Numeric value of the metric")

    @field_validator('unit')
    @classmethod
    def validate_unit(cls, v):
        if not v or not v.strip():
            raise ValueError("Metric unit must not be blank")
        return v


class TaskNode(BaseModel):
    """A single task and the subtasks it owns."""

    id: str = Field(description="Opaque identifier, stable for the node's lifetime")
    text: str = Field(description="User content of the task")
    completed: bool = Field(default=False, description="Whether the task is done")
    children: List['TaskNode'] = Field(
        default_factory=list,
        description="Ordered list of sub-tasks"
    )
    collapsed: bool = Field(default=False, description="View state: children hidden")
    due_date: Optional[datetime] = Field(default=None, description="When the task is due")
    checked_at: Optional[datetime] = Field(default=None, description="When the task was last completed")
    cost: Optional[float] = Field(default=None, description="Money the task costs")
    time_estimate: Optional[float] = Field(default=None, description="Estimated effort in seconds")
    story_points: Optional[float] = Field(default=None, description="Relative effort in story points")
    custom_metrics: List[CustomMetric] = Field(
        default_factory=list,
        description="Additional metrics, at most one per unit"
    )
    time_entries: List[TimeEntry] = Field(
        default_factory=list,
        description="Append-only log of tracked intervals"
    )
    time_spent: float = Field(default=0, ge=0, description="Accumulated tracked seconds")
    priority: Optional[Priority] = Field(default=None, description="Priority level of the task")
    pinned: bool = Field(default=False, description="Whether the task is pinned to the top")
    linked_list_id: Optional[str] = Field(default=None, description="Id of another list whose stats fold into this task")
    note: Optional[str] = Field(default=None, description="Free text annotation")
    note_color: Optional[NoteColor] = Field(default=None, description="Highlight color of the note")

    @field_validator('text')
    @classmethod
    def validate_text(cls, v):
        if not v or not v.strip():
            raise ValueError("Task text must not be blank")
        return v

    @field_validator('custom_metrics')
    @classmethod
    def validate_metric_units(cls, v):
        units = [m.unit for m in v]
        if len(units) != len(set(units)):
            raise ValueError("Custom metric units must be unique per task")
        return v

    def metric(self, unit: str) -> Optional[CustomMetric]:
        """Find a custom metric by unit."""
        return next((m for m in self.custom_metrics if m.unit == unit), None)

    def walk(self) -> Iterator['TaskNode']:
        """Yield this node and every descendant, depth first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

TaskNode.model_rebuild()


class TaskList(BaseYAMLModel):
    """One named forest of tasks."""

    id: str = Field(description="Unique identifier of the list")
    name: str = Field(description="Human readable list name")
    todos: List[TaskNode] = Field(
        default_factory=list,
        description="Root level tasks, in display order"
    )
    bookmarked_id: Optional[str] = Field(default=None, description="Id of the single bookmarked task")
    global_notes: str = Field(default="", description="Notes attached to the whole list")
    archived: bool = Field(default=False, description="Whether the list is archived")


class ListCollection(BaseYAMLModel):
    """Every task list a user owns."""

    lists: List[TaskList] = Field(default_factory=list, description="All task lists")
    active_list_id: Optional[str] = Field(default=None, description="The list currently being worked on")

    def find_list(self, list_id: str) -> Optional[TaskList]:
        """Find a list by id."""
        return next((l for l in self.lists if l.id == list_id), None)

    @model_validator(mode='after')
    def validate_active(self):
        if self.active_list_id and self.find_list(self.active_list_id) is None:
            raise ValueError(f"Active list {self.active_list_id} does not exist")
        return self
