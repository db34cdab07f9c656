"""Shared fixtures: keep logs and data out of the real home directory."""

import os
import tempfile

os.environ.setdefault("NESTTM_LOG_DIR", tempfile.mkdtemp(prefix="nesttm-logs-"))

import itertools
from datetime import datetime

import pytest

from nesttm.models import TaskList, TaskNode
from nesttm.tree import TaskEngine


@pytest.fixture(autouse=True)
def isolated_data_dir(tmp_path, monkeypatch):
    data_dir = tmp_path / "data"
    monkeypatch.setenv("NESTTM_DATA_DIR", str(data_dir))
    return data_dir


@pytest.fixture
def clock():
    return lambda: datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def engine(clock):
    """An engine over an empty list with predictable ids: t1, t2, ..."""
    counter = itertools.count(1)
    return TaskEngine(TaskList(id="list-1", name="Test"), clock=clock,
                      id_factory=lambda: f"t{next(counter)}")


def make_node(node_id, text=None, children=None, **fields):
    return TaskNode(id=node_id, text=text or node_id.upper(), children=children or [], **fields)
