"""
ListStore - owner of every task list, and DataCore - where they live on disk.

The store is the only component that sees all forests at once, so it is the
one that resolves cross-list references for the Stats Aggregator.
"""
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union
from uuid import uuid4

from nesttm.logs import get_logger
from nesttm.models import ListCollection, TaskList
from nesttm.recovery import InvalidArgumentError, NotFoundError
from nesttm.stats import Stats, aggregate_forest
from nesttm.tree import TaskEngine, walk
from nesttm.tree.invariants import assert_forest
from .io import atomic_write, load_model, DATA_YAML

log = get_logger("data")


class ListStore:
    """All task lists of one user; a context manager that saves on clean exit."""

    FILENAME = "lists.yml"

    def __init__(self, collection: Optional[ListCollection] = None, path: Optional[Path] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 id_factory: Callable[[], str] = lambda: str(uuid4())):
        self.collection = collection if collection is not None else ListCollection()
        self.path = Path(path) if path is not None else None
        self.clock = clock
        self.id_factory = id_factory
        self._engines: Dict[str, TaskEngine] = {}
        self._resolving: Set[str] = set()

    @classmethod
    def load(cls, path: Union[Path, str], **kwargs) -> 'ListStore':
        """Load a store from a lists file; a missing file gives an empty store."""
        path = Path(path)
        collection = load_model(ListCollection, path)
        if collection is None:
            log.info(f"No lists file at {path}, starting empty")
            collection = ListCollection()
        for task_list in collection.lists:
            assert_forest(task_list)
        return cls(collection, path, **kwargs)

    def save(self):
        if self.path is None:
            raise InvalidArgumentError("This store has no file to save to")
        atomic_write(DATA_YAML, self.path, self.collection.model_dump(mode="json"), create_dirs=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Save all changes unless the block raised."""
        if exc_type is None:
            self.save()

    # --- Lists ---

    @property
    def lists(self) -> List[TaskList]:
        return self.collection.lists

    def get(self, list_id: str) -> TaskList:
        task_list = self.collection.find_list(list_id)
        if task_list is None:
            raise NotFoundError(f"List not found: {list_id}")
        return task_list

    @property
    def active(self) -> Optional[TaskList]:
        if self.collection.active_list_id is None:
            return None
        return self.collection.find_list(self.collection.active_list_id)

    def set_active(self, list_id: str):
        self.get(list_id)
        self.collection.active_list_id = list_id

    def add_list(self, name: str) -> TaskList:
        """Create an empty list; the first list becomes the active one."""
        if not name or not name.strip():
            raise InvalidArgumentError("List name must not be blank")
        task_list = TaskList(id=self.id_factory(), name=name.strip())
        self.collection.lists.append(task_list)
        if self.collection.active_list_id is None:
            self.collection.active_list_id = task_list.id
        log.debug(f"Added list {task_list.id} ({task_list.name})")
        return task_list

    def remove_list(self, list_id: str):
        """Delete a list and unlink every task that referenced it."""
        task_list = self.get(list_id)
        self.collection.lists.remove(task_list)
        self._engines.pop(list_id, None)
        for other in self.collection.lists:
            for node in walk(other.todos):
                if node.linked_list_id == list_id:
                    node.linked_list_id = None
        if self.collection.active_list_id == list_id:
            self.collection.active_list_id = self.lists[0].id if self.lists else None
        log.debug(f"Removed list {list_id}")

    def rename_list(self, list_id: str, name: str):
        if not name or not name.strip():
            raise InvalidArgumentError("List name must not be blank")
        self.get(list_id).name = name.strip()

    def archive_list(self, list_id: str):
        self.get(list_id).archived = True

    def unarchive_list(self, list_id: str):
        self.get(list_id).archived = False

    def active_lists(self) -> List[TaskList]:
        return [l for l in self.lists if not l.archived]

    def archived_lists(self) -> List[TaskList]:
        return [l for l in self.lists if l.archived]

    # --- Engines and stats ---

    def engine_for(self, list_id: Optional[str] = None) -> TaskEngine:
        """The TaskEngine of a list (the active one by default), with its own history."""
        if list_id is None:
            list_id = self.collection.active_list_id
            if list_id is None:
                raise NotFoundError("No active list")
        task_list = self.get(list_id)
        engine = self._engines.get(list_id)
        if engine is None or engine.task_list is not task_list:
            engine = TaskEngine(task_list, clock=self.clock, id_factory=self.id_factory,
                                resolve_linked_list=self._resolver_for(list_id))
            self._engines[list_id] = engine
        return engine

    def _resolver_for(self, owner_id: str) -> Callable[[str], Optional[Stats]]:
        """A resolver for the engine of owner_id that treats owner_id as already being aggregated."""
        def resolve(list_id: str) -> Optional[Stats]:
            if owner_id in self._resolving:
                return self.linked_list_stats(list_id)
            self._resolving.add(owner_id)
            try:
                return self.linked_list_stats(list_id)
            finally:
                self._resolving.discard(owner_id)
        return resolve

    def linked_list_stats(self, list_id: str) -> Optional[Stats]:
        """
        Resolve a task's linked list to its aggregate.

        Returns None for a missing list, and for a list that is already being
        resolved further up, so reference cycles between lists terminate.
        """
        task_list = self.collection.find_list(list_id)
        if task_list is None:
            log.warning(f"Linked list {list_id} does not exist")
            return None
        if list_id in self._resolving:
            log.warning(f"Linked list {list_id} is already being aggregated, ignoring the cycle")
            return None
        self._resolving.add(list_id)
        try:
            return aggregate_forest(task_list.todos, self.linked_list_stats)
        finally:
            self._resolving.discard(list_id)

    def progress(self, list_id: str) -> int:
        """Percentage of completed tasks in a list's own forest."""
        return aggregate_forest(self.get(list_id).todos).completion_percentage


class DataCore:
    USER_DATA_DIR = Path.home() / ".local" / "share" / "nesttm" / "data"

    @classmethod
    def data_dir(cls, override: Optional[Union[Path, str]] = None) -> Path:
        """The data directory: explicit override, then NESTTM_DATA_DIR, then the user default."""
        if override:
            return Path(override)
        env_dir = os.getenv('NESTTM_DATA_DIR')
        if env_dir:
            return Path(env_dir)
        return cls.USER_DATA_DIR

    @classmethod
    def lists_file(cls, override: Optional[Union[Path, str]] = None) -> Path:
        return cls.data_dir(override) / ListStore.FILENAME

    @classmethod
    def open(cls, override: Optional[Union[Path, str]] = None, **kwargs) -> ListStore:
        path = cls.lists_file(override)
        log.debug(f"Opening lists file {path}")
        return ListStore.load(path, **kwargs)
