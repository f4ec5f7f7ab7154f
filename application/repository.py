"""Entity-level operations over a ``TaskStorage``.

The repository owns no state of its own: every call re-reads the store, which
keeps the directory tree the single source of truth. Each mutation also
rewrites the owning list's metadata so that task order and ``updated_at``
stay consistent.
"""

import dataclasses
import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from core import ListMetadata, Task, TaskList, next_timestamp
from core.errors import ListNotFoundError, TaskNotFoundError, TasksError
from application.ports import TaskStorage

DEFAULT_LIST_NAME = "My Tasks"

logger = logging.getLogger("plaintasks.repository")


def move_in_order(order: List[str], item: str, new_position: int) -> List[str]:
    """Remove ``item`` and reinsert it at ``min(new_position, len(rest))``.

    The single ordering algorithm for both list order and task order.
    """
    if new_position < 0:
        raise ValueError(f"Position must be >= 0, got {new_position}")
    rest = [x for x in order if x != item]
    rest.insert(min(new_position, len(rest)), item)
    return rest


class TaskRepository:
    def __init__(self, storage: TaskStorage, workspace_path: Optional[Path] = None):
        self.storage = storage
        self.workspace_path = Path(workspace_path) if workspace_path is not None else None

    @classmethod
    def open(cls, tasks_folder: Path) -> "TaskRepository":
        """Open an existing tasks folder."""
        from infrastructure.file_repository import FileSystemStorage

        return cls(FileSystemStorage(Path(tasks_folder)), tasks_folder)

    @classmethod
    def init(cls, tasks_folder: Path) -> "TaskRepository":
        """Initialize a tasks folder; a workspace without lists gets the default list."""
        from infrastructure.file_repository import FileSystemStorage

        storage = FileSystemStorage(Path(tasks_folder))
        return cls.init_storage(storage, tasks_folder)

    @classmethod
    def init_storage(cls, storage: TaskStorage, tasks_folder: Optional[Path] = None) -> "TaskRepository":
        storage.initialize()
        if not storage.list_lists():
            storage.create_list(DEFAULT_LIST_NAME)
            logger.info("created default list %r", DEFAULT_LIST_NAME)
        return cls(storage, tasks_folder)

    # ---- helpers ----

    def _touch_list(self, list_id: str, mutate: Optional[Callable[[ListMetadata], None]] = None) -> ListMetadata:
        metadata = self.storage.read_list_metadata(list_id)
        if mutate is not None:
            mutate(metadata)
        metadata.updated_at = next_timestamp(metadata.updated_at)
        self.storage.write_list_metadata(metadata)
        return metadata

    def _list_title(self, list_id: str) -> str:
        for lid, title in self.storage.list_lists():
            if lid == list_id:
                return title
        raise ListNotFoundError(list_id)

    def _materialize(self, list_id: str, title: str) -> TaskList:
        return TaskList.from_metadata(title, self.storage.read_list_metadata(list_id), self.list_tasks(list_id))

    # ---- tasks ----

    def create_task(self, list_id: str, task: Task) -> Task:
        self.storage.write_task(list_id, task)

        def append(metadata: ListMetadata) -> None:
            if task.id not in metadata.task_order:
                metadata.task_order.append(task.id)

        self._touch_list(list_id, append)
        logger.debug("created task %s in list %s", task.id, list_id)
        return task

    def get_task(self, list_id: str, task_id: str) -> Task:
        return self.storage.read_task(list_id, task_id)

    def update_task(self, list_id: str, task: Task) -> Task:
        current = self.storage.read_task(list_id, task.id)
        task = dataclasses.replace(task, updated_at=next_timestamp(max(current.updated_at, task.updated_at)))
        if self.storage.task_filename(current.title) != self.storage.task_filename(task.title):
            # The store keys files by title; a rename goes through delete.
            self.storage.delete_task(list_id, task.id)
            try:
                self.storage.write_task(list_id, task)
            except TasksError:
                self.storage.write_task(list_id, current)
                raise
        else:
            self.storage.write_task(list_id, task)
        self._touch_list(list_id)
        return task

    def delete_task(self, list_id: str, task_id: str) -> None:
        self.storage.delete_task(list_id, task_id)

        def purge(metadata: ListMetadata) -> None:
            metadata.task_order = [tid for tid in metadata.task_order if tid != task_id]

        self._touch_list(list_id, purge)

    def list_tasks(self, list_id: str) -> List[Task]:
        """Tasks in declared order, followed by on-disk tasks missing from it."""
        tasks = self.storage.list_tasks(list_id)
        metadata = self.storage.read_list_metadata(list_id)

        by_id: Dict[str, Task] = {}
        for task in tasks:
            by_id.setdefault(task.id, task)
        ordered = [by_id.pop(tid) for tid in metadata.task_order if tid in by_id]
        if by_id:
            logger.warning("list %s: %d task(s) missing from task order", list_id, len(by_id))
            ordered.extend(by_id.values())
        return ordered

    def complete_task(self, list_id: str, task_id: str) -> Task:
        task = self.storage.read_task(list_id, task_id)
        task.complete()
        return self.update_task(list_id, task)

    def uncomplete_task(self, list_id: str, task_id: str) -> Task:
        task = self.storage.read_task(list_id, task_id)
        task.uncomplete()
        return self.update_task(list_id, task)

    def reorder_task(self, list_id: str, task_id: str, new_position: int) -> None:
        self.storage.read_task(list_id, task_id)
        self._touch_list(list_id, lambda m: setattr(m, "task_order", move_in_order(m.task_order, task_id, new_position)))

    def get_task_order(self, list_id: str) -> List[str]:
        return list(self.storage.read_list_metadata(list_id).task_order)

    def find_task_by_id(self, task_id: str) -> Tuple[str, Task]:
        for list_id, _ in self.storage.list_lists():
            try:
                return list_id, self.storage.read_task(list_id, task_id)
            except TaskNotFoundError:
                continue
        raise TaskNotFoundError(task_id)

    # ---- lists ----

    def create_list(self, name: str) -> TaskList:
        list_id = self.storage.create_list(name)
        return TaskList.from_metadata(self._list_title(list_id), self.storage.read_list_metadata(list_id))

    def get_lists(self) -> List[TaskList]:
        """All lists with ordered tasks; sorted by workspace list order, unknown lists last."""
        order = self.storage.read_global_metadata().list_order
        rank: Dict[str, int] = {}
        for idx, list_id in enumerate(order):
            rank.setdefault(list_id, idx)
        result = [self._materialize(list_id, title) for list_id, title in self.storage.list_lists()]
        result.sort(key=lambda tl: rank.get(tl.id, len(order)))
        return result

    def get_list(self, list_id: str) -> TaskList:
        return self._materialize(list_id, self._list_title(list_id))

    def delete_list(self, list_id: str) -> None:
        self.storage.delete_list(list_id)

    def rename_list(self, list_id: str, new_name: str) -> None:
        self.storage.rename_list(list_id, new_name)

    def archive_list(self, list_id: str, archived: bool) -> None:
        self._touch_list(list_id, lambda m: setattr(m, "archived", bool(archived)))

    def set_group_by_due_date(self, list_id: str, enabled: bool) -> None:
        self._touch_list(list_id, lambda m: setattr(m, "group_by_due_date", bool(enabled)))

    def get_group_by_due_date(self, list_id: str) -> bool:
        return self.storage.read_list_metadata(list_id).group_by_due_date

    def reorder_list(self, list_id: str, new_position: int) -> None:
        self.storage.read_list_metadata(list_id)
        metadata = self.storage.read_global_metadata()
        metadata.list_order = move_in_order(metadata.list_order, list_id, new_position)
        self.storage.write_global_metadata(metadata)

    def find_list_by_name(self, name: str) -> str:
        for list_id, title in self.storage.list_lists():
            if title == name:
                return list_id
        raise ListNotFoundError(name=name)

    # ---- sync ----

    def _sync_engine(self, client):
        from infrastructure.sync_engine import SyncEngine

        if self.workspace_path is None:
            raise ValueError("Repository has no workspace path to sync")
        return SyncEngine(self.workspace_path, client)

    def sync_push(self, client):
        return self._sync_engine(client).push()

    def sync_pull(self, client):
        return self._sync_engine(client).pull()

    def sync(self, client):
        return self._sync_engine(client).sync()

    def sync_status(self, client):
        return self._sync_engine(client).status()
