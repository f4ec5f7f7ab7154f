"""Dictionary-backed ``TaskStorage`` with the same naming and error rules as the directory store."""

import copy
from typing import Dict, List, Tuple

from core import GlobalMetadata, ListMetadata, Task, new_id, next_timestamp
from core.errors import ListAlreadyExistsError, ListNotFoundError, TaskAlreadyExistsError, TaskNotFoundError
from application.ports import TaskStorage
from infrastructure.file_repository import sanitize_filename
from infrastructure.task_file_parser import TASK_FILE_SUFFIX


class _MemoryList:
    def __init__(self, name: str, metadata: ListMetadata):
        self.name = name
        self.metadata = metadata
        self.files: Dict[str, Task] = {}  # file name -> task


class InMemoryStorage(TaskStorage):
    def __init__(self) -> None:
        self._global = GlobalMetadata()
        self._lists: Dict[str, _MemoryList] = {}
        self.initialized = False

    def _list(self, list_id: str) -> _MemoryList:
        entry = self._lists.get(list_id)
        if entry is None:
            raise ListNotFoundError(list_id)
        return entry

    def _find_file(self, list_id: str, task_id: str) -> str:
        for filename, task in self._list(list_id).files.items():
            if task.id == task_id:
                return filename
        raise TaskNotFoundError(task_id)

    def task_filename(self, title: str) -> str:
        return f"{sanitize_filename(title)}{TASK_FILE_SUFFIX}"

    def initialize(self) -> None:
        self.initialized = True

    def read_task(self, list_id: str, task_id: str) -> Task:
        return copy.deepcopy(self._list(list_id).files[self._find_file(list_id, task_id)])

    def write_task(self, list_id: str, task: Task) -> None:
        entry = self._list(list_id)
        filename = self.task_filename(task.title)
        existing = entry.files.get(filename)
        if existing is not None and existing.id != task.id:
            raise TaskAlreadyExistsError(filename, existing.id)
        entry.files[filename] = copy.deepcopy(task)

    def delete_task(self, list_id: str, task_id: str) -> None:
        del self._list(list_id).files[self._find_file(list_id, task_id)]

    def list_tasks(self, list_id: str) -> List[Task]:
        files = self._list(list_id).files
        return [copy.deepcopy(files[name]) for name in sorted(files)]

    def create_list(self, name: str) -> str:
        dirname = sanitize_filename(name)
        if any(entry.name == dirname for entry in self._lists.values()):
            raise ListAlreadyExistsError(dirname)
        list_id = new_id()
        self._lists[list_id] = _MemoryList(dirname, ListMetadata.new(list_id))
        self._global.list_order.append(list_id)
        if self._global.last_opened_list is None:
            self._global.last_opened_list = list_id
        return list_id

    def list_lists(self) -> List[Tuple[str, str]]:
        return sorted(((lid, entry.name) for lid, entry in self._lists.items()), key=lambda pair: pair[1])

    def delete_list(self, list_id: str) -> None:
        self._list(list_id)
        del self._lists[list_id]
        self._global.forget_list(list_id)

    def rename_list(self, list_id: str, new_name: str) -> None:
        entry = self._list(list_id)
        dirname = sanitize_filename(new_name)
        if any(other.name == dirname for lid, other in self._lists.items() if lid != list_id):
            raise ListAlreadyExistsError(dirname)
        entry.name = dirname
        entry.metadata.updated_at = next_timestamp(entry.metadata.updated_at)

    def read_global_metadata(self) -> GlobalMetadata:
        return copy.deepcopy(self._global)

    def write_global_metadata(self, metadata: GlobalMetadata) -> None:
        self._global = copy.deepcopy(metadata)

    def read_list_metadata(self, list_id: str) -> ListMetadata:
        return copy.deepcopy(self._list(list_id).metadata)

    def write_list_metadata(self, metadata: ListMetadata) -> None:
        self._list(metadata.id).metadata = copy.deepcopy(metadata)
