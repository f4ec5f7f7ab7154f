from typing import List, Protocol, Tuple

from core import GlobalMetadata, ListMetadata, Task


class TaskStorage(Protocol):
    def initialize(self) -> None:
        ...

    def read_task(self, list_id: str, task_id: str) -> Task:
        ...

    def write_task(self, list_id: str, task: Task) -> None:
        ...

    def delete_task(self, list_id: str, task_id: str) -> None:
        ...

    def list_tasks(self, list_id: str) -> List[Task]:
        ...

    def create_list(self, name: str) -> str:
        ...

    def list_lists(self) -> List[Tuple[str, str]]:
        ...

    def delete_list(self, list_id: str) -> None:
        ...

    def rename_list(self, list_id: str, new_name: str) -> None:
        ...

    def task_filename(self, title: str) -> str:
        ...

    def read_global_metadata(self) -> GlobalMetadata:
        ...

    def write_global_metadata(self, metadata: GlobalMetadata) -> None:
        ...

    def read_list_metadata(self, list_id: str) -> ListMetadata:
        ...

    def write_list_metadata(self, metadata: ListMetadata) -> None:
        ...
