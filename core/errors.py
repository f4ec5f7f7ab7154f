"""Error kinds raised by the persistence and sync layers.

Callers only rely on the class of the exception; messages are for humans.
"""

from typing import Optional


class TasksError(RuntimeError):
    pass


class StorageIOError(TasksError):
    """Filesystem read/write failure."""


class DecodeError(TasksError):
    pass


class InvalidTaskFileError(DecodeError):
    pass


class InvalidMetadataError(DecodeError):
    pass


class NotFoundError(TasksError):
    pass


class TaskNotFoundError(NotFoundError):
    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class ListNotFoundError(NotFoundError):
    def __init__(self, list_id: Optional[str] = None, *, name: Optional[str] = None):
        label = f"name {name!r}" if name is not None else str(list_id)
        super().__init__(f"List not found: {label}")
        self.list_id = list_id
        self.name = name


class WorkspaceNotFoundError(NotFoundError):
    def __init__(self, name: str):
        super().__init__(f"Workspace not found: {name}")
        self.name = name


class NoCurrentWorkspaceError(NotFoundError):
    def __init__(self) -> None:
        super().__init__("No current workspace set")


class CredentialsNotFoundError(NotFoundError):
    pass


class AlreadyExistsError(TasksError):
    pass


class WorkspaceAlreadyExistsError(AlreadyExistsError):
    def __init__(self, name: str):
        super().__init__(f"Workspace already exists: {name}")
        self.name = name


class ListAlreadyExistsError(AlreadyExistsError):
    def __init__(self, name: str):
        super().__init__(f"List already exists: {name}")
        self.name = name


class TaskAlreadyExistsError(AlreadyExistsError):
    def __init__(self, filename: str, existing_id: str):
        super().__init__(f"Another task ({existing_id}) already uses the file name {filename!r}")
        self.filename = filename
        self.existing_id = existing_id


class InvalidPathError(TasksError):
    pass


class CannotRemoveCurrentWorkspaceError(TasksError):
    def __init__(self) -> None:
        super().__init__("Cannot remove current workspace")


class TransportError(TasksError):
    """Catch-all for remote transport and HTTP library failures."""
