from .status import TaskStatus
from .task import (
    Task,
    format_timestamp,
    new_id,
    next_timestamp,
    parse_due_date,
    parse_timestamp,
    utc_now,
)
from .task_list import GlobalMetadata, ListMetadata, TaskList, WORKSPACE_SCHEMA_VERSION
from .errors import (
    TasksError,
    StorageIOError,
    DecodeError,
    InvalidTaskFileError,
    InvalidMetadataError,
    NotFoundError,
    TaskNotFoundError,
    ListNotFoundError,
    WorkspaceNotFoundError,
    NoCurrentWorkspaceError,
    CredentialsNotFoundError,
    AlreadyExistsError,
    WorkspaceAlreadyExistsError,
    ListAlreadyExistsError,
    TaskAlreadyExistsError,
    InvalidPathError,
    CannotRemoveCurrentWorkspaceError,
    TransportError,
)

__all__ = [
    "TaskStatus",
    "Task",
    "TaskList",
    "ListMetadata",
    "GlobalMetadata",
    "WORKSPACE_SCHEMA_VERSION",
    # Time helpers
    "utc_now",
    "next_timestamp",
    "format_timestamp",
    "parse_timestamp",
    "parse_due_date",
    "new_id",
    # Errors
    "TasksError",
    "StorageIOError",
    "DecodeError",
    "InvalidTaskFileError",
    "InvalidMetadataError",
    "NotFoundError",
    "TaskNotFoundError",
    "ListNotFoundError",
    "WorkspaceNotFoundError",
    "NoCurrentWorkspaceError",
    "CredentialsNotFoundError",
    "AlreadyExistsError",
    "WorkspaceAlreadyExistsError",
    "ListAlreadyExistsError",
    "TaskAlreadyExistsError",
    "InvalidPathError",
    "CannotRemoveCurrentWorkspaceError",
    "TransportError",
]
