from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from .task import Task, format_timestamp, utc_now

WORKSPACE_SCHEMA_VERSION = 1


@dataclass
class ListMetadata:
    """Contents of a list directory's ``.listdata.json``."""

    id: str
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    group_by_due_date: bool = False
    task_order: List[str] = field(default_factory=list)
    archived: bool = False

    @classmethod
    def new(cls, list_id: str) -> "ListMetadata":
        now = utc_now()
        return cls(id=list_id, created_at=now, updated_at=now)


@dataclass
class GlobalMetadata:
    """Contents of the workspace root ``.metadata.json``."""

    version: int = WORKSPACE_SCHEMA_VERSION
    list_order: List[str] = field(default_factory=list)
    last_opened_list: Optional[str] = None

    def forget_list(self, list_id: str) -> None:
        self.list_order = [lid for lid in self.list_order if lid != list_id]
        if self.last_opened_list == list_id:
            self.last_opened_list = self.list_order[0] if self.list_order else None


@dataclass
class TaskList:
    """A list materialized with its tasks already in display order."""

    id: str
    title: str
    tasks: List[Task] = field(default_factory=list)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    group_by_due_date: bool = False
    archived: bool = False

    @classmethod
    def from_metadata(cls, title: str, metadata: ListMetadata, tasks: Optional[List[Task]] = None) -> "TaskList":
        return cls(
            id=metadata.id,
            title=title,
            tasks=list(tasks or []),
            created_at=metadata.created_at,
            updated_at=metadata.updated_at,
            group_by_due_date=metadata.group_by_due_date,
            archived=metadata.archived,
        )

    def to_dict(self, include_tasks: bool = True) -> dict:
        data = {
            "id": self.id,
            "title": self.title,
            "created_at": format_timestamp(self.created_at),
            "updated_at": format_timestamp(self.updated_at),
            "group_by_due_date": self.group_by_due_date,
            "archived": self.archived,
            "task_count": len(self.tasks),
        }
        if include_tasks:
            data["tasks"] = [t.to_dict() for t in self.tasks]
        return data
