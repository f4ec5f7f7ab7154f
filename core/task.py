import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from .status import TaskStatus


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """Current UTC time, nudged forward so it is strictly after ``previous``."""
    now = utc_now()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC with a ``Z`` suffix (``2025-03-01T00:00:00Z``)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Accept ISO strings or the datetime/date objects YAML loaders produce.

    Naive values are interpreted as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z") or raw.endswith("z"):
            raw = raw[:-1] + "+00:00"
        parsed = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Invalid timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_due_date(value: str) -> datetime:
    """Parse a user supplied due date: ``YYYY-MM-DD`` or a full ISO-8601 timestamp."""
    try:
        return parse_timestamp(value)
    except ValueError as exc:
        raise ValueError(f"Invalid due date {value!r}: use YYYY-MM-DD or YYYY-MM-DDTHH:MM:SS") from exc


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class Task:
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    due_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    parent_id: Optional[str] = None  # reserved for hierarchy, not enforced

    @classmethod
    def new(
        cls,
        title: str,
        *,
        description: str = "",
        due_date: Optional[datetime] = None,
        parent_id: Optional[str] = None,
    ) -> "Task":
        now = utc_now()
        return cls(
            id=new_id(),
            title=title,
            description=description,
            due_date=due_date,
            created_at=now,
            updated_at=now,
            parent_id=parent_id,
        )

    @property
    def completed(self) -> bool:
        return not self.status.is_open

    def complete(self) -> None:
        self.status = TaskStatus.COMPLETED
        self.updated_at = next_timestamp(self.updated_at)

    def uncomplete(self) -> None:
        self.status = TaskStatus.BACKLOG
        self.updated_at = next_timestamp(self.updated_at)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "due": format_timestamp(self.due_date) if self.due_date else None,
            "created": format_timestamp(self.created_at),
            "updated": format_timestamp(self.updated_at),
            "parent": self.parent_id,
        }
