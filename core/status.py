from enum import Enum


class TaskStatus(Enum):
    BACKLOG = "backlog"
    COMPLETED = "completed"

    @classmethod
    def from_string(cls, value: str) -> "TaskStatus":
        token = (value or "").strip().lower()
        for status in cls:
            if status.value == token:
                return status
        raise ValueError(f"Invalid task status: {value!r}")

    @property
    def is_open(self) -> bool:
        return self is TaskStatus.BACKLOG
