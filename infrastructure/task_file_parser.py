from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from core import Task, TaskStatus, format_timestamp, parse_timestamp
from core.errors import InvalidTaskFileError, StorageIOError

TASK_FILE_SUFFIX = ".md"
FRONTMATTER_DELIMITER = "---"


class TaskFileParser:
    """Task <-> markdown document with a YAML header.

    The title is not stored in the document; it travels out-of-band as the
    file stem.
    """

    @staticmethod
    def _coerce_timestamp(value: Any, field_name: str):
        """Normalize YAML timestamps (strings or datetime objects) to aware UTC datetimes."""
        try:
            return parse_timestamp(value)
        except (TypeError, ValueError) as exc:
            raise InvalidTaskFileError(f"Invalid '{field_name}' timestamp: {value!r}") from exc

    @staticmethod
    def _coerce_timestamp_opt(value: Any, field_name: str):
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return TaskFileParser._coerce_timestamp(value, field_name)

    @staticmethod
    def _header(task: Task) -> Dict[str, Any]:
        header: Dict[str, Any] = {
            "id": task.id,
            "status": task.status.value,
        }
        if task.due_date is not None:
            header["due"] = format_timestamp(task.due_date)
        header["created"] = format_timestamp(task.created_at)
        header["updated"] = format_timestamp(task.updated_at)
        if task.parent_id:
            header["parent"] = task.parent_id
        return header

    @classmethod
    def serialize(cls, task: Task) -> str:
        header = yaml.safe_dump(cls._header(task), sort_keys=False, allow_unicode=True)
        return f"{FRONTMATTER_DELIMITER}\n{header}{FRONTMATTER_DELIMITER}\n\n{task.description}\n"

    @classmethod
    def parse_content(cls, title: str, content: str) -> Task:
        parts = content.split(FRONTMATTER_DELIMITER, 2)
        if len(parts) < 3:
            raise InvalidTaskFileError("Missing frontmatter delimiters")
        try:
            metadata = yaml.safe_load(parts[1]) or {}
        except yaml.YAMLError as exc:
            raise InvalidTaskFileError(f"Malformed YAML header: {exc}") from exc
        if not isinstance(metadata, dict):
            raise InvalidTaskFileError("YAML header must be a mapping")

        raw_id = metadata.get("id")
        if raw_id is None or not str(raw_id).strip():
            raise InvalidTaskFileError("Task header has no 'id'")
        for required in ("created", "updated"):
            if metadata.get(required) is None:
                raise InvalidTaskFileError(f"Task header has no '{required}'")
        try:
            status = TaskStatus.from_string(str(metadata.get("status", TaskStatus.BACKLOG.value)))
        except ValueError as exc:
            raise InvalidTaskFileError(str(exc)) from exc

        parent = metadata.get("parent")
        return Task(
            id=str(raw_id).strip(),
            title=title,
            description=parts[2].strip(),
            status=status,
            due_date=cls._coerce_timestamp_opt(metadata.get("due"), "due"),
            created_at=cls._coerce_timestamp(metadata["created"], "created"),
            updated_at=cls._coerce_timestamp(metadata["updated"], "updated"),
            parent_id=str(parent) if parent else None,
        )

    @classmethod
    def parse(cls, filepath: Path, title: Optional[str] = None) -> Task:
        try:
            content = filepath.read_text(encoding="utf-8")
        except OSError as exc:
            raise StorageIOError(f"Cannot read {filepath}: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise InvalidTaskFileError(f"{filepath.name} is not UTF-8 text") from exc
        try:
            return cls.parse_content(title if title is not None else filepath.stem, content)
        except InvalidTaskFileError as exc:
            raise InvalidTaskFileError(f"{filepath.name}: {exc}") from exc
