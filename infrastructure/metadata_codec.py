"""JSON records for workspace (``.metadata.json``) and list (``.listdata.json``) metadata."""

import json
from typing import Any, Dict

from core import GlobalMetadata, ListMetadata, WORKSPACE_SCHEMA_VERSION, format_timestamp, parse_timestamp
from core.errors import InvalidMetadataError


class MetadataCodec:
    @staticmethod
    def _load(content: str, label: str) -> Dict[str, Any]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise InvalidMetadataError(f"{label}: invalid JSON ({exc})") from exc
        if not isinstance(data, dict):
            raise InvalidMetadataError(f"{label}: expected a JSON object")
        return data

    @staticmethod
    def _dump(data: Dict[str, Any]) -> str:
        return json.dumps(data, ensure_ascii=False, indent=2)

    @staticmethod
    def encode_list(metadata: ListMetadata) -> str:
        return MetadataCodec._dump(
            {
                "id": metadata.id,
                "created_at": format_timestamp(metadata.created_at),
                "updated_at": format_timestamp(metadata.updated_at),
                "group_by_due_date": bool(metadata.group_by_due_date),
                "task_order": list(metadata.task_order),
                "archived": bool(metadata.archived),
            }
        )

    @classmethod
    def decode_list(cls, content: str) -> ListMetadata:
        data = cls._load(content, "list metadata")
        list_id = data.get("id")
        if not list_id:
            raise InvalidMetadataError("list metadata: missing 'id'")
        try:
            created_at = parse_timestamp(data.get("created_at"))
            updated_at = parse_timestamp(data.get("updated_at"))
        except (TypeError, ValueError) as exc:
            raise InvalidMetadataError(f"list metadata: {exc}") from exc
        order = data.get("task_order") or []
        if not isinstance(order, list):
            raise InvalidMetadataError("list metadata: 'task_order' must be a list")
        return ListMetadata(
            id=str(list_id),
            created_at=created_at,
            updated_at=updated_at,
            group_by_due_date=bool(data.get("group_by_due_date", False)),
            task_order=[str(tid) for tid in order],
            archived=bool(data.get("archived", False)),
        )

    @staticmethod
    def encode_global(metadata: GlobalMetadata) -> str:
        return MetadataCodec._dump(
            {
                "version": int(metadata.version),
                "list_order": list(metadata.list_order),
                "last_opened_list": metadata.last_opened_list,
            }
        )

    @classmethod
    def decode_global(cls, content: str) -> GlobalMetadata:
        data = cls._load(content, "workspace metadata")
        order = data.get("list_order") or []
        if not isinstance(order, list):
            raise InvalidMetadataError("workspace metadata: 'list_order' must be a list")
        try:
            version = int(data.get("version", WORKSPACE_SCHEMA_VERSION) or WORKSPACE_SCHEMA_VERSION)
        except (TypeError, ValueError) as exc:
            raise InvalidMetadataError(f"workspace metadata: bad version {data.get('version')!r}") from exc
        last_opened = data.get("last_opened_list")
        return GlobalMetadata(
            version=version,
            list_order=[str(lid) for lid in order],
            last_opened_list=str(last_opened) if last_opened else None,
        )
