import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple, Union

from core import GlobalMetadata, ListMetadata, Task, new_id, next_timestamp
from core.errors import (
    InvalidPathError,
    ListAlreadyExistsError,
    ListNotFoundError,
    StorageIOError,
    TaskAlreadyExistsError,
    TaskNotFoundError,
)
from application.ports import TaskStorage
from infrastructure.metadata_codec import MetadataCodec
from infrastructure.task_file_parser import TASK_FILE_SUFFIX, TaskFileParser

METADATA_FILE = ".metadata.json"
LIST_METADATA_FILE = ".listdata.json"
METADATA_MARKER = "."
_FORBIDDEN_CHARS = set('/\\:*?"<>|')

logger = logging.getLogger("plaintasks.storage")


def sanitize_filename(name: str) -> str:
    """Map a display name onto a directory/file safe string.

    Path-hostile characters become ``_``. Names that would be empty, point at
    ``.``/``..`` or start with the reserved metadata marker are rejected.
    """
    cleaned = "".join("_" if ch in _FORBIDDEN_CHARS or ord(ch) < 32 else ch for ch in (name or "")).strip()
    if not cleaned or cleaned in (".", ".."):
        raise InvalidPathError(f"Name {name!r} does not produce a usable file name")
    if cleaned.startswith(METADATA_MARKER):
        raise InvalidPathError(f"Name {name!r} may not start with {METADATA_MARKER!r}")
    return cleaned


def atomic_write(target: Path, content: Union[str, bytes]) -> None:
    """Write through a hidden sibling temp file and ``os.replace`` it into place."""
    data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
    tmp_path: Optional[Path] = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            delete=False,
            dir=str(target.parent),
            prefix=f".{target.name}.",
            suffix=".tmp",
        ) as tmp:
            tmp.write(data)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(str(tmp_path), str(target))
    except OSError as exc:
        raise StorageIOError(f"Cannot write {target}: {exc}") from exc
    finally:
        if tmp_path is not None and tmp_path.exists():
            try:
                tmp_path.unlink()
            except OSError:
                pass


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageIOError(f"Cannot read {path}: {exc}") from exc


class ListPathIndex:
    """list id -> directory cache owned by a single ``FileSystemStorage``.

    Rebuilt from disk on open and kept current by the store's own mutations.
    """

    def __init__(self) -> None:
        self._paths: Dict[str, Path] = {}

    def rebuild(self, root: Path) -> None:
        self._paths.clear()
        for list_path, metadata in _scan_list_dirs(root):
            self._paths[metadata.id] = list_path

    def get(self, list_id: str) -> Optional[Path]:
        return self._paths.get(list_id)

    def register(self, list_id: str, path: Path) -> None:
        self._paths[list_id] = path

    def forget(self, list_id: str) -> None:
        self._paths.pop(list_id, None)

    def __len__(self) -> int:
        return len(self._paths)


def _scan_list_dirs(root: Path) -> Iterator[Tuple[Path, ListMetadata]]:
    try:
        children = sorted(root.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        raise StorageIOError(f"Cannot scan {root}: {exc}") from exc
    for child in children:
        if not child.is_dir() or child.name.startswith(METADATA_MARKER):
            continue
        meta_path = child / LIST_METADATA_FILE
        if not meta_path.exists():
            continue
        yield child, MetadataCodec.decode_list(_read_text(meta_path))


class FileSystemStorage(TaskStorage):
    """Directory tree store: one folder per list, one markdown file per task."""

    def __init__(self, root_path: Path):
        self.root_path = Path(root_path)
        self._index = ListPathIndex()
        if self.root_path.exists():
            self._index.rebuild(self.root_path)

    # ---- helpers ----

    def _list_path(self, list_id: str) -> Path:
        path = self._index.get(list_id)
        if path is None and self.root_path.exists():
            # Another writer (or a sync pull) may have added the list since open.
            self._index.rebuild(self.root_path)
            path = self._index.get(list_id)
        if path is None:
            raise ListNotFoundError(list_id)
        return path

    def _task_files(self, list_path: Path) -> List[Path]:
        try:
            entries = sorted(list_path.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise StorageIOError(f"Cannot scan {list_path}: {exc}") from exc
        return [
            p
            for p in entries
            if p.suffix == TASK_FILE_SUFFIX and p.is_file() and not p.name.startswith(METADATA_MARKER)
        ]

    def _find_task_file(self, list_id: str, task_id: str) -> Path:
        for path in self._task_files(self._list_path(list_id)):
            if TaskFileParser.parse(path).id == task_id:
                return path
        raise TaskNotFoundError(task_id)

    def task_filename(self, title: str) -> str:
        return f"{sanitize_filename(title)}{TASK_FILE_SUFFIX}"

    # ---- workspace ----

    def initialize(self) -> None:
        try:
            self.root_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(f"Cannot create workspace {self.root_path}: {exc}") from exc
        if not (self.root_path / METADATA_FILE).exists():
            self.write_global_metadata(GlobalMetadata())
            logger.info("initialized workspace metadata at %s", self.root_path)

    # ---- tasks ----

    def read_task(self, list_id: str, task_id: str) -> Task:
        return TaskFileParser.parse(self._find_task_file(list_id, task_id))

    def write_task(self, list_id: str, task: Task) -> None:
        target = self._list_path(list_id) / self.task_filename(task.title)
        if target.exists():
            existing = TaskFileParser.parse(target)
            if existing.id != task.id:
                raise TaskAlreadyExistsError(target.name, existing.id)
        atomic_write(target, TaskFileParser.serialize(task))
        logger.debug("wrote task %s -> %s", task.id, target)

    def delete_task(self, list_id: str, task_id: str) -> None:
        path = self._find_task_file(list_id, task_id)
        try:
            path.unlink()
        except OSError as exc:
            raise StorageIOError(f"Cannot delete {path}: {exc}") from exc
        logger.debug("deleted task %s (%s)", task_id, path.name)

    def list_tasks(self, list_id: str) -> List[Task]:
        return [TaskFileParser.parse(path) for path in self._task_files(self._list_path(list_id))]

    # ---- lists ----

    def create_list(self, name: str) -> str:
        dirname = sanitize_filename(name)
        list_path = self.root_path / dirname
        if (list_path / LIST_METADATA_FILE).exists():
            raise ListAlreadyExistsError(dirname)
        try:
            list_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(f"Cannot create list directory {list_path}: {exc}") from exc

        list_id = new_id()
        atomic_write(list_path / LIST_METADATA_FILE, MetadataCodec.encode_list(ListMetadata.new(list_id)))
        self._index.register(list_id, list_path)

        global_metadata = self.read_global_metadata()
        global_metadata.list_order.append(list_id)
        if global_metadata.last_opened_list is None:
            global_metadata.last_opened_list = list_id
        self.write_global_metadata(global_metadata)
        logger.info("created list %s (%s)", dirname, list_id)
        return list_id

    def list_lists(self) -> List[Tuple[str, str]]:
        if not self.root_path.exists():
            raise StorageIOError(f"Workspace folder does not exist: {self.root_path}")
        return [(metadata.id, list_path.name) for list_path, metadata in _scan_list_dirs(self.root_path)]

    def delete_list(self, list_id: str) -> None:
        list_path = self._list_path(list_id)
        try:
            shutil.rmtree(list_path)
        except OSError as exc:
            raise StorageIOError(f"Cannot remove {list_path}: {exc}") from exc
        self._index.forget(list_id)

        global_metadata = self.read_global_metadata()
        global_metadata.forget_list(list_id)
        self.write_global_metadata(global_metadata)
        logger.info("deleted list %s (%s)", list_path.name, list_id)

    def rename_list(self, list_id: str, new_name: str) -> None:
        list_path = self._list_path(list_id)
        target = self.root_path / sanitize_filename(new_name)
        if target != list_path:
            if target.exists() and not os.path.samefile(target, list_path):
                raise ListAlreadyExistsError(target.name)
            try:
                list_path.rename(target)
            except OSError as exc:
                raise StorageIOError(f"Cannot rename {list_path} to {target}: {exc}") from exc
            self._index.register(list_id, target)
        metadata = self.read_list_metadata(list_id)
        metadata.updated_at = next_timestamp(metadata.updated_at)
        self.write_list_metadata(metadata)

    # ---- metadata ----

    def read_global_metadata(self) -> GlobalMetadata:
        path = self.root_path / METADATA_FILE
        if not path.exists():
            return GlobalMetadata()
        return MetadataCodec.decode_global(_read_text(path))

    def write_global_metadata(self, metadata: GlobalMetadata) -> None:
        atomic_write(self.root_path / METADATA_FILE, MetadataCodec.encode_global(metadata))

    def read_list_metadata(self, list_id: str) -> ListMetadata:
        return MetadataCodec.decode_list(_read_text(self._list_path(list_id) / LIST_METADATA_FILE))

    def write_list_metadata(self, metadata: ListMetadata) -> None:
        atomic_write(self._list_path(metadata.id) / LIST_METADATA_FILE, MetadataCodec.encode_list(metadata))
