from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Protocol


@dataclass(frozen=True)
class RemoteEntry:
    """One resource reported by a remote listing; ``path`` is relative to the base path."""

    path: str
    is_dir: bool = False
    size: Optional[int] = None
    modified: Optional[datetime] = None
    etag: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]

    @property
    def stamp(self) -> Optional[str]:
        """Change marker used to notice remote edits between syncs."""
        if self.etag:
            return self.etag
        if self.modified is None and self.size is None:
            return None
        modified = self.modified.isoformat() if self.modified else ""
        return f"{modified}|{self.size if self.size is not None else ''}"


class RemoteTransport(Protocol):
    """Path-addressed remote file store (WebDAV in production, fakes in tests)."""

    def upload_file(self, relative_path: str, content: bytes) -> None:
        ...

    def download_file(self, relative_path: str) -> bytes:
        ...

    def delete_file(self, relative_path: str) -> None:
        ...

    def create_directory(self, relative_path: str) -> None:
        ...

    def ensure_directories(self, relative_path: str) -> None:
        ...

    def list_files(self, relative_path: str = "", depth: int = 1) -> List[RemoteEntry]:
        ...

    def exists(self, relative_path: str = "") -> bool:
        ...
