from datetime import datetime, timezone
from pathlib import Path
import sys

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from application.sync_service import RemoteEntry
from infrastructure.webdav import WebDavError, WebDavNotFoundError


class FakeRemote:
    """In-memory WebDAV tree speaking the ``RemoteTransport`` protocol."""

    def __init__(self, root_exists: bool = True):
        self.files = {}
        self.meta = {}
        self.dirs = {""} if root_exists else set()
        self.calls = []
        self._version = 0
        self.fail_on = None

    def _stamp(self, path, modified=None):
        self._version += 1
        when = modified or datetime.now(timezone.utc).replace(microsecond=0)
        self.meta[path] = (when, f'"v{self._version}"')

    def _check(self, method, path):
        self.calls.append((method, path))
        if self.fail_on == (method, path):
            raise WebDavError(f"{method} {path}: HTTP 500", 500)

    def put(self, path, content, modified=None):
        """Test helper: place a file as if another client had uploaded it."""
        parts = path.split("/")
        self.dirs.add("")
        for idx in range(1, len(parts)):
            self.dirs.add("/".join(parts[:idx]))
        self.files[path] = bytes(content)
        self._stamp(path, modified)

    def upload_file(self, relative_path, content):
        self._check("PUT", relative_path)
        parent = relative_path.rsplit("/", 1)[0] if "/" in relative_path else ""
        if parent not in self.dirs:
            raise WebDavError(f"PUT {relative_path}: HTTP 409", 409)
        self.files[relative_path] = bytes(content)
        self._stamp(relative_path)

    def download_file(self, relative_path):
        self._check("GET", relative_path)
        if relative_path not in self.files:
            raise WebDavNotFoundError(f"GET {relative_path}: HTTP 404", 404)
        return self.files[relative_path]

    def delete_file(self, relative_path):
        self._check("DELETE", relative_path)
        if relative_path not in self.files:
            raise WebDavNotFoundError(f"DELETE {relative_path}: HTTP 404", 404)
        del self.files[relative_path]
        del self.meta[relative_path]

    def create_directory(self, relative_path):
        self._check("MKCOL", relative_path)
        self.dirs.add(relative_path.strip("/"))

    def ensure_directories(self, relative_path):
        parts = relative_path.strip("/").split("/")[:-1]
        for idx in range(1, len(parts) + 1):
            directory = "/".join(parts[:idx])
            if directory not in self.dirs:
                self.create_directory(directory)

    def list_files(self, relative_path="", depth=1):
        self._check("PROPFIND", relative_path)
        rel = relative_path.strip("/")
        if rel not in self.dirs:
            raise WebDavNotFoundError(f"PROPFIND {relative_path}: HTTP 404", 404)
        prefix = f"{rel}/" if rel else ""

        def is_child(path):
            return path.startswith(prefix) and "/" not in path[len(prefix):]

        entries = [RemoteEntry(path=d, is_dir=True) for d in sorted(self.dirs) if d and d != rel and is_child(d)]
        for path in sorted(self.files):
            if is_child(path):
                modified, etag = self.meta[path]
                entries.append(RemoteEntry(path=path, size=len(self.files[path]), modified=modified, etag=etag))
        return entries

    def exists(self, relative_path=""):
        self._check("PROPFIND", relative_path)
        rel = relative_path.strip("/")
        return rel in self.dirs or rel in self.files


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def isolated_config(tmp_path, monkeypatch):
    """Point the user config at a temp file and clear env overrides."""
    path = tmp_path / "config.yaml"
    monkeypatch.setenv("PLAINTASKS_CONFIG", str(path))
    monkeypatch.delenv("PLAINTASKS_WEBDAV_PASSWORD", raising=False)
    monkeypatch.delenv("PLAINTASKS_WORKSPACE_DIR", raising=False)
    return path
