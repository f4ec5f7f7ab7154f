"""Reconcile a local workspace tree with its WebDAV mirror.

``push``/``pull`` are full transfers in one direction. ``sync`` diffs both
trees against the state recorded after the previous run and only moves what
changed, resolving two-sided edits by modification time.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from core import format_timestamp, parse_timestamp, utc_now
from core.errors import InvalidMetadataError, InvalidPathError, StorageIOError, TransportError
from application.sync_service import RemoteEntry, RemoteTransport
from infrastructure.file_repository import METADATA_MARKER, atomic_write
from infrastructure.webdav import WebDavNotFoundError

SYNC_STATE_FILE = ".syncstate.json"
SYNC_STATE_VERSION = 1

logger = logging.getLogger("plaintasks.sync")


class ConflictResolution(Enum):
    USE_LOCAL = "use_local"
    USE_REMOTE = "use_remote"
    NO_CONFLICT = "no_conflict"


def compare_timestamps(local: Optional[datetime], remote: Optional[datetime]) -> ConflictResolution:
    """Last writer wins; equal times (to the second) are not a conflict.

    HTTP dates carry whole seconds, so sub-second local precision is dropped
    before comparing. A side without a timestamp loses to one that has it.
    """
    if local is None and remote is None:
        return ConflictResolution.NO_CONFLICT
    if remote is None:
        return ConflictResolution.USE_LOCAL
    if local is None:
        return ConflictResolution.USE_REMOTE
    local_s = parse_timestamp(local).replace(microsecond=0)
    remote_s = parse_timestamp(remote).replace(microsecond=0)
    if local_s > remote_s:
        return ConflictResolution.USE_LOCAL
    if remote_s > local_s:
        return ConflictResolution.USE_REMOTE
    return ConflictResolution.NO_CONFLICT


@dataclass
class LocalFile:
    path: str
    abs_path: Path
    size: int
    modified: datetime
    digest: str


@dataclass
class SyncStateEntry:
    local_hash: Optional[str] = None
    remote_stamp: Optional[str] = None


class SyncStateIndex:
    """What every path looked like on both sides after the last transfer.

    The index is tied to one remote. Binding it to a different one drops the
    recorded history, so files absent from a fresh mirror are uploaded rather
    than read as remote deletions.
    """

    def __init__(self, root: Path):
        self.path = Path(root) / SYNC_STATE_FILE
        self.remote: Optional[str] = None
        self.last_sync: Optional[datetime] = None
        self.files: Dict[str, SyncStateEntry] = {}

    def load(self) -> "SyncStateIndex":
        if not self.path.exists():
            logger.debug("no sync state at %s", self.path)
            return self
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise StorageIOError(f"Cannot read {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise InvalidMetadataError(f"{self.path.name}: {exc}") from exc
        if not isinstance(raw, dict) or not isinstance(raw.get("files", {}), dict):
            raise InvalidMetadataError(f"{self.path.name}: expected an object with a 'files' mapping")
        remote = raw.get("remote")
        self.remote = remote if isinstance(remote, str) else None
        last_sync = raw.get("last_sync")
        try:
            self.last_sync = parse_timestamp(last_sync) if last_sync else None
        except ValueError as exc:
            raise InvalidMetadataError(f"{self.path.name}: bad last_sync {last_sync!r}") from exc
        self.files = {
            rel: SyncStateEntry(local_hash=entry.get("local_hash"), remote_stamp=entry.get("remote_stamp"))
            for rel, entry in raw.get("files", {}).items()
            if isinstance(entry, dict)
        }
        return self

    def save(self) -> None:
        payload = {
            "version": SYNC_STATE_VERSION,
            "remote": self.remote,
            "last_sync": format_timestamp(self.last_sync) if self.last_sync else None,
            "files": {
                rel: {"local_hash": entry.local_hash, "remote_stamp": entry.remote_stamp}
                for rel, entry in sorted(self.files.items())
            },
        }
        if not self.path.parent.exists():
            return
        atomic_write(self.path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")

    def bind(self, remote: str) -> "SyncStateIndex":
        """Tie the index to ``remote``, forgetting history kept for any other."""
        if self.files and self.remote != remote:
            logger.warning(
                "sync state belongs to %r, not %r; discarding %d recorded path(s)",
                self.remote,
                remote,
                len(self.files),
            )
            self.files = {}
            self.last_sync = None
        self.remote = remote
        return self

    def get(self, rel: str) -> Optional[SyncStateEntry]:
        return self.files.get(rel)

    def record(self, rel: str, local_hash: Optional[str], remote_stamp: Optional[str]) -> None:
        self.files[rel] = SyncStateEntry(local_hash=local_hash, remote_stamp=remote_stamp)

    def forget(self, rel: str) -> None:
        self.files.pop(rel, None)


class SyncActionKind(Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"
    UNCHANGED = "unchanged"


@dataclass
class SyncAction:
    path: str
    kind: SyncActionKind
    reason: str
    conflict: bool = False


@dataclass
class SyncPlan:
    actions: List[SyncAction] = field(default_factory=list)

    def _paths(self, kind: SyncActionKind) -> List[str]:
        return [a.path for a in self.actions if a.kind == kind]

    @property
    def uploads(self) -> List[str]:
        return self._paths(SyncActionKind.UPLOAD)

    @property
    def downloads(self) -> List[str]:
        return self._paths(SyncActionKind.DOWNLOAD)

    @property
    def conflicts(self) -> List[str]:
        return [a.path for a in self.actions if a.conflict]

    def total_operations(self) -> int:
        return sum(1 for a in self.actions if a.kind != SyncActionKind.UNCHANGED)

    def to_dict(self) -> dict:
        return {
            "actions": [
                {"path": a.path, "action": a.kind.value, "reason": a.reason, "conflict": a.conflict}
                for a in self.actions
            ],
            "total_operations": self.total_operations(),
        }


@dataclass
class SyncResult:
    uploaded: List[str] = field(default_factory=list)
    downloaded: List[str] = field(default_factory=list)
    deleted_local: List[str] = field(default_factory=list)
    deleted_remote: List[str] = field(default_factory=list)
    conflicts_resolved: List[str] = field(default_factory=list)
    unchanged: int = 0

    def total_changes(self) -> int:
        return len(self.uploaded) + len(self.downloaded) + len(self.deleted_local) + len(self.deleted_remote)

    def to_dict(self) -> dict:
        return {
            "uploaded": list(self.uploaded),
            "downloaded": list(self.downloaded),
            "deleted_local": list(self.deleted_local),
            "deleted_remote": list(self.deleted_remote),
            "conflicts_resolved": list(self.conflicts_resolved),
            "unchanged": self.unchanged,
            "total_changes": self.total_changes(),
        }


@dataclass
class SyncStatus:
    connected: bool
    last_sync: Optional[datetime]
    local_changes: int
    remote_changes: int
    webdav_url: str

    def to_dict(self) -> dict:
        return {
            "connected": self.connected,
            "last_sync": format_timestamp(self.last_sync) if self.last_sync else None,
            "local_changes": self.local_changes,
            "remote_changes": self.remote_changes,
            "webdav_url": self.webdav_url,
        }


def _hidden(name: str) -> bool:
    return name.startswith(METADATA_MARKER)


class SyncEngine:
    def __init__(self, local_path: Path, client: RemoteTransport, webdav_url: str = ""):
        self.local_path = Path(local_path)
        self.client = client
        self.webdav_url = webdav_url

    # ---- tree walks ----

    def local_files(self) -> Dict[str, LocalFile]:
        files: Dict[str, LocalFile] = {}
        if not self.local_path.is_dir():
            return files
        self._walk_local(self.local_path, files)
        return files

    def _walk_local(self, directory: Path, files: Dict[str, LocalFile]) -> None:
        try:
            children = sorted(directory.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            raise StorageIOError(f"Cannot scan {directory}: {exc}") from exc
        for child in children:
            if _hidden(child.name):
                continue
            if child.is_dir():
                self._walk_local(child, files)
                continue
            try:
                data = child.read_bytes()
                stat = child.stat()
            except OSError as exc:
                raise StorageIOError(f"Cannot read {child}: {exc}") from exc
            rel = child.relative_to(self.local_path).as_posix()
            files[rel] = LocalFile(
                path=rel,
                abs_path=child,
                size=len(data),
                modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                digest=hashlib.sha256(data).hexdigest(),
            )

    def remote_files(self) -> Optional[Dict[str, RemoteEntry]]:
        """Every non-hidden remote file, or ``None`` when the remote root is missing."""
        files: Dict[str, RemoteEntry] = {}
        try:
            self._walk_remote("", files)
        except WebDavNotFoundError:
            logger.info("remote root is missing; treating the mirror as empty")
            return None
        return files

    def _walk_remote(self, directory: str, files: Dict[str, RemoteEntry]) -> None:
        # Depth-1 listings per collection; many servers refuse Depth: infinity.
        for entry in self.client.list_files(directory, depth=1):
            if not entry.path or any(_hidden(part) for part in entry.path.split("/")):
                continue
            if entry.is_dir:
                self._walk_remote(entry.path, files)
            else:
                files[entry.path] = entry

    # ---- transfers ----

    def _local_target(self, rel: str) -> Path:
        root = self.local_path.resolve()
        target = (root / rel).resolve()
        if target == root or not target.is_relative_to(root):
            raise InvalidPathError(f"Remote path escapes the workspace: {rel}")
        return target

    def _upload(self, local: LocalFile) -> None:
        try:
            content = local.abs_path.read_bytes()
        except OSError as exc:
            raise StorageIOError(f"Cannot read {local.abs_path}: {exc}") from exc
        self.client.ensure_directories(local.path)
        self.client.upload_file(local.path, content)
        logger.debug("uploaded %s (%d bytes)", local.path, len(content))

    def _download(self, rel: str) -> str:
        target = self._local_target(rel)
        content = self.client.download_file(rel)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(f"Cannot create {target.parent}: {exc}") from exc
        atomic_write(target, content)
        logger.debug("downloaded %s (%d bytes)", rel, len(content))
        return hashlib.sha256(content).hexdigest()

    def _delete_local(self, local: LocalFile) -> None:
        try:
            local.abs_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise StorageIOError(f"Cannot delete {local.abs_path}: {exc}") from exc
        logger.debug("deleted local %s", local.path)

    def _refresh_stamps(self, state: SyncStateIndex, uploaded: Dict[str, str]) -> None:
        """Record the server's view of freshly uploaded files."""
        if not uploaded:
            return
        remote = self.remote_files() or {}
        for rel, digest in uploaded.items():
            entry = remote.get(rel)
            state.record(rel, digest, entry.stamp if entry else None)

    def _load_state(self) -> SyncStateIndex:
        return SyncStateIndex(self.local_path).load().bind(self.webdav_url)

    def _finish(self, state: SyncStateIndex) -> None:
        state.last_sync = utc_now()
        state.save()

    # ---- operations ----

    def push(self) -> SyncResult:
        """Upload every local file, unconditionally."""
        result = SyncResult()
        state = self._load_state()
        local = self.local_files()
        if local and not self.client.exists(""):
            self.client.create_directory("")
        uploaded: Dict[str, str] = {}
        for rel, item in local.items():
            self._upload(item)
            uploaded[rel] = item.digest
            result.uploaded.append(rel)
        self._refresh_stamps(state, uploaded)
        self._finish(state)
        logger.info("push: %d file(s) uploaded", len(result.uploaded))
        return result

    def pull(self) -> SyncResult:
        """Download every remote file, overwriting local copies."""
        result = SyncResult()
        state = self._load_state()
        remote = self.remote_files() or {}
        for rel, entry in sorted(remote.items()):
            digest = self._download(rel)
            state.record(rel, digest, entry.stamp)
            result.downloaded.append(rel)
        self._finish(state)
        logger.info("pull: %d file(s) downloaded", len(result.downloaded))
        return result

    def plan(self) -> SyncPlan:
        state = self._load_state()
        return self._plan(self.local_files(), self.remote_files(), state)

    def _plan(
        self,
        local: Dict[str, LocalFile],
        remote: Optional[Dict[str, RemoteEntry]],
        state: SyncStateIndex,
    ) -> SyncPlan:
        plan = SyncPlan()
        if remote is None:
            # No mirror yet: nothing on the remote can have been deleted.
            plan.actions = [SyncAction(rel, SyncActionKind.UPLOAD, "remote folder missing") for rel in sorted(local)]
            return plan
        for rel in sorted(set(local) | set(remote)):
            plan.actions.append(self._decide(rel, local.get(rel), remote.get(rel), state.get(rel)))
        return plan

    @staticmethod
    def _decide(
        rel: str,
        local: Optional[LocalFile],
        remote: Optional[RemoteEntry],
        known: Optional[SyncStateEntry],
    ) -> SyncAction:
        if remote is None:
            if known is not None:
                return SyncAction(rel, SyncActionKind.DELETE_LOCAL, "deleted on remote")
            return SyncAction(rel, SyncActionKind.UPLOAD, "new local file")
        if local is None:
            if known is not None:
                return SyncAction(rel, SyncActionKind.DELETE_REMOTE, "deleted locally")
            return SyncAction(rel, SyncActionKind.DOWNLOAD, "new remote file")

        if known is not None:
            local_changed = local.digest != known.local_hash
            remote_changed = remote.stamp != known.remote_stamp
            if not local_changed and not remote_changed:
                return SyncAction(rel, SyncActionKind.UNCHANGED, "unchanged")
            if local_changed and not remote_changed:
                return SyncAction(rel, SyncActionKind.UPLOAD, "changed locally")
            if remote_changed and not local_changed:
                return SyncAction(rel, SyncActionKind.DOWNLOAD, "changed on remote")

        reason = "changed on both sides" if known is not None else "no sync history"
        resolution = compare_timestamps(local.modified, remote.modified)
        if resolution == ConflictResolution.USE_LOCAL:
            return SyncAction(rel, SyncActionKind.UPLOAD, f"{reason}; local is newer", conflict=True)
        if resolution == ConflictResolution.USE_REMOTE:
            return SyncAction(rel, SyncActionKind.DOWNLOAD, f"{reason}; remote is newer", conflict=True)
        if remote.size is not None and remote.size == local.size:
            # Contents are compared when the plan is carried out.
            return SyncAction(rel, SyncActionKind.UNCHANGED, f"{reason}; same time and size", conflict=True)
        return SyncAction(rel, SyncActionKind.UPLOAD, f"{reason}; same time, different size", conflict=True)

    def _same_content(self, local: LocalFile) -> bool:
        return hashlib.sha256(self.client.download_file(local.path)).hexdigest() == local.digest

    def sync(self) -> SyncResult:
        """Two-way reconcile: propagate edits and deletions, newest side wins conflicts."""
        result = SyncResult()
        state = self._load_state()
        local = self.local_files()
        remote_listing = self.remote_files()
        remote = remote_listing or {}
        plan = self._plan(local, remote_listing, state)

        if remote_listing is None and plan.uploads:
            self.client.create_directory("")

        uploaded: Dict[str, str] = {}
        for action in plan.actions:
            rel = action.path
            if action.conflict:
                result.conflicts_resolved.append(rel)
            kind = action.kind
            if kind == SyncActionKind.UNCHANGED and action.conflict and not self._same_content(local[rel]):
                # Same second and size but different bytes: the local copy wins the tie.
                kind = SyncActionKind.UPLOAD
            if kind == SyncActionKind.UPLOAD:
                self._upload(local[rel])
                uploaded[rel] = local[rel].digest
                result.uploaded.append(rel)
            elif kind == SyncActionKind.DOWNLOAD:
                state.record(rel, self._download(rel), remote[rel].stamp)
                result.downloaded.append(rel)
            elif kind == SyncActionKind.DELETE_LOCAL:
                self._delete_local(local[rel])
                state.forget(rel)
                result.deleted_local.append(rel)
            elif kind == SyncActionKind.DELETE_REMOTE:
                self.client.delete_file(rel)
                logger.debug("deleted remote %s", rel)
                state.forget(rel)
                result.deleted_remote.append(rel)
            else:
                state.record(rel, local[rel].digest, remote[rel].stamp)
                result.unchanged += 1

        # Paths gone from both sides no longer need history.
        for rel in [r for r in state.files if r not in local and r not in remote]:
            state.forget(rel)

        self._refresh_stamps(state, uploaded)
        self._finish(state)
        logger.info(
            "sync: %d up, %d down, %d deleted locally, %d deleted remotely, %d conflict(s), %d unchanged",
            len(result.uploaded),
            len(result.downloaded),
            len(result.deleted_local),
            len(result.deleted_remote),
            len(result.conflicts_resolved),
            result.unchanged,
        )
        return result

    def status(self) -> SyncStatus:
        try:
            connected = self.client.exists("")
        except TransportError as exc:
            logger.debug("status check failed: %s", exc)
            connected = False
        return SyncStatus(
            connected=connected,
            last_sync=self._load_state().last_sync,
            local_changes=len(self.local_files()),
            remote_changes=0,
            webdav_url=self.webdav_url,
        )
