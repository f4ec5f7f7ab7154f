from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

import yaml

from core import format_timestamp, parse_timestamp
from core.errors import (
    CannotRemoveCurrentWorkspaceError,
    CredentialsNotFoundError,
    DecodeError,
    NoCurrentWorkspaceError,
    StorageIOError,
    WorkspaceAlreadyExistsError,
    WorkspaceNotFoundError,
)

CONFIG_ENV = "PLAINTASKS_CONFIG"
PASSWORD_ENV = "PLAINTASKS_WEBDAV_PASSWORD"
DEFAULT_CONFIG_NAME = ".plaintasks_config.yaml"


def user_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV, "").strip()
    if override:
        return Path(override).expanduser()
    return Path.home() / DEFAULT_CONFIG_NAME


def _load_config(path: Optional[Path] = None) -> Dict[str, Any]:
    path = path or user_config_path()
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise StorageIOError(f"Cannot read {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise DecodeError(f"Malformed config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise DecodeError(f"Malformed config {path}: expected a mapping")
    return data


def _save_config(data: Dict[str, Any], path: Optional[Path] = None) -> None:
    path = path or user_config_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
    except OSError as exc:
        raise StorageIOError(f"Cannot write {path}: {exc}") from exc


def credential_key(webdav_url: str, username: str) -> str:
    host = urlparse(webdav_url).netloc or webdav_url
    return f"{host}/{username}"


@dataclass
class WorkspaceConfig:
    path: Path
    webdav_url: Optional[str] = None
    webdav_username: Optional[str] = None
    last_sync: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceConfig":
        if not isinstance(data, dict) or not data.get("path"):
            raise DecodeError(f"Workspace entry needs a path: {data!r}")
        last_sync = data.get("last_sync")
        return cls(
            path=Path(str(data["path"])),
            webdav_url=data.get("webdav_url") or None,
            webdav_username=data.get("webdav_username") or None,
            last_sync=parse_timestamp(last_sync) if last_sync else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"path": str(self.path)}
        if self.webdav_url:
            data["webdav_url"] = self.webdav_url
        if self.webdav_username:
            data["webdav_username"] = self.webdav_username
        if self.last_sync:
            data["last_sync"] = format_timestamp(self.last_sync)
        return data


@dataclass
class AppConfig:
    """Workspace registry, current selection and stored WebDAV passwords."""

    workspaces: Dict[str, WorkspaceConfig] = field(default_factory=dict)
    current_workspace: Optional[str] = None
    credentials: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "AppConfig":
        data = _load_config(path)
        workspaces = {str(name): WorkspaceConfig.from_dict(entry) for name, entry in (data.get("workspaces") or {}).items()}
        current = data.get("current_workspace") or None
        if current is not None and current not in workspaces:
            current = None
        return cls(
            workspaces=workspaces,
            current_workspace=current,
            credentials={str(k): str(v) for k, v in (data.get("credentials") or {}).items()},
        )

    def save(self, path: Optional[Path] = None) -> None:
        data: Dict[str, Any] = {
            "current_workspace": self.current_workspace,
            "workspaces": {name: ws.to_dict() for name, ws in self.workspaces.items()},
        }
        if self.credentials:
            data["credentials"] = dict(self.credentials)
        _save_config(data, path)

    # ---- workspace registry ----

    def add_workspace(self, name: str, path: Path) -> WorkspaceConfig:
        if name in self.workspaces:
            raise WorkspaceAlreadyExistsError(name)
        workspace = WorkspaceConfig(path=Path(path))
        self.workspaces[name] = workspace
        if self.current_workspace is None:
            self.current_workspace = name
        return workspace

    def remove_workspace(self, name: str) -> None:
        if name not in self.workspaces:
            raise WorkspaceNotFoundError(name)
        if name == self.current_workspace:
            raise CannotRemoveCurrentWorkspaceError()
        del self.workspaces[name]

    def switch_workspace(self, name: str) -> None:
        if name not in self.workspaces:
            raise WorkspaceNotFoundError(name)
        self.current_workspace = name

    def get_workspace(self, name: str) -> WorkspaceConfig:
        try:
            return self.workspaces[name]
        except KeyError:
            raise WorkspaceNotFoundError(name) from None

    def get_current_workspace(self) -> Tuple[str, WorkspaceConfig]:
        if self.current_workspace is None:
            raise NoCurrentWorkspaceError()
        return self.current_workspace, self.get_workspace(self.current_workspace)

    def update_workspace_path(self, name: str, path: Path) -> None:
        self.get_workspace(name).path = Path(path)

    def list_workspaces(self) -> List[Tuple[str, WorkspaceConfig]]:
        return sorted(self.workspaces.items())

    def configure_webdav(self, name: str, url: str, username: str) -> None:
        workspace = self.get_workspace(name)
        workspace.webdav_url = url.strip()
        workspace.webdav_username = username.strip()

    def record_sync(self, name: str, when: datetime) -> None:
        self.get_workspace(name).last_sync = when

    # ---- credentials ----

    def get_webdav_password(self, webdav_url: str, username: str) -> str:
        env_value = os.environ.get(PASSWORD_ENV, "")
        if env_value:
            return env_value
        stored = self.credentials.get(credential_key(webdav_url, username))
        if stored:
            return stored
        raise CredentialsNotFoundError(f"No WebDAV password stored for {credential_key(webdav_url, username)}")

    def set_webdav_password(self, webdav_url: str, username: str, password: str) -> None:
        key = credential_key(webdav_url, username)
        password = (password or "").strip()
        if password:
            self.credentials[key] = password
        else:
            self.credentials.pop(key, None)
