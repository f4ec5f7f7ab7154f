"""Pick the workspace folder a command operates on."""

import os
from pathlib import Path
from typing import Optional, Tuple

from config import AppConfig

WORKSPACE_DIR_ENV = "PLAINTASKS_WORKSPACE_DIR"
ENV_WORKSPACE_NAME = "<env>"


def resolve_workspace(name: Optional[str] = None, config: Optional[AppConfig] = None) -> Tuple[str, Path]:
    """Return ``(name, path)``.

    ``PLAINTASKS_WORKSPACE_DIR`` wins over everything, then an explicitly named
    workspace, then the current one. Raises ``WorkspaceNotFoundError`` or
    ``NoCurrentWorkspaceError``.
    """
    override = os.environ.get(WORKSPACE_DIR_ENV, "").strip()
    if override:
        return ENV_WORKSPACE_NAME, Path(override).expanduser()
    config = config if config is not None else AppConfig.load()
    if name:
        return name, config.get_workspace(name).path
    current, workspace = config.get_current_workspace()
    return current, workspace.path
