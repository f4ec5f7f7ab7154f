import logging
import shutil
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from config import AppConfig
from core import Task, format_timestamp, parse_due_date, utc_now
from core.errors import InvalidPathError, ListNotFoundError, StorageIOError
from application.repository import TaskRepository
from application.sync_service import RemoteTransport
from infrastructure.sync_engine import SyncEngine
from infrastructure.webdav import WebDavClient, WebDavError
from interface.cli_io import structured_response
from interface.workspace_resolver import ENV_WORKSPACE_NAME, resolve_workspace

logger = logging.getLogger("plaintasks.cli")


@dataclass
class CliDeps:
    load_config: Callable[[], AppConfig]
    save_config: Callable[[AppConfig], None]
    open_repository: Callable[[Path], TaskRepository]
    make_client: Callable[[str, str, str], RemoteTransport]


def _make_client(url: str, username: str, password: str) -> RemoteTransport:
    return WebDavClient.from_url(url, username, password)


def default_deps() -> CliDeps:
    return CliDeps(
        load_config=AppConfig.load,
        save_config=lambda config: config.save(),
        open_repository=TaskRepository.open,
        make_client=_make_client,
    )


# ---- helpers ----


def _workspace(args, deps: CliDeps) -> Tuple[str, Path, AppConfig]:
    config = deps.load_config()
    name, path = resolve_workspace(getattr(args, "workspace", None), config)
    return name, path, config


def _repository(args, deps: CliDeps) -> TaskRepository:
    _, path, _ = _workspace(args, deps)
    return deps.open_repository(path)


def _target_list_id(repo: TaskRepository, list_name: Optional[str]) -> str:
    if list_name:
        return repo.find_list_by_name(list_name)
    lists = [tl for tl in repo.get_lists() if not tl.archived]
    if not lists:
        raise ListNotFoundError(name="<default>")
    return lists[0].id


# ---- workspaces ----


def cmd_init(args, deps: CliDeps) -> int:
    path = Path(args.path).expanduser().resolve()
    repo = TaskRepository.init(path)
    config = deps.load_config()
    name = args.name or path.name
    config.add_workspace(name, path)
    deps.save_config(config)
    lists = [tl.to_dict(include_tasks=False) for tl in repo.get_lists()]
    return structured_response(
        "init",
        message=f"Initialized workspace {name!r} at {path}",
        payload={"workspace": name, "path": str(path), "current": config.current_workspace == name, "lists": lists},
    )


def cmd_workspace_add(args, deps: CliDeps) -> int:
    path = Path(args.path).expanduser().resolve()
    deps.open_repository(path).get_lists()
    config = deps.load_config()
    config.add_workspace(args.name, path)
    deps.save_config(config)
    return structured_response("workspace.add", message=f"Added workspace {args.name!r}", payload={"workspace": args.name, "path": str(path)})


def cmd_workspace_list(args, deps: CliDeps) -> int:
    config = deps.load_config()
    workspaces = [
        dict(ws.to_dict(), name=name, current=name == config.current_workspace)
        for name, ws in config.list_workspaces()
    ]
    return structured_response(
        "workspace.list",
        message=f"{len(workspaces)} workspace(s)",
        payload={"current": config.current_workspace, "workspaces": workspaces},
    )


def cmd_workspace_switch(args, deps: CliDeps) -> int:
    config = deps.load_config()
    config.switch_workspace(args.name)
    deps.save_config(config)
    return structured_response("workspace.switch", message=f"Switched to {args.name!r}", payload={"current": args.name})


def cmd_workspace_remove(args, deps: CliDeps) -> int:
    config = deps.load_config()
    config.remove_workspace(args.name)
    deps.save_config(config)
    return structured_response("workspace.remove", message=f"Removed workspace {args.name!r}", payload={"workspace": args.name})


def cmd_workspace_retarget(args, deps: CliDeps) -> int:
    path = Path(args.path).expanduser().resolve()
    config = deps.load_config()
    config.update_workspace_path(args.name, path)
    deps.save_config(config)
    return structured_response(
        "workspace.retarget",
        message=f"Workspace {args.name!r} now points at {path}",
        payload={"workspace": args.name, "path": str(path)},
    )


def cmd_workspace_migrate(args, deps: CliDeps) -> int:
    config = deps.load_config()
    old = config.get_workspace(args.name).path.expanduser().resolve()
    new = Path(args.path).expanduser().resolve()
    if new == old or new.is_relative_to(old):
        raise InvalidPathError(f"Cannot migrate {old} into itself ({new})")
    if not old.is_dir():
        raise InvalidPathError(f"Workspace folder {old} does not exist")
    if new.exists() and (not new.is_dir() or any(new.iterdir())):
        raise InvalidPathError(f"Migration target {new} must be an empty folder")
    moved = 0
    try:
        new.mkdir(parents=True, exist_ok=True)
        for entry in sorted(old.iterdir(), key=lambda p: p.name):
            shutil.move(str(entry), str(new / entry.name))
            moved += 1
        old.rmdir()
    except OSError as exc:
        raise StorageIOError(f"Migration of {args.name!r} stopped after {moved} moved entries: {exc}") from exc
    config.update_workspace_path(args.name, new)
    deps.save_config(config)
    logger.info("migrated workspace %s from %s to %s (%d entries)", args.name, old, new, moved)
    return structured_response(
        "workspace.migrate",
        message=f"Moved workspace {args.name!r} to {new}",
        payload={"workspace": args.name, "from": str(old), "path": str(new), "moved": moved},
    )


# ---- lists ----


def cmd_list_show(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    if getattr(args, "list", None):
        lists = [repo.get_list(repo.find_list_by_name(args.list))]
    else:
        lists = repo.get_lists()
    total = sum(len(tl.tasks) for tl in lists)
    return structured_response(
        "list.show",
        message=f"{len(lists)} list(s), {total} task(s)",
        payload={"lists": [tl.to_dict() for tl in lists]},
    )


def cmd_list_create(args, deps: CliDeps) -> int:
    task_list = _repository(args, deps).create_list(args.name)
    return structured_response("list.create", message=f"Created list {task_list.title!r}", payload={"list": task_list.to_dict()})


def cmd_list_rename(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id = repo.find_list_by_name(args.name)
    repo.rename_list(list_id, args.new_name)
    return structured_response(
        "list.rename",
        message=f"Renamed list {args.name!r}",
        payload={"list": repo.get_list(list_id).to_dict(include_tasks=False)},
    )


def cmd_list_delete(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id = repo.find_list_by_name(args.name)
    repo.delete_list(list_id)
    return structured_response("list.delete", message=f"Deleted list {args.name!r}", payload={"list_id": list_id})


def _set_archived(args, deps: CliDeps, archived: bool) -> int:
    repo = _repository(args, deps)
    list_id = repo.find_list_by_name(args.name)
    repo.archive_list(list_id, archived)
    label = "list.archive" if archived else "list.unarchive"
    verb = "Archived" if archived else "Unarchived"
    return structured_response(label, message=f"{verb} list {args.name!r}", payload={"list_id": list_id, "archived": archived})


def cmd_list_archive(args, deps: CliDeps) -> int:
    return _set_archived(args, deps, True)


def cmd_list_unarchive(args, deps: CliDeps) -> int:
    return _set_archived(args, deps, False)


def cmd_list_move(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    repo.reorder_list(repo.find_list_by_name(args.name), args.position)
    order = [tl.title for tl in repo.get_lists()]
    return structured_response("list.move", message=f"Moved list {args.name!r}", payload={"order": order})


def cmd_group(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id = _target_list_id(repo, args.list)
    enabled = args.mode == "enable"
    repo.set_group_by_due_date(list_id, enabled)
    return structured_response(
        f"group.{args.mode}",
        message=f"Grouping by due date {'enabled' if enabled else 'disabled'}",
        payload={"list_id": list_id, "group_by_due_date": repo.get_group_by_due_date(list_id)},
    )


# ---- tasks ----


def cmd_add(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id = _target_list_id(repo, args.list)
    due = parse_due_date(args.due) if args.due else None
    task = repo.create_task(list_id, Task.new(args.title, description=args.description or "", due_date=due))
    return structured_response("add", message=f"Added {task.title!r}", payload={"list_id": list_id, "task": task.to_dict()})


def cmd_complete(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id, _ = repo.find_task_by_id(args.task_id)
    task = repo.complete_task(list_id, args.task_id)
    return structured_response("complete", message=f"Completed {task.title!r}", payload={"list_id": list_id, "task": task.to_dict()})


def cmd_uncomplete(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id, _ = repo.find_task_by_id(args.task_id)
    task = repo.uncomplete_task(list_id, args.task_id)
    return structured_response("uncomplete", message=f"Reopened {task.title!r}", payload={"list_id": list_id, "task": task.to_dict()})


def cmd_delete(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id, task = repo.find_task_by_id(args.task_id)
    repo.delete_task(list_id, task.id)
    return structured_response("delete", message=f"Deleted {task.title!r}", payload={"list_id": list_id, "task_id": task.id})


def cmd_edit(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id, task = repo.find_task_by_id(args.task_id)
    changes: Dict[str, Any] = {}
    if args.title is not None:
        changes["title"] = args.title
    if args.description is not None:
        changes["description"] = args.description
    if args.clear_due:
        changes["due_date"] = None
    elif args.due:
        changes["due_date"] = parse_due_date(args.due)
    if not changes:
        raise ValueError("Nothing to edit: pass --title, --description, --due or --clear-due")
    task = repo.update_task(list_id, replace(task, **changes))
    return structured_response("edit", message=f"Updated {task.title!r}", payload={"list_id": list_id, "task": task.to_dict()})


def cmd_move(args, deps: CliDeps) -> int:
    repo = _repository(args, deps)
    list_id, _ = repo.find_task_by_id(args.task_id)
    repo.reorder_task(list_id, args.task_id, args.position)
    return structured_response("move", message="Task moved", payload={"list_id": list_id, "task_order": repo.get_task_order(list_id)})


# ---- sync ----


def cmd_sync_setup(args, deps: CliDeps) -> int:
    name, _, config = _workspace(args, deps)
    if name == ENV_WORKSPACE_NAME:
        raise ValueError("Sync settings need a registered workspace, not PLAINTASKS_WORKSPACE_DIR")
    config.configure_webdav(name, args.url, args.username)
    if args.password:
        config.set_webdav_password(args.url, args.username, args.password)
    deps.save_config(config)
    return structured_response(
        "sync.setup",
        message=f"WebDAV configured for {name!r}",
        payload={"workspace": name, "webdav_url": args.url, "username": args.username, "password_stored": bool(args.password)},
    )


def _engine(args, deps: CliDeps) -> Tuple[str, SyncEngine, AppConfig]:
    name, path, config = _workspace(args, deps)
    if name == ENV_WORKSPACE_NAME:
        raise ValueError("Sync needs a registered workspace, not PLAINTASKS_WORKSPACE_DIR")
    workspace = config.get_workspace(name)
    if not workspace.webdav_url or not workspace.webdav_username:
        raise WebDavError(f"WebDAV is not configured for {name!r}; run 'sync setup' first")
    password = config.get_webdav_password(workspace.webdav_url, workspace.webdav_username)
    client = deps.make_client(workspace.webdav_url, workspace.webdav_username, password)
    return name, SyncEngine(path, client, workspace.webdav_url), config


def _run_sync(args, deps: CliDeps, label: str, operation: Callable[[SyncEngine], Any]) -> int:
    name, engine, config = _engine(args, deps)
    result = operation(engine)
    config.record_sync(name, utc_now())
    deps.save_config(config)
    logger.info("%s finished for %s: %d change(s)", label, name, result.total_changes())
    return structured_response(label, message=f"{result.total_changes()} change(s)", payload=result.to_dict())


def cmd_sync_push(args, deps: CliDeps) -> int:
    return _run_sync(args, deps, "sync.push", lambda engine: engine.push())


def cmd_sync_pull(args, deps: CliDeps) -> int:
    return _run_sync(args, deps, "sync.pull", lambda engine: engine.pull())


def cmd_sync(args, deps: CliDeps) -> int:
    return _run_sync(args, deps, "sync", lambda engine: engine.sync())


def cmd_sync_plan(args, deps: CliDeps) -> int:
    _, engine, _ = _engine(args, deps)
    plan = engine.plan()
    return structured_response("sync.plan", message=f"{plan.total_operations()} pending operation(s)", payload=plan.to_dict())


def _all_sync_status(deps: CliDeps) -> int:
    config = deps.load_config()
    workspaces = [
        {
            "name": name,
            "current": name == config.current_workspace,
            "configured": bool(ws.webdav_url and ws.webdav_username),
            "webdav_url": ws.webdav_url,
            "last_sync": format_timestamp(ws.last_sync) if ws.last_sync else None,
        }
        for name, ws in config.list_workspaces()
    ]
    configured = sum(1 for ws in workspaces if ws["configured"])
    return structured_response(
        "sync.status",
        message=f"{configured} of {len(workspaces)} workspace(s) configured for WebDAV",
        payload={"workspaces": workspaces},
    )


def cmd_sync_status(args, deps: CliDeps) -> int:
    if getattr(args, "all", False):
        return _all_sync_status(deps)
    _, engine, _ = _engine(args, deps)
    status = engine.status()
    return structured_response(
        "sync.status",
        message="connected" if status.connected else "not connected",
        payload=status.to_dict(),
    )
