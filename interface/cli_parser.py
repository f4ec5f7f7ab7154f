"""CLI parser construction for the plaintasks command."""

import argparse
from typing import Any


def build_parser(commands: Any) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="plaintasks",
        description="Plain-file task lists with WebDAV sync. Every command prints one JSON document.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="debug logging on stderr")

    def add_workspace_arg(sp):
        # SUPPRESS keeps a value given before a nested sub-command.
        sp.add_argument("--workspace", "-w", default=argparse.SUPPRESS, help="registered workspace name (default: current)")
        return sp

    def add_list_arg(sp, help_text="list name"):
        sp.add_argument("--list", "-l", default=argparse.SUPPRESS, help=help_text)
        return sp

    sub = parser.add_subparsers(dest="command", help="Commands")

    # init
    ip = sub.add_parser("init", help="Create a workspace folder and register it")
    ip.add_argument("path")
    ip.add_argument("--name", help="workspace name (default: folder name)")
    ip.set_defaults(func=commands.cmd_init, label="init")

    # workspace
    wp = sub.add_parser("workspace", help="Manage registered workspaces")
    wsub = wp.add_subparsers(dest="workspace_command")
    wsub.required = True
    w_add = wsub.add_parser("add", help="Register an existing workspace folder")
    w_add.add_argument("name")
    w_add.add_argument("path")
    w_add.set_defaults(func=commands.cmd_workspace_add, label="workspace.add")
    w_list = wsub.add_parser("list", help="Show registered workspaces")
    w_list.set_defaults(func=commands.cmd_workspace_list, label="workspace.list")
    w_switch = wsub.add_parser("switch", help="Make a workspace current")
    w_switch.add_argument("name")
    w_switch.set_defaults(func=commands.cmd_workspace_switch, label="workspace.switch")
    w_remove = wsub.add_parser("remove", help="Forget a workspace (files stay on disk)")
    w_remove.add_argument("name")
    w_remove.set_defaults(func=commands.cmd_workspace_remove, label="workspace.remove")
    w_retarget = wsub.add_parser("retarget", help="Point a workspace at another folder")
    w_retarget.add_argument("name")
    w_retarget.add_argument("path")
    w_retarget.set_defaults(func=commands.cmd_workspace_retarget, label="workspace.retarget")
    w_migrate = wsub.add_parser("migrate", help="Move a workspace's files to a new folder and retarget it")
    w_migrate.add_argument("name")
    w_migrate.add_argument("path")
    w_migrate.set_defaults(func=commands.cmd_workspace_migrate, label="workspace.migrate")

    # list
    lp = add_list_arg(add_workspace_arg(sub.add_parser("list", help="Show and manage lists")), "show only this list")
    lp.set_defaults(func=commands.cmd_list_show, label="list.show")
    lsub = lp.add_subparsers(dest="list_command")
    l_show = add_list_arg(add_workspace_arg(lsub.add_parser("show", help="Show lists with their tasks")), "show only this list")
    l_show.set_defaults(func=commands.cmd_list_show, label="list.show")
    l_create = add_workspace_arg(lsub.add_parser("create", help="Create a list"))
    l_create.add_argument("name")
    l_create.set_defaults(func=commands.cmd_list_create, label="list.create")
    l_rename = add_workspace_arg(lsub.add_parser("rename", help="Rename a list"))
    l_rename.add_argument("name")
    l_rename.add_argument("new_name")
    l_rename.set_defaults(func=commands.cmd_list_rename, label="list.rename")
    l_delete = add_workspace_arg(lsub.add_parser("delete", help="Delete a list and its tasks"))
    l_delete.add_argument("name")
    l_delete.set_defaults(func=commands.cmd_list_delete, label="list.delete")
    l_archive = add_workspace_arg(lsub.add_parser("archive", help="Archive a list"))
    l_archive.add_argument("name")
    l_archive.set_defaults(func=commands.cmd_list_archive, label="list.archive")
    l_unarchive = add_workspace_arg(lsub.add_parser("unarchive", help="Unarchive a list"))
    l_unarchive.add_argument("name")
    l_unarchive.set_defaults(func=commands.cmd_list_unarchive, label="list.unarchive")
    l_move = add_workspace_arg(lsub.add_parser("move", help="Move a list to a position (0 = first)"))
    l_move.add_argument("name")
    l_move.add_argument("position", type=int)
    l_move.set_defaults(func=commands.cmd_list_move, label="list.move")

    # add
    ap = add_list_arg(add_workspace_arg(sub.add_parser("add", help="Add a task")), "target list (default: first list)")
    ap.add_argument("title")
    ap.add_argument("--due", help="YYYY-MM-DD or ISO-8601 timestamp")
    ap.add_argument("--description", "-d", default="")
    ap.set_defaults(func=commands.cmd_add, label="add", list=None)

    for name, func, help_text in (
        ("complete", commands.cmd_complete, "Mark a task completed"),
        ("uncomplete", commands.cmd_uncomplete, "Reopen a completed task"),
        ("delete", commands.cmd_delete, "Delete a task"),
    ):
        tp = add_workspace_arg(sub.add_parser(name, help=help_text))
        tp.add_argument("task_id")
        tp.set_defaults(func=func, label=name)

    # edit
    ep = add_workspace_arg(sub.add_parser("edit", help="Edit a task"))
    ep.add_argument("task_id")
    ep.add_argument("--title")
    ep.add_argument("--description", "-d")
    due = ep.add_mutually_exclusive_group()
    due.add_argument("--due", help="YYYY-MM-DD or ISO-8601 timestamp")
    due.add_argument("--clear-due", action="store_true")
    ep.set_defaults(func=commands.cmd_edit, label="edit")

    # move
    mp = add_workspace_arg(sub.add_parser("move", help="Move a task within its list (0 = first)"))
    mp.add_argument("task_id")
    mp.add_argument("position", type=int)
    mp.set_defaults(func=commands.cmd_move, label="move")

    # group
    gp = add_list_arg(add_workspace_arg(sub.add_parser("group", help="Toggle grouping by due date")), "target list (default: first list)")
    gp.add_argument("mode", choices=["enable", "disable"])
    gp.set_defaults(func=commands.cmd_group, label="group", list=None)

    # sync
    syp = add_workspace_arg(sub.add_parser("sync", help="Two-way sync; or push/pull/status/plan/setup"))
    syp.set_defaults(func=commands.cmd_sync, label="sync")
    ssub = syp.add_subparsers(dest="sync_command")
    s_setup = add_workspace_arg(ssub.add_parser("setup", help="Store WebDAV settings for the workspace"))
    s_setup.add_argument("--url", required=True)
    s_setup.add_argument("--username", required=True)
    s_setup.add_argument("--password", help="stored in the user config; PLAINTASKS_WEBDAV_PASSWORD also works")
    s_setup.set_defaults(func=commands.cmd_sync_setup, label="sync.setup")
    for name, func, help_text in (
        ("push", commands.cmd_sync_push, "Upload every local file"),
        ("pull", commands.cmd_sync_pull, "Download every remote file"),
        ("status", commands.cmd_sync_status, "Check the connection and local state"),
        ("plan", commands.cmd_sync_plan, "Show what a two-way sync would do"),
    ):
        sp = add_workspace_arg(ssub.add_parser(name, help=help_text))
        sp.set_defaults(func=func, label=f"sync.{name}")
        if name == "status":
            sp.add_argument("--all", action="store_true", help="Report WebDAV settings and last sync for every workspace")

    return parser
