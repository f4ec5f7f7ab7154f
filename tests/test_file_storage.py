import json
from pathlib import Path

import pytest

from core import Task
from core.errors import (
    InvalidPathError,
    ListAlreadyExistsError,
    ListNotFoundError,
    StorageIOError,
    TaskAlreadyExistsError,
    TaskNotFoundError,
)
from infrastructure.file_repository import (
    LIST_METADATA_FILE,
    METADATA_FILE,
    FileSystemStorage,
    atomic_write,
    sanitize_filename,
)


def _storage(tmp_path: Path) -> FileSystemStorage:
    storage = FileSystemStorage(tmp_path / "ws")
    storage.initialize()
    return storage


def test_initialize_writes_workspace_metadata(tmp_path: Path):
    storage = _storage(tmp_path)

    data = json.loads((storage.root_path / METADATA_FILE).read_text(encoding="utf-8"))
    assert data == {"version": 1, "list_order": [], "last_opened_list": None}


def test_initialize_keeps_existing_metadata(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Inbox")

    storage.initialize()

    assert storage.read_global_metadata().list_order == [list_id]


def test_create_list_layout_and_registration(tmp_path: Path):
    storage = _storage(tmp_path)

    list_id = storage.create_list("Groceries")

    assert (storage.root_path / "Groceries" / LIST_METADATA_FILE).exists()
    assert storage.list_lists() == [(list_id, "Groceries")]
    meta = storage.read_global_metadata()
    assert meta.list_order == [list_id]
    assert meta.last_opened_list == list_id


def test_task_files_are_named_after_titles(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Inbox")
    task = Task.new("Fix a/b: now?")

    storage.write_task(list_id, task)

    assert (storage.root_path / "Inbox" / "Fix a_b_ now_.md").exists()
    loaded = storage.read_task(list_id, task.id)
    assert loaded.id == task.id
    assert loaded.title == "Fix a_b_ now_"
    assert loaded.created_at == task.created_at
    assert [t.id for t in storage.list_tasks(list_id)] == [task.id]


def test_write_task_collision_is_reported(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Inbox")
    first = Task.new("Same")
    storage.write_task(list_id, first)

    with pytest.raises(TaskAlreadyExistsError) as excinfo:
        storage.write_task(list_id, Task.new("Same"))

    assert excinfo.value.existing_id == first.id
    storage.write_task(list_id, first)


def test_delete_task_and_missing_task(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Inbox")
    task = Task.new("Gone soon")
    storage.write_task(list_id, task)

    storage.delete_task(list_id, task.id)

    assert storage.list_tasks(list_id) == []
    with pytest.raises(TaskNotFoundError):
        storage.read_task(list_id, task.id)
    with pytest.raises(TaskNotFoundError):
        storage.delete_task(list_id, task.id)


def test_duplicate_list_name_rejected_but_bare_directory_adopted(tmp_path: Path):
    storage = _storage(tmp_path)
    storage.create_list("Work")
    with pytest.raises(ListAlreadyExistsError):
        storage.create_list("Work")

    (storage.root_path / "Loose").mkdir()
    list_id = storage.create_list("Loose")
    assert (list_id, "Loose") in storage.list_lists()


@pytest.mark.parametrize("name", ["", "   ", ".", "..", ".hidden"])
def test_unusable_names_are_rejected(name):
    with pytest.raises(InvalidPathError):
        sanitize_filename(name)


def test_delete_list_removes_directory_and_order(tmp_path: Path):
    storage = _storage(tmp_path)
    keep = storage.create_list("Keep")
    drop = storage.create_list("Drop")
    storage.write_task(drop, Task.new("inside"))

    storage.delete_list(drop)

    assert not (storage.root_path / "Drop").exists()
    assert storage.list_lists() == [(keep, "Keep")]
    assert storage.read_global_metadata().list_order == [keep]
    with pytest.raises(ListNotFoundError):
        storage.list_tasks(drop)


def test_rename_list_moves_directory_and_keeps_identity(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Old")
    task = Task.new("carry me")
    storage.write_task(list_id, task)
    before = storage.read_list_metadata(list_id).updated_at

    storage.rename_list(list_id, "New")

    assert not (storage.root_path / "Old").exists()
    assert storage.list_lists() == [(list_id, "New")]
    assert storage.read_task(list_id, task.id).title == "carry me"
    assert storage.read_list_metadata(list_id).updated_at > before


def test_rename_list_onto_existing_list_fails(tmp_path: Path):
    storage = _storage(tmp_path)
    first = storage.create_list("A")
    storage.create_list("B")

    with pytest.raises(ListAlreadyExistsError):
        storage.rename_list(first, "B")


def test_lists_created_by_another_instance_are_found(tmp_path: Path):
    storage = _storage(tmp_path)
    other = FileSystemStorage(storage.root_path)
    list_id = other.create_list("Shared")

    assert storage.read_list_metadata(list_id).id == list_id


def test_hidden_and_foreign_files_are_ignored(tmp_path: Path):
    storage = _storage(tmp_path)
    list_id = storage.create_list("Inbox")
    list_dir = storage.root_path / "Inbox"
    (list_dir / ".draft.md").write_text("x", encoding="utf-8")
    (list_dir / "notes.txt").write_text("x", encoding="utf-8")
    (storage.root_path / ".trash").mkdir()

    assert storage.list_tasks(list_id) == []
    assert [name for _, name in storage.list_lists()] == ["Inbox"]


def test_list_lists_requires_workspace_folder(tmp_path: Path):
    with pytest.raises(StorageIOError):
        FileSystemStorage(tmp_path / "missing").list_lists()


def test_atomic_write_leaves_no_temp_files(tmp_path: Path):
    target = tmp_path / "file.bin"

    atomic_write(target, "first")
    atomic_write(target, b"\x00second")

    assert target.read_bytes() == b"\x00second"
    assert [p.name for p in tmp_path.iterdir()] == ["file.bin"]
