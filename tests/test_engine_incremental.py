from __future__ import annotations

import os
import shutil
from pathlib import Path

import pytest

from index import build_index, update_index
from index.engine import SymbolIndexEngine
from index.errors import IndexIOError
from index.utils import compute_file_hash
from settings.config import SymIndexConfig

_FIXTURE_APP = Path(__file__).parent / "fixtures" / "mini_app"

_INDEXED_FILES = [
    "app/models/application_record.rb",
    "app/models/user.rb",
    "app/services/billing/invoice_builder.rb",
    "lib/user_helpers.rb",
]


def _copy_mini_app(root: Path) -> None:
    shutil.copytree(_FIXTURE_APP, root)


def _engine(root: Path) -> SymbolIndexEngine:
    return SymbolIndexEngine(root, SymIndexConfig(max_workers=2))


def test_discover_files_applies_ignore_rules(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        discovered = [rel for _, rel in engine.discover_files()]

    assert discovered == _INDEXED_FILES


def test_full_build_persists_every_file(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        result = engine.build()
        index = engine.store.load()

    assert result.files_processed == 4
    assert result.symbols_extracted == 16
    assert result.failures == ()
    assert index.total_files == 4
    assert index.total_symbols == 16
    assert (root / ".symindex" / "files.json").is_file()


def test_update_without_index_builds(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        result = engine.update()

    assert result.updated
    assert result.changes.new == tuple(_INDEXED_FILES)
    assert result.symbols_extracted == 16


def test_deleted_file_is_removed(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        (root / "lib" / "user_helpers.rb").unlink()
        result = engine.update()
        index = engine.store.load()
        table = engine.store.load_file_table()

    assert result.updated
    assert result.changes.deleted == ("lib/user_helpers.rb",)
    assert result.changes.changed == ()
    assert result.changes.new == ()
    assert "USER_LIMIT" not in index.symbols
    assert "user_greeting" not in index.symbols
    assert "lib/user_helpers.rb" not in table
    assert [r.file for r in index.symbols["User"]] == ["app/models/user.rb"]
    assert index.total_files == 3
    assert index.total_symbols == 14


def test_edited_file_replaces_all_of_its_records(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        (root / "lib" / "user_helpers.rb").write_text(
            "\n\ndef user_greeting(user)\n  user.name\nend\n", encoding="utf-8"
        )
        result = engine.update()
        index = engine.store.load()

    assert result.changes.changed == ("lib/user_helpers.rb",)
    assert "USER_LIMIT" not in index.symbols
    assert [(r.file, r.line) for r in index.symbols["user_greeting"]] == [
        ("lib/user_helpers.rb", 3)
    ]
    assert index.total_symbols == 15


def test_syntax_error_file_contributes_nothing(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)
    (root / "app" / "models" / "broken.rb").write_text(
        "class Broken\n  def oops(\nend\n", encoding="utf-8"
    )

    with _engine(root) as engine:
        result = engine.build()
        index = engine.store.load()
        table = engine.store.load_file_table()

    assert [(f.path, f.reason) for f in result.failures] == [
        ("app/models/broken.rb", "syntax")
    ]
    assert "Broken" not in index.symbols
    assert index.total_symbols == 16
    assert "app/models/broken.rb" in table


def test_second_update_without_changes_writes_nothing(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        (root / "lib" / "extra.rb").write_text("class Extra\nend\n", encoding="utf-8")
        first = engine.update()

        def _no_writes(path: Path, obj: object) -> None:
            msg = f"unexpected write to {path}"
            raise AssertionError(msg)

        monkeypatch.setattr("index.store.write_json_atomic", _no_writes)
        second = engine.update()
        third = engine.update()

    assert first.updated
    assert first.changes.new == ("lib/extra.rb",)
    assert not second.updated
    assert not third.updated
    assert second.changes.is_empty


def test_touched_file_is_hashed_once(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)
    touched = root / "lib" / "user_helpers.rb"

    with _engine(root) as engine:
        engine.build()
        stat = touched.stat()
        os.utime(touched, ns=(stat.st_atime_ns, stat.st_mtime_ns + 2_000_000_000))

        hashed: list[Path] = []
        original = compute_file_hash

        def _counting_hash(path: Path) -> str:
            hashed.append(path)
            return original(path)

        monkeypatch.setattr("index.differ.compute_file_hash", _counting_hash)
        first = engine.update()
        second = engine.update()
        table = engine.store.load_file_table()

    assert not first.updated
    assert not second.updated
    assert [path.name for path in hashed] == ["user_helpers.rb"]
    assert table["lib/user_helpers.rb"].mtime == touched.stat().st_mtime


def test_apply_changes_restricted_to_batch(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        (root / "lib" / "extra.rb").write_text("class Extra\nend\n", encoding="utf-8")
        (root / "lib" / "user_helpers.rb").unlink()
        (root / "vendor" / "bundle" / "other.rb").write_text(
            "class Other\nend\n", encoding="utf-8"
        )

        result = engine.apply_changes(
            added=[
                str(root / "lib" / "extra.rb"),
                str(root / "vendor" / "bundle" / "other.rb"),
            ],
            removed=[str(root / "lib" / "user_helpers.rb")],
        )
        index = engine.store.load()

    assert result.updated
    assert result.changes.new == ("lib/extra.rb",)
    assert result.changes.deleted == ("lib/user_helpers.rb",)
    assert "Extra" in index.symbols
    assert "Other" not in index.symbols
    assert "USER_LIMIT" not in index.symbols


def test_apply_changes_ignores_unrelated_paths(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        result = engine.apply_changes(
            modified=[
                str(root / "app" / "models" / "README.md"),
                str(root / ".symindex" / "index.json"),
                str(tmp_path / "elsewhere.rb"),
            ]
        )

    assert not result.updated


def test_removed_path_that_exists_again_is_treated_as_changed(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)
    helpers = root / "lib" / "user_helpers.rb"

    with _engine(root) as engine:
        engine.build()
        helpers.write_text("HELPER_LIMIT = 5\n", encoding="utf-8")

        result = engine.apply_changes(removed=[str(helpers)])
        index = engine.store.load()

    assert result.changes.changed == ("lib/user_helpers.rb",)
    assert result.changes.deleted == ()
    assert "HELPER_LIMIT" in index.symbols


def test_failed_write_propagates_and_keeps_file_table(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)

    with _engine(root) as engine:
        engine.build()
        table_before = engine.store.files_path.read_bytes()
        (root / "lib" / "extra.rb").write_text("class Extra\nend\n", encoding="utf-8")

        def _fail(path: Path, obj: object) -> None:
            msg = "read-only file system"
            raise OSError(msg)

        monkeypatch.setattr("index.store.write_json_atomic", _fail)
        with pytest.raises(IndexIOError, match="read-only file system"):
            engine.update()

        assert engine.store.files_path.read_bytes() == table_before
        monkeypatch.undo()
        retry = engine.update()

    assert retry.changes.new == ("lib/extra.rb",)


def test_package_entry_points(tmp_path: Path) -> None:
    root = tmp_path / "app"
    _copy_mini_app(root)
    config = SymIndexConfig(max_workers=2)

    built = build_index(root=root, config=config)
    (root / "lib" / "extra.rb").write_text("class Extra\nend\n", encoding="utf-8")
    updated = update_index(root=root, config=config)
    unchanged = update_index(root=root, config=config)

    assert built.symbols_extracted == 16
    assert updated.updated
    assert updated.changes.new == ("lib/extra.rb",)
    assert not unchanged.updated
