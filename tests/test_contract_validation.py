from __future__ import annotations

from pathlib import Path

import orjson

from contract import FILES_JSON, INDEX_FORMAT_VERSION, INDEX_JSON, META_JSON
from contract.validation import (
    ValidationMessage,
    ValidationResult,
    validate_index_dir,
)
from index.models import FileMetadata, SymbolRecord
from index.store import IndexStore


def _write_valid_index(d: Path) -> None:
    """Write a small valid snapshot to directory d."""
    records = [
        SymbolRecord(kind="class", name="User", file="user.rb", line=1),
        SymbolRecord(
            kind="method",
            name="create",
            file="user.rb",
            line=3,
            enclosing_name="User",
        ),
    ]
    metadata = {
        "user.rb": FileMetadata(
            path="user.rb", mtime=1.0, size=20, content_hash="a" * 64
        )
    }
    IndexStore(d).save([(Path("user.rb"), "user.rb")], records, metadata)


def _load(path: Path) -> dict:
    return orjson.loads(path.read_bytes())


def _dump(path: Path, payload: object) -> None:
    path.write_bytes(orjson.dumps(payload))


def _messages_contain(messages: list[ValidationMessage], needle: str) -> bool:
    """Return True when any validation message contains the given substring."""
    return any(needle in message.message for message in messages)


# Group 1: Data class tests


def test_validation_message_location_with_key() -> None:
    msg = ValidationMessage("index", Path("index.json"), "bad", key="User")
    assert msg.location() == "index.json[User]"


def test_validation_message_location_without_key() -> None:
    msg = ValidationMessage("index", Path("index.json"), "bad")
    assert msg.location() == "index.json"


def test_validation_message_to_dict() -> None:
    msg = ValidationMessage("files", Path("files.json"), "bad", key="a.rb")
    assert msg.to_dict() == {
        "snapshot": "files",
        "path": "files.json",
        "key": "a.rb",
        "message": "bad",
    }


def test_validation_result_ok_tracks_errors_only() -> None:
    result = ValidationResult()
    result.warn("meta", Path("meta.json"), "missing")
    assert result.ok is True

    result.error("index", Path("index.json"), "boom")
    assert result.ok is False


# Group 2: Directory handling


def test_missing_directory(tmp_path: Path) -> None:
    result = validate_index_dir(tmp_path / "nope")

    assert result.ok is False
    assert _messages_contain(result.errors, "Index directory does not exist")


def test_not_a_directory(tmp_path: Path) -> None:
    file_path = tmp_path / "not-a-dir"
    file_path.write_text("x", encoding="utf-8")

    result = validate_index_dir(file_path)

    assert result.ok is False
    assert _messages_contain(result.errors, "Index path is not a directory")


def test_empty_directory_reports_required_files(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    index_dir.mkdir()

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert len(result.errors) == 2
    assert all("Required snapshot file is missing" in m.message for m in result.errors)
    assert _messages_contain(result.warnings, "Build metadata is missing")


# Group 3: Happy path


def test_valid_index_passes(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)

    result = validate_index_dir(index_dir)

    assert result.ok is True
    assert result.errors == []
    assert result.warnings == []


# Group 4: Per-file checks


def test_invalid_json(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    (index_dir / INDEX_JSON).write_text("{not-json", encoding="utf-8")

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "Invalid JSON")


def test_schema_failure(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    payload = _load(index_dir / INDEX_JSON)
    payload["symbols"]["User"][0]["kind"] = "function"
    _dump(index_dir / INDEX_JSON, payload)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "Schema validation failed")


def test_version_mismatch(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    payload = _load(index_dir / INDEX_JSON)
    payload["version"] = INDEX_FORMAT_VERSION + 1
    _dump(index_dir / INDEX_JSON, payload)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "Format version mismatch")


def test_file_table_key_mismatch(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    table = _load(index_dir / FILES_JSON)
    table["user.rb"]["path"] = "other.rb"
    _dump(index_dir / FILES_JSON, table)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert [m.key for m in result.errors] == ["user.rb"]


def test_invalid_meta_is_error(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    _dump(index_dir / META_JSON, {"last_built": 5})

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "Schema validation failed")


# Group 5: Cross checks


def test_bucket_name_mismatch(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    payload = _load(index_dir / INDEX_JSON)
    payload["symbols"]["Account"] = payload["symbols"].pop("User")
    _dump(index_dir / INDEX_JSON, payload)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "filed under the wrong name")


def test_empty_bucket(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    payload = _load(index_dir / INDEX_JSON)
    payload["symbols"]["Ghost"] = []
    _dump(index_dir / INDEX_JSON, payload)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "Empty symbol bucket")


def test_orphaned_records(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    _dump(index_dir / FILES_JSON, {})

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert [m.key for m in result.errors] == ["user.rb"]
    assert _messages_contain(result.warnings, "total_files is 1")


def test_total_symbols_mismatch(tmp_path: Path) -> None:
    index_dir = tmp_path / ".symindex"
    _write_valid_index(index_dir)
    payload = _load(index_dir / INDEX_JSON)
    payload["total_symbols"] = 7
    _dump(index_dir / INDEX_JSON, payload)

    result = validate_index_dir(index_dir)

    assert result.ok is False
    assert _messages_contain(result.errors, "total_symbols is 7 but 2 records")
