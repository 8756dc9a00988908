from __future__ import annotations

import os
from typing import TYPE_CHECKING

from index.cache import ExtractionCache
from index.utils import hash_bytes
from parse.treesitter_symbols import ExtractResult, extract_symbols

if TYPE_CHECKING:
    from pathlib import Path


class _CountingExtractor:
    def __init__(self) -> None:
        self.calls: list[str] = []

    def __call__(self, source: bytes, relative_path: str) -> ExtractResult:
        self.calls.append(relative_path)
        return extract_symbols(source, relative_path)


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_unchanged_file_is_extracted_once(tmp_path: Path) -> None:
    source = tmp_path / "user.rb"
    _write(source, "class User\nend\n")
    extractor = _CountingExtractor()
    cache = ExtractionCache(extractor)

    first = cache.get_or_extract(source, "user.rb")
    second = cache.get_or_extract(source, "user.rb")

    assert first is second
    assert extractor.calls == ["user.rb"]
    assert (cache.hits, cache.misses) == (1, 1)
    assert len(cache) == 1


def test_metadata_comes_from_the_same_read(tmp_path: Path) -> None:
    source = tmp_path / "user.rb"
    text = "class User\n  def create; end\nend\n"
    _write(source, text)
    cache = ExtractionCache()

    entry = cache.get_or_extract(source, "user.rb")

    assert entry.metadata.path == "user.rb"
    assert entry.metadata.size == len(text.encode())
    assert entry.metadata.content_hash == hash_bytes(text.encode())
    assert entry.metadata.mtime == source.stat().st_mtime
    assert [r.name for r in entry.records] == ["User", "create"]


def test_changed_fingerprint_re_extracts(tmp_path: Path) -> None:
    source = tmp_path / "user.rb"
    _write(source, "class User\nend\n")
    extractor = _CountingExtractor()
    cache = ExtractionCache(extractor)
    cache.get_or_extract(source, "user.rb")

    _write(source, "class Account\nend\n")
    stat = source.stat()
    os.utime(source, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))
    entry = cache.get_or_extract(source, "user.rb")

    assert [r.name for r in entry.records] == ["Account"]
    assert extractor.calls == ["user.rb", "user.rb"]
    assert len(cache) == 2


def test_syntax_error_is_cached_with_metadata(tmp_path: Path) -> None:
    source = tmp_path / "broken.rb"
    _write(source, "class Broken\n  def oops(\nend\n")
    cache = ExtractionCache()

    entry = cache.get_or_extract(source, "broken.rb")

    assert entry.records == ()
    assert entry.error is not None
    assert entry.metadata.path == "broken.rb"


def test_clear_drops_entries(tmp_path: Path) -> None:
    source = tmp_path / "user.rb"
    _write(source, "class User\nend\n")
    cache = ExtractionCache()
    cache.get_or_extract(source, "user.rb")

    cache.clear()

    assert len(cache) == 0
    assert (cache.hits, cache.misses) == (0, 0)
