from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from index.cache import ExtractionCache
from index.pipeline import (
    MAX_WORKERS,
    MIN_WORKERS,
    BuildPipeline,
    CallerRunsExecutor,
    default_worker_count,
)
from parse.treesitter_symbols import ExtractResult, extract_symbols


def _write_sources(root: Path, sources: dict[str, str]) -> list[tuple[Path, str]]:
    files = []
    for rel, text in sources.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        files.append((path, rel))
    return files


def test_default_worker_count_is_clamped() -> None:
    assert MIN_WORKERS <= default_worker_count() <= MAX_WORKERS


def test_caller_runs_when_capacity_is_exhausted() -> None:
    executor = CallerRunsExecutor(max_workers=1, queue_capacity=1)
    release = threading.Event()
    caller = threading.current_thread()
    ran_on: list[threading.Thread] = []

    def blocking(value: int) -> int:
        release.wait(timeout=5)
        return value

    def record_thread(value: int) -> int:
        ran_on.append(threading.current_thread())
        return value

    try:
        first = executor.submit(blocking, 1)
        second = executor.submit(blocking, 2)
        third = executor.submit(record_thread, 3)

        assert third.done()
        assert third.result() == 3
        assert ran_on == [caller]
        assert executor.caller_runs == 1
    finally:
        release.set()
        executor.shutdown()

    assert [first.result(), second.result()] == [1, 2]


def test_no_task_is_dropped_under_backpressure(tmp_path: Path) -> None:
    sources = {f"lib/model_{i:02d}.rb": f"class Model{i}\nend\n" for i in range(25)}
    files = _write_sources(tmp_path, sources)
    pipeline = BuildPipeline(ExtractionCache(), max_workers=2, queue_capacity=1)

    try:
        result = pipeline.process(files)
    finally:
        pipeline.shutdown()

    assert [r.name for r in result.records] == [f"Model{i}" for i in range(25)]
    assert sorted(result.file_metadata) == sorted(sources)
    assert result.failures == []


def test_syntax_error_keeps_metadata_and_other_files(tmp_path: Path) -> None:
    files = _write_sources(
        tmp_path,
        {
            "good.rb": "class Good\nend\n",
            "broken.rb": "class Broken\n  def oops(\nend\n",
        },
    )
    pipeline = BuildPipeline(ExtractionCache())

    try:
        result = pipeline.process(files)
    finally:
        pipeline.shutdown()

    assert [r.name for r in result.records] == ["Good"]
    assert set(result.file_metadata) == {"good.rb", "broken.rb"}
    assert [(f.path, f.reason) for f in result.failures] == [("broken.rb", "syntax")]


def test_timed_out_file_is_skipped_without_metadata(tmp_path: Path) -> None:
    files = _write_sources(
        tmp_path,
        {"slow.rb": "class Slow\nend\n", "fast.rb": "class Fast\nend\n"},
    )
    release = threading.Event()

    def extractor(source: bytes, relative_path: str) -> ExtractResult:
        if relative_path == "slow.rb":
            release.wait(timeout=5)
        return extract_symbols(source, relative_path)

    pipeline = BuildPipeline(ExtractionCache(extractor), task_timeout=0.2)
    try:
        result = pipeline.process(files)
    finally:
        release.set()
        pipeline.shutdown()

    assert [r.name for r in result.records] == ["Fast"]
    assert set(result.file_metadata) == {"fast.rb"}
    assert [(f.path, f.reason) for f in result.failures] == [("slow.rb", "timeout")]


def test_shutdown_does_not_wait_for_timed_out_task(tmp_path: Path) -> None:
    files = _write_sources(tmp_path, {"stuck.rb": "class Stuck\nend\n"})
    release = threading.Event()

    def extractor(source: bytes, relative_path: str) -> ExtractResult:
        release.wait(timeout=10)
        return extract_symbols(source, relative_path)

    pipeline = BuildPipeline(ExtractionCache(extractor), task_timeout=0.2)
    try:
        result = pipeline.process(files)
        t0 = time.perf_counter()
        pipeline.shutdown()
        elapsed = time.perf_counter() - t0
    finally:
        release.set()

    assert pipeline.timed_out == 1
    assert [f.reason for f in result.failures] == ["timeout"]
    assert elapsed < 2.0


def test_unexpected_exception_does_not_abort_batch(tmp_path: Path) -> None:
    files = _write_sources(
        tmp_path,
        {"bad.rb": "class Bad\nend\n", "ok.rb": "class Ok\nend\n"},
    )

    def extractor(source: bytes, relative_path: str) -> ExtractResult:
        if relative_path == "bad.rb":
            msg = "extractor exploded"
            raise RuntimeError(msg)
        return extract_symbols(source, relative_path)

    pipeline = BuildPipeline(ExtractionCache(extractor))
    try:
        result = pipeline.process(files)
    finally:
        pipeline.shutdown()

    assert [r.name for r in result.records] == ["Ok"]
    assert [(f.path, f.reason) for f in result.failures] == [("bad.rb", "error")]
    assert "exploded" in result.failures[0].message


def test_vanished_file_is_reported(tmp_path: Path) -> None:
    pipeline = BuildPipeline(ExtractionCache())
    try:
        result = pipeline.process([(tmp_path / "gone.rb", "gone.rb")])
    finally:
        pipeline.shutdown()

    assert result.records == []
    assert result.file_metadata == {}
    assert [(f.path, f.reason) for f in result.failures] == [("gone.rb", "error")]


@pytest.mark.parametrize("max_workers", [None, 1, 4])
def test_worker_count_respects_floor(max_workers: int | None) -> None:
    pipeline = BuildPipeline(ExtractionCache(), max_workers=max_workers)
    try:
        assert pipeline.worker_count >= MIN_WORKERS
    finally:
        pipeline.shutdown()
