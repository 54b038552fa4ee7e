import sys

import pytest

from portal.errors import UpstreamError
from portal.ingest.readers import discover_files, read_document
from portal.ingest.runner import (
    IngestSummary,
    SubprocessProcessor,
    chunk_name,
    dedupe_core_updates,
    ingest_file,
    ingest_path,
    summary_counts,
)


class ScriptedProcessor:
    """按顺序返回预设结果；值为异常时抛出"""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.payloads = []

    async def __call__(self, payload: dict) -> dict:
        self.payloads.append(payload)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _ok(memories=2, links=1, tokens=100, updates=None):
    return {
        "success": True,
        "memoriesExtracted": memories,
        "linksExtracted": links,
        "tokensUsed": tokens,
        "suggestedCoreUpdates": updates or [],
    }


def _three_chunk_file(tmp_path):
    path = tmp_path / "journal.md"
    path.write_text("\n\n".join(["a" * 40, "b" * 40, "c" * 40]), encoding="utf-8")
    return path


def test_chunk_name() -> None:
    assert chunk_name("notes", 1, 1) == "notes"
    assert chunk_name("notes", 2, 3) == "notes (Part 2/3)"


def test_dedupe_core_updates_keeps_first() -> None:
    updates = [
        {"targetFile": "identity", "section": "Voice", "content": "first"},
        {"targetFile": "identity", "section": "Voice", "content": "second"},
        {"targetFile": "principles", "section": "Voice", "content": "third"},
    ]
    assert [u["content"] for u in dedupe_core_updates(updates)] == ["first", "third"]


def test_discover_files_recurses_and_filters(tmp_path) -> None:
    (tmp_path / "nested").mkdir()
    (tmp_path / "b.md").write_text("b", encoding="utf-8")
    (tmp_path / "nested" / "a.txt").write_text("a", encoding="utf-8")
    (tmp_path / "image.png").write_bytes(b"\x89PNG")

    assert discover_files(tmp_path) == [tmp_path / "b.md", tmp_path / "nested" / "a.txt"]
    assert discover_files(tmp_path / "b.md") == [tmp_path / "b.md"]

    with pytest.raises(FileNotFoundError):
        discover_files(tmp_path / "missing")


@pytest.mark.asyncio
async def test_partial_chunk_failure_keeps_file_successful(tmp_path) -> None:
    processor = ScriptedProcessor([
        _ok(updates=[{"targetFile": "identity", "section": "Voice", "content": "x"}]),
        {"success": False, "error": "Failed to parse extracted data", "rawOutput": "???"},
        UpstreamError("gateway down", status_code=502),
    ])

    result = await ingest_file(
        _three_chunk_file(tmp_path), "notes", processor, max_chunk_size=50, delay=0
    )

    assert result.chunks == 3
    assert result.chunks_failed == 2
    assert result.failed is False
    assert (result.memories, result.links, result.tokens) == (2, 1, 100)
    assert len(result.suggested_core_updates) == 1

    names = [p["documentName"] for p in processor.payloads]
    assert names == ["journal (Part 1/3)", "journal (Part 2/3)", "journal (Part 3/3)"]
    assert all(p["documentType"] == "notes" and p["autoStore"] for p in processor.payloads)


@pytest.mark.asyncio
async def test_file_fails_when_every_chunk_fails(tmp_path) -> None:
    processor = ScriptedProcessor([{"success": False, "error": "boom"}] * 3)

    result = await ingest_file(_three_chunk_file(tmp_path), processor=processor, max_chunk_size=50, delay=0)

    assert result.failed is True


@pytest.mark.asyncio
async def test_unsupported_file_is_reported_as_failed(tmp_path) -> None:
    path = tmp_path / "slides.pdf"
    path.write_bytes(b"%PDF")

    result = await ingest_file(path, processor=ScriptedProcessor([]))
    assert result.failed is True
    assert "Unsupported" in result.error


@pytest.mark.asyncio
async def test_dry_run_never_calls_processor(tmp_path) -> None:
    _three_chunk_file(tmp_path)
    processor = ScriptedProcessor([])

    summary = await ingest_path(tmp_path, dry_run=True, processor=processor, max_chunk_size=50)

    assert processor.payloads == []
    assert summary.skipped == 1
    assert summary.files[0].chunks == 3


@pytest.mark.asyncio
async def test_summary_excludes_failed_files(tmp_path) -> None:
    (tmp_path / "good.txt").write_text("short", encoding="utf-8")
    (tmp_path / "bad.txt").write_text("short", encoding="utf-8")
    # 按路径排序：bad.txt 先处理
    processor = ScriptedProcessor([{"success": False, "error": "boom"}, _ok(memories=4, links=2, tokens=50)])

    summary = await ingest_path(tmp_path, processor=processor, delay=0)

    assert summary_counts(summary) == {
        "Files processed": 1,
        "Files failed": 1,
        "Files skipped": 0,
        "Memories created": 4,
        "Links created": 2,
        "Tokens used": 50,
    }


def test_empty_summary() -> None:
    summary = IngestSummary()
    assert summary.processed == 0
    assert summary.total_memories == 0


def test_read_plain_text(tmp_path) -> None:
    path = tmp_path / "n.txt"
    path.write_text("héllo", encoding="utf-8")
    assert read_document(path) == "héllo"


@pytest.mark.asyncio
async def test_subprocess_processor_parses_stdout() -> None:
    script = "import json, sys; print(json.dumps({'success': True, 'echo': json.loads(sys.argv[1])['documentName']}))"
    processor = SubprocessProcessor(command=f'"{sys.executable}" -c "{script}"')

    response = await processor({"content": "x", "documentName": "doc"})
    assert response == {"success": True, "echo": "doc"}


@pytest.mark.asyncio
async def test_subprocess_processor_reports_bad_output() -> None:
    processor = SubprocessProcessor(command=f'"{sys.executable}" -c "print(\'not json\')"')

    response = await processor({"content": "x"})
    assert response["success"] is False
    assert response["rawOutput"].strip() == "not json"


@pytest.mark.asyncio
async def test_subprocess_processor_reports_nonzero_exit() -> None:
    processor = SubprocessProcessor(command=f'"{sys.executable}" -c "import sys; sys.exit(3)"')

    response = await processor({})
    assert response == {"success": False, "error": "exit code: 3"}
