"""
文档导入流程

每个文件 → 读取 → 切块 → 逐块提交给文档处理入口（块之间 sleep 限速）。
单块失败只记录并跳过；一个文件只有在所有块都失败时才算失败。

处理入口有两种：
- SubprocessProcessor: 调用 `portal process-document <json>`，带固定超时
- InProcessProcessor: 直接在当前进程调用 process_document
"""
import asyncio
import json
import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

import httpx

from ..config import settings
from ..errors import PortalError
from ..llm.extraction import process_document
from ..memory.semantic import EmbedSummary, embed_all_memories
from .chunker import chunk_content
from .readers import UnsupportedDocument, discover_files, read_document

logger = logging.getLogger(__name__)

# payload -> {success, memoriesExtracted, linksExtracted, tokensUsed, suggestedCoreUpdates, error?, rawOutput?}
Processor = Callable[[dict], Awaitable[dict]]


# ==================== 处理入口 ====================

class SubprocessProcessor:
    """以子进程方式调用文档处理命令，stdout 为 JSON"""

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        self.command = shlex.split(command or settings.ingest_command)
        self.timeout = timeout or settings.ingest_timeout

    async def __call__(self, payload: dict) -> dict:
        process = await asyncio.create_subprocess_exec(
            *self.command,
            json.dumps(payload, ensure_ascii=False),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return {"success": False, "error": f"timed out after {self.timeout}s"}

        if process.returncode != 0:
            error = stderr.decode("utf-8", errors="replace").strip()
            return {"success": False, "error": error or f"exit code: {process.returncode}"}

        output = stdout.decode("utf-8", errors="replace")
        try:
            return json.loads(output)
        except json.JSONDecodeError as e:
            return {"success": False, "error": f"invalid JSON output: {e}", "rawOutput": output}


class InProcessProcessor:
    """在当前进程直接处理"""

    async def __call__(self, payload: dict) -> dict:
        result = await process_document(
            payload["content"],
            payload["documentName"],
            payload.get("documentType"),
            payload.get("autoStore", False),
        )
        return result.model_dump(by_alias=True)


# ==================== 结果 ====================

@dataclass
class FileResult:
    path: Path
    content_length: int = 0
    chunks: int = 0
    chunks_failed: int = 0
    memories: int = 0
    links: int = 0
    tokens: int = 0
    suggested_core_updates: List[dict] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        """读取失败，或所有块都失败"""
        if self.skipped:
            return False
        return self.error is not None or (self.chunks > 0 and self.chunks_failed == self.chunks)


@dataclass
class IngestSummary:
    files: List[FileResult] = field(default_factory=list)
    embed: Optional[EmbedSummary] = None
    embed_error: Optional[str] = None

    @property
    def processed(self) -> int:
        return sum(1 for f in self.files if not f.skipped and not f.failed)

    @property
    def failed(self) -> int:
        return sum(1 for f in self.files if f.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for f in self.files if f.skipped)

    @property
    def total_memories(self) -> int:
        return sum(f.memories for f in self.files if not f.failed)

    @property
    def total_links(self) -> int:
        return sum(f.links for f in self.files if not f.failed)

    @property
    def total_tokens(self) -> int:
        return sum(f.tokens for f in self.files if not f.failed)


def dedupe_core_updates(updates: List[dict]) -> List[dict]:
    """按 targetFile:section 去重，保留第一次出现的"""
    seen = set()
    unique = []
    for update in updates:
        key = f"{update.get('targetFile')}:{update.get('section')}"
        if key not in seen:
            seen.add(key)
            unique.append(update)
    return unique


# ==================== 流程 ====================

def chunk_name(file_name: str, index: int, total: int) -> str:
    return f"{file_name} (Part {index}/{total})" if total > 1 else file_name


async def ingest_file(
    path: Path,
    document_type: str = "dialogue",
    processor: Optional[Processor] = None,
    dry_run: bool = False,
    max_chunk_size: Optional[int] = None,
    delay: Optional[float] = None,
) -> FileResult:
    """导入单个文件"""
    processor = processor or SubprocessProcessor()
    max_chunk_size = max_chunk_size or settings.ingest_max_chunk_size
    delay = settings.ingest_chunk_delay if delay is None else delay

    result = FileResult(path=path)
    try:
        content = read_document(path)
    except UnsupportedDocument as e:
        logger.warning(f"跳过不支持的文件 {path.name}: {e}")
        result.error = str(e)
        return result
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning(f"读取失败 {path.name}: {e}")
        result.error = f"Failed to read file: {e}"
        return result

    result.content_length = len(content)
    chunks = chunk_content(content, max_chunk_size)
    result.chunks = len(chunks)
    logger.info(f"📄 {path.name}: {len(content)} 字符, {len(chunks)} 块")

    if dry_run:
        result.skipped = True
        return result

    for i, chunk in enumerate(chunks, 1):
        payload = {
            "content": chunk,
            "documentName": chunk_name(path.stem, i, len(chunks)),
            "documentType": document_type,
            "autoStore": True,
        }
        try:
            response = await processor(payload)
        except (PortalError, httpx.HTTPError, OSError) as e:
            response = {"success": False, "error": str(e)}

        if response.get("success"):
            result.memories += response.get("memoriesExtracted") or 0
            result.links += response.get("linksExtracted") or 0
            result.tokens += response.get("tokensUsed") or 0
            result.suggested_core_updates.extend(response.get("suggestedCoreUpdates") or [])
            logger.info(
                f"  ✅ 块 {i}/{len(chunks)}: +{response.get('memoriesExtracted') or 0} 记忆, "
                f"+{response.get('linksExtracted') or 0} 连接"
            )
        else:
            result.chunks_failed += 1
            logger.warning(f"  ❌ 块 {i}/{len(chunks)} 失败: {response.get('error')}")
            if response.get("rawOutput"):
                logger.warning(f"  原始输出: {response['rawOutput'][:300]}")

        if i < len(chunks) and delay > 0:
            await asyncio.sleep(delay)

    result.suggested_core_updates = dedupe_core_updates(result.suggested_core_updates)
    return result


async def ingest_path(
    path: Path,
    document_type: str = "dialogue",
    dry_run: bool = False,
    embed: bool = False,
    processor: Optional[Processor] = None,
    max_chunk_size: Optional[int] = None,
    delay: Optional[float] = None,
) -> IngestSummary:
    """
    导入文件或目录（递归）

    Raises:
        FileNotFoundError: 路径不存在
    """
    files = discover_files(path)
    logger.info(f"🎯 {path}: {len(files)} 个文件, 类型 {document_type}")

    summary = IngestSummary()
    for file_path in files:
        summary.files.append(await ingest_file(
            file_path, document_type, processor, dry_run, max_chunk_size, delay
        ))

    if embed and not dry_run and summary.total_memories > 0:
        try:
            summary.embed = await embed_all_memories()
        except (PortalError, httpx.HTTPError) as e:
            logger.error(f"向量化失败: {e}")
            summary.embed_error = str(e)

    return summary


def summary_counts(summary: IngestSummary) -> Dict[str, int]:
    return {
        "Files processed": summary.processed,
        "Files failed": summary.failed,
        "Files skipped": summary.skipped,
        "Memories created": summary.total_memories,
        "Links created": summary.total_links,
        "Tokens used": summary.total_tokens,
    }
