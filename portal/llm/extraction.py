"""
结构化提取

LLM 返回的文本 → JSON → 校验后的类型化结果。
解析失败不会抛异常：parse_structured_extraction 返回 ExtractionFailure。

两个入口：
- extract_memories: 从一段对话中提取用户事实 / 洞察 / 关系笔记
- process_document: 从文档中提取记忆和记忆连接，可选直接入库
"""
import json
import logging
import random
import re
import string
import time
from dataclasses import dataclass
from typing import List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from ..config import settings
from ..memory import profiles, store
from ..memory.links import upsert_link
from ..memory.models import LinkType, MemoryType
from .client import LLMClient

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


# ==================== Prompts ====================

MEMORY_WEAVER_PROMPT = """You extract long-term memories from a conversation between a user and an AI agent.

Return ONLY valid JSON in this exact format:
{
  "subjectFacts": ["short factual statements about the user"],
  "insights": [
    {
      "title": "Short title",
      "content": "What was learned or realised",
      "tags": ["tag1", "tag2"],
      "resonance": 0.7
    }
  ],
  "relationshipNotes": "How the relationship with the user developed, or null"
}

Resonance is a 0.0-1.0 importance score. Leave lists empty when nothing is worth remembering."""

DOCUMENT_PROCESSOR_PROMPT = """You are the document processor of a memory system.

Analyse the document and extract structured memories for the memory graph.
For each significant piece of information create a memory with:
1. A clear title
2. The core content (specific and detailed)
3. A brief summary (1-2 sentences for quick retrieval)
4. Relevant tags
5. A resonance score (0.0-1.0):
   - 1.0: core identity, fundamental truths
   - 0.9: important relationships, key experiences
   - 0.8: significant insights, meaningful events
   - 0.7: useful context, supporting details
   - 0.6: background information

Memory types:
- "core": fundamental identity, essential truths
- "harmonic": recurring themes and facets
- "insight": lessons, realisations
- "subject": information about specific people

Also identify connections between memories where appropriate.

Return ONLY valid JSON in this exact format:
{
  "documentTitle": "Overall title for this document",
  "documentSummary": "Brief summary of the entire document",
  "memories": [
    {
      "memoryId": "unique-slug-id",
      "type": "core|harmonic|insight|subject",
      "title": "Memory Title",
      "content": "Full content of this memory",
      "summary": "Brief summary for quick retrieval",
      "tags": ["tag1", "tag2"],
      "resonance": 0.8
    }
  ],
  "links": [
    {
      "sourceId": "memory-id-1",
      "targetId": "memory-id-2",
      "linkType": "relates_to|derives_from|contradicts|supports|extends|references|triggers|defines|manifests_as",
      "weight": 0.9,
      "description": "How these memories relate"
    }
  ],
  "suggestedCoreUpdates": [
    {
      "targetFile": "identity|relationships|principles",
      "section": "Section to update",
      "content": "Content to add or update"
    }
  ]
}"""


# ==================== 提取结构 ====================

class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class ExtractedInsight(CamelModel):
    title: str
    content: str
    tags: List[str] = []
    resonance: float = 0.7


class MemoryExtraction(CamelModel):
    """对话提取结果"""
    subject_facts: List[str] = []
    insights: List[ExtractedInsight] = []
    relationship_notes: Optional[str] = None


class ExtractedMemory(CamelModel):
    memory_id: str
    type: MemoryType
    title: str
    content: str
    summary: Optional[str] = None
    tags: List[str] = []
    resonance: float = 0.7

    @field_validator("type", mode="before")
    @classmethod
    def _legacy_type(cls, value):
        # 旧提示词里的 "seeker" 等同于 subject
        return "subject" if value == "seeker" else value


class ExtractedLink(CamelModel):
    source_id: str
    target_id: str
    link_type: LinkType
    weight: float = 0.5
    description: Optional[str] = None


class CoreUpdate(CamelModel):
    target_file: str
    section: str
    content: str


class DocumentExtraction(CamelModel):
    """
    文档提取结果

    memories / links 保留原始 dict，入库时逐条校验；
    一条不合法不影响同一文档的其他条目。
    """
    document_title: str = ""
    document_summary: str = ""
    memories: List[dict] = []
    links: List[dict] = []
    suggested_core_updates: List[CoreUpdate] = []


@dataclass
class ExtractionFailure:
    """解析失败"""
    error: str
    raw_output: str


def parse_structured_extraction(
    raw: str, schema: Type[T]
) -> Union[T, ExtractionFailure]:
    """
    解析 LLM 的结构化输出

    1. 去掉可选的 ``` / ```json 代码块标记
    2. JSON 解析
    3. 按 schema 校验

    任何一步失败都返回 ExtractionFailure，不抛异常。
    """
    text = (raw or "").strip()
    match = _FENCE_RE.search(text)
    if match:
        text = match.group(1).strip()

    try:
        return schema.model_validate(json.loads(text))
    except json.JSONDecodeError as e:
        return ExtractionFailure(error=f"Invalid JSON: {e}", raw_output=raw)
    except ValidationError as e:
        return ExtractionFailure(error=f"Unexpected shape: {e.error_count()} errors", raw_output=raw)


# ==================== 对话记忆提取 ====================

class MemoryExtractionResult(CamelModel):
    success: bool = True
    tokens_used: int = 0
    subject_facts_extracted: int = 0
    insights_extracted: int = 0
    memories_created: List[str] = []


def _random_suffix(length: int = 6) -> str:
    return "".join(random.choices(string.ascii_lowercase + string.digits, k=length))


async def extract_memories(
    content: str,
    source_type: str,
    source_id: str,
    user_id: Optional[str] = None,
    client: Optional[LLMClient] = None,
) -> MemoryExtractionResult:
    """
    从对话 / 单条消息中提取记忆

    Args:
        content: 对话文本
        source_type: "conversation" | "message"
        source_id: 来源 id
        user_id: 有值时把事实 / 关系笔记写入该用户画像
    """
    client = client or LLMClient(title=f"{settings.site_title} Memory Weaver")
    completion = await client.chat_completion(
        model=settings.extraction_model,
        messages=[
            {"role": "system", "content": MEMORY_WEAVER_PROMPT},
            {"role": "user", "content": content},
        ],
        temperature=0.3,
        max_tokens=1500,
    )

    extracted = parse_structured_extraction(completion.content or "{}", MemoryExtraction)
    if isinstance(extracted, ExtractionFailure):
        logger.warning(f"记忆提取解析失败 ({extracted.error}): {completion.content[:300]}")
        extracted = MemoryExtraction()

    if user_id:
        for fact in extracted.subject_facts:
            await profiles.add_fact(user_id, fact)

    memories_created = []
    for insight in extracted.insights:
        memory_id = (
            f"insight-{source_type}-{source_id}-{int(time.time() * 1000)}-{_random_suffix()}"
        )
        await store.insert_memory_if_absent(
            memory_id=memory_id,
            type=MemoryType.INSIGHT,
            title=insight.title,
            content=insight.content,
            summary=insight.content[:200],
            tags=[*insight.tags, source_type, "extracted"],
            resonance=min(max(insight.resonance, 0.0), 1.0),
            source=f"{source_type}:{source_id}",
            user_id=user_id,
        )
        memories_created.append(memory_id)

    if user_id and extracted.relationship_notes:
        await profiles.append_relationship_notes(user_id, extracted.relationship_notes)

    return MemoryExtractionResult(
        tokens_used=completion.tokens_used,
        subject_facts_extracted=len(extracted.subject_facts),
        insights_extracted=len(extracted.insights),
        memories_created=memories_created,
    )


# ==================== 文档处理 ====================

class ProcessDocumentResult(CamelModel):
    """文档处理结果（也是 process-document 命令的 JSON 输出）"""
    success: bool
    tokens_used: int = 0
    document_title: Optional[str] = None
    document_summary: Optional[str] = None
    memories_extracted: int = 0
    links_extracted: int = 0
    memories_stored: int = 0
    links_stored: int = 0
    suggested_core_updates: List[CoreUpdate] = []
    auto_stored: bool = False
    error: Optional[str] = None
    raw_output: Optional[str] = None


def document_slug(document_name: str) -> str:
    return re.sub(r"\s+", "-", document_name.lower())


async def process_document(
    content: str,
    document_name: str,
    document_type: Optional[str] = None,
    auto_store: bool = False,
    client: Optional[LLMClient] = None,
) -> ProcessDocumentResult:
    """
    提取文档中的记忆和连接

    auto_store 时逐条入库，id 加前缀 doc-<文档名>-；单条失败只记录日志并跳过。
    """
    client = client or LLMClient(title=f"{settings.site_title} Document Processor")
    completion = await client.chat_completion(
        model=settings.extraction_model,
        messages=[
            {"role": "system", "content": DOCUMENT_PROCESSOR_PROMPT},
            {
                "role": "user",
                "content": (
                    f"Document Name: {document_name}\n"
                    f"Document Type: {document_type or 'general'}\n\n---\n\n{content}"
                ),
            },
        ],
        temperature=0.3,
        max_tokens=4000,
    )

    extracted = parse_structured_extraction(completion.content or "{}", DocumentExtraction)
    if isinstance(extracted, ExtractionFailure):
        logger.error(f"文档提取解析失败 ({extracted.error}): {completion.content[:300]}")
        return ProcessDocumentResult(
            success=False,
            error="Failed to parse extracted data",
            raw_output=completion.content,
            tokens_used=completion.tokens_used,
        )

    memories_stored = 0
    links_stored = 0

    if auto_store:
        prefix = f"doc-{document_slug(document_name)}-"

        for item in extracted.memories:
            try:
                memory = ExtractedMemory.model_validate(item)
                await store.insert_memory_if_absent(
                    memory_id=prefix + memory.memory_id,
                    type=memory.type,
                    title=memory.title,
                    content=memory.content,
                    summary=memory.summary,
                    tags=[*memory.tags, "document-extracted", document_type or "general"],
                    resonance=memory.resonance,
                    source=f"document:{document_name}",
                )
                memories_stored += 1
            except (ValidationError, ValueError) as e:
                logger.warning(f"记忆入库失败 {item.get('memoryId')}: {e}")

        for item in extracted.links:
            try:
                link = ExtractedLink.model_validate(item)
                await upsert_link(
                    source_memory_id=prefix + link.source_id,
                    target_memory_id=prefix + link.target_id,
                    link_type=link.link_type,
                    weight=link.weight,
                    description=link.description,
                )
                links_stored += 1
            except (ValidationError, ValueError) as e:
                logger.warning(f"连接入库失败 {item.get('sourceId')} → {item.get('targetId')}: {e}")

    logger.info(
        f"文档 {document_name}: {len(extracted.memories)} 条记忆, "
        f"{len(extracted.links)} 条连接, 入库 {memories_stored}/{links_stored}"
    )

    return ProcessDocumentResult(
        success=True,
        document_title=extracted.document_title,
        document_summary=extracted.document_summary,
        memories_extracted=len(extracted.memories),
        links_extracted=len(extracted.links),
        memories_stored=memories_stored,
        links_stored=links_stored,
        suggested_core_updates=extracted.suggested_core_updates,
        tokens_used=completion.tokens_used,
        auto_stored=auto_store,
    )
