"""
记忆系统 - 语义检索

向量由 LLM 网关生成，相似度在本地全量计算。
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..errors import NotFoundError, PortalError
from ..llm.client import LLMClient
from . import store
from .models import Memory, SimilarMemory
from .vector import rank_by_similarity

logger = logging.getLogger(__name__)


@dataclass
class EmbedSummary:
    """批量向量化统计"""
    total_memories: int = 0
    embedded: int = 0
    failed: int = 0
    total_tokens: int = 0


def embedding_text(memory: Memory) -> str:
    """标题 + 摘要 + 内容"""
    return f"{memory.title}\n\n{memory.summary or ''}\n\n{memory.content}".strip()


async def embed_memory(memory_id: str, client: Optional[LLMClient] = None) -> int:
    """
    为单条记忆生成并保存向量

    Returns:
        消耗的 token 数

    Raises:
        NotFoundError: 记忆不存在
    """
    memory = await store.get_memory(memory_id)
    if memory is None:
        raise NotFoundError(f"Memory not found: {memory_id}")

    client = client or LLMClient()
    result = await client.embed(embedding_text(memory))
    await store.store_embedding(memory_id, result.embedding)
    return result.tokens_used


async def embed_all_memories(client: Optional[LLMClient] = None) -> EmbedSummary:
    """为所有还没有向量的有效记忆生成向量；单条失败只计数"""
    client = client or LLMClient()
    memories = await store.list_without_embeddings()
    summary = EmbedSummary(total_memories=len(memories))

    for memory in memories:
        try:
            summary.total_tokens += await embed_memory(memory.memory_id, client)
            summary.embedded += 1
        except (PortalError, httpx.HTTPError) as e:
            logger.error(f"向量化失败 {memory.memory_id}: {e}")
            summary.failed += 1

    logger.info(
        f"向量化完成: {summary.embedded}/{summary.total_memories}, "
        f"失败 {summary.failed}, {summary.total_tokens} tokens"
    )
    return summary


async def semantic_search(
    query: str,
    limit: int = 10,
    min_similarity: float = 0.5,
    client: Optional[LLMClient] = None,
) -> List[SimilarMemory]:
    """语义搜索：相似度 >= min_similarity，降序，最多 limit 条"""
    client = client or LLMClient()
    query_result = await client.embed(query)

    memories = await store.list_with_embeddings()
    ranked = rank_by_similarity(
        query_result.embedding,
        ((memory, memory.embedding) for memory in memories),
        min_similarity=min_similarity,
        limit=limit,
    )

    return [
        SimilarMemory(
            memory_id=memory.memory_id,
            title=memory.title,
            summary=memory.summary,
            type=memory.type,
            similarity=similarity,
        )
        for memory, similarity in ranked
    ]
