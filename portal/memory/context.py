"""
记忆系统 - 上下文编译

把相关记忆按优先级拼成一段文本，注入到 system prompt：

1. 全部 core 记忆
2. 用户画像（如果给了 user_id 且画像存在）
3. 用最近 3 条消息做全文搜索（最多 5 条）
4. 最多 3 条 harmonic 记忆

选择过程没有随机性：相同的存储状态 + 相同输入 → 相同的文本和 memory_ids。
每次编译都会写一条快照（审计），并 touch 所有用到的记忆。
"""
import json
import logging
import time
from datetime import datetime
from typing import List, Optional

from ..database import get_db, now_iso
from . import store
from .models import CompiledContext, ContextSnapshot, Memory, MemoryType, SubjectProfile
from .profiles import get_profile

logger = logging.getLogger(__name__)

BLOCK_SEPARATOR = "\n\n---\n\n"
RECENT_MESSAGE_COUNT = 3
SEARCH_LIMIT = 5
HARMONIC_LIMIT = 3


def render_profile(profile: SubjectProfile) -> str:
    """用户画像块；缺失的字段不输出"""
    lines = ["[Subject Memory]"]
    if profile.name:
        lines.append(f"Name: {profile.name}")
    if profile.facts:
        lines.append(f"Known facts: {'; '.join(profile.facts)}")
    if profile.preferences:
        lines.append(f"Preferences: {profile.preferences}")
    if profile.interests:
        lines.append(f"Interests: {', '.join(profile.interests)}")
    if profile.last_interaction_summary:
        lines.append(f"Last interaction: {profile.last_interaction_summary}")
    return "\n".join(lines)


class _ContextBuilder:
    """按顺序收集上下文块，memory_id 去重"""

    def __init__(self):
        self.parts: List[str] = []
        self.memory_ids: List[str] = []
        self.total_resonance = 0.0

    def has(self, memory: Memory) -> bool:
        return memory.memory_id in self.memory_ids

    def include(self, memory: Memory, label: str):
        # 没有摘要的记忆不输出文本块，但仍计入 ids / resonance
        if memory.summary:
            self.parts.append(f"[{label}: {memory.title}]\n{memory.summary}")
        self.memory_ids.append(memory.memory_id)
        self.total_resonance += memory.resonance

    def add_block(self, block: str):
        self.parts.append(block)

    def compile(self) -> str:
        return BLOCK_SEPARATOR.join(self.parts)


async def compile_context(
    user_id: Optional[str] = None,
    conversation_id: Optional[int] = None,
    recent_messages: Optional[List[str]] = None,
    max_tokens: Optional[int] = None,
) -> CompiledContext:
    """
    编译记忆上下文

    Args:
        user_id: 对话用户，用于注入用户画像
        conversation_id: 关联到快照
        recent_messages: 最近的消息文本（只取最后 3 条做搜索）
        max_tokens: 预留，暂未使用
    """
    start = time.monotonic()
    builder = _ContextBuilder()

    # 1. core 记忆（最高优先级）
    for memory in await store.list_by_type(MemoryType.CORE):
        builder.include(memory, "Core")

    # 2. 用户画像
    if user_id:
        profile = await get_profile(user_id)
        if profile:
            builder.add_block(render_profile(profile))

    # 3. 按最近消息搜索相关记忆
    if recent_messages:
        query = " ".join(recent_messages[-RECENT_MESSAGE_COUNT:])
        for memory in await store.search(query, limit=SEARCH_LIMIT):
            if not builder.has(memory):
                builder.include(memory, memory.type.value)

    # 4. harmonic 记忆
    harmonic = await store.list_by_type(MemoryType.HARMONIC)
    for memory in harmonic[:HARMONIC_LIMIT]:
        if not builder.has(memory) and memory.summary:
            builder.include(memory, "Harmonic")

    compiled = builder.compile()
    generation_time_ms = int((time.monotonic() - start) * 1000)

    await store_snapshot(ContextSnapshot(
        conversation_id=conversation_id,
        user_id=user_id,
        memory_ids=builder.memory_ids,
        compiled_context=compiled,
        total_resonance=builder.total_resonance,
        generation_time_ms=generation_time_ms,
    ))

    for memory_id in builder.memory_ids:
        await store.touch(memory_id)

    logger.info(
        f"上下文编译完成: {len(builder.memory_ids)} 条记忆, "
        f"resonance={builder.total_resonance:.2f}, {generation_time_ms}ms"
    )

    return CompiledContext(
        context=compiled,
        memory_ids=builder.memory_ids,
        memory_count=len(builder.memory_ids),
        total_resonance=builder.total_resonance,
        generation_time_ms=generation_time_ms,
    )


# ==================== 快照 ====================

async def store_snapshot(snapshot: ContextSnapshot) -> int:
    """写入快照（只追加）"""
    async with get_db() as db:
        cursor = await db.execute("""
            INSERT INTO memory_contexts
            (conversation_id, user_id, memory_ids, compiled_context, total_resonance,
             generated_at, generation_time_ms)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (
            snapshot.conversation_id,
            snapshot.user_id,
            json.dumps(snapshot.memory_ids),
            snapshot.compiled_context,
            snapshot.total_resonance,
            now_iso(),
            snapshot.generation_time_ms,
        ))
        await db.commit()
        return cursor.lastrowid


async def list_snapshots(
    conversation_id: Optional[int] = None,
    limit: int = 20,
    user_id: Optional[str] = None,
) -> List[ContextSnapshot]:
    """
    最近的快照，新的在前

    给了 user_id 时只返回该用户的快照。
    """
    conditions = []
    params = []
    if conversation_id is not None:
        conditions.append("conversation_id = ?")
        params.append(conversation_id)
    if user_id is not None:
        conditions.append("user_id = ?")
        params.append(user_id)
    where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    async with get_db() as db:
        cursor = await db.execute(
            f"SELECT * FROM memory_contexts {where} ORDER BY id DESC LIMIT ?",
            (*params, limit),
        )
        rows = await cursor.fetchall()

    return [
        ContextSnapshot(
            id=row["id"],
            conversation_id=row["conversation_id"],
            user_id=row["user_id"],
            memory_ids=json.loads(row["memory_ids"]),
            compiled_context=row["compiled_context"],
            total_resonance=row["total_resonance"],
            generated_at=datetime.fromisoformat(row["generated_at"]),
            generation_time_ms=row["generation_time_ms"],
        )
        for row in rows
    ]
