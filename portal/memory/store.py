"""
记忆系统 - 记忆存储

按外部 memory_id 做 upsert；软删除（is_active=0）后不再出现在任何读取结果中。
"""
import json
import logging
import re
from datetime import datetime
from typing import List, Optional

import aiosqlite

from ..database import get_db, now_iso
from ..errors import NotFoundError
from .models import Memory, MemoryType
from .vector import decode_embedding, encode_embedding

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def _row_to_memory(row: aiosqlite.Row) -> Memory:
    """将数据库行转换为 Memory"""
    return Memory(
        memory_id=row["memory_id"],
        type=MemoryType(row["type"]),
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        tags=json.loads(row["tags"]) if row["tags"] else [],
        resonance=row["resonance"],
        source=row["source"],
        embedding=decode_embedding(row["embedding"]),
        user_id=row["user_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
        last_accessed_at=(
            datetime.fromisoformat(row["last_accessed_at"]) if row["last_accessed_at"] else None
        ),
        access_count=row["access_count"],
        is_active=bool(row["is_active"]),
    )


def _check_resonance(resonance: float):
    if not 0.0 <= resonance <= 1.0:
        raise ValueError(f"resonance 必须在 0.0-1.0 之间: {resonance}")


def build_fts_query(text: str) -> Optional[str]:
    """
    把任意文本转成 FTS5 查询

    每个词加引号（避免 AND/OR/NOT 等被当作运算符）并加 * 支持前缀匹配，
    词之间用 OR 连接，按 bm25 相关度排序。
    """
    tokens = _TOKEN_RE.findall(text)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"*' for token in tokens)


# ==================== 写入 ====================

async def upsert_memory(
    memory_id: str,
    type: MemoryType,
    title: str,
    content: str,
    summary: Optional[str] = None,
    tags: Optional[List[str]] = None,
    resonance: float = 0.5,
    source: Optional[str] = None,
    user_id: Optional[str] = None,
) -> str:
    """
    创建或更新记忆

    已存在：覆盖 title/content/summary/tags/resonance/source，
    类型、计数器、创建时间保持不变。
    不存在：插入新记忆，access_count=0，is_active=1。
    """
    _check_resonance(resonance)
    tags_json = json.dumps(tags or [], ensure_ascii=False)

    async with get_db() as db:
        # 查找 + 插入/更新 放在同一个写事务里
        await db.execute("BEGIN IMMEDIATE")
        cursor = await db.execute(
            "SELECT id FROM memories WHERE memory_id = ?", (memory_id,)
        )
        existing = await cursor.fetchone()

        if existing:
            await db.execute("""
                UPDATE memories
                SET title = ?, content = ?, summary = ?, tags = ?, resonance = ?, source = ?
                WHERE id = ?
            """, (title, content, summary, tags_json, resonance, source, existing["id"]))
        else:
            await db.execute("""
                INSERT INTO memories
                (memory_id, type, user_id, title, content, summary, tags, resonance, source,
                 created_at, access_count, is_active)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 1)
            """, (
                memory_id, MemoryType(type).value, user_id, title, content, summary,
                tags_json, resonance, source, now_iso(),
            ))
        await db.commit()

    return memory_id


async def insert_memory_if_absent(
    memory_id: str,
    type: MemoryType,
    title: str,
    content: str,
    summary: Optional[str] = None,
    tags: Optional[List[str]] = None,
    resonance: float = 0.5,
    source: Optional[str] = None,
    user_id: Optional[str] = None,
) -> bool:
    """
    只插入不覆盖（提取流程使用）

    Returns:
        True 表示新插入，False 表示 memory_id 已存在
    """
    _check_resonance(resonance)
    async with get_db() as db:
        cursor = await db.execute("""
            INSERT OR IGNORE INTO memories
            (memory_id, type, user_id, title, content, summary, tags, resonance, source,
             created_at, access_count, is_active)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, 1)
        """, (
            memory_id, MemoryType(type).value, user_id, title, content, summary,
            json.dumps(tags or [], ensure_ascii=False), resonance, source, now_iso(),
        ))
        await db.commit()
        return cursor.rowcount > 0


async def touch(memory_id: str):
    """记录一次使用：access_count + 1，更新 last_accessed_at；不存在则忽略"""
    async with get_db() as db:
        await db.execute("""
            UPDATE memories
            SET access_count = access_count + 1, last_accessed_at = ?
            WHERE memory_id = ?
        """, (now_iso(), memory_id))
        await db.commit()


async def deactivate(memory_id: str):
    """软删除；不存在则忽略"""
    async with get_db() as db:
        await db.execute(
            "UPDATE memories SET is_active = 0 WHERE memory_id = ?", (memory_id,)
        )
        await db.commit()


async def store_embedding(memory_id: str, embedding: List[float]):
    """保存向量（序列化为 JSON 文本）"""
    async with get_db() as db:
        cursor = await db.execute(
            "UPDATE memories SET embedding = ? WHERE memory_id = ?",
            (encode_embedding(embedding), memory_id),
        )
        await db.commit()
        if cursor.rowcount == 0:
            raise NotFoundError(f"Memory not found: {memory_id}")


# ==================== 查询 ====================

async def get_memory(memory_id: str) -> Optional[Memory]:
    """按 memory_id 获取；已停用的记忆视为不存在"""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT * FROM memories WHERE memory_id = ? AND is_active = 1", (memory_id,)
        )
        row = await cursor.fetchone()
        return _row_to_memory(row) if row else None


async def list_by_type(type: MemoryType) -> List[Memory]:
    """某类型的全部有效记忆，按创建顺序"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM memories
            WHERE type = ? AND is_active = 1
            ORDER BY created_at, id
        """, (MemoryType(type).value,))
        rows = await cursor.fetchall()
        return [_row_to_memory(row) for row in rows]


async def list_top(limit: int = 20) -> List[Memory]:
    """按 resonance 降序的有效记忆"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM memories
            WHERE is_active = 1
            ORDER BY resonance DESC, id
            LIMIT ?
        """, (limit,))
        rows = await cursor.fetchall()
        return [_row_to_memory(row) for row in rows]


async def _search_fts(
    db: aiosqlite.Connection,
    fts_table: str,
    fts_query: str,
    type: Optional[MemoryType],
    limit: int,
) -> List[Memory]:
    conditions = [f"{fts_table} MATCH ?", "m.is_active = 1"]
    params: list = [fts_query]
    if type:
        conditions.append("m.type = ?")
        params.append(MemoryType(type).value)

    cursor = await db.execute(f"""
        SELECT m.* FROM {fts_table}
        JOIN memories m ON m.memory_id = {fts_table}.memory_id
        WHERE {" AND ".join(conditions)}
        ORDER BY bm25({fts_table}), m.id
        LIMIT ?
    """, params + [limit])
    rows = await cursor.fetchall()
    return [_row_to_memory(row) for row in rows]


async def search(
    query: str,
    type: Optional[MemoryType] = None,
    limit: int = 10,
) -> List[Memory]:
    """
    全文搜索

    先搜内容；内容无结果时改搜标题。两次都只看有效记忆。
    """
    fts_query = build_fts_query(query)
    if fts_query is None:
        return []

    async with get_db() as db:
        results = await _search_fts(db, "memory_content_fts", fts_query, type, limit)
        if not results:
            results = await _search_fts(db, "memory_title_fts", fts_query, type, limit)

    logger.debug(f"搜索 {query[:50]!r}: {len(results)} 条")
    return results


async def list_with_embeddings() -> List[Memory]:
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM memories
            WHERE is_active = 1 AND embedding IS NOT NULL
            ORDER BY id
        """)
        rows = await cursor.fetchall()
        return [_row_to_memory(row) for row in rows]


async def list_without_embeddings() -> List[Memory]:
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM memories
            WHERE is_active = 1 AND embedding IS NULL
            ORDER BY id
        """)
        rows = await cursor.fetchall()
        return [_row_to_memory(row) for row in rows]


async def count(type: Optional[MemoryType] = None) -> int:
    """统计有效记忆数量"""
    async with get_db() as db:
        if type:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM memories WHERE is_active = 1 AND type = ?",
                (MemoryType(type).value,),
            )
        else:
            cursor = await db.execute("SELECT COUNT(*) FROM memories WHERE is_active = 1")
        row = await cursor.fetchone()
        return row[0]
