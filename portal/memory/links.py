"""
记忆系统 - 记忆连接图

有向、带类型、带权重的边。同一 (source, target) 只保留一条边。
"""
import logging
from collections import deque
from datetime import datetime
from typing import List, Optional

import aiosqlite

from ..database import get_db, now_iso
from .models import ConnectedMemory, LinkType, MemoryLink, MemoryLinks

logger = logging.getLogger(__name__)


def _row_to_link(row: aiosqlite.Row) -> MemoryLink:
    return MemoryLink(
        source_memory_id=row["source_memory_id"],
        target_memory_id=row["target_memory_id"],
        link_type=LinkType(row["link_type"]),
        weight=row["weight"],
        description=row["description"],
        created_at=datetime.fromisoformat(row["created_at"]),
        is_active=bool(row["is_active"]),
    )


async def upsert_link(
    source_memory_id: str,
    target_memory_id: str,
    link_type: LinkType,
    weight: float,
    description: Optional[str] = None,
):
    """创建连接；同一对 (source, target) 已存在时更新类型 / 权重 / 描述"""
    async with get_db() as db:
        await db.execute("""
            INSERT INTO memory_links
            (source_memory_id, target_memory_id, link_type, weight, description, created_at, is_active)
            VALUES (?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT(source_memory_id, target_memory_id) DO UPDATE SET
                link_type = excluded.link_type,
                weight = excluded.weight,
                description = excluded.description,
                is_active = 1
        """, (
            source_memory_id, target_memory_id, LinkType(link_type).value,
            weight, description, now_iso(),
        ))
        await db.commit()


async def _outgoing(db: aiosqlite.Connection, memory_id: str) -> List[MemoryLink]:
    cursor = await db.execute("""
        SELECT * FROM memory_links
        WHERE source_memory_id = ? AND is_active = 1
        ORDER BY id
    """, (memory_id,))
    return [_row_to_link(row) for row in await cursor.fetchall()]


async def get_links(memory_id: str) -> MemoryLinks:
    """某条记忆的出边和入边（仅有效边）"""
    async with get_db() as db:
        outgoing = await _outgoing(db, memory_id)
        cursor = await db.execute("""
            SELECT * FROM memory_links
            WHERE target_memory_id = ? AND is_active = 1
            ORDER BY id
        """, (memory_id,))
        incoming = [_row_to_link(row) for row in await cursor.fetchall()]
    return MemoryLinks(outgoing=outgoing, incoming=incoming)


async def traverse(memory_id: str, depth: int = 1) -> List[ConnectedMemory]:
    """
    从 memory_id 出发沿出边广度优先遍历

    - 每个节点只在第一次被发现时记录（先发现者胜出）
    - 起点本身不出现在结果里
    - path 为到达该节点经过的连接类型序列

    Raises:
        ValueError: depth < 1
    """
    if depth < 1:
        raise ValueError(f"depth 必须 >= 1: {depth}")

    visited = {memory_id}
    result: List[ConnectedMemory] = []
    # (节点, 该节点出边所在的层级, 到达该节点的路径)
    worklist = deque([(memory_id, 1, [])])

    async with get_db() as db:
        while worklist:
            current_id, current_depth, path = worklist.popleft()
            for link in await _outgoing(db, current_id):
                target = link.target_memory_id
                if target in visited:
                    continue
                visited.add(target)
                target_path = path + [link.link_type]
                result.append(
                    ConnectedMemory(memory_id=target, depth=current_depth, path=target_path)
                )
                if current_depth < depth:
                    worklist.append((target, current_depth + 1, target_path))

    logger.debug(f"遍历 {memory_id} (depth={depth}): {len(result)} 个节点")
    return result
