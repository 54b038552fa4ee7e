"""
消息

写入消息时同步更新所属对话的 last_message_at。
流式消息先以 is_streaming=1 写入，完成后整体覆盖一次。
"""
from datetime import datetime
from typing import List, Optional

import aiosqlite

from ..database import get_db, now_iso
from ..errors import NotFoundError
from ..models import Message, Role


def _row_to_message(row: aiosqlite.Row) -> Message:
    return Message(
        id=row["id"],
        conversation_id=row["conversation_id"],
        user_id=row["user_id"],
        role=Role(row["role"]),
        content=row["content"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        tokens_used=row["tokens_used"],
        is_streaming=bool(row["is_streaming"]),
        is_favorite=bool(row["is_favorite"]),
    )


async def _fetch(
    db: aiosqlite.Connection, message_id: int, conversation_id: Optional[int] = None
) -> Optional[Message]:
    """按 id 取消息；给了 conversation_id 时只在该对话内查找"""
    if conversation_id is None:
        cursor = await db.execute("SELECT * FROM messages WHERE id = ?", (message_id,))
    else:
        cursor = await db.execute(
            "SELECT * FROM messages WHERE id = ? AND conversation_id = ?",
            (message_id, conversation_id),
        )
    row = await cursor.fetchone()
    return _row_to_message(row) if row else None


async def add_message(
    conversation_id: int,
    role: Role,
    content: str,
    user_id: Optional[str] = None,
    tokens_used: Optional[int] = None,
    is_streaming: bool = False,
) -> Message:
    """
    写入一条消息

    Raises:
        NotFoundError: 对话不存在
    """
    now = now_iso()
    async with get_db() as db:
        cursor = await db.execute(
            "UPDATE conversations SET last_message_at = ? WHERE id = ?",
            (now, conversation_id),
        )
        if cursor.rowcount == 0:
            await db.rollback()
            raise NotFoundError(f"Conversation not found: {conversation_id}")

        cursor = await db.execute("""
            INSERT INTO messages
            (conversation_id, user_id, role, content, timestamp, tokens_used,
             is_streaming, is_favorite)
            VALUES (?, ?, ?, ?, ?, ?, ?, 0)
        """, (
            conversation_id, user_id, Role(role).value, content, now,
            tokens_used, int(is_streaming),
        ))
        message = await _fetch(db, cursor.lastrowid)
        await db.commit()

    return message


async def update_streaming_message(
    conversation_id: int,
    message_id: int,
    content: str,
    is_streaming: bool,
    tokens_used: Optional[int] = None,
) -> Message:
    """
    覆盖仍在流式输出中的消息

    Raises:
        NotFoundError: 消息不存在，或不属于该对话
        ValueError: 消息已完成（is_streaming=0）
    """
    async with get_db() as db:
        await db.execute("BEGIN IMMEDIATE")
        message = await _fetch(db, message_id, conversation_id)
        if message is None:
            await db.rollback()
            raise NotFoundError(f"Message not found: {message_id}")
        if not message.is_streaming:
            await db.rollback()
            raise ValueError(f"Message {message_id} is no longer streaming")

        await db.execute("""
            UPDATE messages SET content = ?, is_streaming = ?, tokens_used = ?
            WHERE id = ?
        """, (content, int(is_streaming), tokens_used, message_id))
        message = await _fetch(db, message_id)
        await db.commit()

    return message


async def list_messages(conversation_id: int) -> List[Message]:
    """对话中的全部消息，按时间顺序"""
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT * FROM messages WHERE conversation_id = ? ORDER BY id",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
    return [_row_to_message(row) for row in rows]


async def recent_messages(conversation_id: int, limit: int) -> List[Message]:
    """最近 limit 条消息（仍按时间顺序返回）"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM (
                SELECT * FROM messages WHERE conversation_id = ? ORDER BY id DESC LIMIT ?
            ) ORDER BY id
        """, (conversation_id, limit))
        rows = await cursor.fetchall()
    return [_row_to_message(row) for row in rows]


async def first_user_message(conversation_id: int) -> Optional[str]:
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT content FROM messages
            WHERE conversation_id = ? AND role = 'user'
            ORDER BY id LIMIT 1
        """, (conversation_id,))
        row = await cursor.fetchone()
    return row["content"] if row else None


async def toggle_message_favorite(conversation_id: int, message_id: int) -> bool:
    """切换收藏状态，返回新状态；消息必须属于该对话"""
    async with get_db() as db:
        message = await _fetch(db, message_id, conversation_id)
        if message is None:
            raise NotFoundError(f"Message not found: {message_id}")
        is_favorite = not message.is_favorite
        await db.execute(
            "UPDATE messages SET is_favorite = ? WHERE id = ?", (int(is_favorite), message_id)
        )
        await db.commit()
    return is_favorite
