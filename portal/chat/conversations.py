"""
对话管理

列表按最近消息时间倒序；归档为软删除，delete 会连同消息一起删除。
"""
import logging
from datetime import datetime
from typing import List, Optional

import aiosqlite

from ..agents import find_agent
from ..auth import require_owner
from ..database import get_db, now_iso
from ..errors import NotFoundError
from ..models import Conversation, ConversationDetail
from .messages import list_messages

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New Conversation"


def _row_to_conversation(row: aiosqlite.Row) -> Conversation:
    return Conversation(
        id=row["id"],
        user_id=row["user_id"],
        agent_id=row["agent_id"],
        title=row["title"],
        created_at=datetime.fromisoformat(row["created_at"]),
        last_message_at=datetime.fromisoformat(row["last_message_at"]),
        is_archived=bool(row["is_archived"]),
        is_favorite=bool(row["is_favorite"]),
    )


async def _fetch(conversation_id: int) -> Optional[Conversation]:
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
    return _row_to_conversation(row) if row else None


async def require_conversation(conversation_id: int, user_id: Optional[str] = None) -> Conversation:
    """
    取对话；传入 user_id 时检查所有权

    Raises:
        NotFoundError / AuthorizationError
    """
    conversation = await _fetch(conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation not found: {conversation_id}")
    if user_id is not None:
        require_owner(conversation.user_id, user_id)
    return conversation


async def create_conversation(
    user_id: str, agent_id: int, title: Optional[str] = None
) -> Conversation:
    """新建对话（Agent 必须属于该用户）"""
    agent = await find_agent(agent_id)
    if agent is None:
        raise NotFoundError(f"Agent not found: {agent_id}")
    require_owner(agent.user_id, user_id)

    now = now_iso()
    async with get_db() as db:
        cursor = await db.execute("""
            INSERT INTO conversations
            (user_id, agent_id, title, created_at, last_message_at, is_archived, is_favorite)
            VALUES (?, ?, ?, ?, ?, 0, 0)
        """, (user_id, agent_id, title or DEFAULT_TITLE, now, now))
        conversation_id = cursor.lastrowid
        await db.commit()

    return await _fetch(conversation_id)


async def list_conversations(user_id: str) -> List[Conversation]:
    """用户的未归档对话，最近的在前"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM conversations
            WHERE user_id = ? AND is_archived = 0
            ORDER BY last_message_at DESC, id DESC
        """, (user_id,))
        rows = await cursor.fetchall()
    return [_row_to_conversation(row) for row in rows]


async def get_conversation(conversation_id: int, user_id: str) -> ConversationDetail:
    """对话 + Agent + 全部消息"""
    conversation = await require_conversation(conversation_id, user_id)
    agent = await find_agent(conversation.agent_id)
    messages = await list_messages(conversation_id)
    return ConversationDetail(
        **conversation.model_dump(), agent=agent, messages=messages
    )


async def rename_conversation(conversation_id: int, title: str, user_id: Optional[str] = None):
    """
    Raises:
        NotFoundError: 对话不存在
    """
    await require_conversation(conversation_id, user_id)
    async with get_db() as db:
        await db.execute(
            "UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id)
        )
        await db.commit()


async def archive_conversation(conversation_id: int, user_id: Optional[str] = None):
    await require_conversation(conversation_id, user_id)
    async with get_db() as db:
        await db.execute(
            "UPDATE conversations SET is_archived = 1 WHERE id = ?", (conversation_id,)
        )
        await db.commit()


async def delete_conversation(conversation_id: int, user_id: Optional[str] = None):
    """删除对话及其全部消息"""
    await require_conversation(conversation_id, user_id)
    async with get_db() as db:
        await db.execute("DELETE FROM messages WHERE conversation_id = ?", (conversation_id,))
        await db.execute("DELETE FROM conversations WHERE id = ?", (conversation_id,))
        await db.commit()
    logger.info(f"已删除对话 {conversation_id}")


async def toggle_favorite(conversation_id: int, user_id: Optional[str] = None) -> bool:
    """切换收藏状态，返回新状态"""
    conversation = await require_conversation(conversation_id, user_id)
    is_favorite = not conversation.is_favorite
    async with get_db() as db:
        await db.execute(
            "UPDATE conversations SET is_favorite = ? WHERE id = ?",
            (int(is_favorite), conversation_id),
        )
        await db.commit()
    return is_favorite


async def list_favorites(user_id: str) -> List[Conversation]:
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM conversations
            WHERE user_id = ? AND is_favorite = 1
            ORDER BY last_message_at DESC, id DESC
        """, (user_id,))
        rows = await cursor.fetchall()
    return [_row_to_conversation(row) for row in rows]


async def set_title(conversation_id: int, title: str):
    """内部使用：自动命名时直接写标题"""
    async with get_db() as db:
        await db.execute(
            "UPDATE conversations SET title = ? WHERE id = ?", (title, conversation_id)
        )
        await db.commit()


async def list_unnamed() -> List[Conversation]:
    """标题仍为默认值或为空的对话"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT * FROM conversations
            WHERE title = ? OR TRIM(title) = ''
            ORDER BY id
        """, (DEFAULT_TITLE,))
        rows = await cursor.fetchall()
    return [_row_to_conversation(row) for row in rows]
