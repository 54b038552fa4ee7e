"""
数据库连接与表结构

SQLite 替代托管文档数据库：
- 每次操作一个连接（请求级别，无连接池）
- FTS5 全文索引：记忆内容 / 记忆标题
"""
import aiosqlite
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator

from .config import settings


@asynccontextmanager
async def get_db() -> AsyncIterator[aiosqlite.Connection]:
    """获取数据库连接"""
    # 确保数据目录存在
    settings.database_path.parent.mkdir(parents=True, exist_ok=True)
    async with aiosqlite.connect(settings.database_path) as db:
        db.row_factory = aiosqlite.Row
        yield db


def now_iso() -> str:
    return datetime.now().isoformat()


SCHEMA = [
    # ==================== 用户 / 模型 / Agent ====================
    """
    CREATE TABLE IF NOT EXISTS users (
        user_id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT,
        image TEXT,
        is_admin INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS base_models (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        model_id TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        description TEXT,
        provider TEXT NOT NULL,
        context_length INTEGER NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        prompt_price REAL NOT NULL DEFAULT 0,
        completion_price REAL NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_base_models_active ON base_models(is_active)",
    """
    CREATE TABLE IF NOT EXISTS model_selections (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        model_id TEXT NOT NULL,
        selected_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS agents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        base_model_id INTEGER NOT NULL,
        name TEXT NOT NULL,
        avatar TEXT,
        system_prompt TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_agents_user ON agents(user_id, is_active)",
    # ==================== 对话 / 消息 ====================
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        user_id TEXT NOT NULL,
        agent_id INTEGER NOT NULL,
        title TEXT NOT NULL,
        created_at TEXT NOT NULL,
        last_message_at TEXT NOT NULL,
        is_archived INTEGER NOT NULL DEFAULT 0,
        is_favorite INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_conversations_user ON conversations(user_id, last_message_at)",
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id INTEGER NOT NULL,
        user_id TEXT,
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        timestamp TEXT NOT NULL,
        tokens_used INTEGER,
        is_streaming INTEGER NOT NULL DEFAULT 0,
        is_favorite INTEGER NOT NULL DEFAULT 0
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_messages_conversation ON messages(conversation_id)",
    # ==================== 记忆 ====================
    """
    CREATE TABLE IF NOT EXISTS memories (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        memory_id TEXT UNIQUE NOT NULL,
        type TEXT NOT NULL,
        user_id TEXT,
        title TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL,
        summary TEXT,
        tags TEXT DEFAULT '[]',
        resonance REAL NOT NULL DEFAULT 0.5,
        source TEXT,
        embedding TEXT,
        created_at TEXT NOT NULL,
        last_accessed_at TEXT,
        access_count INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_memories_type ON memories(type, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_memories_user ON memories(user_id)",
    # 全文索引：内容 / 标题各一张表
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS memory_content_fts USING fts5(
        memory_id UNINDEXED,
        content
    )
    """,
    """
    CREATE VIRTUAL TABLE IF NOT EXISTS memory_title_fts USING fts5(
        memory_id UNINDEXED,
        title
    )
    """,
    # 触发器保持 FTS 同步
    """
    CREATE TRIGGER IF NOT EXISTS memories_ai AFTER INSERT ON memories BEGIN
        INSERT INTO memory_content_fts(memory_id, content) VALUES (new.memory_id, new.content);
        INSERT INTO memory_title_fts(memory_id, title) VALUES (new.memory_id, new.title);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS memories_au AFTER UPDATE OF title, content ON memories BEGIN
        DELETE FROM memory_content_fts WHERE memory_id = old.memory_id;
        DELETE FROM memory_title_fts WHERE memory_id = old.memory_id;
        INSERT INTO memory_content_fts(memory_id, content) VALUES (new.memory_id, new.content);
        INSERT INTO memory_title_fts(memory_id, title) VALUES (new.memory_id, new.title);
    END
    """,
    """
    CREATE TRIGGER IF NOT EXISTS memories_ad AFTER DELETE ON memories BEGIN
        DELETE FROM memory_content_fts WHERE memory_id = old.memory_id;
        DELETE FROM memory_title_fts WHERE memory_id = old.memory_id;
    END
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_links (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        source_memory_id TEXT NOT NULL,
        target_memory_id TEXT NOT NULL,
        link_type TEXT NOT NULL,
        weight REAL NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        is_active INTEGER NOT NULL DEFAULT 1,
        UNIQUE(source_memory_id, target_memory_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_links_source ON memory_links(source_memory_id, is_active)",
    "CREATE INDEX IF NOT EXISTS idx_links_target ON memory_links(target_memory_id, is_active)",
    """
    CREATE TABLE IF NOT EXISTS subject_profiles (
        user_id TEXT PRIMARY KEY,
        name TEXT,
        facts TEXT NOT NULL DEFAULT '[]',
        preferences TEXT,
        interests TEXT NOT NULL DEFAULT '[]',
        relationship_notes TEXT,
        last_interaction_summary TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    # 上下文快照：只追加，不修改
    """
    CREATE TABLE IF NOT EXISTS memory_contexts (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id INTEGER,
        user_id TEXT,
        memory_ids TEXT NOT NULL DEFAULT '[]',
        compiled_context TEXT NOT NULL,
        total_resonance REAL NOT NULL,
        generated_at TEXT NOT NULL,
        generation_time_ms INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_contexts_conversation ON memory_contexts(conversation_id)",
]


async def init_database():
    """初始化数据库表"""
    async with get_db() as db:
        for statement in SCHEMA:
            await db.execute(statement)
        await db.commit()
