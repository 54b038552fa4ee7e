"""
基础模型与 Agent

- 基础模型：网关上的模型 id，按 model_id upsert
- 默认模型：只追加的选择记录，读取时取最新一条
- Agent：用户自建的角色 = 基础模型 + system prompt
"""
import logging
from datetime import datetime
from typing import List, Optional

import aiosqlite

from .auth import get_user, require_owner
from .database import get_db, now_iso
from .errors import AuthorizationError, NotFoundError
from .models import Agent, ModelOption

logger = logging.getLogger(__name__)


DEFAULT_BASE_MODELS = [
    {
        "model_id": "anthropic/claude-sonnet-4.5",
        "name": "Claude Sonnet 4.5",
        "description": "Strong reasoning and long-form writing",
        "provider": "Anthropic",
        "context_length": 200000,
    },
    {
        "model_id": "anthropic/claude-3.5-sonnet",
        "name": "Claude 3.5 Sonnet",
        "description": "Balanced general-purpose model",
        "provider": "Anthropic",
        "context_length": 200000,
    },
    {
        "model_id": "openai/gpt-4o",
        "name": "GPT-4o",
        "description": "Omni model",
        "provider": "OpenAI",
        "context_length": 128000,
    },
    {
        "model_id": "google/gemini-pro-1.5",
        "name": "Gemini Pro 1.5",
        "description": "Very long context window",
        "provider": "Google",
        "context_length": 1000000,
    },
]


def _row_to_model(row: aiosqlite.Row) -> ModelOption:
    return ModelOption(
        id=row["id"],
        model_id=row["model_id"],
        name=row["name"],
        description=row["description"],
        provider=row["provider"],
        context_length=row["context_length"],
        is_active=bool(row["is_active"]),
        prompt_price=row["prompt_price"],
        completion_price=row["completion_price"],
    )


def _row_to_agent(row: aiosqlite.Row) -> Agent:
    return Agent(
        id=row["id"],
        user_id=row["user_id"],
        base_model_id=row["base_model_id"],
        name=row["name"],
        avatar=row["avatar"],
        system_prompt=row["system_prompt"],
        is_active=bool(row["is_active"]),
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# ==================== 基础模型 ====================

async def list_base_models(active_only: bool = True) -> List[ModelOption]:
    sql = "SELECT * FROM base_models"
    if active_only:
        sql += " WHERE is_active = 1"
    sql += " ORDER BY id"

    async with get_db() as db:
        cursor = await db.execute(sql)
        rows = await cursor.fetchall()
    return [_row_to_model(row) for row in rows]


async def get_base_model(base_model_id: int) -> Optional[ModelOption]:
    async with get_db() as db:
        cursor = await db.execute("SELECT * FROM base_models WHERE id = ?", (base_model_id,))
        row = await cursor.fetchone()
    return _row_to_model(row) if row else None


async def get_base_model_by_model_id(model_id: str) -> Optional[ModelOption]:
    async with get_db() as db:
        cursor = await db.execute("SELECT * FROM base_models WHERE model_id = ?", (model_id,))
        row = await cursor.fetchone()
    return _row_to_model(row) if row else None


async def upsert_base_model(
    model_id: str,
    name: str,
    provider: str,
    context_length: int,
    description: Optional[str] = None,
    prompt_price: float = 0.0,
    completion_price: float = 0.0,
) -> int:
    """按 model_id 添加或更新基础模型；is_active 不受影响"""
    async with get_db() as db:
        await db.execute("""
            INSERT INTO base_models
            (model_id, name, description, provider, context_length, is_active,
             prompt_price, completion_price)
            VALUES (?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(model_id) DO UPDATE SET
                name = excluded.name,
                description = excluded.description,
                provider = excluded.provider,
                context_length = excluded.context_length,
                prompt_price = excluded.prompt_price,
                completion_price = excluded.completion_price
        """, (model_id, name, description, provider, context_length, prompt_price, completion_price))
        cursor = await db.execute("SELECT id FROM base_models WHERE model_id = ?", (model_id,))
        row = await cursor.fetchone()
        await db.commit()
    return row["id"]


async def toggle_base_model_active(base_model_id: int) -> bool:
    """切换启用状态，返回新状态"""
    async with get_db() as db:
        await db.execute("BEGIN IMMEDIATE")
        cursor = await db.execute(
            "SELECT is_active FROM base_models WHERE id = ?", (base_model_id,)
        )
        row = await cursor.fetchone()
        if row is None:
            await db.rollback()
            raise NotFoundError(f"Base model not found: {base_model_id}")

        is_active = not bool(row["is_active"])
        await db.execute(
            "UPDATE base_models SET is_active = ? WHERE id = ?", (int(is_active), base_model_id)
        )
        await db.commit()
    return is_active


async def seed_base_models() -> int:
    """写入内置的基础模型列表（已存在的跳过），返回新增数量"""
    added = 0
    async with get_db() as db:
        for model in DEFAULT_BASE_MODELS:
            cursor = await db.execute("""
                INSERT OR IGNORE INTO base_models
                (model_id, name, description, provider, context_length, is_active)
                VALUES (?, ?, ?, ?, ?, 1)
            """, (
                model["model_id"], model["name"], model["description"],
                model["provider"], model["context_length"],
            ))
            added += cursor.rowcount
        await db.commit()

    logger.info(f"基础模型初始化完成，新增 {added} 个")
    return added


# ==================== 默认模型 ====================

async def select_default_model(base_model_id: int) -> ModelOption:
    """选择默认模型：追加一条选择记录，历史不修改"""
    model = await get_base_model(base_model_id)
    if model is None:
        raise NotFoundError(f"Base model not found: {base_model_id}")

    async with get_db() as db:
        await db.execute(
            "INSERT INTO model_selections (model_id, selected_at) VALUES (?, ?)",
            (model.model_id, now_iso()),
        )
        await db.commit()

    logger.info(f"默认模型切换为 {model.model_id}")
    return model


async def get_default_model() -> Optional[ModelOption]:
    """最新一条选择记录指向的模型；从未选择过返回 None"""
    async with get_db() as db:
        cursor = await db.execute("""
            SELECT b.* FROM model_selections s
            JOIN base_models b ON b.model_id = s.model_id
            ORDER BY s.id DESC
            LIMIT 1
        """)
        row = await cursor.fetchone()
    return _row_to_model(row) if row else None


# ==================== Agent ====================

async def create_agent(
    user_id: str,
    base_model_id: int,
    name: str,
    system_prompt: str,
    avatar: Optional[str] = None,
) -> Agent:
    """
    Raises:
        AuthorizationError: 用户未建档
        NotFoundError: 基础模型不存在
    """
    if not user_id or await get_user(user_id) is None:
        raise AuthorizationError("Unauthenticated")
    if await get_base_model(base_model_id) is None:
        raise NotFoundError(f"Base model not found: {base_model_id}")

    async with get_db() as db:
        cursor = await db.execute("""
            INSERT INTO agents
            (user_id, base_model_id, name, avatar, system_prompt, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, 1, ?)
        """, (user_id, base_model_id, name, avatar, system_prompt, now_iso()))
        agent_id = cursor.lastrowid
        await db.commit()

    return await find_agent(agent_id)


async def find_agent(agent_id: int) -> Optional[Agent]:
    async with get_db() as db:
        cursor = await db.execute("SELECT * FROM agents WHERE id = ?", (agent_id,))
        row = await cursor.fetchone()
    return _row_to_agent(row) if row else None


async def list_my_agents(user_id: Optional[str]) -> List[Agent]:
    """当前用户的有效 Agent；未登录返回空列表"""
    if not user_id:
        return []
    async with get_db() as db:
        cursor = await db.execute(
            "SELECT * FROM agents WHERE user_id = ? AND is_active = 1 ORDER BY id",
            (user_id,),
        )
        rows = await cursor.fetchall()
    return [_row_to_agent(row) for row in rows]


async def get_agent(agent_id: int, user_id: Optional[str]) -> Agent:
    """
    Raises:
        NotFoundError: Agent 不存在
        AuthorizationError: 不是所有者
    """
    agent = await find_agent(agent_id)
    if agent is None:
        raise NotFoundError(f"Agent not found: {agent_id}")
    require_owner(agent.user_id, user_id)
    return agent
