"""
对话中转

用户消息 → 编译记忆上下文 → 拼接 system prompt → LLM 网关 → 保存回复。
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

from ..agents import find_agent, get_base_model
from ..auth import require_owner, verify_portal_key
from ..config import settings
from ..errors import ConfigurationError, NotFoundError, UpstreamError
from ..llm.client import LLMClient
from ..memory.context import RECENT_MESSAGE_COUNT, compile_context
from ..models import Role
from . import conversations, messages as message_store

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 60
TITLE_FALLBACK_LENGTH = 50

TITLE_PROMPT = """Generate a short title (4-6 words max) for a conversation.
The title should capture the theme of the opening message.
You may include a single emoji if it fits.
Return ONLY the title, nothing else. No quotes, no explanation."""

_RULE = "=" * 79


@dataclass
class ChannelResult:
    content: str
    tokens_used: int
    memory_context_used: bool


def build_system_prompt(agent_prompt: str, memory_context: str) -> str:
    """Agent prompt + 带边框的记忆上下文（没有上下文时原样返回）"""
    if not memory_context:
        return agent_prompt
    return (
        f"{agent_prompt}\n\n{_RULE}\n"
        f"MEMORY CONTEXT - What you remember from earlier conversations\n"
        f"{_RULE}\n\n{memory_context}\n\n{_RULE}\nEND MEMORY CONTEXT\n{_RULE}"
    )


async def channel(
    conversation_id: int,
    messages: List[dict],
    user_id: Optional[str],
    portal_key: Optional[str] = None,
    client: Optional[LLMClient] = None,
) -> ChannelResult:
    """
    把一轮对话发给 Agent 的基础模型

    Args:
        conversation_id: 对话 id（所有权会被检查）
        messages: [{"role": ..., "content": ...}]，不含 system prompt
        user_id: 调用者
        portal_key: 门户口令

    Raises:
        AuthorizationError: 口令错误 / 非对话所有者
        ConfigurationError: 未配置网关 Key
        NotFoundError: 对话 / Agent / 基础模型不存在
        UpstreamError: 网关返回非 2xx
    """
    verify_portal_key(portal_key)
    client = client or LLMClient()
    if not client.api_key:
        raise ConfigurationError("LLM 网关未配置 (OPENROUTER_API_KEY missing)")

    conversation = await conversations.require_conversation(conversation_id)
    require_owner(conversation.user_id, user_id)

    agent = await find_agent(conversation.agent_id)
    if agent is None:
        raise NotFoundError(f"Agent not found: {conversation.agent_id}")
    base_model = await get_base_model(agent.base_model_id)
    if base_model is None:
        raise NotFoundError(f"Base model not found: {agent.base_model_id}")

    # 记忆上下文失败不影响对话
    memory_context = ""
    try:
        recent = [m["content"] for m in messages if m.get("role") == Role.USER.value]
        compiled = await compile_context(
            user_id=user_id,
            conversation_id=conversation_id,
            recent_messages=recent[-RECENT_MESSAGE_COUNT:],
        )
        memory_context = compiled.context
    except Exception as e:
        logger.warning(f"记忆上下文生成失败，继续对话: {e}")

    completion = await client.chat_completion(
        model=base_model.model_id,
        messages=[
            {"role": Role.SYSTEM.value, "content": build_system_prompt(agent.system_prompt, memory_context)},
            *messages,
        ],
        temperature=settings.chat_temperature,
        max_tokens=settings.chat_max_tokens,
    )

    await message_store.add_message(
        conversation_id,
        Role.ASSISTANT,
        completion.content,
        tokens_used=completion.tokens_used,
    )

    return ChannelResult(
        content=completion.content,
        tokens_used=completion.tokens_used,
        memory_context_used=bool(memory_context),
    )


async def send_message(
    conversation_id: int,
    content: str,
    user_id: Optional[str],
    portal_key: Optional[str] = None,
    client: Optional[LLMClient] = None,
) -> ChannelResult:
    """保存用户消息，再带上完整历史调用 channel"""
    verify_portal_key(portal_key)
    await conversations.require_conversation(conversation_id, user_id or "")
    await message_store.add_message(conversation_id, Role.USER, content, user_id=user_id)

    history = [
        {"role": m.role.value, "content": m.content}
        for m in await message_store.list_messages(conversation_id)
        if m.role != Role.SYSTEM
    ]
    return await channel(conversation_id, history, user_id, portal_key, client)


# ==================== 自动命名 ====================

def _truncate_title(message: str) -> str:
    if len(message) > TITLE_FALLBACK_LENGTH:
        return message[:TITLE_FALLBACK_LENGTH] + "..."
    return message


async def title_for_message(message: str, model_id: str, client: LLMClient) -> str:
    """LLM 生成标题；没有 Key / 调用失败 / 结果过长时截断首条消息"""
    try:
        completion = await client.chat_completion(
            model=model_id,
            messages=[
                {"role": Role.SYSTEM.value, "content": TITLE_PROMPT},
                {"role": Role.USER.value, "content": message},
            ],
            temperature=0.8,
            max_tokens=30,
        )
    except (ConfigurationError, UpstreamError) as e:
        logger.info(f"标题生成回退为截断: {e}")
        return _truncate_title(message)

    title = completion.content.strip()
    if 0 < len(title) <= TITLE_MAX_LENGTH:
        return title
    return _truncate_title(message)


async def generate_title(
    conversation_id: int,
    first_message: str,
    user_id: Optional[str],
    model_id: Optional[str] = None,
    portal_key: Optional[str] = None,
    client: Optional[LLMClient] = None,
) -> str:
    """
    为对话生成标题，并顺带给其它仍未命名的对话命名

    model_id 为空时使用对话 Agent 的基础模型。
    """
    verify_portal_key(portal_key)
    client = client or LLMClient()
    conversation = await conversations.require_conversation(conversation_id, user_id or "")

    if model_id is None:
        agent = await find_agent(conversation.agent_id)
        base_model = await get_base_model(agent.base_model_id) if agent else None
        if base_model is None:
            raise NotFoundError(f"No model available for conversation {conversation_id}")
        model_id = base_model.model_id

    title = await title_for_message(first_message, model_id, client)
    await conversations.set_title(conversation_id, title)

    await name_unnamed_conversations(model_id, client)
    return title


async def name_unnamed_conversations(model_id: str, client: LLMClient) -> int:
    """给所有还是默认标题、且已有用户消息的对话命名"""
    named = 0
    for conversation in await conversations.list_unnamed():
        first = await message_store.first_user_message(conversation.id)
        if first:
            title = await title_for_message(first, model_id, client)
            await conversations.set_title(conversation.id, title)
            named += 1
    return named
