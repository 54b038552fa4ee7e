"""
对话与消息接口
"""
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..chat import conversations, messages
from ..models import Conversation, ConversationDetail, Message, Role
from .deps import current_user

router = APIRouter()


class ConversationCreate(BaseModel):
    agent_id: int
    title: Optional[str] = None


class RenameRequest(BaseModel):
    title: str


class MessageCreate(BaseModel):
    role: Role = Role.USER
    content: str
    tokens_used: Optional[int] = None
    is_streaming: bool = False


class MessageUpdate(BaseModel):
    content: str
    is_streaming: bool
    tokens_used: Optional[int] = None


# ==================== 对话 ====================

@router.post("", response_model=Conversation)
async def create_conversation(body: ConversationCreate, user_id: str = Depends(current_user)):
    return await conversations.create_conversation(user_id, body.agent_id, body.title)


@router.get("", response_model=List[Conversation])
async def list_conversations(user_id: str = Depends(current_user)):
    return await conversations.list_conversations(user_id)


@router.get("/favorites", response_model=List[Conversation])
async def list_favorites(user_id: str = Depends(current_user)):
    return await conversations.list_favorites(user_id)


@router.get("/{conversation_id}", response_model=ConversationDetail)
async def get_conversation(conversation_id: int, user_id: str = Depends(current_user)):
    return await conversations.get_conversation(conversation_id, user_id)


@router.patch("/{conversation_id}")
async def rename_conversation(
    conversation_id: int, body: RenameRequest, user_id: str = Depends(current_user)
):
    await conversations.rename_conversation(conversation_id, body.title, user_id)
    return {"status": "ok"}


@router.post("/{conversation_id}/archive")
async def archive_conversation(conversation_id: int, user_id: str = Depends(current_user)):
    await conversations.archive_conversation(conversation_id, user_id)
    return {"status": "ok"}


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: int, user_id: str = Depends(current_user)):
    await conversations.delete_conversation(conversation_id, user_id)
    return {"status": "ok"}


@router.post("/{conversation_id}/favorite")
async def toggle_favorite(conversation_id: int, user_id: str = Depends(current_user)):
    is_favorite = await conversations.toggle_favorite(conversation_id, user_id)
    return {"conversation_id": conversation_id, "is_favorite": is_favorite}


# ==================== 消息 ====================

@router.get("/{conversation_id}/messages", response_model=List[Message])
async def list_messages(
    conversation_id: int,
    limit: Optional[int] = None,
    user_id: str = Depends(current_user),
):
    """全部消息；传 limit 时只取最近 limit 条"""
    await conversations.require_conversation(conversation_id, user_id)
    if limit:
        return await messages.recent_messages(conversation_id, limit)
    return await messages.list_messages(conversation_id)


@router.post("/{conversation_id}/messages", response_model=Message)
async def add_message(
    conversation_id: int, body: MessageCreate, user_id: str = Depends(current_user)
):
    await conversations.require_conversation(conversation_id, user_id)
    return await messages.add_message(
        conversation_id,
        body.role,
        body.content,
        user_id=user_id if body.role == Role.USER else None,
        tokens_used=body.tokens_used,
        is_streaming=body.is_streaming,
    )


@router.put("/{conversation_id}/messages/{message_id}", response_model=Message)
async def update_streaming_message(
    conversation_id: int,
    message_id: int,
    body: MessageUpdate,
    user_id: str = Depends(current_user),
):
    """覆盖流式消息；已完成的消息返回 422"""
    await conversations.require_conversation(conversation_id, user_id)
    return await messages.update_streaming_message(
        conversation_id,
        message_id, body.content, body.is_streaming, body.tokens_used
    )


@router.post("/{conversation_id}/messages/{message_id}/favorite")
async def toggle_message_favorite(
    conversation_id: int, message_id: int, user_id: str = Depends(current_user)
):
    await conversations.require_conversation(conversation_id, user_id)
    is_favorite = await messages.toggle_message_favorite(conversation_id, message_id)
    return {"message_id": message_id, "is_favorite": is_favorite}
