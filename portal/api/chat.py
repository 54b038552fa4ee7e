"""
对话中转接口
"""
from dataclasses import asdict
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..auth import check_portal_key
from ..chat import relay
from ..models import Role
from .deps import current_user, portal_key

router = APIRouter()


class ChatMessage(BaseModel):
    role: Role
    content: str


class ChannelRequest(BaseModel):
    conversation_id: int
    messages: List[ChatMessage]


class SendRequest(BaseModel):
    conversation_id: int
    content: str


class TitleRequest(BaseModel):
    conversation_id: int
    first_message: str
    model_id: Optional[str] = None

    class Config:
        protected_namespaces = ()


class PortalKeyRequest(BaseModel):
    portal_key: str


@router.post("/channel")
async def channel(
    body: ChannelRequest,
    user_id: str = Depends(current_user),
    key: Optional[str] = Depends(portal_key),
):
    """调用方自带完整历史"""
    result = await relay.channel(
        body.conversation_id,
        [{"role": m.role.value, "content": m.content} for m in body.messages],
        user_id,
        key,
    )
    return asdict(result)


@router.post("/send")
async def send(
    body: SendRequest,
    user_id: str = Depends(current_user),
    key: Optional[str] = Depends(portal_key),
):
    """保存用户消息后调用 channel"""
    result = await relay.send_message(body.conversation_id, body.content, user_id, key)
    return asdict(result)


@router.post("/title")
async def generate_title(
    body: TitleRequest,
    user_id: str = Depends(current_user),
    key: Optional[str] = Depends(portal_key),
):
    title = await relay.generate_title(
        body.conversation_id, body.first_message, user_id, body.model_id, key
    )
    return {"title": title}


@router.post("/check-key")
async def check_key(body: PortalKeyRequest):
    return {"valid": check_portal_key(body.portal_key)}
