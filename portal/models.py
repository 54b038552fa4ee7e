"""
门户数据模型：用户 / 基础模型 / Agent / 对话 / 消息
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import List, Optional
from enum import Enum


class Role(str, Enum):
    """消息角色"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class User(BaseModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None
    is_admin: bool = False
    created_at: datetime = Field(default_factory=datetime.now)


class ModelOption(BaseModel):
    """可选的基础模型（网关模型 id）"""
    id: Optional[int] = None
    model_id: str
    name: str
    description: Optional[str] = None
    provider: str
    context_length: int
    is_active: bool = True
    prompt_price: float = 0.0
    completion_price: float = 0.0

    class Config:
        protected_namespaces = ()


class Agent(BaseModel):
    """用户创建的 Agent：基础模型 + system prompt"""
    id: int
    user_id: str
    base_model_id: int
    name: str
    avatar: Optional[str] = None
    system_prompt: str
    is_active: bool = True
    created_at: datetime


class Message(BaseModel):
    id: int
    conversation_id: int
    user_id: Optional[str] = None
    role: Role
    content: str
    timestamp: datetime
    tokens_used: Optional[int] = None
    is_streaming: bool = False
    is_favorite: bool = False


class Conversation(BaseModel):
    id: int
    user_id: str
    agent_id: int
    title: str
    created_at: datetime
    last_message_at: datetime
    is_archived: bool = False
    is_favorite: bool = False


class ConversationDetail(Conversation):
    """对话 + Agent + 全部消息"""
    agent: Optional[Agent] = None
    messages: List[Message] = []
