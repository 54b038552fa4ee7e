"""
记忆系统 - 数据模型
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from enum import Enum


class MemoryType(str, Enum):
    """记忆类型"""
    CORE = "core"            # 身份 / 原则，每次都注入
    HARMONIC = "harmonic"    # 主题性记忆
    SESSION = "session"
    SUBJECT = "subject"      # 关于某个用户的记忆
    INSIGHT = "insight"      # 提取出的洞察


class LinkType(str, Enum):
    """记忆连接类型"""
    RELATES_TO = "relates_to"
    DERIVES_FROM = "derives_from"
    CONTRADICTS = "contradicts"
    SUPPORTS = "supports"
    EXTENDS = "extends"
    REFERENCES = "references"
    TRIGGERS = "triggers"
    DEFINES = "defines"
    MANIFESTS_AS = "manifests_as"


class Memory(BaseModel):
    """单条记忆"""
    memory_id: str
    type: MemoryType
    title: str
    content: str
    summary: Optional[str] = None
    tags: List[str] = []
    resonance: float = Field(default=0.5, ge=0.0, le=1.0)
    source: Optional[str] = None
    embedding: Optional[List[float]] = None
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    last_accessed_at: Optional[datetime] = None
    access_count: int = 0
    is_active: bool = True

    class Config:
        from_attributes = True


class MemoryLink(BaseModel):
    """两条记忆之间的有向连接"""
    source_memory_id: str
    target_memory_id: str
    link_type: LinkType
    weight: float
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    is_active: bool = True


class MemoryLinks(BaseModel):
    """某条记忆的出边 / 入边"""
    outgoing: List[MemoryLink] = []
    incoming: List[MemoryLink] = []


class ConnectedMemory(BaseModel):
    """图遍历结果"""
    memory_id: str
    depth: int
    path: List[LinkType]


class SubjectProfile(BaseModel):
    """用户画像（按用户聚合的事实 / 偏好）"""
    user_id: str
    name: Optional[str] = None
    facts: List[str] = []
    preferences: Optional[str] = None
    interests: List[str] = []
    relationship_notes: Optional[str] = None
    last_interaction_summary: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class ContextSnapshot(BaseModel):
    """一次上下文编译的审计记录"""
    id: Optional[int] = None
    conversation_id: Optional[int] = None
    user_id: Optional[str] = None
    memory_ids: List[str]
    compiled_context: str
    total_resonance: float
    generated_at: datetime = Field(default_factory=datetime.now)
    generation_time_ms: int


class CompiledContext(BaseModel):
    """上下文编译结果"""
    context: str
    memory_ids: List[str]
    memory_count: int
    total_resonance: float
    generation_time_ms: int


class SimilarMemory(BaseModel):
    """语义搜索结果"""
    memory_id: str
    title: str
    summary: Optional[str] = None
    type: MemoryType
    similarity: float
