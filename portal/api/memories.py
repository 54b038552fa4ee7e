"""
记忆接口：CRUD / 搜索 / 连接图 / 上下文 / 语义检索 / 提取
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth import is_admin
from ..errors import NotFoundError
from ..llm import extraction
from ..memory import context, links, profiles, semantic, store
from ..memory.models import (
    CompiledContext,
    ConnectedMemory,
    ContextSnapshot,
    LinkType,
    Memory,
    MemoryLinks,
    MemoryType,
    SimilarMemory,
    SubjectProfile,
)
from .deps import current_user, optional_user, require_portal_key

logger = logging.getLogger(__name__)
router = APIRouter()

_NO_EMBEDDING = {"embedding"}


# ==================== 请求体 ====================

class MemoryUpsert(BaseModel):
    memory_id: str
    type: MemoryType
    title: str
    content: str
    summary: Optional[str] = None
    tags: List[str] = []
    resonance: float = Field(default=0.5, ge=0.0, le=1.0)
    source: Optional[str] = None
    user_id: Optional[str] = None


class LinkUpsert(BaseModel):
    source_memory_id: str
    target_memory_id: str
    link_type: LinkType
    weight: float = 0.5
    description: Optional[str] = None


class ContextRequest(BaseModel):
    conversation_id: Optional[int] = None
    recent_messages: List[str] = []
    max_tokens: Optional[int] = None


class SemanticSearchRequest(BaseModel):
    query: str
    limit: int = 10
    min_similarity: float = 0.5


class ExtractRequest(BaseModel):
    content: str
    source_type: str = "conversation"
    source_id: str


class ProcessDocumentRequest(extraction.CamelModel):
    content: str
    document_name: str
    document_type: Optional[str] = None
    auto_store: bool = False


class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    facts: Optional[List[str]] = None
    preferences: Optional[str] = None
    interests: Optional[List[str]] = None
    relationship_notes: Optional[str] = None
    last_interaction_summary: Optional[str] = None


class FactRequest(BaseModel):
    fact: str


# ==================== 记忆 ====================

@router.post("", dependencies=[Depends(require_portal_key)])
async def upsert_memory(body: MemoryUpsert):
    """创建或更新记忆"""
    memory_id = await store.upsert_memory(**body.model_dump())
    return {"memory_id": memory_id}


@router.get("/top", response_model=List[Memory], response_model_exclude=_NO_EMBEDDING)
async def top_memories(limit: int = Query(20, ge=1, le=200)):
    return await store.list_top(limit)


@router.get("/search", response_model=List[Memory], response_model_exclude=_NO_EMBEDDING)
async def search_memories(
    q: str = Query(..., min_length=1),
    type: Optional[MemoryType] = None,
    limit: int = Query(10, ge=1, le=100),
):
    """全文搜索（内容无结果时回退到标题）"""
    return await store.search(q, type=type, limit=limit)


@router.get("/by-type/{type}", response_model=List[Memory], response_model_exclude=_NO_EMBEDDING)
async def memories_by_type(type: MemoryType):
    return await store.list_by_type(type)


@router.post("/links", dependencies=[Depends(require_portal_key)])
async def upsert_link(body: LinkUpsert):
    await links.upsert_link(**body.model_dump())
    return {"status": "ok"}


@router.post("/context", response_model=CompiledContext, dependencies=[Depends(require_portal_key)])
async def compile_context(
    body: ContextRequest, user_id: Optional[str] = Depends(optional_user)
):
    """用户画像只注入调用者自己的；匿名调用不带画像"""
    return await context.compile_context(user_id=user_id, **body.model_dump())


@router.get("/snapshots", response_model=List[ContextSnapshot])
async def list_snapshots(
    conversation_id: Optional[int] = None,
    limit: int = Query(20, ge=1, le=200),
    user_id: str = Depends(current_user),
):
    """普通用户只看到自己的快照，管理员看到全部"""
    owner = None if await is_admin(user_id) else user_id
    return await context.list_snapshots(conversation_id=conversation_id, limit=limit, user_id=owner)


@router.post(
    "/semantic-search",
    response_model=List[SimilarMemory],
    dependencies=[Depends(require_portal_key)],
)
async def semantic_search(body: SemanticSearchRequest):
    return await semantic.semantic_search(body.query, body.limit, body.min_similarity)


@router.post("/embed-all", dependencies=[Depends(require_portal_key)])
async def embed_all():
    return await semantic.embed_all_memories()


@router.post("/extract", dependencies=[Depends(require_portal_key)])
async def extract_memories(body: ExtractRequest, user_id: str = Depends(current_user)):
    """从对话文本中提取记忆，事实写入当前用户画像"""
    return await extraction.extract_memories(
        body.content, body.source_type, body.source_id, user_id=user_id
    )


@router.post("/process-document", dependencies=[Depends(require_portal_key)])
async def process_document(body: ProcessDocumentRequest):
    return await extraction.process_document(
        body.content, body.document_name, body.document_type, body.auto_store
    )


# ==================== 用户画像 ====================

@router.get("/profile", response_model=Optional[SubjectProfile])
async def get_profile(user_id: str = Depends(current_user)):
    return await profiles.get_profile(user_id)


@router.put("/profile", response_model=SubjectProfile)
async def update_profile(body: ProfileUpdate, user_id: str = Depends(current_user)):
    return await profiles.update_profile(user_id, **body.model_dump())


@router.post("/profile/facts")
async def add_fact(body: FactRequest, user_id: str = Depends(current_user)):
    added = await profiles.add_fact(user_id, body.fact)
    return {"added": added}


# ==================== 单条记忆 ====================

@router.get("/{memory_id}", response_model=Memory, response_model_exclude=_NO_EMBEDDING)
async def get_memory(memory_id: str):
    memory = await store.get_memory(memory_id)
    if memory is None:
        raise NotFoundError(f"Memory not found: {memory_id}")
    return memory


@router.delete("/{memory_id}", dependencies=[Depends(require_portal_key)])
async def deactivate_memory(memory_id: str):
    """软删除"""
    await store.deactivate(memory_id)
    return {"status": "ok"}


@router.post("/{memory_id}/touch")
async def touch_memory(memory_id: str):
    await store.touch(memory_id)
    return {"status": "ok"}


@router.post("/{memory_id}/embed", dependencies=[Depends(require_portal_key)])
async def embed_memory(memory_id: str):
    tokens_used = await semantic.embed_memory(memory_id)
    return {"memory_id": memory_id, "tokens_used": tokens_used}


@router.get("/{memory_id}/links", response_model=MemoryLinks)
async def get_links(memory_id: str):
    return await links.get_links(memory_id)


@router.get("/{memory_id}/connected", response_model=List[ConnectedMemory])
async def connected_memories(memory_id: str, depth: int = 1):
    """有界遍历；depth < 1 返回 422"""
    return await links.traverse(memory_id, depth)
