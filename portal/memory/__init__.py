"""
记忆系统模块

- store: 记忆 CRUD + 全文搜索（SQLite FTS5）
- links: 记忆连接图 + 有界遍历
- profiles: 用户画像
- context: 上下文编译 + 快照
- vector / semantic: 余弦相似度 + 语义检索
"""
from .models import (
    CompiledContext,
    ConnectedMemory,
    ContextSnapshot,
    LinkType,
    Memory,
    MemoryLink,
    MemoryLinks,
    MemoryType,
    SimilarMemory,
    SubjectProfile,
)

__all__ = [
    "CompiledContext",
    "ConnectedMemory",
    "ContextSnapshot",
    "LinkType",
    "Memory",
    "MemoryLink",
    "MemoryLinks",
    "MemoryType",
    "SimilarMemory",
    "SubjectProfile",
]
