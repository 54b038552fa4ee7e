"""
LLM 网关 — 对话补全、向量化、结构化提取
"""
from .client import Completion, EmbeddingResult, LLMClient

__all__ = ["LLMClient", "Completion", "EmbeddingResult"]
