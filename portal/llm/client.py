"""
LLM 网关客户端（OpenRouter 兼容的 chat completions / embeddings）

简单的请求 / 响应：不做 streaming，不重试。失败直接抛给调用方。
"""
import logging
from dataclasses import dataclass
from typing import List, Optional

import httpx

from ..config import settings
from ..errors import ConfigurationError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass
class Completion:
    """一次对话补全的结果"""
    content: str
    tokens_used: int = 0


@dataclass
class EmbeddingResult:
    """一次向量化的结果"""
    embedding: List[float]
    dimensions: int
    tokens_used: int = 0


class LLMClient:
    """
    LLM 网关客户端

    - chat_completion: {model, messages, temperature, max_tokens}
      → choices[0].message.content, usage.total_tokens
    - embed: {model, input} → data[0].embedding, usage.total_tokens
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        title: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = settings.openrouter_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.openrouter_base_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout
        self.title = title or settings.site_title
        self.transport = transport

    def _headers(self) -> dict:
        if not self.api_key:
            raise ConfigurationError("LLM 网关未配置 (OPENROUTER_API_KEY missing)")
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": settings.site_url,
            "X-Title": self.title,
        }

    async def _post(self, path: str, payload: dict) -> dict:
        headers = self._headers()
        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self.transport, trust_env=False
        ) as client:
            response = await client.post(f"{self.base_url}{path}", headers=headers, json=payload)

        if response.status_code >= 400:
            body = response.text
            logger.error(f"LLM 网关错误 {response.status_code} ({path}): {body[:500]}")
            raise UpstreamError(
                f"LLM 网关调用失败: {response.status_code}",
                status_code=response.status_code,
                body=body,
            )
        return response.json()

    async def chat_completion(
        self,
        model: str,
        messages: List[dict],
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ) -> Completion:
        """调用 chat completions"""
        data = await self._post("/chat/completions", {
            "model": model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })

        choices = data.get("choices") or [{}]
        content = (choices[0].get("message") or {}).get("content") or ""
        tokens_used = (data.get("usage") or {}).get("total_tokens", 0)
        return Completion(content=content, tokens_used=tokens_used)

    async def embed(self, text: str, model: Optional[str] = None) -> EmbeddingResult:
        """生成向量"""
        data = await self._post("/embeddings", {
            "model": model or settings.embedding_model,
            "input": text,
        })

        items = data.get("data") or [{}]
        embedding = items[0].get("embedding")
        if not embedding:
            raise UpstreamError("No embedding returned")

        return EmbeddingResult(
            embedding=embedding,
            dimensions=len(embedding),
            tokens_used=(data.get("usage") or {}).get("total_tokens", 0),
        )
