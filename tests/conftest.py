import asyncio
import json
from typing import Callable, List, Optional

import httpx
import pytest

from portal.config import settings
from portal.database import init_database
from portal.llm.client import LLMClient


@pytest.fixture(autouse=True)
def portal_db(tmp_path, monkeypatch):
    """每个测试使用独立的 SQLite 文件"""
    db_path = tmp_path / "portal.db"
    monkeypatch.setattr(settings, "database_path", db_path)
    monkeypatch.setattr(settings, "portal_key", "")
    monkeypatch.setattr(settings, "openrouter_api_key", "test-key")
    monkeypatch.setattr(settings, "ingest_chunk_delay", 0.0)
    asyncio.run(init_database())
    return db_path


class FakeGateway:
    """用 httpx.MockTransport 模拟 LLM 网关"""

    def __init__(
        self,
        replies: Optional[List[str]] = None,
        embed: Optional[Callable[[str], List[float]]] = None,
        status_code: int = 200,
        tokens: int = 42,
    ) -> None:
        self.replies = list(replies or [])
        self.embed = embed or (lambda text: [1.0, 0.0, 0.0])
        self.status_code = status_code
        self.tokens = tokens
        self.requests: List[dict] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        self.requests.append({"path": request.url.path, "headers": request.headers, "json": payload})

        if self.status_code >= 400:
            return httpx.Response(self.status_code, text="gateway unavailable")

        if request.url.path.endswith("/chat/completions"):
            content = self.replies.pop(0) if self.replies else ""
            return httpx.Response(200, json={
                "choices": [{"message": {"content": content}}],
                "usage": {"total_tokens": self.tokens},
            })

        if request.url.path.endswith("/embeddings"):
            return httpx.Response(200, json={
                "data": [{"embedding": self.embed(payload["input"])}],
                "usage": {"total_tokens": 7},
            })

        return httpx.Response(404)

    def client(self, api_key: str = "test-key") -> LLMClient:
        return LLMClient(api_key=api_key, transport=httpx.MockTransport(self.handler))

    @property
    def chat_requests(self) -> List[dict]:
        return [r for r in self.requests if r["path"].endswith("/chat/completions")]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def make_gateway():
    return FakeGateway


@pytest.fixture
def make_agent():
    """建档用户 + 基础模型 + Agent，返回 Agent"""
    from portal import agents
    from portal.auth import ensure_user

    async def factory(user_id: str = "u1", prompt: str = "You are a helpful guide."):
        await ensure_user(user_id, name=user_id)
        base_model_id = await agents.upsert_base_model(
            "test/model", "Test Model", "Test", 8000
        )
        return await agents.create_agent(user_id, base_model_id, "Guide", prompt)

    return factory
