"""
Agent Portal 配置管理
"""
from pydantic_settings import BaseSettings
from pathlib import Path


class Settings(BaseSettings):
    """应用配置"""

    # LLM 网关配置 (OpenRouter 兼容)
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    site_url: str = "http://localhost:50207"
    site_title: str = "Agent Portal"
    request_timeout: float = 120.0

    # 对话参数
    chat_temperature: float = 0.9
    chat_max_tokens: int = 2048

    # 记忆提取 / 向量
    extraction_model: str = "anthropic/claude-3-haiku"
    embedding_model: str = "openai/text-embedding-3-small"

    # 访问口令（为空则不设防）
    portal_key: str = ""

    # 数据库配置
    database_path: Path = Path("./data/portal.db")

    # 文档导入
    ingest_max_chunk_size: int = 15000
    ingest_chunk_delay: float = 0.5
    ingest_timeout: float = 120.0
    ingest_command: str = "portal process-document"

    # 服务配置
    host: str = "0.0.0.0"
    port: int = 50207
    debug: bool = False

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
