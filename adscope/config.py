from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_ROOT = Path(__file__).resolve().parent.parent
_CONFIG_PATH = _ROOT / "config.yaml"


def _load_yaml_config() -> dict:
    if _CONFIG_PATH.exists():
        with open(_CONFIG_PATH) as f:
            return yaml.safe_load(f) or {}
    return {}


_yaml = _load_yaml_config()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_ROOT / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM
    llm_provider: Literal["anthropic", "openai"] = _yaml.get("llm", {}).get(
        "provider", "openai"
    )
    anthropic_api_key: str = ""
    anthropic_model: str = (
        _yaml.get("llm", {}).get("anthropic", {}).get("model", "claude-sonnet-4-5-20250929")
    )
    openai_api_key: str = ""
    openai_model: str = _yaml.get("llm", {}).get("openai", {}).get("model", "gpt-4o")

    # Embeddings (always OpenAI)
    embedding_model: str = _yaml.get("embeddings", {}).get("model", "text-embedding-3-small")
    embedding_dimensions: int = _yaml.get("embeddings", {}).get("dimensions", 1536)

    # Chat agent
    chat_max_iterations: int = _yaml.get("chat", {}).get("max_iterations", 5)
    chat_request_timeout: float = _yaml.get("chat", {}).get("request_timeout", 30.0)

    # Store
    similarity_threshold: float = _yaml.get("store", {}).get("similarity_threshold", 0.7)
    similarity_limit: int = _yaml.get("store", {}).get("similarity_limit", 20)
    filter_limit: int = _yaml.get("store", {}).get("filter_limit", 50)
    text_search_limit: int = _yaml.get("store", {}).get("text_search_limit", 50)
    offer_search_limit: int = _yaml.get("store", {}).get("offer_search_limit", 50)

    # Web
    web_host: str = _yaml.get("web", {}).get("host", "127.0.0.1")
    web_port: int = _yaml.get("web", {}).get("port", 8000)

    # Paths
    data_dir: Path = Field(default=_ROOT / "data")
    prompts_dir: Path = Field(default=_ROOT / "prompts")

    @property
    def db_path(self) -> Path:
        return self.data_dir / "campaigns.sqlite3"

    @property
    def analyses_dir(self) -> Path:
        return self.data_dir / "analyses"


settings = Settings()
