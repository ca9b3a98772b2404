"""Process configuration read from the environment.

`.env` at the repo root is loaded by the app entry points (python-dotenv);
Settings.from_env() then reads plain environment variables so tests can
build a Settings directly without touching the environment.
"""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel

from solana_stories.llm import ProviderFormat

ROOT = Path(__file__).parent.parent
DEFAULT_DATA_DIR = ROOT / "data"
DEFAULT_KNOWLEDGE_DIR = ROOT / "presets" / "knowledge"


class Settings(BaseModel):
    data_dir: Path = DEFAULT_DATA_DIR
    knowledge_dir: Path = DEFAULT_KNOWLEDGE_DIR

    provider_url: str = "https://api.openai.com"
    provider_format: ProviderFormat = "openai"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 1500
    timeout: float = 120.0

    @classmethod
    def from_env(cls) -> Settings:
        return cls(
            data_dir=Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR))),
            knowledge_dir=Path(os.getenv("KNOWLEDGE_DIR", str(DEFAULT_KNOWLEDGE_DIR))),
            provider_url=os.getenv("LLM_PROVIDER_URL", "https://api.openai.com"),
            provider_format=os.getenv("LLM_PROVIDER_FORMAT", "openai"),
            api_key=os.getenv("OPENAI_API_KEY", ""),
            model=os.getenv("LLM_MODEL", "gpt-4o-mini"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "1500")),
            timeout=float(os.getenv("LLM_TIMEOUT", "120")),
        )
