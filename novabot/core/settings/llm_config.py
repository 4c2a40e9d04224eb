"""LLM provider configuration."""

from typing import Literal

from pydantic import BaseModel, SecretStr


class LLMConfig(BaseModel, frozen=True):
    """LLM provider settings."""

    provider: Literal["openai", "anthropic", "azure_openai"]
    openai_api_key: SecretStr
    openai_model: str
    anthropic_api_key: SecretStr
    anthropic_model: str
    azure_endpoint: str
    azure_api_key: SecretStr
    azure_deployment: str
    azure_embedding_deployment: str
    azure_api_version: str
    timeout_seconds: float
    max_tool_rounds: int
