"""Document index configuration."""

from pydantic import BaseModel, SecretStr


class SearchConfig(BaseModel, frozen=True):
    """Azure AI Search settings."""

    endpoint: str
    api_key: SecretStr
    index_name: str
    api_version: str
    top_k: int
    min_vector_score: float
    max_chunks_per_source: int
    vector_field: str
    timeout_seconds: float

    @property
    def is_configured(self) -> bool:
        return bool(self.endpoint and self.api_key.get_secret_value())
