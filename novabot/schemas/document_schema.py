"""Document index schemas."""

from pydantic import BaseModel, ConfigDict


class DocumentChunk(BaseModel):
    """One ranked search hit."""

    model_config = ConfigDict(frozen=True)

    source_id: str
    text: str
    score: float
    folder: str | None = None
