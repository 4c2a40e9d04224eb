"""Conversation store configuration."""

from typing import Literal

from pydantic import BaseModel


class StoreConfig(BaseModel, frozen=True):
    """Retention and write-strategy settings for conversation documents."""

    enabled: bool
    retention_days: int
    message_max_chars: int
    history_limit: int
    summary_max_attempts: int
    upsert_strategy: Literal["auto", "native", "compare_and_swap"]
