"""Domain-specific configuration models."""

from novabot.core.settings.app_config import AppConfig
from novabot.core.settings.channel_config import ChannelConfig
from novabot.core.settings.database_config import DatabaseConfig
from novabot.core.settings.identity_config import IdentityConfig
from novabot.core.settings.llm_config import LLMConfig
from novabot.core.settings.redis_config import RedisConfig
from novabot.core.settings.search_config import SearchConfig
from novabot.core.settings.server_config import ServerConfig
from novabot.core.settings.store_config import StoreConfig

__all__ = [
    "AppConfig",
    "ChannelConfig",
    "DatabaseConfig",
    "IdentityConfig",
    "LLMConfig",
    "RedisConfig",
    "SearchConfig",
    "ServerConfig",
    "StoreConfig",
]
