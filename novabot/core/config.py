"""Application configuration using Pydantic Settings V2."""

from functools import cached_property
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

from novabot.core.settings import (
    AppConfig,
    ChannelConfig,
    DatabaseConfig,
    IdentityConfig,
    LLMConfig,
    RedisConfig,
    SearchConfig,
    ServerConfig,
    StoreConfig,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Flat fields are loaded directly from environment variables.
    Domain properties provide grouped access (e.g. settings.llm.provider).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # LLM Provider
    llm_provider: Literal["openai", "anthropic", "azure_openai"] = Field(
        default="azure_openai",
        description="LLM provider to use",
    )
    llm_timeout_seconds: float = Field(
        default=45.0,
        gt=0,
        le=120,
        description="Timeout for a single completion turn",
    )
    llm_max_tool_rounds: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Maximum tool-call rounds per turn",
    )

    # OpenAI
    openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model name",
    )

    # Anthropic
    anthropic_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Anthropic API key",
    )
    anthropic_model: str = Field(
        default="claude-sonnet-4-20250514",
        description="Anthropic model name",
    )

    # Azure OpenAI
    azure_openai_endpoint: str = Field(
        default="",
        description="Azure OpenAI resource endpoint",
    )
    azure_openai_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Azure OpenAI API key",
    )
    azure_openai_deployment: str = Field(
        default="gpt-5-mini",
        description="Azure OpenAI chat deployment name",
    )
    azure_openai_embedding_deployment: str = Field(
        default="text-embedding-3-large",
        description="Azure OpenAI embedding deployment name",
    )
    azure_openai_api_version: str = Field(
        default="2024-12-01-preview",
        description="Azure OpenAI API version",
    )

    # App
    app_name: str = Field(
        default="nova-bot",
        description="Application name",
    )
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(
        default=True,
        description="Debug mode",
    )
    app_timezone: str = Field(
        default="America/Mexico_City",
        description="Timezone used for dates shown to users",
    )

    # Server
    host: str = Field(
        default="0.0.0.0",
        description="Server host",
    )
    port: int = Field(
        default=3978,
        ge=1,
        le=65535,
        description="Server port",
    )
    rate_limit: str = Field(
        default="120/minute",
        description="Per-client request rate limit",
    )

    # Bot Framework channel
    microsoft_app_id: str = Field(
        default="",
        description="Bot Framework application id",
    )
    microsoft_app_password: SecretStr = Field(
        default=SecretStr(""),
        description="Bot Framework application password",
    )
    microsoft_app_tenant_id: str = Field(
        default="",
        description="Azure AD tenant for single-tenant bots",
    )
    bot_openid_keys_url: str = Field(
        default="https://login.botframework.com/v1/.well-known/keys",
        description="JWKS endpoint for inbound channel tokens",
    )
    bot_token_issuer: str = Field(
        default="https://api.botframework.com",
        description="Expected issuer of inbound channel tokens",
    )
    channel_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Timeout for outbound connector calls",
    )

    # Identity / corporate API
    identity_verifier_url: str = Field(
        default="https://pruebas.nova.com.mx/ApiRestNova/api/Auth/login",
        description="Credential verifier endpoint",
    )
    identity_verifier_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=60,
        description="Credential verifier timeout",
    )
    identity_valid_flag_value: int = Field(
        default=0,
        description="Value of the verifier's numeric validity flag that means 'valid'",
    )
    max_login_attempts: int = Field(
        default=5,
        ge=1,
        le=50,
        description="Failed logins before the account is locked",
    )
    login_lockout_seconds: int = Field(
        default=300,
        ge=1,
        description="Lockout window after too many failed logins",
    )
    corporate_api_base_url: str = Field(
        default="https://pruebas.nova.com.mx/ApiRestNova/api",
        description="Base URL of the corporate API",
    )
    corporate_api_balance_url: str = Field(
        default="https://pruebas.nova.com.mx/ApiRestNova/api/ConsultaSaldo/ObtSaldo",
        description="Account balance endpoint",
    )
    corporate_api_rates_url: str = Field(
        default="https://pruebas.nova.com.mx/ApiRestNova/api/ConsultaTasa/consultaTasa",
        description="Interest rate endpoint",
    )
    corporate_api_timeout_seconds: float = Field(
        default=15.0,
        gt=0,
        le=60,
        description="Corporate API timeout",
    )
    corporate_default_num_ri: str = Field(
        default="7",
        description="NumRI used when the user's token carries none",
    )

    # Document index
    search_endpoint: str = Field(
        default="",
        description="Azure AI Search endpoint",
    )
    search_api_key: SecretStr = Field(
        default=SecretStr(""),
        description="Azure AI Search API key",
    )
    search_index_name: str = Field(
        default="nova",
        description="Search index name",
    )
    search_api_version: str = Field(
        default="2024-07-01",
        description="Azure AI Search REST API version",
    )
    search_top_k: int = Field(
        default=6,
        ge=1,
        le=12,
        description="Chunks returned per search",
    )
    search_min_vector_score: float = Field(
        default=0.35,
        ge=0,
        le=1,
        description="Minimum score for vector hits",
    )
    search_max_chunks_per_source: int = Field(
        default=2,
        ge=1,
        description="Maximum chunks kept from a single source document",
    )
    search_vector_field: str = Field(
        default="Embedding",
        description="Vector field name in the index",
    )
    search_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=60,
        description="Document index timeout",
    )

    # Database
    database_url: SecretStr = Field(
        default=SecretStr("sqlite+aiosqlite:///./novabot.db"),
        description="Async database URL (mysql+aiomysql://..., sqlite+aiosqlite://...)",
    )

    # Conversation store
    store_enabled: bool = Field(
        default=True,
        description="Persist conversation history",
    )
    store_retention_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Days before a stored record expires",
    )
    store_message_max_chars: int = Field(
        default=4000,
        ge=100,
        le=32000,
        description="Stored message length cap",
    )
    store_history_limit: int = Field(
        default=20,
        ge=1,
        le=200,
        description="Messages of history sent with each turn",
    )
    store_summary_max_attempts: int = Field(
        default=5,
        ge=1,
        le=10,
        description="Compare-and-swap attempts for summary updates",
    )
    store_upsert_strategy: Literal["auto", "native", "compare_and_swap"] = Field(
        default="auto",
        description="How summary records are created-or-updated",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    session_ttl_hours: int = Field(
        default=0,
        ge=0,
        description="Durable session lifetime in hours (0 keeps until logout)",
    )

    # --- Domain properties ---

    @cached_property
    def llm(self) -> LLMConfig:
        """LLM provider configuration."""
        return LLMConfig(
            provider=self.llm_provider,
            openai_api_key=self.openai_api_key,
            openai_model=self.openai_model,
            anthropic_api_key=self.anthropic_api_key,
            anthropic_model=self.anthropic_model,
            azure_endpoint=self.azure_openai_endpoint,
            azure_api_key=self.azure_openai_api_key,
            azure_deployment=self.azure_openai_deployment,
            azure_embedding_deployment=self.azure_openai_embedding_deployment,
            azure_api_version=self.azure_openai_api_version,
            timeout_seconds=self.llm_timeout_seconds,
            max_tool_rounds=self.llm_max_tool_rounds,
        )

    @cached_property
    def app(self) -> AppConfig:
        """Application environment configuration."""
        return AppConfig(
            name=self.app_name,
            env=self.app_env,
            debug=self.debug,
            timezone=self.app_timezone,
        )

    @cached_property
    def server(self) -> ServerConfig:
        """Server configuration."""
        return ServerConfig(
            host=self.host,
            port=self.port,
            rate_limit=self.rate_limit,
        )

    @cached_property
    def channel(self) -> ChannelConfig:
        """Bot Framework channel configuration."""
        return ChannelConfig(
            app_id=self.microsoft_app_id,
            app_password=self.microsoft_app_password,
            tenant_id=self.microsoft_app_tenant_id,
            openid_keys_url=self.bot_openid_keys_url,
            token_issuer=self.bot_token_issuer,
            timeout_seconds=self.channel_timeout_seconds,
        )

    @cached_property
    def identity(self) -> IdentityConfig:
        """Credential verifier and corporate API configuration."""
        return IdentityConfig(
            verifier_url=self.identity_verifier_url,
            verifier_timeout_seconds=self.identity_verifier_timeout_seconds,
            valid_flag_value=self.identity_valid_flag_value,
            max_login_attempts=self.max_login_attempts,
            lockout_seconds=self.login_lockout_seconds,
            api_base_url=self.corporate_api_base_url,
            balance_url=self.corporate_api_balance_url,
            interest_rates_url=self.corporate_api_rates_url,
            api_timeout_seconds=self.corporate_api_timeout_seconds,
            default_num_ri=self.corporate_default_num_ri,
        )

    @cached_property
    def search(self) -> SearchConfig:
        """Document index configuration."""
        return SearchConfig(
            endpoint=self.search_endpoint,
            api_key=self.search_api_key,
            index_name=self.search_index_name,
            api_version=self.search_api_version,
            top_k=self.search_top_k,
            min_vector_score=self.search_min_vector_score,
            max_chunks_per_source=self.search_max_chunks_per_source,
            vector_field=self.search_vector_field,
            timeout_seconds=self.search_timeout_seconds,
        )

    @cached_property
    def database(self) -> DatabaseConfig:
        """Database connection configuration."""
        return DatabaseConfig(url=self.database_url)

    @cached_property
    def store(self) -> StoreConfig:
        """Conversation store configuration."""
        return StoreConfig(
            enabled=self.store_enabled,
            retention_days=self.store_retention_days,
            message_max_chars=self.store_message_max_chars,
            history_limit=self.store_history_limit,
            summary_max_attempts=self.store_summary_max_attempts,
            upsert_strategy=self.store_upsert_strategy,
        )

    @cached_property
    def redis(self) -> RedisConfig:
        """Redis connection configuration."""
        return RedisConfig(url=self.redis_url, session_ttl_hours=self.session_ttl_hours)

    # --- Convenience properties (delegate to domain configs) ---

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app.is_development


# Global settings instance
settings = Settings()
