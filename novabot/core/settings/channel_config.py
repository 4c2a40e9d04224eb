"""Bot Framework channel configuration."""

from pydantic import BaseModel, SecretStr


class ChannelConfig(BaseModel, frozen=True):
    """Microsoft Bot Framework credentials and token endpoints."""

    app_id: str
    app_password: SecretStr
    tenant_id: str
    openid_keys_url: str
    token_issuer: str
    timeout_seconds: float

    @property
    def is_configured(self) -> bool:
        """Inbound token validation and outbound replies need an app id."""
        return bool(self.app_id)

    @property
    def token_url(self) -> str:
        """OAuth2 client-credentials endpoint for outbound connector calls."""
        tenant = self.tenant_id or "botframework.com"
        return f"https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
