"""Authentication schemas."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from novabot.core.logging import token_preview


class UserProfile(BaseModel):
    """Corporate identity returned by the credential verifier."""

    model_config = ConfigDict(frozen=True)

    display_name: str
    surname1: str | None = None
    surname2: str | None = None
    username: str | None = None

    @property
    def full_name(self) -> str:
        parts = [self.display_name, self.surname1, self.surname2]
        return " ".join(part for part in parts if part)


class Session(BaseModel):
    """An authenticated user's session, as held by both auth tiers."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    display_name: str
    surname1: str | None = None
    surname2: str | None = None
    username: str | None = None
    bearer_token: str = Field(repr=False)
    authenticated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def token_preview(self) -> str:
        return token_preview(self.bearer_token)

    @property
    def profile(self) -> UserProfile:
        return UserProfile(
            display_name=self.display_name,
            surname1=self.surname1,
            surname2=self.surname2,
            username=self.username,
        )


class LoginCredentials(BaseModel):
    """Username and password typed by the user or submitted from the login card."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(..., min_length=1, max_length=100)
    password: str = Field(..., min_length=1, max_length=200, repr=False)

    @classmethod
    def from_text(cls, text: str) -> "LoginCredentials | None":
        """Parse ``login user:password``. Returns None when malformed."""
        _, _, rest = text.strip().partition(" ")
        username, sep, password = rest.strip().partition(":")
        if not sep or not username.strip() or not password:
            return None
        return cls(username=username.strip(), password=password)


class VerifiedIdentity(BaseModel):
    """Successful credential verification."""

    model_config = ConfigDict(frozen=True)

    profile: UserProfile
    bearer_token: str = Field(repr=False)
    message: str | None = None
