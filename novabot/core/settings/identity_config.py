"""Corporate identity and API configuration."""

from pydantic import BaseModel


class IdentityConfig(BaseModel, frozen=True):
    """Credential verifier and corporate API settings."""

    verifier_url: str
    verifier_timeout_seconds: float
    valid_flag_value: int
    max_login_attempts: int
    lockout_seconds: int
    api_base_url: str
    balance_url: str
    interest_rates_url: str
    api_timeout_seconds: float
    default_num_ri: str
