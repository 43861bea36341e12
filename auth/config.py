"""Authentication configuration."""

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (seconds for request timeouts,
    minutes for verification records) to make configuration intuitive.
    """

    # Remote authority
    api_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL of the remote authority",
    )
    request_timeout_seconds: int = Field(
        default=10,
        description="Timeout applied to every remote call; a timeout is a network error",
        ge=1,
        le=120,
    )
    oauth_redirect_uri: str = Field(
        default="http://localhost:8000/oauth",
        description="Redirect URI sent along with OAuth authorization codes",
    )

    # Durable local storage
    valkey_url: str = Field(
        default="redis://localhost:6379/0",
        description="Connection URL of the key-value store",
    )

    # Phone verification
    verification_max_attempts: int = Field(
        default=3,
        description="Verify attempts allowed per issued code",
        ge=1,
        le=10,
    )
    verification_ttl_minutes: int = Field(
        default=10,
        description="How long an issued code stays valid",
        ge=1,
        le=60,
    )
    expose_debug_codes: bool = Field(
        default=False,
        description="Return generated codes to the caller (development only)",
    )

    # Credential store
    seed_demo_accounts: bool = Field(
        default=False,
        description="Create demo/admin accounts when the store is empty",
    )
    password_hash_rounds: int = Field(
        default=12,
        description="bcrypt cost factor for stored secrets",
        ge=4,
        le=16,
    )

    # Audit trail
    security_event_retention: int = Field(
        default=500,
        description="Number of security events kept in the audit list",
        ge=10,
        le=10000,
    )


_ENV_FIELDS = {
    "AUTH_API_BASE_URL": "api_base_url",
    "AUTH_REQUEST_TIMEOUT_SECONDS": "request_timeout_seconds",
    "AUTH_OAUTH_REDIRECT_URI": "oauth_redirect_uri",
    "AUTH_VALKEY_URL": "valkey_url",
    "AUTH_VERIFICATION_MAX_ATTEMPTS": "verification_max_attempts",
    "AUTH_VERIFICATION_TTL_MINUTES": "verification_ttl_minutes",
    "AUTH_EXPOSE_DEBUG_CODES": "expose_debug_codes",
    "AUTH_SEED_DEMO_ACCOUNTS": "seed_demo_accounts",
    "AUTH_PASSWORD_HASH_ROUNDS": "password_hash_rounds",
    "AUTH_SECURITY_EVENT_RETENTION": "security_event_retention",
}


def load_config(env_file: str | None = None) -> AuthConfig:
    """
    Build AuthConfig from AUTH_* environment variables.

    Loads a .env file first (existing environment wins). Unset variables
    keep their defaults.

    Raises:
        pydantic.ValidationError: If a variable is out of bounds or malformed.
    """
    load_dotenv(env_file)

    values = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None and raw != "":
            values[field_name] = raw

    return AuthConfig.model_validate(values)
