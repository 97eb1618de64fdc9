"""Request bodies for the admin endpoints."""

from __future__ import annotations

from pydantic import AwareDatetime, BaseModel, Field, SecretStr


class ApiKeyBody(BaseModel):
    """Identifies a gateway API key by its value (only its hash is stored)."""

    api_key: SecretStr


class RotateApiKeyRequest(ApiKeyBody):
    expires_at: AwareDatetime | None = Field(
        default=None, description="Expiry of the new key (defaults to the old one's)"
    )
