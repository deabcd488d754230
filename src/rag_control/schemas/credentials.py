"""Credential request and response schemas."""

from pydantic import BaseModel, Field, SecretStr

from rag_control.credentials.models import CredentialDescriptor, CredentialKind, CredentialScope


class CredentialCreateRequest(BaseModel):
    """Request model for creating a credential."""

    scope: CredentialScope = Field(..., description="SYSTEM, PROJECT or USER")
    owner_id: str | None = Field(
        None, description="Project id for PROJECT scope, user id for USER scope, empty for SYSTEM"
    )
    kind: CredentialKind = Field(..., description="External service the credential is for")
    secret: SecretStr = Field(..., description="Raw credential material; never returned")
    description: str | None = Field(None, description="Optional free-text label", max_length=255)


class CredentialUpdateRequest(BaseModel):
    """Request model for rotating a credential's secret."""

    secret: SecretStr = Field(..., description="Replacement credential material")
    expected_revision: int | None = Field(
        None, description="Reject the update if the credential has moved past this revision", ge=1
    )
    description: str | None = Field(None, description="New label; omitted keeps the current one")


class CredentialListResponse(BaseModel):
    """Masked credentials matching a listing filter."""

    credentials: list[CredentialDescriptor] = Field(..., description="Masked descriptors")
    total: int = Field(..., description="Number of credentials returned")


__all__ = [
    "CredentialCreateRequest",
    "CredentialDescriptor",
    "CredentialListResponse",
    "CredentialUpdateRequest",
]
