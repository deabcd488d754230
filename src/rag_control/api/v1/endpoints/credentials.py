"""Credential management endpoints. Secrets go in, only masked descriptors come out."""

from uuid import UUID

from fastapi import APIRouter, Query, Response, status

from rag_control.credentials.models import CredentialKind, CredentialScope
from rag_control.dependencies import RegistryDep
from rag_control.schemas.credentials import (
    CredentialCreateRequest,
    CredentialDescriptor,
    CredentialListResponse,
    CredentialUpdateRequest,
)

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.post(
    "",
    response_model=CredentialDescriptor,
    summary="Create Credential",
    description="Stores a credential at the given scope. One credential per (scope, owner, kind).",
    status_code=status.HTTP_201_CREATED,
)
async def create_credential(
    request: CredentialCreateRequest,
    registry: RegistryDep,
) -> CredentialDescriptor:
    """Create a credential.

    Args:
        request: Scope, owner, kind and secret.
        registry: Injected credential registry.

    Returns:
        CredentialDescriptor: Masked view of the stored credential.
    """
    return await registry.create(
        scope=request.scope,
        owner_id=request.owner_id,
        kind=request.kind,
        secret=request.secret.get_secret_value(),
        description=request.description,
    )


@router.get(
    "",
    response_model=CredentialListResponse,
    summary="List Credentials",
)
async def list_credentials(
    registry: RegistryDep,
    scope: CredentialScope | None = Query(None, description="Filter by scope"),
    owner_id: str | None = Query(None, description="Filter by owner (project or user id)"),
) -> CredentialListResponse:
    credentials = registry.list(scope=scope, owner_id=owner_id)
    return CredentialListResponse(credentials=credentials, total=len(credentials))


@router.get(
    "/resolve",
    response_model=CredentialDescriptor,
    summary="Preview Resolution",
    description="Masked descriptor of the credential that would be used (USER > PROJECT > SYSTEM)",
)
async def preview_resolution(
    registry: RegistryDep,
    kind: CredentialKind = Query(..., description="Credential kind to resolve"),
    project_id: str | None = Query(None),
    user_id: str | None = Query(None),
) -> CredentialDescriptor:
    """Show which credential applies without revealing it.

    Raises:
        NotConfiguredException: 424, listing every scope that was checked.
    """
    return registry.describe_resolution(kind, project_id=project_id, user_id=user_id)


@router.get(
    "/{credential_id}",
    response_model=CredentialDescriptor,
    summary="Get Credential",
)
async def get_credential(credential_id: UUID, registry: RegistryDep) -> CredentialDescriptor:
    return registry.get(credential_id)


@router.put(
    "/{credential_id}",
    response_model=CredentialDescriptor,
    summary="Rotate Credential",
    description="Replaces the secret atomically; the previous value is never resolved again.",
)
async def update_credential(
    credential_id: UUID,
    request: CredentialUpdateRequest,
    registry: RegistryDep,
) -> CredentialDescriptor:
    return await registry.update(
        credential_id,
        request.secret.get_secret_value(),
        expected_revision=request.expected_revision,
        description=request.description,
    )


@router.delete(
    "/{credential_id}",
    summary="Delete Credential",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
)
async def delete_credential(credential_id: UUID, registry: RegistryDep) -> Response:
    await registry.delete(credential_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
