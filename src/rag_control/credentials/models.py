"""Credential scopes, kinds and records."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field


class CredentialScope(str, Enum):
    """Ownership boundary a credential applies to."""

    SYSTEM = "SYSTEM"
    PROJECT = "PROJECT"
    USER = "USER"


class CredentialKind(str, Enum):
    """External service a credential authenticates against."""

    GITHUB_PAT = "GITHUB_PAT"
    BASIC_AUTH = "BASIC_AUTH"
    SSH_KEY = "SSH_KEY"
    OPENAI_API_KEY = "OPENAI_API_KEY"
    ANTHROPIC_API_KEY = "ANTHROPIC_API_KEY"
    NEO4J_AUTH = "NEO4J_AUTH"
    PGVECTOR_AUTH = "PGVECTOR_AUTH"
    CUSTOM_API_KEY = "CUSTOM_API_KEY"


# (scope, owner_id, kind): at most one credential per key.
CredentialKey = tuple[CredentialScope, str | None, CredentialKind]


@dataclass(frozen=True)
class CredentialRecord:
    """Registry metadata for a credential. The secret itself lives behind `handle`."""

    id: UUID
    scope: CredentialScope
    owner_id: str | None
    kind: CredentialKind
    handle: str
    hint: str
    created_at: datetime
    updated_at: datetime
    revision: int = 1
    description: str | None = None

    @property
    def key(self) -> CredentialKey:
        return (self.scope, self.owner_id, self.kind)

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "scope": self.scope.value,
            "owner_id": self.owner_id,
            "kind": self.kind.value,
            "handle": self.handle,
            "hint": self.hint,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "revision": self.revision,
            "description": self.description,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "CredentialRecord":
        return cls(
            id=UUID(data["id"]),
            scope=CredentialScope(data["scope"]),
            owner_id=data.get("owner_id"),
            kind=CredentialKind(data["kind"]),
            handle=data["handle"],
            hint=data["hint"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            revision=int(data.get("revision", 1)),
            description=data.get("description"),
        )


class CredentialDescriptor(BaseModel):
    """Masked view of a credential, safe to hand to any caller."""

    id: UUID
    scope: CredentialScope
    owner_id: str | None = None
    kind: CredentialKind
    description: str | None = None
    masked_secret: str = Field(..., description="Last visible fragment of the secret")
    created_at: datetime
    updated_at: datetime
    revision: int

    @classmethod
    def from_record(cls, record: CredentialRecord) -> "CredentialDescriptor":
        return cls(
            id=record.id,
            scope=record.scope,
            owner_id=record.owner_id,
            kind=record.kind,
            description=record.description,
            masked_secret=record.hint,
            created_at=record.created_at,
            updated_at=record.updated_at,
            revision=record.revision,
        )
