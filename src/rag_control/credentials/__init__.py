"""Scoped credentials: encrypted secret storage and USER > PROJECT > SYSTEM resolution."""

from rag_control.credentials.models import (
    CredentialDescriptor,
    CredentialKind,
    CredentialScope,
)
from rag_control.credentials.registry import CredentialRegistry
from rag_control.credentials.secret_store import SecretStore

__all__ = [
    "CredentialDescriptor",
    "CredentialKind",
    "CredentialRegistry",
    "CredentialScope",
    "SecretStore",
]
