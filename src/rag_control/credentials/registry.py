"""Credential metadata per scope and scoped resolution."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from uuid import UUID, uuid4

from rag_control.core.constants import STATE_CREDENTIAL
from rag_control.core.exceptions import (
    ConflictException,
    NotConfiguredException,
    NotFoundException,
    ValidationException,
)
from rag_control.core.logging import get_logger
from rag_control.core.models import Violation
from rag_control.core.security import mask_secret
from rag_control.credentials.models import (
    CredentialDescriptor,
    CredentialKey,
    CredentialKind,
    CredentialRecord,
    CredentialScope,
)
from rag_control.credentials.secret_store import SecretStore
from rag_control.services.state_store import QdrantStateStore

logger = get_logger(__name__)

# (kind, project_id, user_id) -> winning credential id
ResolutionKey = tuple[CredentialKind, str | None, str | None]


def _validate_owner(scope: CredentialScope, owner_id: str | None, secret: str) -> None:
    violations: list[Violation] = []
    if scope is CredentialScope.SYSTEM and owner_id is not None:
        violations.append(Violation("owner_id", "SYSTEM credentials must not have an owner"))
    if scope is not CredentialScope.SYSTEM and not owner_id:
        violations.append(Violation("owner_id", f"{scope.value} credentials require an owner"))
    if not secret:
        violations.append(Violation("secret", "secret must not be empty"))
    if violations:
        raise ValidationException("Invalid credential", violations)


class CredentialRegistry:
    """CRUD over credential metadata with USER > PROJECT > SYSTEM resolution.

    Writers take a lock scoped to the (scope, owner, kind) tuple they touch.
    Resolution takes no lock. It memoizes only *which* credential won for a
    (kind, project, user) combination, never plaintext, and every mutation
    drops the memo entries it could affect. With a state store, every
    mutation is written through and the records are reloaded on construction.
    """

    def __init__(self, secret_store: SecretStore, state: QdrantStateStore | None = None):
        self._secrets = secret_store
        self._state = state
        self._records: dict[UUID, CredentialRecord] = {}
        self._index: dict[CredentialKey, UUID] = {}
        if state is not None:
            for data in state.load(STATE_CREDENTIAL).values():
                record = CredentialRecord.from_payload(data)
                self._records[record.id] = record
                self._index[record.key] = record.id
            logger.info(f"Loaded {len(self._records)} credential(s)")
        self._locks: dict[CredentialKey, asyncio.Lock] = {}
        self._resolution_memo: dict[ResolutionKey, UUID] = {}

    # ---------------- Locking / memo ----------------

    @asynccontextmanager
    async def _exclusive(self, key: CredentialKey) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            yield

    def _invalidate(self, record: CredentialRecord) -> None:
        for memo_key in list(self._resolution_memo):
            kind, project_id, user_id = memo_key
            if kind is not record.kind:
                continue
            if (
                record.scope is CredentialScope.SYSTEM
                or (record.scope is CredentialScope.PROJECT and project_id == record.owner_id)
                or (record.scope is CredentialScope.USER and user_id == record.owner_id)
            ):
                del self._resolution_memo[memo_key]

    def _store(self, record: CredentialRecord) -> None:
        self._records[record.id] = record
        self._index[record.key] = record.id
        if self._state is not None:
            self._state.put(STATE_CREDENTIAL, str(record.id), record.to_payload())

    def _get_record(self, credential_id: UUID) -> CredentialRecord:
        record = self._records.get(credential_id)
        if record is None:
            raise NotFoundException(f"Credential {credential_id} not found")
        return record

    # ---------------- CRUD ----------------

    async def create(
        self,
        scope: CredentialScope,
        owner_id: str | None,
        kind: CredentialKind,
        secret: str,
        description: str | None = None,
    ) -> CredentialDescriptor:
        """Create a credential.

        Raises:
            ValidationException: If the owner does not fit the scope or the secret is empty.
            ConflictException: If a credential already exists for (scope, owner, kind).
        """
        _validate_owner(scope, owner_id, secret)
        key: CredentialKey = (scope, owner_id, kind)

        async with self._exclusive(key):
            if key in self._index:
                raise ConflictException(
                    f"A {kind.value} credential already exists at {scope.value} scope"
                    + (f" for owner {owner_id}" if owner_id else "")
                )

            now = datetime.now(UTC)
            record = CredentialRecord(
                id=uuid4(),
                scope=scope,
                owner_id=owner_id,
                kind=kind,
                handle=self._secrets.encrypt(secret),
                hint=mask_secret(secret),
                created_at=now,
                updated_at=now,
                description=description,
            )
            self._store(record)
            self._invalidate(record)

        logger.info(f"Created credential {record.id} ({scope.value}/{kind.value})")
        return CredentialDescriptor.from_record(record)

    async def update(
        self,
        credential_id: UUID,
        secret: str,
        *,
        expected_revision: int | None = None,
        description: str | None = None,
    ) -> CredentialDescriptor:
        """Replace a credential's secret atomically.

        The old ciphertext is erased once the new handle is in place, so the
        previous value can never be resolved again.

        Raises:
            NotFoundException: If the credential does not exist.
            ConflictException: If ``expected_revision`` is stale.
        """
        if not secret:
            raise ValidationException(
                "Invalid credential", [Violation("secret", "secret must not be empty")]
            )
        key = self._get_record(credential_id).key

        async with self._exclusive(key):
            current = self._get_record(credential_id)
            if expected_revision is not None and expected_revision != current.revision:
                raise ConflictException(
                    f"Credential {credential_id} is at revision {current.revision}, "
                    f"not {expected_revision}"
                )

            updated = dataclasses.replace(
                current,
                handle=self._secrets.encrypt(secret),
                hint=mask_secret(secret),
                updated_at=datetime.now(UTC),
                revision=current.revision + 1,
                description=description if description is not None else current.description,
            )
            self._store(updated)
            self._secrets.erase(current.handle)
            self._invalidate(updated)

        logger.info(f"Rotated credential {credential_id} to revision {updated.revision}")
        return CredentialDescriptor.from_record(updated)

    async def delete(self, credential_id: UUID) -> None:
        """Remove a credential's metadata and secret together.

        Raises:
            NotFoundException: If the credential does not exist.
        """
        key = self._get_record(credential_id).key

        async with self._exclusive(key):
            record = self._get_record(credential_id)
            del self._records[credential_id]
            del self._index[key]
            if self._state is not None:
                self._state.delete(STATE_CREDENTIAL, str(credential_id))
            self._secrets.erase(record.handle)
            self._invalidate(record)

        logger.info(f"Deleted credential {credential_id} ({record.scope.value}/{record.kind.value})")

    def get(self, credential_id: UUID) -> CredentialDescriptor:
        return CredentialDescriptor.from_record(self._get_record(credential_id))

    def list(
        self,
        scope: CredentialScope | None = None,
        owner_id: str | None = None,
    ) -> list[CredentialDescriptor]:
        """List masked descriptors, optionally filtered by scope and owner."""
        records = [
            r
            for r in self._records.values()
            if (scope is None or r.scope is scope) and (owner_id is None or r.owner_id == owner_id)
        ]
        records.sort(key=lambda r: r.created_at)
        return [CredentialDescriptor.from_record(r) for r in records]

    # ---------------- Resolution ----------------

    @staticmethod
    def _lookups(
        project_id: str | None, user_id: str | None
    ) -> list[tuple[CredentialScope, str | None]]:
        """Scope lookups in precedence order, most specific first."""
        lookups: list[tuple[CredentialScope, str | None]] = []
        if user_id is not None:
            lookups.append((CredentialScope.USER, user_id))
        if project_id is not None:
            lookups.append((CredentialScope.PROJECT, project_id))
        lookups.append((CredentialScope.SYSTEM, None))
        return lookups

    def _resolve_record(
        self,
        kind: CredentialKind,
        project_id: str | None,
        user_id: str | None,
    ) -> CredentialRecord:
        memo_key: ResolutionKey = (kind, project_id, user_id)
        memoized = self._resolution_memo.get(memo_key)
        if memoized is not None and memoized in self._records:
            return self._records[memoized]

        lookups = self._lookups(project_id, user_id)
        for scope, owner_id in lookups:
            credential_id = self._index.get((scope, owner_id, kind))
            if credential_id is not None:
                self._resolution_memo[memo_key] = credential_id
                return self._records[credential_id]

        raise NotConfiguredException(kind.value, [scope.value for scope, _ in lookups])

    def describe_resolution(
        self,
        kind: CredentialKind,
        project_id: str | None = None,
        user_id: str | None = None,
    ) -> CredentialDescriptor:
        """Return the masked descriptor of the credential that would be resolved.

        Raises:
            NotConfiguredException: If no scope has a credential of this kind.
        """
        return CredentialDescriptor.from_record(self._resolve_record(kind, project_id, user_id))

    def is_resolvable(
        self,
        kind: CredentialKind,
        project_id: str | None = None,
        user_id: str | None = None,
    ) -> bool:
        try:
            self._resolve_record(kind, project_id, user_id)
        except NotConfiguredException:
            return False
        return True

    def resolve(
        self,
        kind: CredentialKind,
        project_id: str | None = None,
        user_id: str | None = None,
    ) -> str:
        """Return the plaintext secret of the most specific applicable credential.

        Raises:
            NotConfiguredException: Reporting every scope that was checked.
        """
        record = self._resolve_record(kind, project_id, user_id)
        logger.debug(f"Resolved {kind.value} from {record.scope.value} credential {record.id}")
        return self._secrets.decrypt(record.handle)
