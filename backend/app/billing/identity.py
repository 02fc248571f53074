"""Participant to external identity mappings."""
from __future__ import annotations

import logging
from typing import List, Optional, Protocol, Sequence

from .exceptions import AlreadyLinkedError, MappingNotFoundError
from .models import IdentityKind, IdentityMapping

logger = logging.getLogger("billing")


class IdentityStore(Protocol):
    """Persistence for identity mappings of every kind.

    ``insert_if_absent`` must compare and insert atomically: when two callers
    race on the same ``(kind, external_id)`` exactly one of them gets ``True``.
    """

    def insert_if_absent(self, mapping: IdentityMapping) -> bool:
        ...

    def delete(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        ...

    def get(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        ...

    def list_by_participant(self, kind: IdentityKind, participant: str) -> Sequence[IdentityMapping]:
        ...


class IdentityMap:
    """One-to-one mapping table for a single :class:`IdentityKind`."""

    def __init__(self, store: IdentityStore, kind: IdentityKind) -> None:
        self._store = store
        self.kind = kind

    def link(self, participant: str, external_id: str) -> IdentityMapping:
        mapping = IdentityMapping(kind=self.kind, participant=participant, external_id=external_id)
        if not self._store.insert_if_absent(mapping):
            raise AlreadyLinkedError(
                f"A mapping for {self.kind.value} {external_id} already exists.",
                detail={"kind": self.kind.value, "external_id": external_id},
            )
        logger.info(
            "Linked participant %s to %s %s",
            participant,
            self.kind.value,
            external_id,
            extra={"participant": participant, "external_id": external_id},
        )
        return mapping

    def unlink(self, external_id: str) -> IdentityMapping:
        removed = self._store.delete(self.kind, external_id)
        if removed is None:
            raise MappingNotFoundError(
                f"No mapping found for {self.kind.value} {external_id}",
                detail={"kind": self.kind.value, "external_id": external_id},
            )
        logger.info(
            "Participant has been unlinked from %s %s",
            self.kind.value,
            external_id,
            extra={"participant": removed.participant, "external_id": external_id},
        )
        return removed

    def resolve_participant(self, external_id: str) -> str:
        mapping = self._store.get(self.kind, external_id)
        if mapping is None:
            raise MappingNotFoundError(
                f"No participant found for {self.kind.value} {external_id}",
                detail={"kind": self.kind.value, "external_id": external_id},
            )
        return mapping.participant

    def find_by_participant(self, participant: str) -> List[IdentityMapping]:
        return list(self._store.list_by_participant(self.kind, participant))


__all__ = ["IdentityMap", "IdentityStore"]
