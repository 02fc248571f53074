"""In-memory billing stores suitable for tests and local development."""
from __future__ import annotations

from threading import Lock
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from .exceptions import DuplicateSubscriptionError, SubscriptionRecordNotFoundError
from .models import IdentityKind, IdentityMapping, Subscription


class InMemoryIdentityStore:
    """Identity mappings keyed by ``(kind, external_id)`` behind a lock."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._mappings: Dict[Tuple[IdentityKind, str], IdentityMapping] = {}

    def insert_if_absent(self, mapping: IdentityMapping) -> bool:
        key = (mapping.kind, mapping.external_id)
        with self._lock:
            if key in self._mappings:
                return False
            self._mappings[key] = mapping
            return True

    def delete(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        with self._lock:
            return self._mappings.pop((kind, external_id), None)

    def get(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        with self._lock:
            return self._mappings.get((kind, external_id))

    def list_by_participant(self, kind: IdentityKind, participant: str) -> List[IdentityMapping]:
        with self._lock:
            matching = [
                mapping
                for (mapping_kind, _), mapping in self._mappings.items()
                if mapping_kind == kind and mapping.participant == participant
            ]
        return sorted(matching, key=lambda mapping: mapping.created_at)


class InMemoryBillingRepository:
    """Subscription records with ``external_id`` uniqueness enforced on insert."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.subscriptions: Dict[str, Subscription] = {}
        self._external_index: Dict[str, str] = {}

    def add_subscriptions(self, subscriptions: Sequence[Subscription]) -> None:
        with self._lock:
            pending: Dict[str, Subscription] = {}
            for subscription in subscriptions:
                external_id = subscription.external_id
                if external_id and (external_id in self._external_index or external_id in pending):
                    raise DuplicateSubscriptionError(
                        f"Subscription with external id {external_id} already exists.",
                        detail={"subscription_id": external_id},
                    )
                internal_id = subscription.internal_id or uuid4().hex
                pending[external_id or internal_id] = subscription.model_copy(update={"internal_id": internal_id})

            for stored in pending.values():
                self.subscriptions[stored.internal_id] = stored
                if stored.external_id:
                    self._external_index[stored.external_id] = stored.internal_id

    def remove_subscription(self, internal_id: str) -> None:
        with self._lock:
            removed = self.subscriptions.pop(internal_id, None)
            if removed is None:
                raise SubscriptionRecordNotFoundError(
                    f"Subscription record {internal_id} not found.",
                    detail={"internal_id": internal_id},
                )
            if removed.external_id:
                self._external_index.pop(removed.external_id, None)

    def find_by_external_id(self, external_id: str) -> Optional[Subscription]:
        with self._lock:
            internal_id = self._external_index.get(external_id)
            return self.subscriptions.get(internal_id) if internal_id else None


__all__ = ["InMemoryBillingRepository", "InMemoryIdentityStore"]
