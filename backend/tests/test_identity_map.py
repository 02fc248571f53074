from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from backend.app.billing import AlreadyLinkedError, IdentityKind, IdentityMap, MappingNotFoundError
from backend.app.billing.memory import InMemoryIdentityStore


@pytest.fixture
def store() -> InMemoryIdentityStore:
    return InMemoryIdentityStore()


@pytest.mark.parametrize("kind", list(IdentityKind))
def test_link_rejects_second_participant_for_same_external_id(store, kind):
    identities = IdentityMap(store, kind)
    identities.link("alice", "ext_1")

    with pytest.raises(AlreadyLinkedError):
        identities.link("bob", "ext_1")
    assert identities.resolve_participant("ext_1") == "alice"


@pytest.mark.parametrize("kind", list(IdentityKind))
def test_link_resolve_unlink_round_trip(store, kind):
    identities = IdentityMap(store, kind)

    mapping = identities.link("alice", "ext_1")
    assert mapping.kind == kind
    assert identities.resolve_participant("ext_1") == "alice"

    removed = identities.unlink("ext_1")
    assert removed.participant == "alice"
    with pytest.raises(MappingNotFoundError):
        identities.resolve_participant("ext_1")


def test_unlink_unknown_external_id_raises(store):
    with pytest.raises(MappingNotFoundError):
        IdentityMap(store, IdentityKind.CUSTOMER).unlink("cus_missing")


def test_kinds_are_independent(store):
    customers = IdentityMap(store, IdentityKind.CUSTOMER)
    accounts = IdentityMap(store, IdentityKind.CONNECTED_ACCOUNT)

    customers.link("alice", "shared_id")
    accounts.link("bob", "shared_id")

    assert customers.resolve_participant("shared_id") == "alice"
    assert accounts.resolve_participant("shared_id") == "bob"


def test_participant_may_hold_several_external_ids(store):
    customers = IdentityMap(store, IdentityKind.CUSTOMER)

    customers.link("alice", "cus_1")
    customers.link("alice", "cus_2")

    assert [mapping.external_id for mapping in customers.find_by_participant("alice")] == ["cus_1", "cus_2"]


def test_concurrent_links_have_a_single_winner(store):
    customers = IdentityMap(store, IdentityKind.CUSTOMER)
    participants = [f"participant-{index}" for index in range(8)]
    barrier = threading.Barrier(len(participants))

    def attempt(participant: str) -> bool:
        barrier.wait()
        try:
            customers.link(participant, "cus_race")
        except AlreadyLinkedError:
            return False
        return True

    with ThreadPoolExecutor(max_workers=len(participants)) as executor:
        results = list(executor.map(attempt, participants))

    assert results.count(True) == 1
    winner = participants[results.index(True)]
    assert customers.resolve_participant("cus_race") == winner
