"""Tests for the PostgreSQL stores using a scripted connection."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import pytest

from backend.app.billing import (
    AlreadyLinkedError,
    DuplicateSubscriptionError,
    IdentityKind,
    IdentityMap,
    Subscription,
    SubscriptionDetail,
    SubscriptionRecordNotFoundError,
    SubscriptionType,
)
from backend.app.billing import repository
from backend.app.billing.repository import PostgresBillingRepository, PostgresIdentityStore


class FakeCursor:
    def __init__(self, connection: "FakeConnection") -> None:
        self.connection = connection
        self.rowcount = -1
        self.closed = False

    def execute(self, sql: str, params: Any = None) -> None:
        self.connection.executed.append((sql, params))
        self.rowcount = self.connection.rowcounts.pop(0) if self.connection.rowcounts else 1

    def fetchone(self) -> Optional[dict]:
        return self.connection.rows.pop(0) if self.connection.rows else None

    def fetchall(self) -> List[dict]:
        rows, self.connection.rows = self.connection.rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, *, rows: Optional[List[Optional[dict]]] = None, rowcounts: Optional[List[int]] = None) -> None:
        self.rows: List[Optional[dict]] = list(rows or [])
        self.rowcounts: List[int] = list(rowcounts or [])
        self.executed: List[Tuple[str, Any]] = []
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def cursor(self, cursor_factory=None) -> FakeCursor:
        return FakeCursor(self)

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        self.rollbacks += 1

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def use_connection(monkeypatch):
    def install(connection: FakeConnection) -> FakeConnection:
        monkeypatch.setattr(repository, "get_conn", lambda: connection)
        return connection

    return install


def _subscription(external_id: str) -> Subscription:
    return Subscription(
        external_id=external_id,
        is_active=True,
        participant="alice",
        subscription_type=SubscriptionType.PAY_AMOUNT,
        details=SubscriptionDetail(start_date=datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)),
    )


def test_add_subscriptions_commits_inserted_batch(use_connection):
    connection = use_connection(FakeConnection(rows=[{"internal_id": "a"}, {"internal_id": "b"}]))

    PostgresBillingRepository().add_subscriptions([_subscription("sub_1"), _subscription("sub_2")])

    assert len(connection.executed) == 2
    assert "ON CONFLICT (external_id) DO NOTHING" in connection.executed[0][0]
    assert connection.executed[1][1]["external_id"] == "sub_2"
    assert connection.commits >= 1
    assert connection.rollbacks == 0
    assert connection.closed is True


def test_conflicting_insert_raises_duplicate_and_rolls_back_batch(use_connection):
    connection = use_connection(FakeConnection(rows=[{"internal_id": "a"}, None]))

    with pytest.raises(DuplicateSubscriptionError) as excinfo:
        PostgresBillingRepository().add_subscriptions([_subscription("sub_1"), _subscription("sub_dup")])

    assert excinfo.value.detail == {"subscription_id": "sub_dup"}
    assert connection.commits == 0
    assert connection.rollbacks >= 1
    assert connection.closed is True


def test_caller_owned_connection_is_left_to_the_caller(use_connection):
    managed = use_connection(FakeConnection())
    owned = FakeConnection(rows=[None])

    with pytest.raises(DuplicateSubscriptionError):
        PostgresBillingRepository(conn=owned).add_subscriptions([_subscription("sub_1")])

    assert (owned.commits, owned.rollbacks, owned.closed) == (0, 0, False)
    assert managed.executed == []


def test_remove_missing_subscription_raises_not_found(use_connection):
    connection = use_connection(FakeConnection(rows=[None]))

    with pytest.raises(SubscriptionRecordNotFoundError):
        PostgresBillingRepository().remove_subscription("missing")

    assert "DELETE FROM billing_subscriptions" in connection.executed[0][0]
    assert connection.executed[0][1] == ("missing",)
    assert connection.commits == 0


def test_link_reports_conflict_when_no_row_is_inserted(use_connection):
    connection = use_connection(FakeConnection(rowcounts=[1, 0]))
    customers = IdentityMap(PostgresIdentityStore(), IdentityKind.CUSTOMER)

    mapping = customers.link("alice", "cus_1")
    with pytest.raises(AlreadyLinkedError):
        customers.link("bob", "cus_1")

    assert mapping.participant == "alice"
    assert "ON CONFLICT (kind, external_id) DO NOTHING" in connection.executed[1][0]
    assert connection.executed[1][1][:3] == ("customer", "bob", "cus_1")


def test_list_by_participant_maps_rows(use_connection):
    created_at = datetime(2024, 1, 1, tzinfo=timezone.utc)
    use_connection(
        FakeConnection(
            rows=[
                {"kind": "connected_account", "participant": "alice", "external_id": "acct_1", "created_at": created_at},
            ]
        )
    )

    (mapping,) = PostgresIdentityStore().list_by_participant(IdentityKind.CONNECTED_ACCOUNT, "alice")

    assert mapping.kind == IdentityKind.CONNECTED_ACCOUNT
    assert mapping.external_id == "acct_1"
    assert mapping.created_at == created_at
