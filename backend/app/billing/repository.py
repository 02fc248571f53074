"""PostgreSQL persistence for subscriptions and identity mappings."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, List, Optional, Sequence
from uuid import uuid4

import psycopg2
import psycopg2.extras
from psycopg2.extensions import connection as PgConnection
from psycopg2.extensions import cursor as PgCursor

from .exceptions import DuplicateSubscriptionError, SubscriptionRecordNotFoundError
from .models import IdentityKind, IdentityMapping, Subscription, SubscriptionDetail, SubscriptionType

try:  # pragma: no cover - resolve connection helper when imported from FastAPI app
    from backend.app_context import get_conn
except ModuleNotFoundError as exc:  # pragma: no cover
    if exc.name != "backend":
        raise
    from ...app_context import get_conn  # type: ignore[no-redef]


@contextmanager
def managed_connection(conn: Optional[PgConnection] = None):
    """Context manager that manages transaction boundaries for optional connections."""

    if conn is not None:
        yield conn, False
        return

    connection = get_conn()
    try:
        yield connection, True
        connection.commit()
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.close()


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        internal_id=row["internal_id"],
        external_id=row.get("external_id"),
        is_active=bool(row["is_active"]),
        participant=row["participant"],
        subscription_type=SubscriptionType(row["subscription_type"]),
        resource=row.get("resource"),
        resources=list(row.get("resources") or []),
        details=SubscriptionDetail(
            limit_date=row.get("limit_date"),
            pay_amount=float(row["pay_amount"]) if row.get("pay_amount") is not None else None,
            usage_count=row.get("usage_count"),
            start_date=row["start_date"],
            end_date=row.get("end_date"),
        ),
    )


def _row_to_mapping(row: dict) -> IdentityMapping:
    return IdentityMapping(
        kind=IdentityKind(row["kind"]),
        participant=row["participant"],
        external_id=row["external_id"],
        created_at=row["created_at"],
    )


class _PostgresStore:
    def __init__(self, *, conn: Optional[PgConnection] = None) -> None:
        self._conn = conn

    @contextmanager
    def _cursor(self) -> Iterable[PgCursor]:
        with managed_connection(self._conn) as (connection, managed):
            cursor = connection.cursor(cursor_factory=psycopg2.extras.RealDictCursor)
            try:
                yield cursor
                if managed:
                    connection.commit()
            except Exception:
                if managed:
                    connection.rollback()
                raise
            finally:
                cursor.close()


class PostgresBillingRepository(_PostgresStore):
    """Subscription records stored in ``billing_subscriptions``.

    The unique index on ``external_id`` makes concurrent registrations of the
    same provider subscription resolve to a single row.
    """

    def add_subscriptions(self, subscriptions: Sequence[Subscription]) -> None:
        with self._cursor() as cursor:
            for subscription in subscriptions:
                details = subscription.details
                cursor.execute(
                    """
                    INSERT INTO billing_subscriptions (
                        internal_id,
                        external_id,
                        is_active,
                        participant,
                        subscription_type,
                        resource,
                        resources,
                        limit_date,
                        pay_amount,
                        usage_count,
                        start_date,
                        end_date
                    )
                    VALUES (%(internal_id)s, %(external_id)s, %(is_active)s, %(participant)s,
                            %(subscription_type)s, %(resource)s, %(resources)s, %(limit_date)s,
                            %(pay_amount)s, %(usage_count)s, %(start_date)s, %(end_date)s)
                    ON CONFLICT (external_id) DO NOTHING
                    RETURNING internal_id
                    """,
                    {
                        "internal_id": subscription.internal_id or uuid4().hex,
                        "external_id": subscription.external_id,
                        "is_active": subscription.is_active,
                        "participant": subscription.participant,
                        "subscription_type": subscription.subscription_type.value,
                        "resource": subscription.resource,
                        "resources": psycopg2.extras.Json(subscription.resources),
                        "limit_date": details.limit_date,
                        "pay_amount": details.pay_amount,
                        "usage_count": details.usage_count,
                        "start_date": details.start_date,
                        "end_date": details.end_date,
                    },
                )
                if cursor.fetchone() is None:
                    raise DuplicateSubscriptionError(
                        f"Subscription with external id {subscription.external_id} already exists.",
                        detail={"subscription_id": subscription.external_id},
                    )

    def remove_subscription(self, internal_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM billing_subscriptions
                WHERE internal_id = %s
                RETURNING internal_id
                """,
                (internal_id,),
            )
            if cursor.fetchone() is None:
                raise SubscriptionRecordNotFoundError(
                    f"Subscription record {internal_id} not found.",
                    detail={"internal_id": internal_id},
                )

    def find_by_external_id(self, external_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_subscriptions
                WHERE external_id = %s
                LIMIT 1
                """,
                (external_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None


class PostgresIdentityStore(_PostgresStore):
    """Identity mappings stored in ``billing_identity_mappings``."""

    def insert_if_absent(self, mapping: IdentityMapping) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_identity_mappings (kind, participant, external_id, created_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (kind, external_id) DO NOTHING
                """,
                (mapping.kind.value, mapping.participant, mapping.external_id, mapping.created_at),
            )
            return cursor.rowcount > 0

    def delete(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM billing_identity_mappings
                WHERE kind = %s AND external_id = %s
                RETURNING *
                """,
                (kind.value, external_id),
            )
            row = cursor.fetchone()
            return _row_to_mapping(row) if row else None

    def get(self, kind: IdentityKind, external_id: str) -> Optional[IdentityMapping]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_identity_mappings
                WHERE kind = %s AND external_id = %s
                LIMIT 1
                """,
                (kind.value, external_id),
            )
            row = cursor.fetchone()
            return _row_to_mapping(row) if row else None

    def list_by_participant(self, kind: IdentityKind, participant: str) -> List[IdentityMapping]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM billing_identity_mappings
                WHERE kind = %s AND participant = %s
                ORDER BY created_at
                """,
                (kind.value, participant),
            )
            rows = cursor.fetchall() or []
            return [_row_to_mapping(row) for row in rows]


__all__ = ["PostgresBillingRepository", "PostgresIdentityStore", "managed_connection"]
