"""
PostgreSQL repository adapter - Implements RegistrationRepository protocol.

This module provides the PostgreSQL implementation of the domain's
repository port using psycopg3 with raw SQL.

Design notes:
------------
1. **create_group_rows** inserts the primary and every attendee inside one
   transaction, so a group either exists completely or not at all.
   Application ids come from the ``generate_application_id()`` SQL function.

2. **update_registration** is a single-row conditional update
   (``WHERE application_id = %s [AND col IS NOT DISTINCT FROM %s ...]``).
   Re-applying an identical patch is harmless; no multi-row transactions
   are ever opened for state transitions.

3. Transport failures (``psycopg.Error``) surface as the domain's
   ``StorageError`` so the domain never sees driver exceptions.

4. **PostgresActivityLog** appends one ``admin_activity_logs`` row per
   staff action; entries are never updated or deleted.
"""

import logging
from collections.abc import Mapping
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import ConnectionPool

from reunion.domain.exceptions import StorageError
from reunion.domain.models import Actor, AttendeeFields, CreatedGroup, GroupDraft, Registration
from reunion.domain.ports import ActivityAction, PaymentStatus, RegistrationStatus, StayType

logger = logging.getLogger(__name__)

_REGISTRATION_COLUMNS = tuple(f.name for f in fields(Registration))

# Columns the domain may patch; application_id and parent links are immutable.
_UPDATABLE_COLUMNS = frozenset(_REGISTRATION_COLUMNS) - {
    "application_id",
    "parent_application_id",
    "created_at",
    "updated_at",
}

_INSERT_SQL = """
    INSERT INTO registrations (
        application_id, parent_application_id,
        name, email, phone, occupation, year_of_passing, gender, tshirt_size,
        address_line1, address_line2, city, district, state, postal_code, country,
        stay_type, registration_fee
    )
    VALUES (
        generate_application_id(), %s,
        %s, %s, %s, %s, %s, %s, %s,
        %s, %s, %s, %s, %s, %s, %s,
        %s, %s
    )
    RETURNING application_id
"""


def _to_db(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _insert_params(member: AttendeeFields, fee: int, parent_application_id: str | None) -> tuple:
    return (
        parent_application_id,
        member.name,
        member.email,
        member.phone,
        member.occupation,
        member.year_of_passing,
        member.gender,
        member.tshirt_size,
        getattr(member, "address_line1", None),
        getattr(member, "address_line2", None),
        getattr(member, "city", None),
        getattr(member, "district", None),
        getattr(member, "state", None),
        getattr(member, "postal_code", None),
        getattr(member, "country", None),
        _to_db(member.stay_type),
        fee,
    )


def _to_registration(row: Mapping[str, Any]) -> Registration:
    values = {column: row[column] for column in _REGISTRATION_COLUMNS}
    values["stay_type"] = StayType(values["stay_type"])
    values["payment_status"] = PaymentStatus(values["payment_status"])
    values["registration_status"] = RegistrationStatus(values["registration_status"])
    return Registration(**values)


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries for security.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def create_group_rows(self, draft: GroupDraft) -> CreatedGroup:
        """
        Insert the primary and its attendees atomically.

        Returns:
            CreatedGroup with the generated primary and attendee ids

        Raises:
            StorageError: If the transaction could not be committed
        """
        try:
            with self._pool.connection() as conn, conn.transaction(), conn.cursor() as cursor:
                cursor.execute(
                    _INSERT_SQL,
                    _insert_params(draft.primary.fields, draft.primary.registration_fee, None),
                )
                application_id = cursor.fetchone()[0]

                attendee_ids = []
                for attendee in draft.attendees:
                    cursor.execute(
                        _INSERT_SQL,
                        _insert_params(attendee.fields, attendee.registration_fee, application_id),
                    )
                    attendee_ids.append(cursor.fetchone()[0])
        except psycopg.Error as e:
            raise StorageError(f"Could not create registration rows: {e}") from e

        return CreatedGroup(application_id, tuple(attendee_ids))

    def update_registration(
        self,
        application_id: str,
        patch: Mapping[str, Any],
        expected: Mapping[str, Any] | None = None,
    ) -> bool:
        """
        Apply a single-row conditional update.

        Args:
            application_id: Row to update
            patch: Column -> new value (enum members stored by value)
            expected: Column -> value that must still hold for the update

        Returns:
            True if exactly one row matched and was updated

        Raises:
            ValueError: If the patch touches a non-updatable column
            StorageError: On transport failure
        """
        unknown = set(patch) - _UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update columns: {sorted(unknown)}")
        expected = expected or {}

        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(column)) for column in patch
        )
        conditions = sql.SQL(" AND ").join(
            [sql.SQL("application_id = %s")]
            + [
                sql.SQL("{} IS NOT DISTINCT FROM %s").format(sql.Identifier(column))
                for column in expected
            ]
        )
        query = sql.SQL("UPDATE registrations SET {}, updated_at = NOW() WHERE {}").format(
            assignments, conditions
        )
        params = [
            *(_to_db(value) for value in patch.values()),
            application_id,
            *(_to_db(value) for value in expected.values()),
        ]

        try:
            with self._pool.connection() as conn, conn.cursor() as cursor:
                cursor.execute(query, params)
                conn.commit()
                return cursor.rowcount == 1
        except psycopg.Error as e:
            raise StorageError(f"Could not update {application_id}: {e}") from e

    def select_by_parent(self, parent_application_id: str) -> list[Registration]:
        """Return all dependents of a primary, ordered by application id."""
        return [
            _to_registration(row)
            for row in self._select("parent_application_id = %s", parent_application_id)
        ]

    def select_by_application_id(self, application_id: str) -> Registration | None:
        rows = self._select("application_id = %s", application_id)
        return _to_registration(rows[0]) if rows else None

    def _select(self, condition: str, value: str) -> list[dict[str, Any]]:
        query = sql.SQL("SELECT {} FROM registrations WHERE {} ORDER BY application_id").format(
            sql.SQL(", ").join(sql.Identifier(column) for column in _REGISTRATION_COLUMNS),
            sql.SQL(condition),
        )
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(query, (value,))
                return cursor.fetchall()
        except psycopg.Error as e:
            raise StorageError(f"Could not read registrations: {e}") from e


class PostgresActivityLog:
    """
    Implements ActivityLog protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def record(
        self,
        actor: Actor,
        action: ActivityAction,
        application_id: str,
        details: Mapping[str, Any],
    ) -> None:
        """
        Append one activity entry.

        Raises:
            StorageError: On transport failure
        """
        try:
            with self._pool.connection() as conn:
                conn.execute(
                    """
                    INSERT INTO admin_activity_logs
                        (actor_id, actor_role, action_type, target_application_id, details)
                    VALUES (%s, %s, %s, %s, %s)
                    """,
                    (actor.id, actor.role.value, action.value, application_id, Jsonb(dict(details))),
                )
        except psycopg.Error as e:
            raise StorageError(f"Could not record {action.value} for {application_id}: {e}") from e

    def list_for(self, application_id: str) -> list[dict[str, Any]]:
        """Return the activity entries for a registration, oldest first."""
        try:
            with self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
                cursor.execute(
                    """
                    SELECT actor_id, actor_role, action_type, details, created_at
                    FROM admin_activity_logs
                    WHERE target_application_id = %s
                    ORDER BY id
                    """,
                    (application_id,),
                )
                return cursor.fetchall()
        except psycopg.Error as e:
            raise StorageError(f"Could not read activity for {application_id}: {e}") from e


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: reunion/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
