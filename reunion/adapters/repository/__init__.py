"""Repository adapters - PostgreSQL persistence for registration rows and staff activity."""

from .postgres import PostgresActivityLog, PostgresRegistrationRepository, run_migrations

__all__ = ["PostgresActivityLog", "PostgresRegistrationRepository", "run_migrations"]
