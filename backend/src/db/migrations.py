"""
Idempotent schema bootstrap and upgrade for the SQL backends.

Runs once per process start. Every step checks the live schema before touching
it, so a second run is a no-op and a run interrupted by a crash is safely
resumed on the next start. There is no rollback of completed steps.

Steps, in order:

1. create missing tables
2. add columns missing from older schemas (folders.user_id, folders.sort_order,
   snippets.folder_id)
3. convert epoch-integer timestamps written by early SQLite releases (SQLite only)
4. convert naive `timestamp` columns to `timestamptz`, reading stored values as
   UTC (PostgreSQL only)
5. create secondary indexes
6. replace legacy single-column uniqueness (global trigger / folder name) with
   the per-user composite constraints
7. point unassigned snippets at their owner's General folder
8. flatten legacy nested folders into General

Steps 2 and 6 run before the data fixups because those read folders.user_id and
create per-user General folders, which a global unique(name) would reject.
"""
import logging
from collections.abc import Callable, Iterable

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import AsyncEngine

from models import Base, Folder, Snippet
from models.base import NAMING_CONVENTION, utcnow
from schemas.folder import GENERAL_FOLDER_NAME

logger = logging.getLogger(__name__)

# Owner assigned to folders that predate per-user folders
LEGACY_USER_ID = "default"

# Timestamp columns of the tables that predate the current schema. Early SQLite
# releases stored them as epoch seconds, PostgreSQL ones without a time zone.
TIMESTAMP_COLUMNS: list[tuple[str, str]] = [
    ("folders", "created_at"),
    ("folders", "updated_at"),
    ("snippets", "created_at"),
    ("snippets", "updated_at"),
    ("clipboard_items", "created_at"),
]

# (index name, table, column)
SECONDARY_INDEXES: list[tuple[str, str, str]] = [
    ("ix_folders_user_id", "folders", "user_id"),
    ("ix_snippets_user_id", "snippets", "user_id"),
    ("ix_snippets_trigger", "snippets", "trigger"),
    ("ix_clipboard_items_user_id", "clipboard_items", "user_id"),
    ("ix_clipboard_items_created_at", "clipboard_items", "created_at"),
]

# (constraint name, table, composite columns, legacy single column)
COMPOSITE_UNIQUES: list[tuple[str, str, list[str], str]] = [
    ("uq_folders_name_user", "folders", ["name", "user_id"], "name"),
    ("uq_snippets_trigger_user", "snippets", ["trigger", "user_id"], "trigger"),
]

MigrationStep = Callable[[Connection, Operations], None]

folders_table = Folder.__table__
snippets_table = Snippet.__table__


def _column_names(conn: Connection, table: str) -> set[str]:
    return {column["name"] for column in sa.inspect(conn).get_columns(table)}


class MigrationRunner:
    """Brings a fresh or older-schema database to the current shape."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def steps(self) -> list[MigrationStep]:
        """Migration steps in execution order."""
        return [
            self.create_tables,
            self.add_missing_columns,
            self.convert_epoch_timestamps,
            self.add_timestamp_time_zones,
            self.create_indexes,
            self.install_unique_constraints,
            self.backfill_general_folders,
            self.flatten_nested_folders,
        ]

    async def run(self) -> None:
        """Run every step. Failures are logged and re-raised to abort startup."""
        dialect = self._engine.dialect.name
        logger.info("migrations_started", extra={"dialect": dialect})
        try:
            async with self._engine.connect() as conn:
                if dialect == "sqlite":
                    # SQLite table rebuilds (batch mode) drop and rename tables that
                    # other tables reference; the pragma only applies outside a
                    # transaction, so it is issued before any DML.
                    await conn.exec_driver_sql("PRAGMA foreign_keys=OFF")
                await conn.run_sync(self._run_steps)
                await conn.commit()
                if dialect == "sqlite":
                    await conn.exec_driver_sql("PRAGMA foreign_keys=ON")
                    await conn.commit()
        except Exception:
            logger.exception("migration_failed", extra={"dialect": dialect})
            raise
        logger.info("migrations_completed", extra={"dialect": dialect})

    def _run_steps(self, conn: Connection) -> None:
        op = Operations(MigrationContext.configure(conn))
        for step in self.steps:
            step(conn, op)
            logger.debug("migration_step_done", extra={"step": step.__name__})

    # ------------------------------------------------------------------
    # Schema steps
    # ------------------------------------------------------------------

    def create_tables(self, conn: Connection, op: Operations) -> None:  # noqa: ARG002
        """Create any missing table (existing tables are left alone)."""
        Base.metadata.create_all(conn, checkfirst=True)

    def add_missing_columns(self, conn: Connection, op: Operations) -> None:
        """Add columns introduced after the first releases."""
        folder_columns = _column_names(conn, "folders")
        if "user_id" not in folder_columns:
            logger.info("migration_add_column", extra={"table": "folders", "column": "user_id"})
            op.add_column(
                "folders",
                sa.Column("user_id", sa.Text(), nullable=False, server_default=LEGACY_USER_ID),
            )
        if "sort_order" not in folder_columns:
            logger.info("migration_add_column", extra={"table": "folders", "column": "sort_order"})
            op.add_column(
                "folders",
                sa.Column("sort_order", sa.Integer(), nullable=True, server_default="0"),
            )

        if "folder_id" not in _column_names(conn, "snippets"):
            logger.info("migration_add_column", extra={"table": "snippets", "column": "folder_id"})
            op.add_column("snippets", sa.Column("folder_id", sa.Integer(), nullable=True))

    def convert_epoch_timestamps(self, conn: Connection, op: Operations) -> None:  # noqa: ARG002
        """Rewrite integer epoch timestamps as the text format SQLAlchemy reads back."""
        if conn.dialect.name != "sqlite":
            return
        for table, column in TIMESTAMP_COLUMNS:
            if column not in _column_names(conn, table):
                continue
            result = conn.execute(
                sa.text(
                    f"UPDATE {table} SET {column} = datetime({column}, 'unixepoch') "
                    f"WHERE typeof({column}) = 'integer'",
                ),
            )
            if result.rowcount:
                logger.info(
                    "migration_convert_timestamps",
                    extra={"table": table, "column": column, "rows": result.rowcount},
                )

    def add_timestamp_time_zones(self, conn: Connection, op: Operations) -> None:
        """Alter `timestamp without time zone` columns to `timestamptz`."""
        if conn.dialect.name != "postgresql":
            return
        for table, column in TIMESTAMP_COLUMNS:
            existing = next(
                (c for c in sa.inspect(conn).get_columns(table) if c["name"] == column),
                None,
            )
            if existing is None:
                continue
            column_type = existing["type"]
            if not isinstance(column_type, sa.DateTime) or column_type.timezone:
                continue
            logger.info(
                "migration_timestamp_time_zone",
                extra={"table": table, "column": column},
            )
            op.alter_column(
                table,
                column,
                existing_type=column_type,
                type_=sa.DateTime(timezone=True),
                existing_nullable=existing["nullable"],
                postgresql_using=f"{column} AT TIME ZONE 'UTC'",
            )

    def create_indexes(self, conn: Connection, op: Operations) -> None:
        """Create lookup indexes unless an equivalent one already exists."""
        for name, table, column in SECONDARY_INDEXES:
            indexes = sa.inspect(conn).get_indexes(table)
            covered = any(
                ix["column_names"] and ix["column_names"][0] == column and not ix.get("unique")
                for ix in indexes
            )
            if covered:
                continue
            logger.info("migration_create_index", extra={"index": name})
            op.create_index(name, table, [column])

    def install_unique_constraints(self, conn: Connection, op: Operations) -> None:
        """Replace global single-column uniqueness with per-user composite uniqueness."""
        for name, table, columns, legacy_column in COMPOSITE_UNIQUES:
            inspector = sa.inspect(conn)
            constraints = inspector.get_unique_constraints(table)
            unique_indexes = [ix for ix in inspector.get_indexes(table) if ix.get("unique")]

            has_composite = any(
                sorted(item["column_names"]) == sorted(columns)
                for item in [*constraints, *unique_indexes]
            )
            legacy_constraints = [c for c in constraints if c["column_names"] == [legacy_column]]
            legacy_indexes = [
                ix for ix in unique_indexes
                if ix["column_names"] == [legacy_column] and not ix.get("duplicates_constraint")
            ]

            for index in legacy_indexes:
                logger.info("migration_drop_unique_index", extra={"index": index["name"]})
                op.drop_index(index["name"], table_name=table)

            if legacy_constraints:
                logger.info("migration_drop_unique", extra={"table": table, "column": legacy_column})
                self._drop_unique_constraints(conn, op, table, legacy_column, legacy_constraints)

            if not has_composite:
                logger.info("migration_create_unique", extra={"constraint": name})
                if conn.dialect.name == "sqlite":
                    # A unique index needs no table rebuild on SQLite
                    op.create_index(name, table, columns, unique=True)
                else:
                    op.create_unique_constraint(name, table, columns)

    def _drop_unique_constraints(
        self,
        conn: Connection,
        op: Operations,
        table: str,
        column: str,
        constraints: Iterable[dict],
    ) -> None:
        if conn.dialect.name == "sqlite":
            # SQLite cannot drop constraints in place; batch mode rebuilds the
            # table. Unnamed reflected constraints are named by the convention.
            with op.batch_alter_table(table, naming_convention=NAMING_CONVENTION) as batch_op:
                for constraint in constraints:
                    batch_op.drop_constraint(
                        constraint["name"] or f"uq_{table}_{column}",
                        type_="unique",
                    )
            return
        for constraint in constraints:
            op.drop_constraint(constraint["name"], table, type_="unique")

    # ------------------------------------------------------------------
    # Data steps
    # ------------------------------------------------------------------

    def backfill_general_folders(self, conn: Connection, op: Operations) -> None:  # noqa: ARG002
        """Assign snippets without a folder to their owner's General folder."""
        user_ids = conn.execute(
            sa.select(snippets_table.c.user_id)
            .where(snippets_table.c.folder_id.is_(None))
            .distinct(),
        ).scalars().all()
        for user_id in user_ids:
            general_id = _ensure_general_folder(conn, user_id)
            result = conn.execute(
                sa.update(snippets_table)
                .where(
                    snippets_table.c.user_id == user_id,
                    snippets_table.c.folder_id.is_(None),
                )
                .values(folder_id=general_id),
            )
            logger.info(
                "migration_backfill_general",
                extra={"snippets": result.rowcount},
            )

    def flatten_nested_folders(self, conn: Connection, op: Operations) -> None:
        """Move snippets out of legacy subfolders into General and delete the subfolders."""
        if "parent_id" not in _column_names(conn, "folders"):
            return
        parent_id = sa.column("parent_id")
        nested_ids = set(
            conn.execute(
                sa.select(folders_table.c.id)
                .select_from(folders_table)
                .where(parent_id.is_not(None)),
            ).scalars().all(),
        )
        if not nested_ids:
            return

        # Detach first so the subfolders (which may include a nested "General")
        # can be deleted, then let the backfill re-home the detached snippets.
        conn.execute(
            sa.update(snippets_table)
            .where(snippets_table.c.folder_id.in_(nested_ids))
            .values(folder_id=None),
        )
        conn.execute(sa.delete(folders_table).where(folders_table.c.id.in_(nested_ids)))
        logger.info("migration_flatten_folders", extra={"removed": len(nested_ids)})
        self.backfill_general_folders(conn, op)


def _ensure_general_folder(conn: Connection, user_id: str) -> int:
    """Return the id of the user's General folder, creating it if needed."""
    existing = conn.execute(
        sa.select(folders_table.c.id)
        .where(
            folders_table.c.name == GENERAL_FOLDER_NAME,
            folders_table.c.user_id == user_id,
        )
        .order_by(folders_table.c.id)
        .limit(1),
    ).scalar_one_or_none()
    if existing is not None:
        return existing
    now = utcnow()
    result = conn.execute(
        sa.insert(folders_table).values(
            name=GENERAL_FOLDER_NAME,
            user_id=user_id,
            sort_order=0,
            created_at=now,
            updated_at=now,
        ),
    )
    return result.inserted_primary_key[0]
