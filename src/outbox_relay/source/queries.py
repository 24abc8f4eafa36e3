"""SQL statements against the outbox table, composed with psycopg.sql."""

from __future__ import annotations

from psycopg import sql

from outbox_relay.config.models import SourceConfig


def _table(config: SourceConfig) -> sql.Identifier:
    schema, name = config.table.split(".", 1)
    return sql.Identifier(schema, name)


def select_pending(config: SourceConfig) -> sql.Composed:
    """Unprocessed rows, oldest id first. Takes one parameter: the limit."""
    columns = [config.id_column, *config.columns.model_dump().values()]
    return sql.SQL(
        "SELECT {columns} FROM {table} WHERE {processed} = false "
        "ORDER BY {id} ASC LIMIT %s"
    ).format(
        columns=sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        table=_table(config),
        processed=sql.Identifier(config.processed_column),
        id=sql.Identifier(config.id_column),
    )


def count_pending(config: SourceConfig) -> sql.Composed:
    return sql.SQL("SELECT count(*) FROM {table} WHERE {processed} = false").format(
        table=_table(config),
        processed=sql.Identifier(config.processed_column),
    )


def mark_processed(config: SourceConfig, count: int) -> sql.Composed:
    """Flip the processed flag for *count* ids (one placeholder per id).

    Rows already marked are excluded, so re-marking affects zero rows.
    """
    if count < 1:
        msg = "mark_processed needs at least one id"
        raise ValueError(msg)
    return sql.SQL(
        "UPDATE {table} SET {processed} = true "
        "WHERE {id} IN ({placeholders}) AND {processed} = false"
    ).format(
        table=_table(config),
        processed=sql.Identifier(config.processed_column),
        id=sql.Identifier(config.id_column),
        placeholders=sql.SQL(", ").join(sql.Placeholder() * count),
    )
