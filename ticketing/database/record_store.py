"""
Table-scoped record store over the Supabase Postgres database.

Handlers never write SQL. They build a query against one table
(equality/range filters, ordering, offset/limit) and the store runs it:

    store.table("events").select().gte("event_date", now).order("event_date").execute()
    store.table("users").select("user_id", "role").eq("auth_id", auth_id).single()
    store.table("events").eq("event_id", event_id).update({"venue": "Hall B"})

The store is built once by the app factory and injected, so tests can
substitute any RecordStore implementation.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID

import psycopg2
import psycopg2.errors
from psycopg2 import sql

from ticketing.database.db_connection import get_db

Row = Dict[str, Any]


class StoreError(Exception):
    """Failure reported by the record store."""


class RecordNotFound(StoreError):
    """A single-row fetch matched no rows."""


class DuplicateRecord(StoreError):
    """A write violated a unique constraint."""


@dataclass(frozen=True)
class Filter:
    column: str
    operator: str  # "=", ">=" or "<"
    value: Any


@dataclass
class QueryResult:
    data: List[Row]
    count: Optional[int] = None


class TableQuery:
    """
    Builder for one statement against one table.

    Filter and ordering methods return the query so calls can be chained.
    execute(), single(), insert(), update() and delete() hand the query to
    the store and return its result.
    """

    def __init__(self, store: "RecordStore", table_name: str) -> None:
        self.store = store
        self.table_name = table_name
        self.columns: Tuple[str, ...] = ()
        self.with_count = False
        self.filters: List[Filter] = []
        self.ordering: List[Tuple[str, bool]] = []
        self.offset: Optional[int] = None
        self.max_rows: Optional[int] = None

    # --- SHAPING ---
    def select(self, *columns: str, count: bool = False) -> "TableQuery":
        """Choose the returned columns (all when none given) and whether to count matches."""
        self.columns = columns
        self.with_count = count
        return self

    def eq(self, column: str, value: Any) -> "TableQuery":
        self.filters.append(Filter(column, "=", value))
        return self

    def gte(self, column: str, value: Any) -> "TableQuery":
        self.filters.append(Filter(column, ">=", value))
        return self

    def lt(self, column: str, value: Any) -> "TableQuery":
        self.filters.append(Filter(column, "<", value))
        return self

    def order(self, column: str, ascending: bool = True) -> "TableQuery":
        self.ordering.append((column, ascending))
        return self

    def range(self, start: int, end: int) -> "TableQuery":
        """Restrict to rows start..end, both inclusive."""
        self.offset = start
        self.max_rows = max(end - start + 1, 0)
        return self

    def limit(self, count: int) -> "TableQuery":
        self.max_rows = count
        return self

    # --- EXECUTION ---
    def execute(self) -> QueryResult:
        return self.store.run_select(self)

    def single(self) -> Row:
        """
        Fetch exactly one row.

        Raises:
            RecordNotFound: No row matched.
            StoreError: More than one row matched.
        """
        self.max_rows = 2 if self.max_rows is None else min(self.max_rows, 2)
        rows = self.execute().data
        if not rows:
            raise RecordNotFound(f"No rows found in {self.table_name}")
        if len(rows) > 1:
            raise StoreError(f"Multiple rows found in {self.table_name}")
        return rows[0]

    def insert(self, row: Row) -> Row:
        return self.store.run_insert(self.table_name, row)

    def update(self, patch: Row) -> List[Row]:
        """Apply patch to every filtered row and return the updated rows."""
        if not self.filters:
            raise StoreError(f"Refusing to update {self.table_name} without a filter")
        return self.store.run_update(self, patch)

    def delete(self) -> int:
        """Delete every filtered row and return how many went."""
        if not self.filters:
            raise StoreError(f"Refusing to delete from {self.table_name} without a filter")
        return self.store.run_delete(self)


class RecordStore(ABC):
    """Interface every record store implements."""

    def table(self, name: str) -> TableQuery:
        return TableQuery(self, name)

    @abstractmethod
    def run_select(self, query: TableQuery) -> QueryResult:
        ...

    @abstractmethod
    def run_insert(self, table_name: str, row: Row) -> Row:
        ...

    @abstractmethod
    def run_update(self, query: TableQuery, patch: Row) -> List[Row]:
        ...

    @abstractmethod
    def run_delete(self, query: TableQuery) -> int:
        ...


def _jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, UUID):
        return str(value)
    return value


def _to_record(row: Any) -> Row:
    return {key: _jsonable(value) for key, value in dict(row).items()}


def _where(filters: List[Filter]) -> Tuple[sql.Composable, List[Any]]:
    if not filters:
        return sql.SQL(""), []
    clauses = [
        sql.SQL("{} {} %s").format(sql.Identifier(f.column), sql.SQL(f.operator))
        for f in filters
    ]
    return sql.SQL(" WHERE ") + sql.SQL(" AND ").join(clauses), [f.value for f in filters]


class PostgresRecordStore(RecordStore):
    """Record store backed by psycopg2 connections to the Supabase database."""

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url

    def _run(self, work: Callable[[Any], Any]) -> Any:
        """
        Run work(cursor) inside one connection and transaction.

        psycopg2 failures are re-raised as store errors so handlers only
        deal with one error family.
        """
        conn = None
        try:
            conn = get_db(self.database_url)
            with conn:
                with conn.cursor() as cur:
                    return work(cur)
        except psycopg2.errors.UniqueViolation as e:
            raise DuplicateRecord(_describe(e)) from e
        except psycopg2.Error as e:
            raise StoreError(_describe(e)) from e
        finally:
            if conn is not None:
                conn.close()

    def run_select(self, query: TableQuery) -> QueryResult:
        table = sql.Identifier(query.table_name)
        if query.columns:
            columns = sql.SQL(", ").join(sql.Identifier(c) for c in query.columns)
        else:
            columns = sql.SQL("*")
        where, where_params = _where(query.filters)

        statement = sql.SQL("SELECT {} FROM {}").format(columns, table) + where
        params = list(where_params)
        if query.ordering:
            statement += sql.SQL(" ORDER BY ") + sql.SQL(", ").join(
                sql.SQL("{} {}").format(sql.Identifier(column), sql.SQL("ASC" if ascending else "DESC"))
                for column, ascending in query.ordering
            )
        if query.max_rows is not None:
            statement += sql.SQL(" LIMIT %s")
            params.append(query.max_rows)
        if query.offset:
            statement += sql.SQL(" OFFSET %s")
            params.append(query.offset)

        count_statement = sql.SQL("SELECT count(*) AS count FROM {}").format(table) + where

        def work(cur) -> QueryResult:
            cur.execute(statement, params)
            rows = [_to_record(r) for r in cur.fetchall()]
            count = None
            if query.with_count:
                cur.execute(count_statement, where_params)
                count = cur.fetchone()["count"]
            return QueryResult(data=rows, count=count)

        return self._run(work)

    def run_insert(self, table_name: str, row: Row) -> Row:
        columns = list(row)
        statement = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
            sql.Identifier(table_name),
            sql.SQL(", ").join(sql.Identifier(c) for c in columns),
            sql.SQL(", ").join(sql.Placeholder() for _ in columns),
        )

        def work(cur) -> Row:
            cur.execute(statement, [row[c] for c in columns])
            return _to_record(cur.fetchone())

        return self._run(work)

    def run_update(self, query: TableQuery, patch: Row) -> List[Row]:
        columns = list(patch)
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = %s").format(sql.Identifier(c)) for c in columns
        )
        where, where_params = _where(query.filters)
        statement = (
            sql.SQL("UPDATE {} SET {}").format(sql.Identifier(query.table_name), assignments)
            + where
            + sql.SQL(" RETURNING *")
        )

        def work(cur) -> List[Row]:
            cur.execute(statement, [patch[c] for c in columns] + where_params)
            return [_to_record(r) for r in cur.fetchall()]

        return self._run(work)

    def run_delete(self, query: TableQuery) -> int:
        where, where_params = _where(query.filters)
        statement = sql.SQL("DELETE FROM {}").format(sql.Identifier(query.table_name)) + where

        def work(cur) -> int:
            cur.execute(statement, where_params)
            return cur.rowcount

        rowcount = self._run(work)
        logging.info(f"[Store] Deleted {rowcount} row(s) from {query.table_name}")
        return rowcount


def _describe(e: psycopg2.Error) -> str:
    return (getattr(e, "pgerror", None) or str(e)).strip()
