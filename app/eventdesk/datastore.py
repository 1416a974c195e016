"""
Table-oriented data client.

The consoles talk to the hosted store through a small query builder::

    client.table("events").select("*").eq("organizer_profile_id", pid).order("event_start_date").execute()

``execute()`` always returns ``Ok`` or ``Err`` (see ``app.eventdesk.results``).
``SqlDataClient`` runs the builder against a SQLAlchemy engine; the REST
backend lives in ``app.eventdesk.postgrest``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, MetaData, Numeric, String, Table, and_, or_
from sqlalchemy import delete as sa_delete
from sqlalchemy import insert as sa_insert
from sqlalchemy import select as sa_select
from sqlalchemy import update as sa_update
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.eventdesk.models import new_uuid
from app.eventdesk.results import Err, Ok, Result, StoreError
from app.eventdesk.utils import parse_date, parse_timestamp, to_jsonable

logger = logging.getLogger(__name__)

FILTER_OPS = frozenset({"eq", "neq", "gt", "gte", "lt", "lte", "like", "ilike", "is", "in"})


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any


@dataclass(frozen=True)
class AnyOf:
    """OR group built from ``or_("a.eq.1,b.ilike.%x%")``."""

    filters: tuple[Filter, ...]


@dataclass(frozen=True)
class Embed:
    alias: str
    table: str
    columns: tuple[str, ...]


@dataclass(frozen=True)
class Selection:
    columns: tuple[str, ...]
    embeds: tuple[Embed, ...]


class DataClient(Protocol):
    def table(self, name: str) -> "Query": ...

    def execute(self, query: "Query") -> Result: ...


def split_top_level(s: str, sep: str = ",") -> list[str]:
    """Split on ``sep`` while ignoring separators nested in parentheses."""
    parts: list[str] = []
    depth = 0
    buf: list[str] = []
    for ch in s:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == sep and depth == 0:
            parts.append("".join(buf).strip())
            buf = []
            continue
        buf.append(ch)
    tail = "".join(buf).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def parse_select(columns: str) -> Selection:
    cols: list[str] = []
    embeds: list[Embed] = []
    for part in split_top_level(columns or "*"):
        if "(" in part and part.endswith(")"):
            head, inner = part[:-1].split("(", 1)
            if ":" in head:
                alias, table = (x.strip() for x in head.split(":", 1))
            else:
                alias = table = head.strip()
            inner_cols = tuple(split_top_level(inner)) or ("*",)
            embeds.append(Embed(alias=alias, table=table, columns=inner_cols))
        else:
            cols.append(part)
    if not cols and not embeds:
        cols = ["*"]
    return Selection(columns=tuple(cols), embeds=tuple(embeds))


def _parse_filter_value(op: str, raw: str) -> Any:
    if op == "is":
        lowered = raw.lower()
        if lowered == "null":
            return None
        if lowered in ("true", "false"):
            return lowered == "true"
        return raw
    if op == "in":
        inner = raw.strip()
        if inner.startswith("(") and inner.endswith(")"):
            inner = inner[1:-1]
        return [v.strip().strip('"') for v in inner.split(",") if v.strip()]
    return raw


def parse_or(expression: str) -> AnyOf:
    """Parse ``"col.op.value,col.op.value"`` into an OR group."""
    filters: list[Filter] = []
    for term in split_top_level(expression):
        try:
            column, op, raw = term.split(".", 2)
        except ValueError:
            raise ValueError(f"Invalid or() term: {term!r}") from None
        if op not in FILTER_OPS:
            raise ValueError(f"Unsupported operator in or(): {op!r}")
        filters.append(Filter(column=column.strip(), op=op, value=_parse_filter_value(op, raw)))
    return AnyOf(filters=tuple(filters))


class Query:
    """Mutable builder; one instance per request to the store."""

    def __init__(self, client: DataClient, table: str):
        self._client = client
        self.table = table
        self.action = "select"
        self.columns = "*"
        self.payload: dict[str, Any] | list[dict[str, Any]] | None = None
        self.on_conflict: str | None = None
        self.filters: list[Filter | AnyOf] = []
        self.orders: list[tuple[str, bool]] = []
        self.row_limit: int | None = None
        self.cardinality: str | None = None  # None | "single" | "maybe_single"

    # verbs
    def select(self, columns: str = "*") -> "Query":
        # After insert/update/delete this only picks the returned columns.
        self.columns = columns
        return self

    def insert(self, payload: dict[str, Any] | list[dict[str, Any]]) -> "Query":
        self.action = "insert"
        self.payload = payload
        return self

    def update(self, payload: dict[str, Any]) -> "Query":
        self.action = "update"
        self.payload = payload
        return self

    def upsert(self, payload: dict[str, Any] | list[dict[str, Any]], *, on_conflict: str | None = None) -> "Query":
        self.action = "upsert"
        self.payload = payload
        self.on_conflict = on_conflict
        return self

    def delete(self) -> "Query":
        self.action = "delete"
        return self

    # filters
    def _add(self, column: str, op: str, value: Any) -> "Query":
        self.filters.append(Filter(column=column, op=op, value=value))
        return self

    def eq(self, column: str, value: Any) -> "Query":
        return self._add(column, "eq", value)

    def neq(self, column: str, value: Any) -> "Query":
        return self._add(column, "neq", value)

    def gt(self, column: str, value: Any) -> "Query":
        return self._add(column, "gt", value)

    def gte(self, column: str, value: Any) -> "Query":
        return self._add(column, "gte", value)

    def lt(self, column: str, value: Any) -> "Query":
        return self._add(column, "lt", value)

    def lte(self, column: str, value: Any) -> "Query":
        return self._add(column, "lte", value)

    def like(self, column: str, pattern: str) -> "Query":
        return self._add(column, "like", pattern)

    def ilike(self, column: str, pattern: str) -> "Query":
        return self._add(column, "ilike", pattern)

    def is_(self, column: str, value: bool | None) -> "Query":
        return self._add(column, "is", value)

    def in_(self, column: str, values: list[Any]) -> "Query":
        return self._add(column, "in", list(values))

    def or_(self, expression: str) -> "Query":
        self.filters.append(parse_or(expression))
        return self

    # modifiers
    def order(self, column: str, *, ascending: bool = True) -> "Query":
        self.orders.append((column, ascending))
        return self

    def limit(self, n: int) -> "Query":
        self.row_limit = int(n)
        return self

    def single(self) -> "Query":
        self.cardinality = "single"
        return self

    def maybe_single(self) -> "Query":
        self.cardinality = "maybe_single"
        return self

    def execute(self) -> Result:
        return self._client.execute(self)


def shape_rows(rows: list[dict[str, Any]], query: Query) -> Result:
    """Apply single()/maybe_single() to a row list."""
    if query.cardinality is None:
        return Ok(rows)
    if query.cardinality == "maybe_single" and not rows:
        return Ok(None)
    if len(rows) != 1:
        return Err(
            StoreError(
                message="JSON object requested, multiple (or no) rows returned",
                details=f"The result contains {len(rows)} rows",
                code="PGRST116",
            )
        )
    return Ok(rows[0])


def _coerce(column, value: Any) -> Any:
    if value is None:
        return None
    t = column.type
    if isinstance(t, DateTime):
        return parse_timestamp(value)
    if isinstance(t, Date):
        return parse_date(value)
    if isinstance(t, Boolean):
        if isinstance(value, str):
            return value.strip().lower() in ("true", "t", "1", "yes", "on")
        return bool(value)
    if isinstance(t, Integer):
        return int(value)
    if isinstance(t, (Float, Numeric)):
        return float(value)
    if isinstance(t, String) and not isinstance(value, str):
        return str(value)
    return value


class _StoreFailure(Exception):
    def __init__(self, error: StoreError):
        self.error = error
        super().__init__(error.message)


class SqlDataClient:
    """Data client backed by a SQLAlchemy engine and the declarative schema."""

    def __init__(self, engine: Engine, metadata: MetaData):
        self.engine = engine
        self.metadata = metadata

    def table(self, name: str) -> Query:
        return Query(self, name)

    def execute(self, query: Query) -> Result:
        try:
            table = self._table(query.table)
            selection = parse_select(query.columns)
            with self.engine.begin() as conn:
                handler = getattr(self, f"_do_{query.action}")
                rows = handler(conn, table, query)
                rows = self._project(conn, table, rows, selection)
        except _StoreFailure as e:
            return Err(e.error)
        except IntegrityError as e:
            logger.info("Constraint violation on %s.%s: %s", query.table, query.action, e.orig)
            return Err(
                StoreError(
                    message=f"{query.action} on {query.table} violates a constraint",
                    details=str(e.orig),
                    code="23505",
                )
            )
        except (ValueError, TypeError) as e:
            return Err(StoreError(message=f"invalid input: {e}", code="22P02"))
        except SQLAlchemyError as e:
            logger.exception("Store call failed (%s %s)", query.action, query.table)
            return Err(StoreError(message=e.__class__.__name__, details=str(e)))
        return shape_rows(rows, query)

    # ---------- schema helpers ----------
    def _table(self, name: str) -> Table:
        table = self.metadata.tables.get(name)
        if table is None:
            raise _StoreFailure(StoreError(message=f'relation "{name}" does not exist', code="42P01"))
        return table

    def _column(self, table: Table, name: str):
        if name not in table.c:
            raise _StoreFailure(
                StoreError(message=f"column {table.name}.{name} does not exist", code="42703")
            )
        return table.c[name]

    def _pk(self, table: Table):
        return list(table.primary_key.columns)[0]

    def _values(self, table: Table, payload: dict[str, Any]) -> dict[str, Any]:
        return {k: _coerce(self._column(table, k), v) for k, v in payload.items()}

    # ---------- where / order ----------
    def _clause(self, table: Table, f: Filter):
        col = self._column(table, f.column)
        if f.op == "is":
            return col.is_(None) if f.value is None else col.is_(bool(f.value))
        if f.op == "in":
            return col.in_([_coerce(col, v) for v in f.value])
        if f.op in ("like", "ilike"):
            pattern = str(f.value).replace("*", "%")
            return col.like(pattern) if f.op == "like" else col.ilike(pattern)
        v = _coerce(col, f.value)
        if f.op == "eq":
            return col == v
        if f.op == "neq":
            return col != v
        if f.op == "gt":
            return col > v
        if f.op == "gte":
            return col >= v
        if f.op == "lt":
            return col < v
        if f.op == "lte":
            return col <= v
        raise _StoreFailure(StoreError(message=f"unsupported operator {f.op}"))

    def _where(self, table: Table, query: Query):
        clauses = []
        for f in query.filters:
            if isinstance(f, AnyOf):
                clauses.append(or_(*[self._clause(table, sub) for sub in f.filters]))
            else:
                clauses.append(self._clause(table, f))
        return and_(*clauses) if clauses else None

    def _select_stmt(self, table: Table, query: Query):
        stmt = sa_select(table)
        where = self._where(table, query)
        if where is not None:
            stmt = stmt.where(where)
        for column, ascending in query.orders:
            col = self._column(table, column)
            stmt = stmt.order_by(col.asc() if ascending else col.desc())
        if query.row_limit is not None:
            stmt = stmt.limit(query.row_limit)
        return stmt

    def _rows_by_pk(self, conn: Connection, table: Table, ids: list[Any]) -> list[dict[str, Any]]:
        if not ids:
            return []
        pk = self._pk(table)
        return [dict(r._mapping) for r in conn.execute(sa_select(table).where(pk.in_(ids)))]

    def _require_filters(self, query: Query) -> None:
        if not query.filters:
            raise _StoreFailure(
                StoreError(message=f"{query.action} requires a filter", hint="Add eq() or another filter.")
            )

    # ---------- verbs ----------
    def _do_select(self, conn: Connection, table: Table, query: Query) -> list[dict[str, Any]]:
        return [dict(r._mapping) for r in conn.execute(self._select_stmt(table, query))]

    def _insert_one(self, conn: Connection, table: Table, payload: dict[str, Any]) -> Any:
        values = self._values(table, payload)
        pk = self._pk(table)
        if values.get(pk.name) is None and isinstance(pk.type, String):
            values[pk.name] = new_uuid()
        res = conn.execute(sa_insert(table).values(**values))
        if values.get(pk.name) is not None:
            return values[pk.name]
        return res.inserted_primary_key[0]

    def _do_insert(self, conn: Connection, table: Table, query: Query) -> list[dict[str, Any]]:
        payloads = query.payload if isinstance(query.payload, list) else [query.payload or {}]
        ids = [self._insert_one(conn, table, p) for p in payloads]
        return self._rows_by_pk(conn, table, ids)

    def _do_update(self, conn: Connection, table: Table, query: Query) -> list[dict[str, Any]]:
        self._require_filters(query)
        values = self._values(table, query.payload or {})
        pk = self._pk(table)
        ids = list(conn.execute(sa_select(pk).where(self._where(table, query))).scalars())
        if not ids:
            return []
        conn.execute(sa_update(table).where(pk.in_(ids)).values(**values))
        return self._rows_by_pk(conn, table, ids)

    def _do_upsert(self, conn: Connection, table: Table, query: Query) -> list[dict[str, Any]]:
        pk = self._pk(table)
        conflict = [c.strip() for c in (query.on_conflict or pk.name).split(",") if c.strip()]
        payloads = query.payload if isinstance(query.payload, list) else [query.payload or {}]
        ids: list[Any] = []
        for payload in payloads:
            missing = [c for c in conflict if c not in payload]
            if missing:
                raise _StoreFailure(StoreError(message=f"upsert payload missing conflict columns: {', '.join(missing)}"))
            cond = and_(*[self._column(table, c) == _coerce(self._column(table, c), payload[c]) for c in conflict])
            existing = list(conn.execute(sa_select(pk).where(cond)).scalars())
            if existing:
                values = self._values(table, {k: v for k, v in payload.items() if k not in conflict})
                if values:
                    conn.execute(sa_update(table).where(pk.in_(existing)).values(**values))
                ids.extend(existing)
            else:
                ids.append(self._insert_one(conn, table, payload))
        return self._rows_by_pk(conn, table, ids)

    def _do_delete(self, conn: Connection, table: Table, query: Query) -> list[dict[str, Any]]:
        self._require_filters(query)
        rows = self._do_select(conn, table, query)
        if rows:
            pk = self._pk(table)
            conn.execute(sa_delete(table).where(pk.in_([r[pk.name] for r in rows])))
        return rows

    # ---------- projection / embedding ----------
    def _pick(self, table: Table, row: dict[str, Any], columns: tuple[str, ...]) -> dict[str, Any]:
        if "*" in columns:
            names = [c.name for c in table.columns]
        else:
            names = [self._column(table, c).name for c in columns]
        return {n: to_jsonable(row.get(n)) for n in names}

    def _project(
        self, conn: Connection, table: Table, rows: list[dict[str, Any]], selection: Selection
    ) -> list[dict[str, Any]]:
        out = [self._pick(table, r, selection.columns) if selection.columns else {} for r in rows]
        for embed in selection.embeds:
            target = self._table(embed.table)
            values = self._embed(conn, table, target, rows, embed)
            for shaped, value in zip(out, values):
                shaped[embed.alias] = value
        return out

    def _embed(
        self, conn: Connection, source: Table, target: Table, rows: list[dict[str, Any]], embed: Embed
    ) -> list[Any]:
        # many-to-one: source holds the foreign key
        for fk in source.foreign_keys:
            if fk.column.table is target:
                local, remote = fk.parent.name, fk.column.name
                keys = {r[local] for r in rows if r.get(local) is not None}
                found: dict[Any, dict[str, Any]] = {}
                if keys:
                    stmt = sa_select(target).where(target.c[remote].in_(keys))
                    for r in conn.execute(stmt):
                        m = dict(r._mapping)
                        found[m[remote]] = self._pick(target, m, embed.columns)
                return [found.get(r.get(local)) for r in rows]
        # one-to-many: target points back at source
        for fk in target.foreign_keys:
            if fk.column.table is source:
                remote, local = fk.parent.name, fk.column.name
                keys = {r[local] for r in rows if r.get(local) is not None}
                grouped: dict[Any, list[dict[str, Any]]] = {k: [] for k in keys}
                if keys:
                    stmt = sa_select(target).where(target.c[remote].in_(keys))
                    for r in conn.execute(stmt):
                        m = dict(r._mapping)
                        grouped[m[remote]].append(self._pick(target, m, embed.columns))
                return [grouped.get(r.get(local), []) for r in rows]
        raise _StoreFailure(
            StoreError(
                message=f"Could not find a relationship between '{source.name}' and '{target.name}'",
                code="PGRST200",
            )
        )
