from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from app.eventdesk.datastore import AnyOf, Filter, Query, shape_rows
from app.eventdesk.results import Err, Result, StoreError

logger = logging.getLogger(__name__)

_METHODS = {"select": "GET", "insert": "POST", "upsert": "POST", "update": "PATCH", "delete": "DELETE"}


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {value.__class__.__name__} is not JSON serializable")


def _format_value(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _format_filter(f: Filter) -> str:
    if f.op == "in":
        items = []
        for v in f.value:
            s = _format_value(v)
            items.append(f'"{s}"' if "," in s or "(" in s or ")" in s else s)
        return f"in.({','.join(items)})"
    return f"{f.op}.{_format_value(f.value)}"


def _compact(columns: str) -> str:
    return "".join(columns.split())


@dataclass(frozen=True)
class RestDataClient:
    """
    Data client for the hosted store's REST endpoint (PostgREST dialect).

    ``base_url`` is the project URL; tables live under ``/rest/v1``.
    """

    base_url: str
    api_key: str
    timeout_seconds: int = 30

    def table(self, name: str) -> Query:
        return Query(self, name)

    def build_request(self, query: Query) -> urllib.request.Request:
        params: list[tuple[str, str]] = [("select", _compact(query.columns or "*"))]
        for f in query.filters:
            if isinstance(f, AnyOf):
                terms = ",".join(f"{sub.column}.{_format_filter(sub)}" for sub in f.filters)
                params.append(("or", f"({terms})"))
            else:
                params.append((f.column, _format_filter(f)))
        if query.orders:
            params.append(("order", ",".join(f"{c}.{'asc' if asc else 'desc'}" for c, asc in query.orders)))
        if query.row_limit is not None:
            params.append(("limit", str(query.row_limit)))
        if query.action == "upsert" and query.on_conflict:
            params.append(("on_conflict", _compact(query.on_conflict)))

        url = f"{self.base_url.rstrip('/')}/rest/v1/{urllib.parse.quote(query.table)}"
        url += "?" + urllib.parse.urlencode(params, safe="(),.*:")

        body = None
        if query.action in ("insert", "upsert", "update"):
            body = json.dumps(query.payload, default=_json_default, ensure_ascii=False).encode("utf-8")

        req = urllib.request.Request(url, data=body, method=_METHODS[query.action])
        req.add_header("apikey", self.api_key)
        req.add_header("Authorization", f"Bearer {self.api_key}")
        req.add_header("Accept", "application/json")
        if body is not None:
            req.add_header("Content-Type", "application/json")
        if query.action != "select":
            prefer = "return=representation"
            if query.action == "upsert":
                prefer += ",resolution=merge-duplicates"
            req.add_header("Prefer", prefer)
        return req

    def execute(self, query: Query) -> Result:
        if query.action in ("update", "delete") and not query.filters:
            return Err(StoreError(message=f"{query.action} requires a filter", hint="Add eq() or another filter."))
        req = self.build_request(query)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            try:
                payload = json.loads(e.read().decode("utf-8") or "null")
            except (ValueError, OSError):
                payload = None
            error = StoreError.from_payload(payload, fallback=f"HTTP {e.code} from store")
            logger.info("Store rejected %s %s: %s", query.action, query.table, error.message)
            return Err(error)
        except (urllib.error.URLError, OSError) as e:
            logger.warning("Store unreachable (%s %s): %s", query.action, query.table, e)
            return Err(StoreError(message=f"Network error: {e}"))

        try:
            data = json.loads(raw.decode("utf-8")) if raw else []
        except ValueError:
            return Err(StoreError(message=f"Invalid JSON from store ({query.table})"))
        rows = data if isinstance(data, list) else [data]
        return shape_rows(rows, query)
