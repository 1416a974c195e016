from __future__ import annotations

import json
import logging
from typing import Any

from flask import g, has_request_context, request

from app.eventdesk.datastore import DataClient
from app.eventdesk.results import Err

logger = logging.getLogger(__name__)


def record_event(
    client: DataClient,
    *,
    actor_type: str | None,
    actor_id: str | None,
    action: str,
    entity_type: str | None = None,
    entity_id: str | None = None,
    reason: str | None = None,
    metadata: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> dict | None:
    """
    Append-only audit event helper.

    Audit writes never fail the action being audited; a failed write is logged.
    """
    rid = request_id
    client_ip = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        client_ip = request.remote_addr
    res = (
        client.table("audit_events")
        .insert(
            {
                "request_id": rid,
                "actor_type": actor_type,
                "actor_id": actor_id,
                "action": action,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "reason": reason,
                "metadata_json": json.dumps(
                    dict(metadata, client_ip=client_ip) if metadata else {"client_ip": client_ip},
                    sort_keys=True,
                    ensure_ascii=False,
                    default=str,
                ),
            }
        )
        .single()
        .execute()
    )
    if isinstance(res, Err):
        logger.error("Audit write failed (action=%s entity=%s:%s): %s", action, entity_type, entity_id, res.error.message)
        return None
    return res.data
