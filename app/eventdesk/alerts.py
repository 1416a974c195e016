from __future__ import annotations

from flask import current_app, flash, g

from app.eventdesk.results import StoreRequestError, describe_error


def report_failure(action: str, exc: BaseException) -> None:
    """Log a failed user action and surface it as a blocking alert."""
    rid = getattr(g, "request_id", None)
    if isinstance(exc, StoreRequestError):
        current_app.logger.error("%s failed (request_id=%s): %s", action, rid, describe_error(exc))
        flash(f"{action} failed. Error: {describe_error(exc)}", "danger")
        return
    current_app.logger.info("%s rejected (request_id=%s): %s", action, rid, exc)
    flash(describe_error(exc), "danger")
