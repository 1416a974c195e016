from flask import Blueprint, abort, current_app, render_template, send_file

from app.eventdesk.storage import BUCKETS, LocalStorage, StorageError

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return render_template("public/index.html")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/files/<bucket>/<path:path>")
def public_file(bucket: str, path: str):
    """Public URLs for the local storage backend."""
    storage = current_app.extensions["storage"]
    if bucket not in BUCKETS or not isinstance(storage, LocalStorage):
        abort(404)
    try:
        if not storage.exists(bucket, path):
            abort(404)
        fobj = storage.open(bucket, path)
    except StorageError:
        abort(404)
    return send_file(fobj, download_name=path.rsplit("/", 1)[-1], max_age=3600)
