from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from app.eventdesk.audit import record_event
from app.eventdesk.datastore import DataClient
from app.eventdesk.modules.exhibitors.models import DOCUMENT_TYPES, document_column
from app.eventdesk.modules.organizers.models import GENDERS
from app.eventdesk.results import unwrap
from app.eventdesk.storage import (
    DEFAULT_MAX_UPLOAD_BYTES,
    EXHIBITOR_DOCUMENTS_BUCKET,
    Storage,
    file_extension,
    upload_public_file,
    validate_upload,
)
from app.eventdesk.utils import utcnow
from app.eventdesk.validation import (
    FieldErrors,
    clean_text,
    is_valid_age,
    is_valid_email,
    is_valid_phone,
    normalize_phone,
    parse_age,
)

logger = logging.getLogger(__name__)

GENRE_CATEGORIES = ("飲食", "物販", "体験・ワークショップ", "キッチンカー", "その他")


class ExhibitorError(RuntimeError):
    pass


@dataclass(frozen=True)
class DocumentUpload:
    filename: str
    data: bytes
    content_type: str | None


def find_exhibitor(client: DataClient, line_user_id: str) -> dict[str, Any] | None:
    return unwrap(
        client.table("exhibitors").select("*").eq("line_user_id", line_user_id).maybe_single().execute(),
        action="load exhibitor",
    )


def validate_exhibitor(fields: dict[str, Any]) -> FieldErrors:
    errors: FieldErrors = {}
    if not clean_text(fields.get("name")):
        errors["name"] = "Name is required."
    gender = clean_text(fields.get("gender"))
    if not gender:
        errors["gender"] = "Gender is required."
    elif gender not in GENDERS:
        errors["gender"] = "Please choose a valid gender."
    if not clean_text(fields.get("age")):
        errors["age"] = "Age is required."
    elif not is_valid_age(fields.get("age"), max_age=99):
        errors["age"] = "Age must be between 0 and 99."
    phone = clean_text(fields.get("phone_number"))
    if not phone:
        errors["phone_number"] = "Phone number is required."
    elif not is_valid_phone(phone):
        errors["phone_number"] = "Phone number must be 10 to 15 digits."
    email = clean_text(fields.get("email"))
    if not email:
        errors["email"] = "Email is required."
    elif not is_valid_email(email):
        errors["email"] = "Please enter a valid email address."
    return errors


def document_path(line_user_id: str, document_type: str, filename: str, *, now_ms: int | None = None) -> str:
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{line_user_id}/{document_type}_{ms}.{file_extension(filename)}"


def precheck_documents(uploads: dict[str, DocumentUpload], *, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> FieldErrors:
    """Size/type problems keyed by document field, checked before anything is uploaded."""
    errors: FieldErrors = {}
    known = {key for key, _ in DOCUMENT_TYPES}
    for doc_type, upload in uploads.items():
        if doc_type not in known:
            continue
        try:
            validate_upload(size=len(upload.data), content_type=upload.content_type, max_bytes=max_bytes)
        except ValueError as e:
            errors[doc_type] = str(e)
    return errors


def _upload_documents(
    storage: Storage, line_user_id: str, uploads: dict[str, DocumentUpload], *, max_bytes: int
) -> dict[str, str]:
    urls: dict[str, str] = {}
    for doc_type, _label in DOCUMENT_TYPES:
        upload = uploads.get(doc_type)
        if upload is None:
            continue
        urls[document_column(doc_type)] = upload_public_file(
            storage,
            EXHIBITOR_DOCUMENTS_BUCKET,
            document_path(line_user_id, doc_type, upload.filename),
            upload.data,
            content_type=upload.content_type,
            max_bytes=max_bytes,
        )
    return urls


def _person_payload(fields: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": clean_text(fields.get("name")),
        "gender": clean_text(fields.get("gender")),
        "age": parse_age(fields.get("age")),
        "phone_number": normalize_phone(fields.get("phone_number")),
        "email": clean_text(fields.get("email")),
        "genre_category": clean_text(fields.get("genre_category")) or None,
        "genre_free_text": clean_text(fields.get("genre_free_text")) or None,
    }


def register_exhibitor(
    client: DataClient,
    storage: Storage,
    line_user_id: str,
    fields: dict[str, Any],
    uploads: dict[str, DocumentUpload],
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> dict[str, Any]:
    if find_exhibitor(client, line_user_id):
        raise ExhibitorError("You are already registered.")
    urls = _upload_documents(storage, line_user_id, uploads, max_bytes=max_bytes)
    exhibitor = unwrap(
        client.table("exhibitors")
        .insert(dict(_person_payload(fields), line_user_id=line_user_id, **urls))
        .single()
        .execute(),
        action="register exhibitor",
    )
    record_event(
        client,
        actor_type="line",
        actor_id=line_user_id,
        action="exhibitor.register",
        entity_type="Exhibitor",
        entity_id=exhibitor["id"],
        metadata={"documents": sorted(urls)},
    )
    return exhibitor


def update_exhibitor(
    client: DataClient,
    storage: Storage,
    exhibitor: dict[str, Any],
    fields: dict[str, Any],
    uploads: dict[str, DocumentUpload],
    cleared: set[str],
    *,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> dict[str, Any]:
    """
    Save profile edits. A new upload replaces a document; a cleared one is
    set to null. Documents neither uploaded nor cleared keep their URL.
    """
    payload = _person_payload(fields)
    for doc_type, _label in DOCUMENT_TYPES:
        if doc_type in cleared and doc_type not in uploads:
            payload[document_column(doc_type)] = None
    payload.update(_upload_documents(storage, exhibitor["line_user_id"], uploads, max_bytes=max_bytes))
    payload["updated_at"] = utcnow()
    return unwrap(
        client.table("exhibitors").update(payload).eq("id", exhibitor["id"]).single().execute(),
        action="update exhibitor",
    )
