"""
Result types returned by the data client.

Every call resolves to either ``Ok`` or ``Err``. Both carry ``data`` and
``error`` attributes so call sites can read them uniformly, but branching
should be done on the variant type.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class StoreError:
    message: str
    details: str | None = None
    hint: str | None = None
    code: str | None = None

    @classmethod
    def from_payload(cls, payload: Any, *, fallback: str = "Unknown store error") -> "StoreError":
        if isinstance(payload, dict):
            return cls(
                message=str(payload.get("message") or payload.get("error") or ""),
                details=_str_or_none(payload.get("details")),
                hint=_str_or_none(payload.get("hint")),
                code=_str_or_none(payload.get("code")),
            )
        if payload:
            return cls(message=str(payload))
        return cls(message=fallback)


@dataclass(frozen=True)
class Ok:
    data: Any
    error: None = None


@dataclass(frozen=True)
class Err:
    error: StoreError
    data: None = None


Result = Union[Ok, Err]


class StoreRequestError(RuntimeError):
    """Raised by services when a store call they depend on failed."""

    def __init__(self, error: StoreError, *, action: str | None = None):
        self.error = error
        self.action = action
        super().__init__(describe_error(error))


def _str_or_none(v: Any) -> str | None:
    if v is None or v == "":
        return None
    return str(v)


def unwrap(result: Result, *, action: str | None = None) -> Any:
    if isinstance(result, Err):
        raise StoreRequestError(result.error, action=action)
    return result.data


def describe_error(error: Any) -> str:
    """
    Best-effort human readable message.

    Order: message, details, hint, then a JSON dump of whatever is left.
    """
    if isinstance(error, StoreRequestError):
        error = error.error
    if isinstance(error, StoreError):
        for part in (error.message, error.details, error.hint):
            if part:
                return str(part)
        return json.dumps({"code": error.code}, ensure_ascii=False)
    if isinstance(error, dict):
        for key in ("message", "details", "hint"):
            if error.get(key):
                return str(error[key])
        return json.dumps(error, ensure_ascii=False, default=str)
    if isinstance(error, BaseException):
        return str(error) or error.__class__.__name__
    if error is None:
        return "Unknown error"
    return str(error)
