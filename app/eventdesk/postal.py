from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from dataclasses import dataclass

from app.eventdesk.validation import to_half_width_digits

logger = logging.getLogger(__name__)


class PostalLookupError(RuntimeError):
    pass


class PostalCodeNotFound(PostalLookupError):
    pass


@dataclass(frozen=True)
class PostalAddress:
    prefecture: str
    city: str
    town: str


def normalize_postal_code(value: str | None) -> str:
    raw = to_half_width_digits(value or "")
    return "".join(ch for ch in raw if ch.isdigit())


@dataclass(frozen=True)
class ZipcloudClient:
    base_url: str = "https://zipcloud.ibsnet.co.jp/api/search"
    timeout_seconds: int = 10

    def request_json(self, postal_code: str) -> dict:
        url = self.base_url + "?" + urllib.parse.urlencode({"zipcode": postal_code})
        req = urllib.request.Request(url, method="GET")
        req.add_header("Accept", "application/json")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as e:
            raise PostalLookupError(f"HTTP {e.code} from postal lookup") from e
        except (urllib.error.URLError, OSError) as e:
            raise PostalLookupError(f"Postal lookup failed: {e}") from e
        try:
            data = json.loads(raw.decode("utf-8"))
        except Exception as e:
            raise PostalLookupError("Invalid JSON from postal lookup") from e
        return data if isinstance(data, dict) else {}

    def lookup(self, postal_code: str) -> PostalAddress:
        code = normalize_postal_code(postal_code)
        if len(code) != 7:
            raise PostalLookupError("Postal code must be 7 digits.")
        data = self.request_json(code)
        results = data.get("results") or []
        if data.get("status") != 200 or not isinstance(results, list) or not results:
            logger.info("Postal code %s not found (status=%s message=%s)", code, data.get("status"), data.get("message"))
            raise PostalCodeNotFound("Postal code not found.")
        first = results[0]
        return PostalAddress(
            prefecture=str(first.get("address1") or ""),
            city=str(first.get("address2") or ""),
            town=str(first.get("address3") or ""),
        )
