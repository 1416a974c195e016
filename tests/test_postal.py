"""Tests for the postal code lookup and venue address mapping."""
import pytest

from app.eventdesk.modules.events.service import apply_postal_address, lookup_venue_address
from app.eventdesk.postal import (
    PostalAddress,
    PostalCodeNotFound,
    PostalLookupError,
    ZipcloudClient,
    normalize_postal_code,
)


class CannedZipcloud(ZipcloudClient):
    """Returns a fixed API body instead of calling the network."""

    def __init__(self, body):
        super().__init__()
        object.__setattr__(self, "body", body)
        object.__setattr__(self, "requested", [])

    def request_json(self, postal_code):
        self.requested.append(postal_code)
        return self.body


FOUND = {
    "status": 200,
    "message": None,
    "results": [{"address1": "静岡県", "address2": "静岡市葵区", "address3": "追手町", "zipcode": "4200853"}],
}


def test_normalize_postal_code():
    assert normalize_postal_code("420-0853") == "4200853"
    assert normalize_postal_code("４２０ー０８５３") == "4200853"
    assert normalize_postal_code(None) == ""


def test_lookup_maps_first_result():
    client = CannedZipcloud(FOUND)
    assert client.lookup("420-0853") == PostalAddress(prefecture="静岡県", city="静岡市葵区", town="追手町")
    assert client.requested == ["4200853"]


def test_lookup_rejects_wrong_length_without_calling_api():
    client = CannedZipcloud(FOUND)
    with pytest.raises(PostalLookupError):
        client.lookup("12345")
    assert client.requested == []


@pytest.mark.parametrize(
    "body",
    [
        {"status": 200, "message": None, "results": None},
        {"status": 200, "message": None, "results": []},
        {"status": 400, "message": "必須パラメータが指定されていません。", "results": None},
    ],
)
def test_not_found_keeps_venue_fields_unchanged(body):
    fields = {"venue_postal_code": "4300000", "venue_city": "typed city", "venue_town": "", "venue_address": "1-2-3"}
    before = dict(fields)
    with pytest.raises(PostalCodeNotFound):
        lookup_venue_address(CannedZipcloud(body), fields)
    assert fields == before


def test_apply_postal_address_maps_prefecture_city_town():
    fields = {"venue_postal_code": "4200853", "venue_name": "Hall"}
    updated = apply_postal_address(fields, PostalAddress("静岡県", "静岡市葵区", "追手町"))
    assert updated["venue_city"] == "静岡県"
    assert updated["venue_town"] == "静岡市葵区"
    assert updated["venue_address"] == "追手町"
    assert updated["venue_name"] == "Hall"
    assert "venue_city" not in fields
