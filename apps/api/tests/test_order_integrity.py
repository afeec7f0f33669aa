import hashlib
from datetime import datetime, timezone

import pytest

from regdesk_api.services.orders import (
    attach_immutable_order_hash,
    compute_order_hash,
    patch_order_court_fields,
    rehash_order_after_admin_patch,
    stable_stringify,
    verify_order_hash,
)

SEALED_AT = datetime(2025, 3, 10, 14, 30, tzinfo=timezone.utc)


def _order() -> dict:
    return {
        "id": "ord_123",
        "created": 1741617000000,
        "amount": 125.5,
        "purchaser": {"name": "Ada Example", "email": "ada@example.org", "courtName": ""},
        "lines": [
            {"itemId": "gala", "qty": 2, "meta": {"attendeeName": "Ada"}},
            {"itemId": "pin", "qty": 1, "meta": {"attendeeCourtName": "St. Mary"}},
        ],
    }


def test_stable_stringify_ignores_key_order() -> None:
    assert stable_stringify({"a": 1, "b": 2}) == stable_stringify({"b": 2, "a": 1})
    assert stable_stringify({"z": [3, {"y": True, "x": None}]}) == '{"z":[3,{"x":null,"y":true}]}'


def test_stable_stringify_uses_json_literals() -> None:
    assert stable_stringify(2.0) == "2"
    assert stable_stringify(float("nan")) == "null"
    assert stable_stringify("café \"quoted\"") == '"café \\"quoted\\""'
    with pytest.raises(TypeError):
        stable_stringify({"when": SEALED_AT})


def test_compute_order_hash_ignores_only_the_hash_field() -> None:
    order = _order()
    expected = hashlib.sha256(stable_stringify(order).encode("utf-8")).hexdigest()

    assert compute_order_hash(order) == expected
    assert compute_order_hash({**order, "hash": "x"}) == expected

    stamped = {**order, "hashVersion": 1, "hashCreatedAt": "2025-03-10T14:30:00.000Z"}
    assert compute_order_hash({**stamped, "hash": "x"}) == compute_order_hash(stamped)
    assert compute_order_hash(stamped) != expected
    assert compute_order_hash({**stamped, "hashVersion": 2}) != compute_order_hash(stamped)


def test_attached_hash_verifies_and_input_is_not_mutated() -> None:
    order = _order()
    sealed = attach_immutable_order_hash(order, now=SEALED_AT)

    assert "hash" not in order
    assert sealed["hashVersion"] == 1
    assert sealed["hashCreatedAt"] == "2025-03-10T14:30:00.000Z"
    assert len(sealed["hash"]) == 64
    assert verify_order_hash(sealed).ok is True


def test_issuance_time_is_part_of_the_digest() -> None:
    first = attach_immutable_order_hash(_order(), now=SEALED_AT)
    later = attach_immutable_order_hash(_order(), now=datetime(2025, 3, 11, tzinfo=timezone.utc))

    assert first["hash"] != later["hash"]


@pytest.mark.parametrize(
    "mutate",
    [
        lambda order: order.update(amount=999),
        lambda order: order["purchaser"].update(email="mallory@example.org"),
        lambda order: order["lines"][0].update(qty=3),
        lambda order: order.update(hashCreatedAt="2030-01-01T00:00:00.000Z"),
        lambda order: order.update(hashVersion=2),
    ],
)
def test_any_mutation_breaks_verification(mutate) -> None:
    sealed = attach_immutable_order_hash(_order(), now=SEALED_AT)
    mutate(sealed)

    verification = verify_order_hash(sealed)

    assert verification.ok is False
    assert verification.expected != verification.actual


def test_verify_reports_structural_failures() -> None:
    assert verify_order_hash(["not", "an", "order"]).reason == "not-object"
    assert verify_order_hash(_order()).reason == "missing-hash"
    assert verify_order_hash({**_order(), "hash": "abc"}).as_dict() == {"ok": False, "reason": "missing-hash"}


def test_patch_court_fields_fills_blank_aliases_only() -> None:
    patched = patch_order_court_fields(_order(), court_name="Our Lady", court_no="1234")

    purchaser = patched["purchaser"]
    assert purchaser["courtName"] == "Our Lady"
    assert purchaser["court"] == "Our Lady"
    assert purchaser["courtNo"] == "1234"
    assert purchaser["court_number"] == "1234"

    first_meta = patched["lines"][0]["meta"]
    for key in ("attendeeCourt", "attendeeCourtName", "attendee_court", "attendee_court_name", "court", "courtName", "court_name"):
        assert first_meta[key] == "Our Lady"
    for key in (
        "attendeeCourtNumber",
        "attendeeCourtNo",
        "attendeeCourtNum",
        "attendee_court_number",
        "attendee_court_no",
        "attendee_court_num",
        "courtNumber",
        "courtNo",
        "court_no",
        "court_number",
    ):
        assert first_meta[key] == "1234"
    assert first_meta["attendeeName"] == "Ada"

    # Existing values survive without overwrite.
    assert patched["lines"][1]["meta"]["attendeeCourtName"] == "St. Mary"


def test_patch_court_fields_overwrite_and_blank_inputs() -> None:
    order = _order()

    overwritten = patch_order_court_fields(order, court_name="Our Lady", overwrite=True)
    assert overwritten["lines"][1]["meta"]["attendeeCourtName"] == "Our Lady"
    assert "courtNo" not in overwritten["purchaser"]

    untouched = patch_order_court_fields(order, court_name="   ", court_no="", overwrite=True)
    assert untouched["lines"][1]["meta"] == {"attendeeCourtName": "St. Mary"}
    assert order["lines"][0]["meta"] == {"attendeeName": "Ada"}

    assert patch_order_court_fields("nope", court_name="x") is None


def test_rehash_after_admin_patch_supersedes_previous_hash() -> None:
    sealed = attach_immutable_order_hash(_order(), now=SEALED_AT)
    patched = patch_order_court_fields(sealed, court_name="Our Lady")
    assert verify_order_hash(patched).ok is False

    patched_at = datetime(2025, 4, 1, 9, tzinfo=timezone.utc)
    resealed = rehash_order_after_admin_patch(
        patched,
        patched_by="registrar@example.org",
        patch_note="court_name_number",
        now=patched_at,
    )

    assert resealed["admin_patched"] is True
    assert resealed["admin_patched_at"] == "2025-04-01T09:00:00.000Z"
    assert resealed["admin_patched_by"] == "registrar@example.org"
    assert resealed["admin_patch_note"] == "court_name_number"
    assert resealed["hashCreatedAt"] == "2025-04-01T09:00:00.000Z"
    assert resealed["hash"] != sealed["hash"]
    assert verify_order_hash(resealed).ok is True
