from types import SimpleNamespace

import pytest

from backoffice.services.identity import (
    created_id,
    first_key,
    key_of,
    ref_name,
    same_ref,
    unwrap_collection,
    unwrap_entity,
)


@pytest.mark.parametrize("raw", ["A1", "65f0c2d9e4b0a1b2c3d4e5f6", 42])
def test_raw_and_populated_refs_share_a_key(raw) -> None:
    assert key_of(raw) == key_of({"_id": raw}) == key_of({"id": raw})


@pytest.mark.parametrize("ref", [None, "", {}, {"name": "No id"}, {"_id": None}])
def test_unresolvable_refs_degrade_to_empty(ref) -> None:
    assert key_of(ref) == ""


def test_nested_object_id_is_unwrapped() -> None:
    assert key_of({"_id": {"$oid": "abc123"}}) == "abc123"
    assert key_of({"agent": "A1", "_id": {"_id": "inner"}}) == "inner"


def test_attribute_style_refs() -> None:
    assert key_of(SimpleNamespace(id="X9", name="Franchise X")) == "X9"
    assert key_of(SimpleNamespace(_id="Y1")) == "Y1"


def test_underscore_id_takes_priority() -> None:
    assert key_of({"_id": "mongo", "id": "virtual"}) == "mongo"


def test_same_ref_compares_through_keys() -> None:
    assert same_ref({"_id": "A1", "name": "Asha"}, "A1")
    assert not same_ref("A1", "A2")


def test_empty_keys_do_not_match_unless_allowed() -> None:
    assert not same_ref(None, "")
    assert same_ref(None, "", allow_empty=True)


def test_first_key_skips_empty_links() -> None:
    assert first_key(None, {"id": ""}, "B7", "C1") == "B7"
    assert first_key(None, "") == ""


def test_ref_name() -> None:
    assert ref_name({"_id": "F1", "name": "North Zone"}) == "North Zone"
    assert ref_name("F1") == ""
    assert ref_name({"name": 12}) == ""


def test_unwrap_collection_shapes() -> None:
    assert unwrap_collection({"success": True, "data": [{"_id": 1}]}) == [{"_id": 1}]
    assert unwrap_collection([{"_id": 2}]) == [{"_id": 2}]
    assert unwrap_collection({"data": {"items": [{"_id": 3}]}}) == [{"_id": 3}]
    assert unwrap_collection({"message": "nope"}) == []
    assert unwrap_collection("unexpected") == []


def test_unwrap_entity() -> None:
    assert unwrap_entity({"data": {"_id": "a"}}) == {"_id": "a"}
    assert unwrap_entity({"_id": "b"}) == {"_id": "b"}


def test_created_id_fallbacks() -> None:
    assert created_id({"_id": "a1"}) == "a1"
    assert created_id({"id": "a2"}) == "a2"
    assert created_id({"success": True, "data": {"_id": "a3"}}) == "a3"
    assert created_id({"success": True}) == ""


@pytest.mark.parametrize(
    "ref",
    [
        {"_id": None, "id": "A1"},
        {"_id": "", "id": "A1"},
        {"_id": {"_id": None, "id": "A1"}},
        SimpleNamespace(_id=None, id="A1"),
    ],
)
def test_empty_identifier_falls_through_to_next_field(ref) -> None:
    assert key_of(ref) == "A1"


def test_booleans_use_plain_string_coercion() -> None:
    assert key_of(True) == "True"
    assert key_of(False) == "False"
