import pytest

from conftest import make_agent
from backoffice.services.ownership import (
    Actor,
    Owner,
    OwnerKind,
    OwnerSelection,
    OwnerSource,
    default_owner,
    managed_agents,
    match_candidate,
    owner_abbreviation,
    owner_display_name,
    owner_from_entity,
    owner_payload,
    parse_owner_kind,
    validate_owner,
)


def _actor(**overrides) -> Actor:
    defaults = dict(id="admin-1", role="super_admin", name="Admin")
    defaults.update(overrides)
    return Actor(**defaults)


def test_franchise_user_defaults_to_own_franchise() -> None:
    actor = _actor(id="u-7", role="franchise", franchise={"_id": "F1", "name": "North Zone"})
    resolution = default_owner(actor)
    assert resolution.owner == Owner(kind=OwnerKind.FRANCHISE, id="F1")
    assert resolution.locked is True
    assert resolution.source is OwnerSource.ACTOR


def test_relationship_manager_defaults_to_self() -> None:
    resolution = default_owner(_actor(id="rm-1", role="relationship_manager"))
    assert resolution.owner == Owner(kind=OwnerKind.RELATIONSHIP_MANAGER, id="rm-1")
    assert resolution.locked is True


@pytest.mark.parametrize("role", ["super_admin", "regional_manager", "accounts_manager"])
def test_other_roles_must_pick(role) -> None:
    resolution = default_owner(_actor(role=role))
    assert resolution.owner == Owner(kind=OwnerKind.FRANCHISE, id="")
    assert resolution.locked is False
    assert resolution.source is OwnerSource.UNSET


def test_fixed_context_wins_over_role() -> None:
    resolution = default_owner(
        _actor(id="rm-1", role="relationship_manager"),
        fixed={"kind": "Franchise", "id": "F9"},
    )
    assert resolution.owner == Owner(kind=OwnerKind.FRANCHISE, id="F9")
    assert resolution.locked is True
    assert resolution.source is OwnerSource.FIXED


def test_existing_entity_wins_over_role() -> None:
    existing = make_agent(managedBy={"_id": "RM2", "name": "rm2"}, managedByModel="RelationshipManager")
    actor = _actor(role="franchise", franchise="F1")
    resolution = default_owner(actor, existing=existing)
    assert resolution.owner == Owner(kind=OwnerKind.RELATIONSHIP_MANAGER, id="RM2")
    assert resolution.source is OwnerSource.EXISTING
    assert resolution.locked is True


def test_existing_entity_is_editable_for_admins() -> None:
    resolution = default_owner(_actor(), existing=make_agent())
    assert resolution.owner == Owner(kind=OwnerKind.FRANCHISE, id="F1")
    assert resolution.locked is False


def test_legacy_franchise_field_infers_franchise_owner() -> None:
    legacy = {"_id": "A5", "franchise": {"_id": "F3", "name": "Old"}}
    assert owner_from_entity(legacy) == Owner(kind=OwnerKind.FRANCHISE, id="F3")
    assert owner_from_entity({"_id": "A6", "franchiseId": "F4"}) == Owner(
        kind=OwnerKind.FRANCHISE, id="F4"
    )


def test_unknown_discriminator_falls_back_to_franchise() -> None:
    owner = owner_from_entity({"managedBy": "X1", "managedByModel": "Bank"})
    assert owner == Owner(kind=OwnerKind.FRANCHISE, id="X1")


def test_parse_owner_kind_normalizes_spelling() -> None:
    assert parse_owner_kind("relationship_manager") is OwnerKind.RELATIONSHIP_MANAGER
    assert parse_owner_kind("Relationship Manager") is OwnerKind.RELATIONSHIP_MANAGER
    assert parse_owner_kind("franchise") is OwnerKind.FRANCHISE
    assert parse_owner_kind("bank") is None
    assert parse_owner_kind(None) is None


def test_switching_kind_clears_selected_id() -> None:
    selection = OwnerSelection()
    selection.select({"_id": "F1", "name": "North Zone"})
    assert selection.owner_id == "F1"

    selection.select_kind(OwnerKind.RELATIONSHIP_MANAGER)

    assert selection.owner_id == ""
    assert validate_owner(selection.owner) == {"managedBy": "Relationship Manager is required"}


def test_reselecting_same_kind_keeps_id() -> None:
    selection = OwnerSelection(owner_id="F1")
    selection.select_kind("Franchise")
    assert selection.owner_id == "F1"


def test_locked_selection_ignores_changes() -> None:
    selection = OwnerSelection(kind=OwnerKind.RELATIONSHIP_MANAGER, owner_id="rm-1", locked=True)
    selection.select_kind(OwnerKind.FRANCHISE)
    selection.type_search("anything")
    assert selection.owner == Owner(kind=OwnerKind.RELATIONSHIP_MANAGER, id="rm-1")


def test_lock_freezes_a_picked_owner() -> None:
    selection = OwnerSelection()
    selection.select({"_id": "F4", "name": "East"})
    selection.lock()
    selection.select("F9")
    assert selection.owner == Owner(kind=OwnerKind.FRANCHISE, id="F4")
    assert selection.search_text == "East"


def test_select_kind_rejects_unknown_kind() -> None:
    with pytest.raises(ValueError):
        OwnerSelection().select_kind("Bank")


def test_typed_text_binds_single_exact_match_at_submit() -> None:
    candidates = [{"_id": "F1", "name": "North Zone"}, {"_id": "F2", "name": "South Zone"}]
    selection = OwnerSelection()
    selection.type_search("  north zone ")

    owner, errors = selection.resolve_for_submit(candidates)

    assert owner == Owner(kind=OwnerKind.FRANCHISE, id="F1")
    assert errors == {}


def test_duplicate_names_stay_unresolved() -> None:
    candidates = [{"_id": "F1", "name": "Central"}, {"_id": "F2", "name": "central"}]
    selection = OwnerSelection()
    selection.type_search("Central")

    owner, errors = selection.resolve_for_submit(candidates)

    assert owner.id == ""
    assert errors == {"managedBy": "Franchise is required"}


def test_partial_text_does_not_bind() -> None:
    assert match_candidate("Nor", [{"_id": "F1", "name": "North Zone"}]) == ""


def test_owner_payload_fields() -> None:
    owner = Owner(kind=OwnerKind.RELATIONSHIP_MANAGER, id="rm-1")
    assert owner_payload(owner) == {"managedBy": "rm-1", "managedByModel": "RelationshipManager"}


def test_owner_display_and_abbreviation() -> None:
    franchise_agent = make_agent(managedBy={"_id": "F1", "name": "mumbai central"})
    rm_agent = make_agent(
        managedBy={"_id": "R1", "name": "Rahul 204"}, managedByModel="RelationshipManager"
    )
    orphan = {"_id": "A9", "managedByModel": "RelationshipManager", "managedBy": "R2"}

    assert owner_display_name(franchise_agent) == "mumbai central"
    assert owner_abbreviation(franchise_agent) == "MU"
    assert owner_abbreviation(rm_agent) == "ra204"
    assert owner_display_name(orphan) == "N/A"
    assert owner_abbreviation(orphan) == "N/A"


def test_display_name_falls_back_to_legacy_franchise() -> None:
    legacy = {"_id": "A3", "franchise": {"_id": "F3", "name": "Pune West"}}
    assert owner_display_name(legacy) == "Pune West"


def test_managed_agents_skip_sub_agents_and_honor_legacy_links() -> None:
    agents = [
        make_agent(_id="A1"),
        make_agent(_id="A2", parentAgent="A1"),
        {"_id": "A3", "franchise": "F1"},
        make_agent(_id="A4", managedBy="F2"),
        make_agent(_id="A5", managedBy="F1", managedByModel="RelationshipManager"),
    ]
    owned = managed_agents(Owner(kind=OwnerKind.FRANCHISE, id="F1"), agents)
    assert [agent["_id"] for agent in owned] == ["A1", "A3"]
    assert managed_agents(Owner(kind=OwnerKind.FRANCHISE, id=""), agents) == []
