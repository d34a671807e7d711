from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from backoffice.services.identity import field_of, first_key, key_of, ref_name, same_ref

logger = logging.getLogger(__name__)


class OwnerKind(str, Enum):
    FRANCHISE = "Franchise"
    RELATIONSHIP_MANAGER = "RelationshipManager"

    @classmethod
    def _missing_(cls, value):  # type: ignore[override]
        if value is None:
            return None
        normalized = re.sub(r"[\s_\-]", "", str(value)).lower()
        for member in cls:
            if member.value.lower() == normalized:
                return member
        return None


def parse_owner_kind(value: Any) -> OwnerKind | None:
    if value is None or value == "":
        return None
    try:
        return OwnerKind(value)
    except ValueError:
        return None


class ActorRole(str, Enum):
    SUPER_ADMIN = "super_admin"
    REGIONAL_MANAGER = "regional_manager"
    RELATIONSHIP_MANAGER = "relationship_manager"
    FRANCHISE = "franchise"
    AGENT = "agent"
    ACCOUNTS_MANAGER = "accounts_manager"


class OwnerSource(str, Enum):
    FIXED = "fixed"
    EXISTING = "existing"
    ACTOR = "actor"
    UNSET = "unset"


OWNER_FIELD = "managedBy"

_REQUIRED_MESSAGES = {
    OwnerKind.FRANCHISE: "Franchise is required",
    OwnerKind.RELATIONSHIP_MANAGER: "Relationship Manager is required",
}

# Owner-bound actors may never move an agent to another owner.
_OWNER_BOUND_ROLES = {ActorRole.FRANCHISE.value, ActorRole.RELATIONSHIP_MANAGER.value}


@dataclass(frozen=True)
class Owner:
    kind: OwnerKind
    id: str = ""

    @property
    def is_set(self) -> bool:
        return bool(self.id)


@dataclass(slots=True)
class Actor:
    """The signed-in console user, as reported by the backend."""

    id: str
    role: str
    name: str = ""
    franchise: Any = None

    @property
    def franchise_id(self) -> str:
        return key_of(self.franchise)


@dataclass(frozen=True)
class OwnerResolution:
    owner: Owner
    locked: bool
    source: OwnerSource


def as_owner(value: Any) -> Owner:
    """Coerce a fixed-context value (Owner, mapping or dataclass-like) into an Owner."""
    if isinstance(value, Owner):
        return value
    kind = parse_owner_kind(field_of(value, "kind")) or OwnerKind.FRANCHISE
    return Owner(kind=kind, id=key_of(field_of(value, "id")))


def owner_kind_of(entity: Any) -> OwnerKind:
    raw_kind = field_of(entity, "managedByModel")
    if raw_kind:
        kind = parse_owner_kind(raw_kind)
        if kind is not None:
            return kind
        logger.warning("Unknown managedByModel %r, treating owner as Franchise", raw_kind)
    return OwnerKind.FRANCHISE


def owner_from_entity(entity: Any) -> Owner:
    """Derive the owner of an existing agent record.

    Records created before polymorphic ownership carry only a direct
    ``franchise``/``franchiseId`` reference; those resolve to a Franchise owner.
    """
    kind = owner_kind_of(entity)
    managed_by = field_of(entity, "managedBy")
    if kind is OwnerKind.FRANCHISE:
        owner_id = first_key(
            managed_by,
            field_of(entity, "franchise"),
            field_of(entity, "franchiseId"),
        )
    else:
        owner_id = key_of(managed_by)
    return Owner(kind=kind, id=owner_id)


def default_owner(
    actor: Actor | None,
    existing: Any = None,
    fixed: Any = None,
) -> OwnerResolution:
    if fixed is not None:
        return OwnerResolution(owner=as_owner(fixed), locked=True, source=OwnerSource.FIXED)

    role = actor.role if actor is not None else ""

    if existing is not None:
        return OwnerResolution(
            owner=owner_from_entity(existing),
            locked=role in _OWNER_BOUND_ROLES,
            source=OwnerSource.EXISTING,
        )

    if actor is not None and role == ActorRole.FRANCHISE.value:
        return OwnerResolution(
            owner=Owner(kind=OwnerKind.FRANCHISE, id=actor.franchise_id),
            locked=True,
            source=OwnerSource.ACTOR,
        )

    if actor is not None and role == ActorRole.RELATIONSHIP_MANAGER.value:
        return OwnerResolution(
            owner=Owner(kind=OwnerKind.RELATIONSHIP_MANAGER, id=key_of(actor.id)),
            locked=True,
            source=OwnerSource.ACTOR,
        )

    return OwnerResolution(
        owner=Owner(kind=OwnerKind.FRANCHISE),
        locked=False,
        source=OwnerSource.UNSET,
    )


def required_message(kind: OwnerKind) -> str:
    return _REQUIRED_MESSAGES[kind]


def validate_owner(owner: Owner) -> dict[str, str]:
    if owner.is_set:
        return {}
    return {OWNER_FIELD: required_message(owner.kind)}


def match_candidate(search_text: str, candidates: Iterable[Any]) -> str:
    """Resolve typed search text to a candidate id.

    Only an exact, case-insensitive name match against exactly one candidate
    binds; anything else stays unresolved.
    """
    needle = (search_text or "").strip().casefold()
    if not needle:
        return ""
    matches = [
        candidate
        for candidate in candidates
        if ref_name(candidate).strip().casefold() == needle and key_of(candidate)
    ]
    if len(matches) != 1:
        if len(matches) > 1:
            logger.info("Search text matched %d owners, leaving owner unresolved", len(matches))
        return ""
    return key_of(matches[0])


@dataclass
class OwnerSelection:
    """Mutable owner choice held by an open agent form."""

    kind: OwnerKind = OwnerKind.FRANCHISE
    owner_id: str = ""
    search_text: str = ""
    locked: bool = False

    @classmethod
    def from_resolution(cls, resolution: OwnerResolution) -> OwnerSelection:
        return cls(
            kind=resolution.owner.kind,
            owner_id=resolution.owner.id,
            locked=resolution.locked,
        )

    @property
    def owner(self) -> Owner:
        return Owner(kind=self.kind, id=self.owner_id)

    def lock(self) -> None:
        self.locked = True

    def select_kind(self, kind: OwnerKind | str) -> None:
        if self.locked:
            return
        new_kind = parse_owner_kind(kind)
        if new_kind is None:
            raise ValueError(f"Unknown owner kind: {kind}")
        if new_kind is not self.kind:
            self.owner_id = ""
            self.search_text = ""
        self.kind = new_kind

    def select(self, candidate: Any) -> None:
        if self.locked:
            return
        self.owner_id = key_of(candidate)
        self.search_text = ref_name(candidate)

    def type_search(self, text: str) -> None:
        if self.locked:
            return
        self.search_text = text
        # Typing after a pick invalidates it until a new pick or late binding.
        self.owner_id = ""

    def resolve_for_submit(self, candidates: Iterable[Any] = ()) -> tuple[Owner, dict[str, str]]:
        if not self.owner_id and self.search_text:
            self.owner_id = match_candidate(self.search_text, candidates)
        owner = self.owner
        return owner, validate_owner(owner)


def owner_payload(owner: Owner) -> dict[str, str]:
    return {OWNER_FIELD: owner.id, "managedByModel": owner.kind.value}


def _digits_and_letters(name: str) -> str:
    letters = "".join(ch for ch in name if ch.isalpha())[:2].lower()
    digits = re.search(r"\d+", name)
    return letters + (digits.group(0) if digits else "")


def owner_display_name(agent: Any, franchise_fallback: Any = None) -> str:
    managed_by = field_of(agent, "managedBy")
    name = ref_name(managed_by)
    if name:
        return name
    if owner_kind_of(agent) is OwnerKind.FRANCHISE:
        legacy = ref_name(field_of(agent, "franchise")) or ref_name(franchise_fallback)
        if legacy:
            return legacy
    return "N/A"


def owner_abbreviation(agent: Any, franchise_fallback: Any = None) -> str:
    name = owner_display_name(agent, franchise_fallback)
    if name == "N/A":
        return name
    if owner_kind_of(agent) is OwnerKind.RELATIONSHIP_MANAGER:
        return _digits_and_letters(name) or name[:2].lower()
    return name[:2].upper()


def is_managed_by(agent: Any, owner: Owner) -> bool:
    if not owner.is_set:
        return False
    derived = owner_from_entity(agent)
    return derived.kind is owner.kind and same_ref(derived.id, owner.id)


def managed_agents(owner: Owner, agents: Iterable[Any]) -> list[Any]:
    """Top-level agents managed by *owner*; sub-agents are excluded."""
    return [
        agent
        for agent in agents
        if not field_of(agent, "parentAgent") and is_managed_by(agent, owner)
    ]
