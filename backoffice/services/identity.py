from __future__ import annotations

from collections.abc import Mapping
from typing import Any

# Identifier fields checked on populated references, in priority order.
_ID_FIELDS = ("_id", "id", "$oid")


def _identifier_of(ref: Any) -> tuple[bool, Any]:
    # A present but empty identifier falls through to the next field.
    if isinstance(ref, Mapping):
        values = [ref[field] for field in _ID_FIELDS if field in ref]
    else:
        values = [getattr(ref, field) for field in ("_id", "id") if hasattr(ref, field)]
        if not values:
            return False, None
    for value in values:
        if value is not None and value != "":
            return True, value
    return True, None


def key_of(ref: Any) -> str:
    """Normalize an entity reference to its string identity key.

    Accepts a raw identifier, a backend object-id value, a populated object
    (mapping or attribute-style) carrying ``_id``/``id``, or nothing at all.
    Never raises; anything unresolvable maps to ``""``.
    """
    seen = 0
    while True:
        if ref is None or ref == "":
            return ""
        if isinstance(ref, (str, bytes)):
            return ref.decode("utf-8", "replace") if isinstance(ref, bytes) else ref
        is_populated, inner = _identifier_of(ref)
        if not is_populated:
            try:
                return str(ref)
            except Exception:
                return ""
        seen += 1
        # Guard against self-referencing objects.
        if seen > 8 or inner is ref:
            return ""
        ref = inner


def same_ref(left: Any, right: Any, *, allow_empty: bool = False) -> bool:
    left_key = key_of(left)
    right_key = key_of(right)
    if not left_key and not allow_empty:
        return False
    return left_key == right_key


def first_key(*refs: Any) -> str:
    """Return the first non-empty key from a fallback chain of references."""
    for ref in refs:
        key = key_of(ref)
        if key:
            return key
    return ""


def ref_name(ref: Any) -> str:
    if isinstance(ref, Mapping):
        name = ref.get("name")
    else:
        name = getattr(ref, "name", None)
    if name is None or not isinstance(name, str):
        return ""
    return name


def field_of(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def unwrap_collection(response: Any) -> list[Any]:
    """Extract the list of records from a ``{data: [...]}`` envelope or a bare list."""
    if isinstance(response, list):
        return response
    if isinstance(response, Mapping):
        data = response.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, Mapping):
            # Paginated shapes nest the rows one level deeper.
            for nested in ("items", "docs", "data"):
                if isinstance(data.get(nested), list):
                    return data[nested]
    return []


def created_id(response: Any) -> str:
    """Identifier of a freshly created entity from a create response."""
    if not isinstance(response, Mapping):
        return key_of(response)
    direct = first_key(response.get("_id"), response.get("id"))
    if direct:
        return direct
    data = response.get("data")
    if isinstance(data, Mapping):
        return first_key(data.get("_id"), data.get("id"))
    return ""


def unwrap_entity(response: Any) -> Any:
    """Single record from a ``{data: {...}}`` envelope or a bare object."""
    if isinstance(response, Mapping) and isinstance(response.get("data"), Mapping):
        return response["data"]
    return response
