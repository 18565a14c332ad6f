"""Identity keys shared by sync matching and duplicate grouping."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

PRODUCT_ID_FIELDS = ("productId", "product_id")
PRODUCT_NAME_FIELDS = ("product", "product_name", "name")

UNRESOLVABLE = "unresolvable"

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, eq=False)
class IdentityKey:
    kind: str
    value: str

    @property
    def resolvable(self) -> bool:
        return self.kind != UNRESOLVABLE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IdentityKey):
            return NotImplemented
        if not (self.resolvable and other.resolvable):
            return False
        return self.kind == other.kind and self.value == other.value

    def __hash__(self) -> int:
        return hash((self.kind, self.value))

    def __str__(self) -> str:
        if not self.resolvable:
            return UNRESOLVABLE
        return f"{self.kind}:{self.value}"


def normalize_name(value: Any) -> str:
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip().casefold()


def _clean_product_id(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def _lookup(record: Any, names: tuple[str, ...]) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value is not None and str(value).strip():
            return value
    return None


def resolve_identity(record: Any) -> IdentityKey:
    """Return the identity key for a raw external record, canonical dict or catalog row.

    The product id wins when present. Otherwise the normalized product name is
    used. Records with neither get an unresolvable key that matches nothing.
    """
    product_id = _clean_product_id(_lookup(record, PRODUCT_ID_FIELDS))
    if product_id:
        return IdentityKey("id", product_id)
    name = normalize_name(_lookup(record, PRODUCT_NAME_FIELDS))
    if name:
        return IdentityKey("name", name)
    return IdentityKey(UNRESOLVABLE, "")


def name_key(record: Any) -> IdentityKey | None:
    """Name-based key used to adopt legacy rows stored before product ids existed."""
    name = normalize_name(_lookup(record, PRODUCT_NAME_FIELDS))
    if not name:
        return None
    return IdentityKey("name", name)
