"""Pure conversions between spreadsheet records and canonical catalog fields.

The spreadsheet has been edited by hand for years, so the same field shows up
under several names (``ssoEnabled`` / ``sso_enabled``, ``spend`` / ``annualCost``
/ ``value`` ...). ``FIELD_SPECS`` lists every canonical field with the source
names it accepts, in precedence order, and the parser applied to it.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping

from toolkit.services.errors import ValidationError
from toolkit.services.identity import resolve_identity


@dataclass(frozen=True)
class FieldSpec:
    name: str
    aliases: tuple[str, ...]
    kind: str = "text"
    write_as: str | None = None

    @property
    def external_name(self) -> str:
        return self.write_as or self.aliases[0]


FIELD_SPECS: tuple[FieldSpec, ...] = (
    FieldSpec("product_id", ("productId", "product_id")),
    FieldSpec("product", ("product", "product_name", "name")),
    FieldSpec("external_row_id", ("id",)),
    FieldSpec("description", ("description",)),
    FieldSpec("category", ("category",)),
    FieldSpec("subject", ("subject",)),
    FieldSpec("department", ("department",)),
    FieldSpec("division", ("division",)),
    FieldSpec("audience", ("audience",), "list"),
    FieldSpec("website", ("website",), "url"),
    FieldSpec("tutorial_link", ("tutorialLink", "tutorial_link"), "url"),
    FieldSpec("logo_url", ("logoUrl", "logo_url"), "url"),
    FieldSpec("sso_enabled", ("ssoEnabled", "sso_enabled"), "boolean"),
    FieldSpec("mobile_app", ("mobileApp", "mobile_app"), "boolean"),
    FieldSpec("grade_levels", ("gradeLevels", "grade_levels")),
    FieldSpec("is_new", ("isNew", "is_new"), "boolean"),
    FieldSpec("vendor", ("vendor",)),
    FieldSpec("license_type", ("licenseType", "license_type")),
    FieldSpec("renewal_date", ("renewalDate", "renewal_date"), "date"),
    FieldSpec("annual_cost", ("spend", "annualCost", "annual_cost", "value"), "number", write_as="annualCost"),
    FieldSpec("licenses", ("licenses", "licence_count", "licenseCount"), "integer"),
    FieldSpec("utilization", ("utilization",), "integer"),
    FieldSpec("status", ("status",)),
    FieldSpec("enterprise", ("enterprise",), "boolean"),
    FieldSpec("budget", ("budget",)),
    FieldSpec("support_email", ("supportEmail", "support_email")),
    FieldSpec("date_added", ("dateAdded", "date_added"), "date"),
    FieldSpec("is_whole_school", ("isWholeSchool", "is_whole_school"), "boolean"),
)

FIELD_ALIASES: dict[str, tuple[str, ...]] = {spec.name: spec.aliases for spec in FIELD_SPECS}
CANONICAL_FIELDS: tuple[str, ...] = tuple(spec.name for spec in FIELD_SPECS)

DIVISION_KEYS = ("wholeSchool", "elementary", "middleSchool", "highSchool")

_CURRENCY_CHARS = re.compile(r"[,\s$€£¥]")
_ISO_DATE_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")
_DATE_FORMATS = ("%Y/%m/%d", "%m/%d/%Y", "%d %b %Y", "%d %B %Y", "%b %d, %Y", "%B %d, %Y")
_TRUE_STRINGS = frozenset({"true", "yes"})


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def resolve_alias(raw: Mapping[str, Any], field: str) -> Any:
    """First non-blank value among the accepted source names for ``field``."""
    for alias in FIELD_ALIASES[field]:
        value = raw.get(alias)
        if not _is_blank(value):
            return value
    return None


def parse_boolean(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return False


def parse_number(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
        return number if math.isfinite(number) else None
    text = str(value).strip()
    if not text:
        return None
    if text.lower() == "free":
        return 0.0
    try:
        number = float(_CURRENCY_CHARS.sub("", text))
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def parse_integer(value: Any) -> int | None:
    number = parse_number(value)
    if number is None:
        return None
    return int(round(number))


def parse_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        items: Iterable[Any] = value
    else:
        items = str(value).split(",")
    return [str(item).strip() for item in items if item is not None and str(item).strip()]


def parse_date(value: Any) -> date | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    if _ISO_DATE_PREFIX.match(text):
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    return None


def _parse_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    text = str(value).strip()
    return text or None


def _parse_url(value: Any) -> str | None:
    text = _parse_text(value)
    if text == "#":
        return None
    return text


_PARSERS = {
    "boolean": parse_boolean,
    "text": _parse_text,
    "url": _parse_url,
    "list": parse_list,
    "number": parse_number,
    "integer": parse_integer,
    "date": parse_date,
}


def to_canonical(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Map one external record to canonical field values.

    Fields the record leaves out or blank come back as ``None`` so callers
    can tell an absent value from an explicit ``False`` or empty list.
    """
    if not isinstance(raw, Mapping):
        raise ValidationError("External record must be an object.")
    product = _parse_text(resolve_alias(raw, "product"))
    if not product:
        raise ValidationError("External record is missing a product name.")

    canonical: dict[str, Any] = {}
    for spec in FIELD_SPECS:
        value = resolve_alias(raw, spec.name)
        if value is None:
            canonical[spec.name] = None
            continue
        parsed = _PARSERS[spec.kind](value)
        if spec.kind == "list" and not parsed:
            parsed = None
        canonical[spec.name] = parsed
    canonical["product"] = product
    return canonical


def _external_value(spec: FieldSpec, value: Any) -> Any:
    if spec.kind == "list":
        return ", ".join(value) if value else None
    if spec.kind == "date":
        return value.isoformat() if isinstance(value, (date, datetime)) else value
    if spec.kind in ("number", "integer"):
        if isinstance(value, Decimal):
            value = float(value)
        if isinstance(value, float) and value.is_integer():
            return int(value)
    return value


def _key_for(spec: FieldSpec, base: Mapping[str, Any]) -> str:
    for alias in spec.aliases:
        if alias in base:
            return alias
    return spec.external_name


def to_external(entry: Any, base: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Render a catalog row (or canonical dict) in the spreadsheet's shape.

    Values are written under whichever source name ``base`` already uses for
    that field, and keys in ``base`` that the catalog does not model are kept.
    """
    base = dict(base or {})
    payload = dict(base)
    for spec in FIELD_SPECS:
        if isinstance(entry, Mapping):
            value = entry.get(spec.name)
        else:
            value = getattr(entry, spec.name, None)
        value = _external_value(spec, value)
        if value is None:
            continue
        payload[_key_for(spec, base)] = value
    return payload


def extract_records(payload: Any) -> list[Any]:
    """Flatten the shapes the spreadsheet endpoint returns into one record list.

    Accepts a plain list, ``{"apps": [...]}``, or the division-keyed layout.
    A product listed under several divisions is kept once, first listing wins.
    """
    if isinstance(payload, list):
        candidates = list(payload)
    elif isinstance(payload, Mapping) and isinstance(payload.get("apps"), list):
        candidates = list(payload["apps"])
    elif isinstance(payload, Mapping):
        candidates = []
        for key in DIVISION_KEYS:
            section = payload.get(key)
            if isinstance(section, Mapping) and isinstance(section.get("apps"), list):
                candidates.extend(section["apps"])
            elif isinstance(section, list):
                candidates.extend(section)
    else:
        return []

    records: list[Any] = []
    seen = set()
    for candidate in candidates:
        if not isinstance(candidate, Mapping):
            records.append(candidate)
            continue
        key = resolve_identity(candidate)
        if key.resolvable:
            if key in seen:
                continue
            seen.add(key)
        records.append(dict(candidate))
    return records
