from typing import Any, NamedTuple

from backend.schemas import FieldDefinition, ProfileFields, coerce_cell, validate_profile_fields
from backend.services.identity import (
    EMAIL_LABELS,
    FIRST_NAME_LABELS,
    FULL_NAME_LABELS,
    LAST_NAME_LABELS,
    find_field,
)

# Profile keys used for identity values when the schema has no matching field.
STANDARD_KEYS = {"email": "email", "last_name": "lastName", "first_name": "firstName"}


class NormalizedRow(NamedTuple):
    identity_fields: dict[str, str]
    profile_fields: ProfileFields

    @property
    def email(self) -> str | None:
        return self.identity_fields.get("email")

    @property
    def last_name(self) -> str | None:
        return self.identity_fields.get("last_name")

    @property
    def first_name(self) -> str | None:
        return self.identity_fields.get("first_name")

    @property
    def full_name(self) -> str | None:
        return self.identity_fields.get("full_name")

    @property
    def insufficient(self) -> bool:
        """Neither an email nor a complete name pair could be extracted."""
        return not self.email and not (self.last_name and self.first_name)

    @property
    def identifier(self) -> str:
        if self.email:
            return self.email
        if self.last_name and self.first_name:
            return f"{self.last_name} {self.first_name}"
        return self.full_name or "N/A"


class _Headers:
    """Header lookup: exact match first, then case-insensitive."""

    def __init__(self, raw_row: dict[Any, Any]):
        self._row = {str(k): v for k, v in raw_row.items() if k is not None}
        self._folded: dict[str, str] = {}
        for header in self._row:
            self._folded.setdefault(header.strip().lower(), header)

    def get(self, label: str) -> Any:
        if label in self._row:
            return self._row[label]
        header = self._folded.get(label.strip().lower())
        return self._row[header] if header is not None else None

    def first_of(self, labels: tuple[str, ...]) -> str | None:
        for label in labels:
            value = coerce_cell(self.get(label))
            if value is not None:
                return str(value)
        return None

    def items(self):
        return self._row.items()


def _text(value: Any) -> str | None:
    value = coerce_cell(value)
    return str(value) if value is not None else None


def split_full_name(full_name: str) -> tuple[str, str] | None:
    """Last whitespace token is the last name, the rest the first name."""
    parts = full_name.split()
    if len(parts) < 2:
        return None
    return parts[-1], " ".join(parts[:-1])


def normalize_row(raw_row: dict[Any, Any], definitions: list[FieldDefinition]) -> NormalizedRow:
    headers = _Headers(raw_row)

    if definitions:
        mapped = {d.name: headers.get(d.label) for d in definitions}
    else:
        mapped = dict(headers.items())
    profile = validate_profile_fields(mapped, definitions)

    schema_fields = {
        "email": find_field(definitions, EMAIL_LABELS),
        "last_name": find_field(definitions, LAST_NAME_LABELS),
        "first_name": find_field(definitions, FIRST_NAME_LABELS),
    }
    header_labels = {
        "email": EMAIL_LABELS,
        "last_name": LAST_NAME_LABELS,
        "first_name": FIRST_NAME_LABELS,
    }

    identity: dict[str, str] = {}
    from_headers: set[str] = set()
    for slot, labels in header_labels.items():
        value = headers.first_of(labels)
        if value is not None:
            from_headers.add(slot)
        if value is None and schema_fields[slot] is not None:
            value = _text(profile.get(schema_fields[slot].name))
        if value is not None:
            identity[slot] = value

    full_name = headers.first_of(FULL_NAME_LABELS)
    if full_name:
        identity["full_name"] = full_name
        if not identity.get("last_name") or not identity.get("first_name"):
            split = split_full_name(full_name)
            if split:
                identity.setdefault("last_name", split[0])
                identity.setdefault("first_name", split[1])

    # Identity values land under the schema's field name, or a standard key.
    # Without a schema the raw headers are kept, so header values are already stored.
    for slot, target in STANDARD_KEYS.items():
        if slot not in identity:
            continue
        definition = schema_fields[slot]
        if not definitions and slot in from_headers:
            continue
        profile.setdefault(definition.name if definition else target, identity[slot])

    return NormalizedRow(identity_fields=identity, profile_fields=profile)
