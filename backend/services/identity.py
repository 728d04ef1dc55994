"""
Identity keys for participants and the per-import lookup index.

A participant is identified inside an event by its normalized email or, when
no email is present, by its normalized (last name, first name) pair. Header
and label synonyms live in the ordered tables below; adding a synonym is a
data change.
"""
from typing import Any, Iterable, NamedTuple

from backend.schemas import FieldDefinition

EMAIL_LABELS = ("email", "e-mail", "mail", "courriel", "adresse email")
LAST_NAME_LABELS = ("nom", "lastname", "last name")
FIRST_NAME_LABELS = ("prenom", "prénom", "firstname", "first name")
FULL_NAME_LABELS = ("fullname", "full name", "nom complet")

# Profile keys consulted when the event declares no matching schema field.
EMAIL_KEYS = ("email",)
LAST_NAME_KEYS = ("lastName", "nom", "lastname")
FIRST_NAME_KEYS = ("firstName", "prenom", "firstname")


class IdentityKey(NamedTuple):
    email: str | None = None
    name_pair: tuple[str, str] | None = None

    @property
    def is_empty(self) -> bool:
        return self.email is None and self.name_pair is None

    @property
    def name_key(self) -> str | None:
        if self.name_pair is None:
            return None
        return make_name_key(*self.name_pair)


def normalize_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip().lower()
    return text or None


def make_name_key(last_name: str, first_name: str) -> str:
    return f"{last_name}_{first_name}"


def find_field(definitions: Iterable[FieldDefinition], labels: tuple[str, ...]) -> FieldDefinition | None:
    """First schema field whose label matches one of `labels`, case-insensitively."""
    for definition in definitions:
        if definition.label.strip().lower() in labels:
            return definition
    return None


def _first_present(fields: dict[str, Any], keys: tuple[str, ...]) -> Any:
    for key in keys:
        value = fields.get(key)
        if normalize_text(value):
            return value
    return None


def _first_labelled(fields: dict[str, Any], labels: tuple[str, ...]) -> Any:
    folded: dict[str, Any] = {}
    for key in fields:
        folded.setdefault(str(key).strip().lower(), key)
    for label in labels:
        key = folded.get(label)
        if key is not None and normalize_text(fields[key]):
            return fields[key]
    return None


def _field_value(
    fields: dict[str, Any],
    definitions: list[FieldDefinition],
    labels: tuple[str, ...],
    fallback_keys: tuple[str, ...],
) -> Any:
    definition = find_field(definitions, labels)
    if definition is not None:
        return fields.get(definition.name)
    value = _first_present(fields, fallback_keys)
    if value is None and not definitions:
        # Schemaless profiles keep the import's original headers.
        value = _first_labelled(fields, labels)
    return value


def build_identity_key(
    profile_fields: dict[str, Any] | None,
    definitions: list[FieldDefinition],
) -> IdentityKey:
    """Derive the lookup key of a profile; an empty key when nothing usable is present."""
    fields = profile_fields or {}

    email = normalize_text(_field_value(fields, definitions, EMAIL_LABELS, EMAIL_KEYS))
    last_name = normalize_text(_field_value(fields, definitions, LAST_NAME_LABELS, LAST_NAME_KEYS))
    first_name = normalize_text(_field_value(fields, definitions, FIRST_NAME_LABELS, FIRST_NAME_KEYS))

    name_pair = (last_name, first_name) if last_name and first_name else None
    return IdentityKey(email=email, name_pair=name_pair)


class IdentityIndex:
    """
    In-memory email and name-pair index over one event's participants.

    Scoped to a single reconciliation run: participants created during the
    run are added so later rows of the same file resolve to them.
    """

    def __init__(self) -> None:
        self._by_email: dict[str, int] = {}
        self._by_name: dict[str, int] = {}
        self._pairs: dict[tuple[str, str], int] = {}

    @classmethod
    def from_participants(
        cls,
        participants: Iterable[dict],
        definitions: list[FieldDefinition],
    ) -> "IdentityIndex":
        index = cls()
        for participant in participants:
            key = build_identity_key(participant.get("profile_fields"), definitions)
            index.add(key, int(participant["id"]))
        return index

    def add(self, key: IdentityKey, participant_id: int) -> None:
        # The oldest participant keeps a key when the store already holds duplicates.
        if key.email:
            self._by_email.setdefault(key.email, participant_id)
        if key.name_pair:
            self._by_name.setdefault(make_name_key(*key.name_pair), participant_id)
            self._pairs.setdefault(key.name_pair, participant_id)

    def resolve(self, key: IdentityKey) -> int | None:
        if key.email and key.email in self._by_email:
            return self._by_email[key.email]
        if key.name_pair:
            return self._by_name.get(make_name_key(*key.name_pair))
        return None

    def resolve_full_name(self, full_name: Any) -> int | None:
        """
        Match a combined name column against indexed name pairs.

        Every token of an indexed last and first name must appear in the full
        name, and the match must be unique.
        """
        text = normalize_text(full_name)
        if not text:
            return None
        tokens = set(text.split())
        matches = {
            participant_id
            for (last_name, first_name), participant_id in self._pairs.items()
            if set(last_name.split()) <= tokens and set(first_name.split()) <= tokens
        }
        if len(matches) == 1:
            return matches.pop()
        return None
