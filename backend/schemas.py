import math
from datetime import date, datetime, time
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationError, field_validator

# Scalar values allowed in a participant profile.
ProfileValue = Union[str, int, float, bool]
ProfileFields = dict[str, ProfileValue]


class FieldDefinition(BaseModel):
    """One entry of an event's participant field schema."""

    name: str
    label: str
    type: str = "text"
    required: bool = False

    model_config = ConfigDict(extra="ignore")

    @field_validator("name", "label")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


_FIELD_LIST = TypeAdapter(list[FieldDefinition])


def parse_field_definitions(raw: Any) -> list[FieldDefinition]:
    """
    Validate a stored field-definition list.

    Entries that fail validation are dropped rather than failing the caller;
    an event with a broken schema entry still imports on its valid fields.
    """
    if not raw:
        return []
    try:
        return _FIELD_LIST.validate_python(raw)
    except ValidationError:
        fields = []
        for item in raw if isinstance(raw, list) else []:
            try:
                fields.append(FieldDefinition.model_validate(item))
            except ValidationError:
                continue
        return fields


def coerce_cell(value: Any) -> ProfileValue | None:
    """Turn a spreadsheet cell into a profile scalar; blank cells become None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return int(value) if value.is_integer() else value
    if isinstance(value, datetime):
        if value.time() == time(0, 0):
            return value.date().isoformat()
        return value.isoformat(timespec="seconds")
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text or None


def _coerce_number(value: ProfileValue) -> ProfileValue:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value
    try:
        number = float(str(value).replace(",", "."))
    except ValueError:
        return value
    return int(number) if number.is_integer() else number


def validate_profile_fields(
    fields: dict[str, Any],
    definitions: list[FieldDefinition],
) -> ProfileFields:
    """
    Coerce a profile map into scalars, dropping blank values.

    `number` fields declared in the schema are converted when the value
    parses as a number.
    """
    types = {d.name: d.type.lower() for d in definitions}
    clean: ProfileFields = {}
    for key, raw_value in fields.items():
        value = coerce_cell(raw_value)
        if value is None:
            continue
        if types.get(key) == "number":
            value = _coerce_number(value)
        clean[str(key)] = value
    return clean
