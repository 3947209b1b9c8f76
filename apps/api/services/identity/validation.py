from __future__ import annotations

from functools import lru_cache
import json
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol

from jsonschema import Draft202012Validator

from services.errors import ValidationFailed

from .models import DEFAULT_TRAITS_SCHEMA_ID, Identity
from .settings import get_identity_settings

DEFAULT_TRAITS_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
}


class TraitValidator(Protocol):
    def validate(self, identity: Identity) -> None: ...


class SchemaTraitValidator:
    """Validates identity traits against JSON Schemas keyed by schema ID."""

    def __init__(self, schemas: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        if not schemas:
            schemas = {DEFAULT_TRAITS_SCHEMA_ID: DEFAULT_TRAITS_SCHEMA}
        self._validators: dict[str, Draft202012Validator] = {}
        for schema_id, schema in schemas.items():
            Draft202012Validator.check_schema(schema)
            self._validators[schema_id] = Draft202012Validator(schema)

    def validate(self, identity: Identity) -> None:
        validator = self._validators.get(identity.traits_schema_id)
        if validator is None:
            raise ValidationFailed(
                f"unknown traits schema: {identity.traits_schema_id}"
            )
        errors = sorted(
            validator.iter_errors(identity.traits), key=lambda err: err.json_path
        )
        if errors:
            raise ValidationFailed(
                details=[
                    {"path": err.json_path, "message": err.message} for err in errors
                ]
            )


def load_traits_schema(path: str) -> dict[str, Any]:
    raw = Path(path).read_text(encoding="utf-8")
    schema = json.loads(raw)
    if not isinstance(schema, dict):
        raise ValueError("traits schema must be a JSON object")
    return schema


@lru_cache
def get_trait_validator() -> SchemaTraitValidator:
    settings = get_identity_settings()
    if settings.traits_schema_path:
        schema = load_traits_schema(settings.traits_schema_path)
        return SchemaTraitValidator({DEFAULT_TRAITS_SCHEMA_ID: schema})
    return SchemaTraitValidator()
