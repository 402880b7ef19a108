"""JSON Schema definitions for payloads exchanged with the CMS.

Responses from the service and the local cms-config.json file are checked
against Draft 7 schemas before they are turned into typed records, so a
malformed payload fails with a SchemaValidationError listing every violation
instead of a KeyError deep inside a ``from_dict``.
"""

from typing import Any, Dict, List

import jsonschema
from jsonschema import Draft7Validator

from cmskit.errors import SchemaValidationError
from cmskit.types import ContentFieldKind, FieldKind, FormDefinition, Page


FORM_DEFINITION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": ["integer", "null"]},
        "slug": {"type": "string", "minLength": 1},
        "label": {"type": "string"},
        "success_message": {"type": ["string", "null"]},
        "fields": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string", "minLength": 1},
                    "type": {"enum": [k.value for k in FieldKind]},
                    "label": {"type": "string"},
                    "placeholder": {"type": ["string", "null"]},
                    "options": {
                        "type": ["array", "null"],
                        "items": {
                            "type": "object",
                            "properties": {
                                "value": {"type": ["string", "number"]},
                                "label": {"type": "string"},
                            },
                            "required": ["value"],
                        },
                    },
                    "validation": {
                        "type": ["object", "null"],
                        "properties": {
                            "required": {"type": "boolean"},
                            "min": {"type": ["number", "null"]},
                            "max": {"type": ["number", "null"]},
                            "regex": {"type": ["string", "null"]},
                        },
                    },
                },
                "required": ["name", "type"],
            },
        },
    },
    "required": ["slug", "fields"],
}


PAGE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "id": {"type": "integer"},
        "slug": {"type": "string"},
        "title": {"type": "string"},
        "allowed_blocks": {"type": "array", "items": {"type": "string"}},
        "components": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "id": {"type": "integer"},
                    "component_slug": {"type": "string"},
                    "data": {"type": ["object", "null"]},
                    "order": {"type": ["integer", "null"]},
                },
                "required": ["id", "component_slug"],
            },
        },
    },
    "required": ["id", "slug"],
}


_CONTENT_FIELD_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "minLength": 1},
        "type": {"enum": [k.value for k in ContentFieldKind]},
        "label": {"type": "string"},
    },
    "required": ["name", "type", "label"],
}


CONFIG_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "api": {
            "type": "object",
            "properties": {
                "baseUrl": {"type": "string", "minLength": 1},
                "apiKey": {"type": "string", "minLength": 1},
            },
            "required": ["baseUrl", "apiKey"],
        },
        "components": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "label": {"type": "string"},
                    "fields": {"type": "array", "items": _CONTENT_FIELD_SCHEMA},
                },
                "required": ["label", "fields"],
            },
        },
        "pages": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "slug": {"type": "string", "minLength": 1},
                    "title": {"type": "string"},
                    "allowed_blocks": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["slug", "title", "allowed_blocks"],
            },
        },
    },
    "required": ["api"],
}


def _format_error(error: jsonschema.ValidationError) -> str:
    """Render a jsonschema error as ``path: message``."""
    path = ".".join(str(p) for p in error.absolute_path)
    return f"{path}: {error.message}" if path else error.message


def check_payload(schema: Dict[str, Any], data: Any, what: str) -> None:
    """Validate ``data`` against ``schema``.

    Args:
        schema: A Draft 7 JSON Schema
        data: The decoded JSON payload
        what: Name of the payload, used in the error message

    Raises:
        SchemaValidationError: If the payload violates the schema
    """
    validator = Draft7Validator(schema)
    violations = sorted(
        validator.iter_errors(data),
        key=lambda e: [str(p) for p in e.absolute_path],
    )
    errors: List[str] = [_format_error(e) for e in violations]
    if errors:
        raise SchemaValidationError(
            f"Invalid {what}: {'; '.join(errors)}",
            errors=errors,
        )


def parse_form_definition(data: Any) -> FormDefinition:
    """Validate a form definition payload and build the typed record.

    Raises:
        SchemaValidationError: If the payload is malformed or repeats a field name
    """
    check_payload(FORM_DEFINITION_SCHEMA, data, "form definition")
    return FormDefinition.from_dict(data)


def parse_page(data: Any) -> Page:
    """Validate a page payload and build the typed record."""
    check_payload(PAGE_SCHEMA, data, "page")
    return Page.from_dict(data)


for _schema in (FORM_DEFINITION_SCHEMA, PAGE_SCHEMA, CONFIG_SCHEMA):
    Draft7Validator.check_schema(_schema)


__all__ = [
    "FORM_DEFINITION_SCHEMA",
    "PAGE_SCHEMA",
    "CONFIG_SCHEMA",
    "check_payload",
    "parse_form_definition",
    "parse_page",
]
