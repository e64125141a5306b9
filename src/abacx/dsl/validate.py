from __future__ import annotations

from typing import Any, Dict, List

from ..core.condition import LOGICAL_OPERATORS, OPERATORS, PRESENCE_OPERATORS
from ..core.model import Permission

_ATTR_REF = {
    "oneOf": [
        {
            "type": "object",
            "required": ["type", "key"],
            "properties": {
                "type": {"enum": ["user_attr", "resource_attr"]},
                "key": {"type": "string", "minLength": 1},
            },
            "additionalProperties": False,
        },
        {
            "type": "object",
            "required": ["user_attr"],
            "properties": {"user_attr": {"type": "string", "minLength": 1}},
            "additionalProperties": False,
        },
        {
            "type": "object",
            "required": ["resource_attr"],
            "properties": {"resource_attr": {"type": "string", "minLength": 1}},
            "additionalProperties": False,
        },
    ]
}

_LITERAL = {
    "type": "object",
    "required": ["type", "value"],
    "properties": {"type": {"const": "literal"}, "value": {}},
    "additionalProperties": False,
}

_OPERAND = {"oneOf": [{"$ref": "#/$defs/attr_ref"}, {"$ref": "#/$defs/literal"}]}

_CONDITION = {
    "type": "object",
    "required": ["op"],
    "properties": {
        "op": {"enum": sorted(OPERATORS) + list(PRESENCE_OPERATORS) + list(LOGICAL_OPERATORS)},
        "left": {"$ref": "#/$defs/operand"},
        "right": {},
        "operand": {"$ref": "#/$defs/operand"},
        "conditions": {"type": "array", "minItems": 1, "items": {"$ref": "#/$defs/condition"}},
        "condition": {"$ref": "#/$defs/condition"},
        # short aliases
        "args": {"type": "array", "minItems": 1, "items": {"$ref": "#/$defs/condition"}},
        "arg": {"$ref": "#/$defs/condition"},
    },
}

POLICY_DOCUMENT_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "$defs": {
        "attr_ref": _ATTR_REF,
        "literal": _LITERAL,
        "operand": _OPERAND,
        "condition": _CONDITION,
    },
    "properties": {
        "roles": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "integer"},
                    "name": {"type": "string", "minLength": 1},
                    "label": {"type": ["string", "null"]},
                    "description": {"type": ["string", "null"]},
                    "index": {"type": "integer"},
                    "is_default": {"type": "boolean"},
                    "is_super_admin": {"type": "boolean"},
                    "permissions": {
                        "type": "array",
                        "items": {"enum": [p.value for p in Permission]},
                        "uniqueItems": True,
                    },
                },
            },
        },
        "policies": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "effect", "permission", "role_id"],
                "properties": {
                    "id": {"type": "integer"},
                    "effect": {"enum": ["allow", "deny"]},
                    "permission": {"enum": [p.value for p in Permission]},
                    "role_id": {"type": "integer"},
                    "condition": {
                        "oneOf": [{"type": "null"}, {"type": "string"}, {"$ref": "#/$defs/condition"}]
                    },
                    "description": {"type": ["string", "null"]},
                },
            },
        },
        "user_roles": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["user_id", "role_id"],
                "properties": {
                    "user_id": {"type": "string", "minLength": 1},
                    "role_id": {"type": "integer"},
                },
            },
        },
    },
}


def _validator() -> Any:
    try:
        from jsonschema import Draft202012Validator
    except Exception as e:  # pragma: no cover
        raise RuntimeError("Install jsonschema to enable policy document validation") from e
    return Draft202012Validator(POLICY_DOCUMENT_SCHEMA)


def schema_errors(doc: Any) -> List[Dict[str, Any]]:
    """Return every schema violation as ``{"path", "message"}``, sorted by path."""
    errors = sorted(_validator().iter_errors(doc), key=lambda e: list(map(str, e.absolute_path)))
    return [
        {"path": "/" + "/".join(str(p) for p in e.absolute_path), "message": e.message}
        for e in errors
    ]


def validate_document(doc: Any) -> None:
    """Raise ``jsonschema.ValidationError`` for the first schema violation."""
    _validator().validate(doc)


__all__ = ["POLICY_DOCUMENT_SCHEMA", "schema_errors", "validate_document"]
