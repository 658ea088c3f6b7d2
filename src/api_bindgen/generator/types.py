"""Field type mapper: descriptor field -> OpenAPI schema fragment.

Every function returns a fresh dict so the same fragment never appears twice
in one document. `None` means the property is omitted from its message.
"""

from typing import assert_never

from api_bindgen.parser.base import STRUCT, TIMESTAMP, Field, Kind

SCHEMA_REF_PREFIX = "#/components/schemas/"
TIMESTAMP_EXAMPLE = "1970-01-01T00:00:00Z"


def schema_ref(identity: str) -> dict:
    return {"$ref": SCHEMA_REF_PREFIX + identity}


def message_schema(identity: str, refs: list[str]) -> dict:
    """Schema for a message reference; plain messages are queued on `refs`."""
    if identity == TIMESTAMP:
        return {"type": "string", "format": "date-time", "example": TIMESTAMP_EXAMPLE}
    if identity == STRUCT:
        return {"type": "object", "additionalProperties": True}
    refs.append(identity)
    return schema_ref(identity)


def kind_schema(field: Field, refs: list[str]) -> dict | None:
    """Schema for a single value of the field's kind, ignoring cardinality."""
    kind = field.kind
    match kind:
        case Kind.BOOL:
            return {"type": "boolean", "example": False}
        case Kind.INT32 | Kind.SINT32 | Kind.UINT32:
            return {"type": "integer", "format": "int32", "example": 1}
        case Kind.INT64 | Kind.SINT64 | Kind.UINT64:
            return {"type": "integer", "format": "int64", "example": 1}
        case Kind.FIXED32 | Kind.SFIXED32 | Kind.FLOAT:
            return {"type": "number", "format": "float", "example": 1.0}
        case Kind.FIXED64 | Kind.SFIXED64 | Kind.DOUBLE:
            return {"type": "number", "format": "double", "example": 1.0}
        case Kind.STRING:
            return {"type": "string", "example": "sample"}
        case Kind.BYTES:
            # placeholder example, kept as the generator has always written it
            return {"type": "string", "format": "byte", "example": False}
        case Kind.MESSAGE:
            return message_schema(field.message, refs)
        case Kind.ENUM:
            values = list(field.enum.values) if field.enum else []
            if not values:
                return {"type": "string"}
            return {"type": "string", "enum": values}
        case Kind.GROUP:
            return None
        case _:
            assert_never(kind)


def field_schema(field: Field, refs: list[str]) -> dict | None:
    """Schema for a field including its cardinality.

    A map wins over a list when both modifiers are set. Map-of-list is
    expressed by a map_value that is itself a list.
    """
    if field.is_map:
        inner = field_schema(field.map_value, refs)
        if inner is None:
            return None
        return {"type": "object", "additionalProperties": inner}

    inner = kind_schema(field, refs)
    if inner is None:
        return None
    if field.is_list:
        return {"type": "array", "items": inner}
    return inner
