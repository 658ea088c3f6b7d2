"""Identifier casing helpers shared by the descriptor model and the generators."""

import keyword
import re

# Names that would shadow the builtins used in generated annotations.
_SHADOWED_BUILTINS = {"bool", "bytes", "dict", "float", "int", "list", "str"}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def json_name(name: str) -> str:
    """Protobuf JSON name: drop underscores and upper-case the letter after each.

    >>> json_name("pet_id")
    'petId'
    >>> json_name("Id")
    'Id'
    """
    out = []
    upper_next = False
    for ch in name:
        if ch == "_":
            upper_next = True
        elif upper_next:
            out.append(ch.upper())
            upper_next = False
        else:
            out.append(ch)
    return "".join(out)


def snake_case(name: str) -> str:
    """GetPet -> get_pet, HTTPServer -> http_server, pets.v1 -> pets_v1."""
    name = re.sub(r"[^0-9A-Za-z_]", "_", name)
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def class_name(identity: str) -> str:
    """Python class name for a message identity (dots are not allowed)."""
    return re.sub(r"[^0-9A-Za-z_]", "_", identity)


def attribute_name(name: str, reserved: set[str] | frozenset[str] = frozenset()) -> str:
    """Python-safe attribute name for a field; keywords and clashes get a trailing '_'."""
    attr = re.sub(r"[^0-9A-Za-z_]", "_", name)
    if attr[:1].isdigit() or attr.startswith("_"):
        # leading underscores would turn a pydantic field into a private attribute
        attr = "f" + attr if attr.startswith("_") else "f_" + attr
    while keyword.iskeyword(attr) or attr in _SHADOWED_BUILTINS or attr in reserved:
        attr += "_"
    return attr
