"""Descriptor model for an API schema.

A schema file is a read-only graph of Service -> Route -> Message -> Field.
Message references are plain identities resolved through the message table
of the SchemaFile, so self and mutual references are representable.
"""

from enum import Enum

from pydantic import BaseModel, PrivateAttr, field_validator, model_validator

from api_bindgen.naming import json_name

TIMESTAMP = "google.protobuf.Timestamp"
STRUCT = "google.protobuf.Struct"
WELL_KNOWN = frozenset({TIMESTAMP, STRUCT})


class DescriptorError(ValueError):
    """The descriptor cannot be loaded or references something it does not declare."""


class Kind(str, Enum):
    """Field kinds. The set is closed; every generator matches it exhaustively."""

    BOOL = "bool"
    INT32 = "int32"
    SINT32 = "sint32"
    UINT32 = "uint32"
    INT64 = "int64"
    SINT64 = "sint64"
    UINT64 = "uint64"
    FIXED32 = "fixed32"
    SFIXED32 = "sfixed32"
    FLOAT = "float"
    FIXED64 = "fixed64"
    SFIXED64 = "sfixed64"
    DOUBLE = "double"
    STRING = "string"
    BYTES = "bytes"
    MESSAGE = "message"
    ENUM = "enum"
    GROUP = "group"


class EnumDef(BaseModel):
    """An enumeration attached to an enum-kind field."""

    name: str
    values: list[str] = []


class Field(BaseModel):
    """A single message field."""

    name: str
    json_name: str
    kind: Kind
    message: str | None = None  # target identity when kind is message
    enum: EnumDef | None = None
    is_list: bool = False
    is_map: bool = False
    map_value: "Field | None" = None  # synthetic value field of a map

    @model_validator(mode="before")
    @classmethod
    def _default_json_name(cls, data):
        if isinstance(data, dict) and not data.get("json_name") and data.get("name"):
            data = {**data, "json_name": json_name(data["name"])}
        return data

    @model_validator(mode="after")
    def _check_references(self):
        # a map's own kind is irrelevant; its value field carries the type
        if self.kind is Kind.MESSAGE and not self.message and not self.is_map:
            raise ValueError(f"field {self.name!r} is message-typed but names no message")
        if self.is_map and self.map_value is None:
            raise ValueError(f"map field {self.name!r} has no map_value")
        return self


class Message(BaseModel):
    """A named record type; its name is the deduplication key."""

    name: str
    comments: str = ""
    fields: list[Field] = []

    def field(self, name: str) -> Field | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


class Param(BaseModel):
    """Maps a path segment or query key onto a field of the input message."""

    key: str  # source key in the path template / query string
    field: str  # target field name on the input message


class Route(BaseModel):
    """One RPC bound to an HTTP method and path."""

    name: str  # GetPet
    method: str  # GET / POST / PUT / PATCH / DELETE
    path: str  # /pets/{id}
    input: str
    output: str
    path_params: list[Param] = []
    query_params: list[Param] = []
    summary: str = ""
    description: str = ""
    tags: list[str] = []
    comments: str = ""

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()


class Service(BaseModel):
    """A named group of routes."""

    name: str
    comments: str = ""
    routes: list[Route] = []


class SchemaFile(BaseModel):
    """Everything the generators need from one schema file."""

    package: str
    version: str = "0.0.1"
    services: list[Service] = []
    messages: list[Message] = []

    _index: dict[str, Message] = PrivateAttr(default_factory=dict)

    @field_validator("version", mode="before")
    @classmethod
    def _version_text(cls, value):
        # `version: 1.0` arrives from YAML as a float
        return value if isinstance(value, str) else str(value)

    def model_post_init(self, __context) -> None:
        for msg in self.messages:
            self._index.setdefault(msg.name, msg)

    def message(self, identity: str) -> Message:
        """Look up a message by identity."""
        try:
            return self._index[identity]
        except KeyError:
            raise DescriptorError(f"unknown message {identity!r}") from None

    def routes(self) -> list[Route]:
        """All routes, services in order, routes in declaration order."""
        return [route for svc in self.services for route in svc.routes]
