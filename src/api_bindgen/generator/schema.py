"""Schema graph walker: one components.schemas entry per distinct message."""

from api_bindgen.generator.types import field_schema
from api_bindgen.parser.base import WELL_KNOWN, SchemaFile


class SchemaCatalog:
    """Message identities already emitted during one document build.

    Entries are only ever added.
    """

    def __init__(self):
        self._seen: dict[str, None] = {}

    def __contains__(self, identity: str) -> bool:
        return identity in self._seen

    def __iter__(self):
        return iter(self._seen)

    def __len__(self) -> int:
        return len(self._seen)

    def register(self, identity: str) -> None:
        self._seen[identity] = None


class SchemaWalker:
    """Writes message schemas into `schemas`, following message references.

    The catalog is the only dedup/cycle guard: a message is registered before
    its references are visited, so a message that refers to itself (directly
    or through others) is written exactly once.
    """

    def __init__(self, descriptor: SchemaFile, schemas: dict, catalog: SchemaCatalog):
        self.descriptor = descriptor
        self.schemas = schemas
        self.catalog = catalog

    def emit(self, identity: str) -> None:
        if identity in self.catalog or identity in WELL_KNOWN:
            return
        self.catalog.register(identity)

        message = self.descriptor.message(identity)
        refs: list[str] = []
        properties = {}
        for field in message.fields:
            schema = field_schema(field, refs)
            if schema is not None:
                properties[field.json_name] = schema
        self.schemas[identity] = {"type": "object", "properties": properties}

        for ref in refs:
            self.emit(ref)
