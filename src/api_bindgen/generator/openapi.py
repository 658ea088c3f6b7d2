"""Document assembler: builds the OpenAPI description of a schema file."""

import json

import yaml

from api_bindgen.generator.schema import SchemaCatalog, SchemaWalker
from api_bindgen.generator.types import field_schema, message_schema
from api_bindgen.options import OPENAPI_VERSION, GenerateOptions
from api_bindgen.parser.base import WELL_KNOWN, Message, Param, Route, SchemaFile


class _NoAliasDumper(yaml.SafeDumper):
    def ignore_aliases(self, data):
        return True


def generate_openapi(descriptor: SchemaFile, options: GenerateOptions | None = None) -> str:
    """Build and render the document in the configured output format."""
    options = options or GenerateOptions()
    return render_document(build_document(descriptor, options), options.output_format)


def build_document(descriptor: SchemaFile, options: GenerateOptions | None = None) -> dict:
    """Assemble info, one path item per route, then the deduplicated schemas."""
    options = options or GenerateOptions()
    paths: dict[str, dict] = {}
    for route in descriptor.routes():
        paths.setdefault(route.path, {})[route.method.lower()] = _operation(descriptor, route)

    return {
        "openapi": OPENAPI_VERSION,
        "info": {
            "title": options.title or descriptor.package,
            "version": options.version or descriptor.version,
        },
        "paths": paths,
        "components": {"schemas": build_schemas(descriptor)},
    }


def build_schemas(descriptor: SchemaFile) -> dict:
    """Walk every route's input then output message with one shared catalog."""
    schemas: dict[str, dict] = {}
    walker = SchemaWalker(descriptor, schemas, SchemaCatalog())
    for route in descriptor.routes():
        walker.emit(route.input)
        walker.emit(route.output)
    return schemas


def render_document(document: dict, fmt: str = "yaml") -> str:
    if fmt == "json":
        return json.dumps(document, indent=2, ensure_ascii=False) + "\n"
    return yaml.dump(
        document,
        Dumper=_NoAliasDumper,
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def _operation(descriptor: SchemaFile, route: Route) -> dict:
    op: dict = {}
    if route.tags:
        op["tags"] = list(route.tags)
    if route.summary:
        op["summary"] = route.summary
    if route.description:
        op["description"] = route.description
    op["operationId"] = route.name

    input_message = _lookup(descriptor, route.input)
    parameters = [_parameter(p, "path", input_message) for p in route.path_params]
    parameters += [_parameter(p, "query", input_message) for p in route.query_params]
    if parameters:
        op["parameters"] = parameters

    if route.method != "GET":
        op["requestBody"] = {
            "required": True,
            "content": {"application/json": {"schema": message_schema(route.input, [])}},
        }
    op["responses"] = {
        "200": {
            "description": "OK",
            "content": {"application/json": {"schema": message_schema(route.output, [])}},
        }
    }
    return op


def _parameter(param: Param, location: str, message: Message | None) -> dict:
    target = message.field(param.field) if message else None
    schema = field_schema(target, []) if target else None
    return {
        "name": param.key,
        "in": location,
        "required": location == "path",
        "schema": schema or {"type": "string"},
    }


def _lookup(descriptor: SchemaFile, identity: str) -> Message | None:
    # well-known messages have no entry in the message table
    if identity in WELL_KNOWN:
        return None
    return descriptor.message(identity)
