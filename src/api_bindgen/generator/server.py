"""Route binding emitter: renders the FastAPI binding module of a schema file.

For every service the module carries an abstract interface the application
implements, a controller that turns a request into the typed input message and
back, and a register function that mounts the controller on a router.
"""

import json
import keyword
from typing import assert_never

import pydantic

from api_bindgen.generator.writer import CodeWriter
from api_bindgen.naming import attribute_name, class_name, snake_case
from api_bindgen.parser.base import (
    STRUCT,
    TIMESTAMP,
    DescriptorError,
    Field,
    Kind,
    Message,
    Route,
    SchemaFile,
    Service,
)

HEADER = "# Code generated by api-bindgen. DO NOT EDIT."

MODULE_IMPORTS = [
    "from __future__ import annotations",
    "",
    "import abc",
    "import datetime",
    "import typing",
    "",
    "import fastapi",
    "import pydantic",
]

# Module names referenced in generated annotations; attributes must not shadow them.
_MODULE_NAMES = {"abc", "datetime", "typing", "fastapi", "pydantic"}
_BASEMODEL_NAMES = {n for n in dir(pydantic.BaseModel) if not n.startswith("_")}
# Builtins used in generated annotations; a model class must not shadow them either.
_ANNOTATION_BUILTINS = {"bool", "bytes", "dict", "float", "int", "list", "str"}

_ZERO_VALUES = {"bool": "False", "int": "0", "float": "0.0", "str": '""', "bytes": 'b""'}


def generate_server(descriptor: SchemaFile, source_name: str | None = None) -> str:
    """Render the binding module for every service of `descriptor`."""
    g = CodeWriter()
    g.p(HEADER)
    if source_name:
        g.p(f"# source: {source_name}")
    g.p()
    for line in MODULE_IMPORTS:
        g.p(line)
    ServerEmitter(descriptor, g).emit()
    return g.getvalue()


def _literal(text: str) -> str:
    return json.dumps(text, ensure_ascii=False)


class ServerEmitter:
    """Writes models, interfaces, controllers and register functions into `g`."""

    def __init__(self, descriptor: SchemaFile, g: CodeWriter):
        self.descriptor = descriptor
        self.g = g
        self.messages = _model_messages(descriptor)
        self.reserved = (
            {class_name(m.name) for m in self.messages} | _MODULE_NAMES | _BASEMODEL_NAMES
        )

    def emit(self) -> None:
        for message in self.messages:
            self._emit_model(message)
        self.g.p()
        self.g.p()
        for message in self.messages:
            self.g.p(class_name(message.name), ".model_rebuild()")
        for service in self.descriptor.services:
            self._emit_service(service)

    def attr(self, field_name: str) -> str:
        return attribute_name(field_name, self.reserved)

    # -- models ---------------------------------------------------------------

    def _emit_model(self, message: Message) -> None:
        g = self.g
        g.p()
        g.p()
        g.p("class ", class_name(message.name), "(pydantic.BaseModel):")
        with g.indented():
            if message.comments:
                g.comment(message.comments)
            g.p("model_config = pydantic.ConfigDict(")
            with g.indented():
                g.p("populate_by_name=True,")
                g.p("protected_namespaces=(),")
                # bytes travel as base64, matching `format: byte` in the document
                g.p('ser_json_bytes="base64",')
                g.p('val_json_bytes="base64",')
            g.p(")")
            declarations = [(f, self._declaration(f)) for f in message.fields]
            declarations = [(f, d) for f, d in declarations if d is not None]
            if declarations:
                g.p()
            for field, (annotation, default) in declarations:
                g.p(
                    self.attr(field.name), ": ", annotation,
                    " = pydantic.Field(", default, ", alias=", _literal(field.json_name), ")",
                )

    def _declaration(self, field: Field) -> tuple[str, str] | None:
        """(annotation, default keyword) for a model attribute, None to skip it."""
        annotation = self._container_type(field)
        if annotation is None:
            return None
        if field.is_map:
            return annotation, "default_factory=dict"
        if field.is_list:
            return annotation, "default_factory=list"
        if field.kind is Kind.MESSAGE:
            return f"typing.Optional[{annotation}]", "default=None"
        if field.kind is Kind.ENUM:
            values = field.enum.values if field.enum else []
            return annotation, f"default={_literal(values[0]) if values else _ZERO_VALUES['str']}"
        return annotation, f"default={_ZERO_VALUES[annotation]}"

    def _container_type(self, field: Field) -> str | None:
        if field.is_map:
            inner = self._container_type(field.map_value)
            return f"dict[str, {inner}]" if inner else None
        inner = self._value_type(field)
        if inner and field.is_list:
            return f"list[{inner}]"
        return inner

    def _value_type(self, field: Field) -> str | None:
        kind = field.kind
        match kind:
            case Kind.BOOL:
                return "bool"
            case (
                Kind.INT32 | Kind.SINT32 | Kind.UINT32
                | Kind.INT64 | Kind.SINT64 | Kind.UINT64
            ):
                return "int"
            case (
                Kind.FIXED32 | Kind.SFIXED32 | Kind.FLOAT
                | Kind.FIXED64 | Kind.SFIXED64 | Kind.DOUBLE
            ):
                return "float"
            case Kind.STRING | Kind.ENUM:
                return "str"
            case Kind.BYTES:
                return "bytes"
            case Kind.MESSAGE:
                if field.message == TIMESTAMP:
                    return "datetime.datetime"
                if field.message == STRUCT:
                    return "dict[str, typing.Any]"
                return class_name(field.message)
            case Kind.GROUP:
                return None
            case _:
                assert_never(kind)

    # -- services -------------------------------------------------------------

    def _emit_service(self, service: Service) -> None:
        self._emit_interface(service)
        self._emit_controller(service)
        self._emit_register(service)

    def _emit_interface(self, service: Service) -> None:
        g = self.g
        g.p()
        g.p()
        g.p("class ", interface_name(service), "(abc.ABC):")
        with g.indented():
            if service.comments:
                g.comment(service.comments)
            if not service.routes:
                g.p("pass")
            for route in service.routes:
                input_cls, output_cls = self._route_types(route)
                g.p()
                g.p("@abc.abstractmethod")
                g.p(
                    "async def ", handler_name(route),
                    "(self, ctx: fastapi.Request, body: ", input_cls, ") -> ", output_cls, ":",
                )
                with g.indented():
                    if route.comments:
                        g.comment(route.comments)
                    g.p("...")

    def _emit_controller(self, service: Service) -> None:
        g = self.g
        g.p()
        g.p()
        g.p("class ", controller_name(service), ":")
        with g.indented():
            g.p("def __init__(self, app: ", interface_name(service), ") -> None:")
            with g.indented():
                g.p("self.app = app")
            for route in service.routes:
                g.p()
                self._emit_handler(route)

    def _emit_handler(self, route: Route) -> None:
        g = self.g
        input_cls, _ = self._route_types(route)
        g.p("async def ", handler_name(route), "(self, ctx: fastapi.Request) -> fastapi.Response:")
        with g.indented():
            if route.description:
                g.comment(route.description)
            g.p("body = ", input_cls, "()")
            if route.method != "GET":
                g.p("raw = await ctx.body()")
                g.p("if raw:")
                with g.indented():
                    g.p("try:")
                    with g.indented():
                        g.p("body = ", input_cls, ".model_validate_json(raw)")
                    g.p("except pydantic.ValidationError as exc:")
                    with g.indented():
                        g.p("raise fastapi.HTTPException(status_code=400, detail=str(exc)) from exc")
            # path is overlaid last so it wins over query and body
            for param in route.query_params:
                self._emit_overlay("query_params", param.key, param.field)
            for param in route.path_params:
                self._emit_overlay("path_params", param.key, param.field)
            g.p("out = await self.app.", handler_name(route), "(ctx, body)")
            g.p("return fastapi.Response(")
            with g.indented():
                g.p("content=out.model_dump_json(by_alias=True),")
                g.p("status_code=200,")
                g.p('media_type="application/json",')
            g.p(")")

    def _emit_overlay(self, source: str, key: str, field_name: str) -> None:
        g = self.g
        g.p("value = ctx.", source, ".get(", _literal(key), ")")
        g.p("if value is not None:")
        with g.indented():
            g.p("body.", self.attr(field_name), " = value")

    def _emit_register(self, service: Service) -> None:
        g = self.g
        g.p()
        g.p()
        g.p(
            "def ", register_name(service),
            "(router: fastapi.APIRouter, srv: ", interface_name(service), ") -> None:",
        )
        with g.indented():
            g.p("ctrl = ", controller_name(service), "(srv)")
            for route in service.routes:
                g.p(
                    "router.add_api_route(", _literal(route.path), ", ctrl.", handler_name(route),
                    ", methods=[", _literal(route.method), "], response_model=None)",
                )

    def _route_types(self, route: Route) -> tuple[str, str]:
        # the message table lookup fails loudly for anything without a model
        input_msg = self.descriptor.message(route.input)
        output_msg = self.descriptor.message(route.output)
        return class_name(input_msg.name), class_name(output_msg.name)


def _model_messages(descriptor: SchemaFile) -> list[Message]:
    """Messages that get a model class, checked for class-name clashes.

    A repeated identity keeps its first declaration, as the lookup table does.
    """
    owners: dict[str, str] = {}
    messages = []
    for message in descriptor.messages:
        name = class_name(message.name)
        owner = owners.get(name)
        if owner == message.name:
            continue
        if owner is not None:
            raise DescriptorError(
                f"messages {owner!r} and {message.name!r} both map to class {name!r}"
            )
        if (
            not name.isidentifier()
            or keyword.iskeyword(name)
            or name in _MODULE_NAMES
            or name in _ANNOTATION_BUILTINS
        ):
            raise DescriptorError(f"message {message.name!r} cannot be used as class name {name!r}")
        owners[name] = message.name
        messages.append(message)
    return messages


def interface_name(service: Service) -> str:
    return f"{class_name(service.name)}HTTPServer"


def controller_name(service: Service) -> str:
    return f"_{class_name(service.name)}Controller"


def register_name(service: Service) -> str:
    return f"register_{snake_case(service.name)}_http_server"


def handler_name(route: Route) -> str:
    return snake_case(route.name)
