"""CLI entry point for api-bindgen."""

from pathlib import Path

import click

from api_bindgen.generator.openapi import generate_openapi
from api_bindgen.generator.server import generate_server
from api_bindgen.generator.validator import validate_files
from api_bindgen.options import GenerateOptions
from api_bindgen.parser.base import DescriptorError, SchemaFile
from api_bindgen.parser.descriptor import parse_descriptor


def _load(doc_path: Path) -> SchemaFile:
    click.echo(f"Parsing {doc_path}...")
    try:
        descriptor = parse_descriptor(doc_path)
    except DescriptorError as e:
        raise click.ClickException(str(e)) from e
    routes = descriptor.routes()
    click.echo(f"Found {len(descriptor.services)} services, {len(routes)} routes, {len(descriptor.messages)} messages.")
    return descriptor


def _render(build, *args) -> str:
    try:
        return build(*args)
    except DescriptorError as e:
        raise click.ClickException(str(e)) from e


def _write(files: dict[str, str], output_dir: Path) -> None:
    """Validate every artifact first so a failed run writes nothing."""
    errors = validate_files(files)
    if errors:
        for fname, err in errors.items():
            click.echo(f"  {fname}: {err}", err=True)
        raise click.ClickException("generated artifacts failed validation")

    output_dir.mkdir(parents=True, exist_ok=True)
    for filename, content in files.items():
        file_path = output_dir / filename
        file_path.write_text(content, encoding="utf-8")
        click.echo(f"  Created {file_path}")


def _options(fmt: str, title: str | None, version: str | None) -> GenerateOptions:
    return GenerateOptions(title=title, version=version, output_format=fmt)


format_option = click.option("--format", "fmt", default="yaml", type=click.Choice(["yaml", "json"]), help="API description format.")
title_option = click.option("--title", default=None, envvar="API_BINDGEN_TITLE", help="Document title (defaults to the package name).")
version_option = click.option("--version", "version", default=None, envvar="API_BINDGEN_VERSION", help="Document version (defaults to the descriptor version).")


@click.group()
def main():
    """api-bindgen: generate HTTP bindings and OpenAPI documents from API schemas."""
    pass


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Output file for the binding module.")
def gen_server(doc_path: Path, output: Path):
    """Generate the FastAPI binding module from a schema descriptor."""
    descriptor = _load(doc_path)

    click.echo("Generating bindings...")
    source = _render(generate_server, descriptor, doc_path.name)
    _write({output.name: source}, output.parent)


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(dir_okay=False, path_type=Path), help="Output file for the OpenAPI document.")
@format_option
@title_option
@version_option
def gen_openapi(doc_path: Path, output: Path, fmt: str, title: str | None, version: str | None):
    """Generate the OpenAPI document from a schema descriptor."""
    descriptor = _load(doc_path)
    options = _options(fmt, title, version)

    click.echo(f"Generating OpenAPI document (format: {fmt})...")
    document = _render(generate_openapi, descriptor, options)
    _write({output.name: document}, output.parent)


@main.command()
@click.argument("doc_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", required=True, type=click.Path(file_okay=False, path_type=Path), help="Output directory for all generated files.")
@format_option
@title_option
@version_option
def run(doc_path: Path, output: Path, fmt: str, title: str | None, version: str | None):
    """Full pipeline: parse descriptor -> bindings -> OpenAPI document."""
    # Step 1: Parse
    descriptor = _load(doc_path)
    options = _options(fmt, title, version)

    # Step 2: Bindings
    click.echo("Generating bindings...")
    source = _render(generate_server, descriptor, doc_path.name)

    # Step 3: API description
    click.echo(f"Generating OpenAPI document (format: {fmt})...")
    document = _render(generate_openapi, descriptor, options)

    files = {
        GenerateOptions.server_filename(doc_path.stem): source,
        options.openapi_filename(): document,
    }
    _write(files, output)
    click.echo(f"Done! Generated {len(files)} files in {output}")
