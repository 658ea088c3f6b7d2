"""Checks generated artifacts before they are written to disk."""

import ast
import json

import yaml

from api_bindgen.generator.types import SCHEMA_REF_PREFIX


def validate_python(files: dict[str, str]) -> dict[str, str]:
    """Check Python files for syntax errors.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".py"):
            continue
        if not content.strip():
            continue
        try:
            ast.parse(content, filename=filename)
        except SyntaxError as e:
            errors[filename] = f"SyntaxError: {e.msg} (line {e.lineno})"
    return errors


def validate_yaml(files: dict[str, str]) -> dict[str, str]:
    """Check YAML files for format errors.

    Returns dict of {filename: error_message} for files with errors.
    """
    errors = {}
    for filename, content in files.items():
        if not filename.endswith((".yaml", ".yml")):
            continue
        try:
            yaml.safe_load(content)
        except yaml.YAMLError as e:
            errors[filename] = f"YAMLError: {e}"
    return errors


def validate_json(files: dict[str, str]) -> dict[str, str]:
    errors = {}
    for filename, content in files.items():
        if not filename.endswith(".json"):
            continue
        try:
            json.loads(content)
        except json.JSONDecodeError as e:
            errors[filename] = f"JSONDecodeError: {e.msg} (line {e.lineno})"
    return errors


def collect_refs(node, refs: set[str]) -> None:
    """Recursively collect the schema names of all local $refs under `node`."""
    if isinstance(node, dict):
        ref = node.get("$ref")
        if isinstance(ref, str) and ref.startswith(SCHEMA_REF_PREFIX):
            refs.add(ref[len(SCHEMA_REF_PREFIX):])
        for value in node.values():
            collect_refs(value, refs)
    elif isinstance(node, list):
        for item in node:
            collect_refs(item, refs)


def validate_refs(files: dict[str, str]) -> dict[str, str]:
    """Check that every $ref of an OpenAPI document names a components.schemas entry.

    Only run on files that already parse.
    """
    errors = {}
    for filename, content in files.items():
        if filename.endswith(".json"):
            doc = json.loads(content)
        elif filename.endswith((".yaml", ".yml")):
            doc = yaml.safe_load(content)
        else:
            continue
        if not isinstance(doc, dict) or "openapi" not in doc:
            continue
        refs: set[str] = set()
        collect_refs(doc, refs)
        schemas = (doc.get("components") or {}).get("schemas") or {}
        missing = sorted(refs - set(schemas))
        if missing:
            errors[filename] = f"unresolved $ref: {', '.join(missing)}"
    return errors


def validate_files(files: dict[str, str]) -> dict[str, str]:
    """Run all validations on generated files.

    Returns dict of {filename: error_message} for all files with errors.
    Runs syntax checks first, then $ref resolution only if syntax passes.
    """
    errors = {}
    errors.update(validate_python(files))
    errors.update(validate_yaml(files))
    errors.update(validate_json(files))

    if not errors:
        errors.update(validate_refs(files))

    return errors
