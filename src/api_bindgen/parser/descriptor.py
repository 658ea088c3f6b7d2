"""Schema descriptor loader.

Reads a YAML or JSON descriptor file into a SchemaFile. JSON is a subset of
YAML, so both go through the same loader.
"""

from pathlib import Path

import yaml
from pydantic import ValidationError

from .base import DescriptorError, SchemaFile


def parse_descriptor(file_path: Path) -> SchemaFile:
    """Parse a descriptor file into a SchemaFile."""
    text = file_path.read_text(encoding="utf-8")
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DescriptorError(f"{file_path}: {e}") from e

    if not isinstance(doc, dict):
        raise DescriptorError(f"{file_path}: descriptor must be a mapping")

    doc.setdefault("package", file_path.stem)
    return load_descriptor(doc)


def load_descriptor(doc: dict) -> SchemaFile:
    """Build a SchemaFile from an already-parsed mapping."""
    try:
        return SchemaFile(**_normalize(doc))
    except ValidationError as e:
        raise DescriptorError(str(e)) from e


def _normalize(doc: dict) -> dict:
    """Accept `messages` as either a list or a {name: fields} mapping."""
    messages = doc.get("messages", [])
    if isinstance(messages, dict):
        doc = {
            **doc,
            "messages": [_message_entry(name, body) for name, body in messages.items()],
        }
    return doc


def _message_entry(name: str, body) -> dict:
    if isinstance(body, list):
        return {"name": name, "fields": body}
    return {"name": name, **(body or {})}
