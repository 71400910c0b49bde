"""
YAML/JSON model declaration loader.

Model schemas can be declared in a file instead of Python code:

    name: Story
    collection: stories
    fields:
      - name: title
        kind: str
        required: true
      - name: status
        kind: enum
        enum_values: [draft, published]

parse_schema() validates the whole declaration and reports every problem
at once as a ConfigurationError.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from ..errors import ConfigurationError
from .types import ID_FIELD, FieldKind, ModelSchema

VALID_KINDS = {kind.value for kind in FieldKind}


def _validate(data: Any) -> list[str]:
    """Collect format errors in a raw declaration."""
    if not isinstance(data, dict):
        return ["Schema must be a mapping"]

    errors = []
    if not data.get("name") or not isinstance(data.get("name"), str):
        errors.append("Model 'name' is required and must be a string")

    fields = data.get("fields", [])
    if not isinstance(fields, list):
        return errors + ["'fields' must be a list"]

    seen: set[str] = set()
    for i, f in enumerate(fields):
        if not isinstance(f, dict):
            errors.append(f"Field #{i}: must be a mapping")
            continue
        name = f.get("name")
        if not name:
            errors.append(f"Field #{i}: missing 'name'")
        elif name == ID_FIELD:
            errors.append(f"Field #{i}: '{ID_FIELD}' is reserved")
        elif name in seen:
            errors.append(f"Field #{i}: duplicate name '{name}'")
        else:
            seen.add(name)
        kind = f.get("kind")
        if kind not in VALID_KINDS:
            errors.append(f"Field '{name or i}': invalid kind '{kind}'")
        elif kind == FieldKind.ENUM.value and not f.get("enum_values"):
            errors.append(f"Field '{name or i}': enum_values required for enum kind")

    return errors


def parse_schema(data: Any) -> ModelSchema:
    """Build a ModelSchema from a parsed declaration.

    Raises:
        ConfigurationError: If the declaration is malformed
    """
    errors = _validate(data)
    if errors:
        raise ConfigurationError(f"Invalid model declaration: {len(errors)} error(s)", errors=errors)
    return ModelSchema.from_dict(data)


def load_schema_file(path: str | Path) -> ModelSchema:
    """Load a model declaration from a YAML or JSON file.

    Raises:
        ConfigurationError: If the file cannot be read or parsed
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read schema file {path}: {e}") from e

    try:
        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Cannot parse schema file {path}: {e}") from e

    return parse_schema(data)
