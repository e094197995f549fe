"""Declarative schema loading.

Schemas can be described as plain data instead of code, which is what the
command-line tool reads::

    {
        "types": {
            "catalog": [
                {"tag": "item", "field": "items", "type": "item", "many": true}
            ],
            "item": [
                {"tag": "item", "attribute": "id", "field": "id"},
                {"tag": "name", "field": "name"},
                {"tag": "price", "field": "price", "type": "Float",
                 "path": ["details"]}
            ]
        }
    }

``type`` names a built-in leaf type or another entry under ``types``;
``path`` is expanded into balanced ``find``/``end`` calls.
"""

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Mapping, Union

from streaming_tag_extractor.schema.element_type import ElementType
from streaming_tag_extractor.shared.errors import SchemaDeclarationError

if TYPE_CHECKING:
    from streaming_tag_extractor.engine.extractor import Extractor

_DECLARATION_KEYS = {"tag", "field", "type", "many", "attribute", "path"}


def load_schema(extractor: "Extractor", data: Mapping[str, Any]) -> Dict[str, ElementType]:
    """Declare every element type described by ``data`` on ``extractor``.

    Returns:
        Mapping of type name to the declared ``ElementType``
    """
    types = data.get("types") if isinstance(data, Mapping) else None
    if not isinstance(types, Mapping) or not types:
        raise SchemaDeclarationError("Schema must contain a non-empty 'types' mapping")

    declared = {name: extractor.element_type(name) for name in types}

    for name, declarations in types.items():
        if not isinstance(declarations, list):
            raise SchemaDeclarationError(
                f"Declarations for type {name!r} must be a list, got {type(declarations).__name__}"
            )
        for index, declaration in enumerate(declarations):
            _apply_declaration(declared[name], declaration, f"{name}[{index}]")

    return declared


def load_schema_file(extractor: "Extractor", path: Union[str, Path]) -> Dict[str, ElementType]:
    """Load a JSON schema file and declare its types on ``extractor``."""
    schema_path = Path(path)
    try:
        with schema_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SchemaDeclarationError(f"Invalid schema JSON in {schema_path}: {e}") from e
    return load_schema(extractor, data)


def _apply_declaration(node: ElementType, declaration: Any, where: str) -> None:
    if not isinstance(declaration, Mapping):
        raise SchemaDeclarationError(f"{where}: declaration must be an object")

    unknown = set(declaration) - _DECLARATION_KEYS
    if unknown:
        raise SchemaDeclarationError(f"{where}: unknown keys {sorted(unknown)}")

    tag = declaration.get("tag")
    if not isinstance(tag, str) or not tag:
        raise SchemaDeclarationError(f"{where}: 'tag' is required")

    field_name = declaration.get("field", tag)
    path = declaration.get("path", [])
    if isinstance(path, str):
        path = [path]

    for segment in path:
        node.find(segment)

    if "attribute" in declaration:
        if "type" in declaration or declaration.get("many"):
            raise SchemaDeclarationError(
                f"{where}: attribute extraction takes neither 'type' nor 'many'"
            )
        node.extract_attribute(tag, declaration["attribute"], field_name)
    elif declaration.get("many"):
        node.extract_many(tag, field_name, declaration.get("type", "String"))
    else:
        node.extract(tag, field_name, declaration.get("type", "String"))

    for _ in path:
        node.end()
