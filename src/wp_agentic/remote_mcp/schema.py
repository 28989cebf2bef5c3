"""Translate remote tool JSON Schemas into pydantic validators.

Supported shapes: ``string`` (length, pattern, enum), ``number``/``integer``
(bounds), ``boolean``, ``null``, ``array`` (items, length), ``object``
(required/optional properties, ``additionalProperties``), ``oneOf``/
``anyOf`` (union) and ``allOf`` (merged object). A ``type`` list becomes a
union of the listed types.

Anything else degrades to :data:`PASSTHROUGH`, an explicitly tagged
"unknown schema" that accepts any value. :func:`is_passthrough` lets callers
tell validated arguments from passthrough ones.

``additionalProperties`` maps onto the model's ``extra`` policy:

=================  ===========
``false``          ``forbid``
truthy             ``allow``
absent             ``ignore``
=================  ===========
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Annotated, Any, Final, Literal, Union, get_args, get_origin

from pydantic import ConfigDict, Field, StringConstraints, TypeAdapter, create_model

MAX_DEPTH: Final[int] = 32


@dataclass(frozen=True, slots=True)
class UnknownSchema:
    """Marker for schemas that could not be translated."""

    reason: str = "unsupported"


PASSTHROUGH = Annotated[Any, UnknownSchema()]


def is_passthrough(annotation: Any) -> bool:
    if get_origin(annotation) is not Annotated:
        return False
    return any(isinstance(meta, UnknownSchema) for meta in get_args(annotation)[1:])


def _passthrough(reason: str) -> Any:
    return Annotated[Any, UnknownSchema(reason)]


def _describe(annotation: Any, schema: dict[str, Any]) -> Any:
    description = schema.get("description")
    if isinstance(description, str) and description:
        return Annotated[annotation, Field(description=description)]
    return annotation


def _model_name(schema: dict[str, Any], fallback: str) -> str:
    title = schema.get("title")
    name = re.sub(r"\W", "_", title) if isinstance(title, str) and title else fallback
    return name if name[:1].isalpha() else f"M_{name}"


def _union(members: list[Any]) -> Any:
    if not members:
        return _passthrough("empty union")
    if len(members) == 1:
        return members[0]
    return Union[tuple(members)]  # noqa: UP007 - runtime construction


def _merge_all_of(parts: list[Any]) -> dict[str, Any]:
    merged: dict[str, Any] = {}
    properties: dict[str, Any] = {}
    required: list[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        for key, value in part.items():
            if key == "properties" and isinstance(value, dict):
                properties.update(value)
            elif key == "required" and isinstance(value, list):
                required.extend(r for r in value if r not in required)
            elif key == "additionalProperties" and merged.get(key) is False:
                continue
            else:
                merged[key] = value
    if properties:
        merged["properties"] = properties
        merged.setdefault("type", "object")
    if required:
        merged["required"] = required
    return merged


def _string(schema: dict[str, Any]) -> Any:
    enum = schema.get("enum")
    if isinstance(enum, list) and enum and all(isinstance(v, str) for v in enum):
        return Literal[tuple(enum)]
    constraints = StringConstraints(
        min_length=schema.get("minLength"),
        max_length=schema.get("maxLength"),
        pattern=schema.get("pattern") or None,
    )
    return _describe(Annotated[str, constraints], schema)


def _number(schema: dict[str, Any], base: type) -> Any:
    bounds = Field(ge=schema.get("minimum"), le=schema.get("maximum"))
    return _describe(Annotated[base, bounds], schema)


def _array(schema: dict[str, Any], depth: int) -> Any:
    items = translate_schema(schema.get("items") or {}, depth=depth + 1)
    size = Field(min_length=schema.get("minItems"), max_length=schema.get("maxItems"))
    return _describe(Annotated[list[items], size], schema)  # type: ignore[valid-type]


def _object(schema: dict[str, Any], depth: int, name: str) -> Any:
    properties = schema.get("properties") or {}
    if not isinstance(properties, dict):
        return _passthrough("properties is not an object")
    required = set(schema.get("required") or ())

    fields: dict[str, Any] = {}
    for index, (key, prop) in enumerate(properties.items()):
        annotation = translate_schema(prop, depth=depth + 1, name=f"{name}_{index}")
        # Python-side names are positional; the wire name lives in the alias.
        if key in required:
            fields[f"field_{index}"] = (annotation, Field(alias=key))
        else:
            fields[f"field_{index}"] = (annotation, Field(default=None, alias=key))

    additional = schema.get("additionalProperties")
    if additional is False:
        extra = "forbid"
    elif additional:
        extra = "allow"
    else:
        extra = "ignore"

    model = create_model(  # type: ignore[call-overload]
        _model_name(schema, name),
        __config__=ConfigDict(extra=extra),
        **fields,
    )
    return _describe(model, schema)


def translate_schema(schema: Any, *, depth: int = 0, name: str = "ToolArguments") -> Any:
    """Return a type annotation validating values against *schema*."""
    if not isinstance(schema, dict) or not schema:
        return _passthrough("empty schema")
    if depth > MAX_DEPTH:
        return _passthrough("schema too deep")

    kind = schema.get("type")
    if isinstance(kind, list):
        return _union(
            [translate_schema({**schema, "type": k}, depth=depth + 1, name=name) for k in kind]
        )

    if kind == "string":
        return _string(schema)
    if kind == "number":
        return _number(schema, float)
    if kind == "integer":
        return _number(schema, int)
    if kind == "boolean":
        return _describe(bool, schema)
    if kind == "null":
        return None
    if kind == "array":
        return _array(schema, depth)
    if kind == "object":
        return _object(schema, depth, name)

    alternatives = schema.get("oneOf") or schema.get("anyOf")
    if isinstance(alternatives, list):
        return _union(
            [
                translate_schema(alt, depth=depth + 1, name=f"{name}_{i}")
                for i, alt in enumerate(alternatives)
            ]
        )
    parts = schema.get("allOf")
    if isinstance(parts, list):
        if not parts:
            return _passthrough("empty allOf")
        if len(parts) == 1:
            return translate_schema(parts[0], depth=depth + 1, name=name)
        return translate_schema(_merge_all_of(parts), depth=depth + 1, name=name)

    return _passthrough(f"unsupported type {kind!r}" if kind else "no type")


class ArgumentValidator:
    """Validate and normalise tool arguments for one input schema.

    ``validated`` is False when the schema degraded to a passthrough; such
    arguments are forwarded unchanged.
    """

    def __init__(self, schema: Any, *, name: str = "ToolArguments") -> None:
        self.schema = schema
        self.annotation = translate_schema(schema, name=name)
        self.validated = not is_passthrough(self.annotation)
        self._adapter: TypeAdapter[Any] = TypeAdapter(self.annotation)

    def validate(self, arguments: Any) -> Any:
        """Raise :class:`pydantic.ValidationError` on mismatch."""
        if not self.validated:
            return arguments
        value = self._adapter.validate_python(arguments)
        return self._adapter.dump_python(value, by_alias=True, exclude_unset=True)
