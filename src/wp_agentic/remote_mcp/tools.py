"""Tool catalog assembly for a linked site.

:func:`build_tool_catalog` is total: a malformed descriptor is logged and
skipped, a schema that cannot be translated degrades to passthrough, and
the rest of the batch is always returned.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from wp_agentic.remote_mcp.schema import ArgumentValidator

_LOG = logging.getLogger("wp-agentic.remote_mcp.tools")

WRITE_VERBS: Final[tuple[str, ...]] = ("create", "update", "delete", "edit", "publish", "trash")

_CATEGORY_RULES: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("posts", ("post",)),
    ("pages", ("page",)),
    ("media", ("media", "image", "attachment")),
    ("users", ("user",)),
    ("settings", ("setting", "option")),
    ("woocommerce", ("woo", "product", "order")),
)


class RemoteToolDescriptor(BaseModel):
    """A tool as advertised by ``tools/list/all``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str = Field(min_length=1)
    description: Any = None
    input_schema: Any = Field(default=None, alias="inputSchema")
    kind: Any = None


def is_write_tool(name: str, kind: Any = None) -> bool:
    """``kind == "action"`` or, lacking that, a mutating verb in the name."""
    if kind == "action":
        return True
    lowered = name.lower()
    return any(verb in lowered for verb in WRITE_VERBS)


@dataclass(slots=True)
class RemoteTool:
    name: str
    description: str
    write: bool
    input_schema: dict[str, Any] | None
    validator: ArgumentValidator | None = field(default=None, repr=False)

    @property
    def validated(self) -> bool:
        return self.validator is not None and self.validator.validated

    def validate_args(self, arguments: Any) -> Any:
        """Raise :class:`pydantic.ValidationError` for non-conforming input."""
        if self.validator is None:
            return arguments
        return self.validator.validate(arguments if arguments is not None else {})

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "write": self.write,
            "validated": self.validated,
        }


def _validator_for(descriptor: RemoteToolDescriptor) -> ArgumentValidator | None:
    if not isinstance(descriptor.input_schema, dict) or not descriptor.input_schema:
        return None
    try:
        return ArgumentValidator(descriptor.input_schema, name=f"{descriptor.name}_args")
    except Exception as exc:  # broad: any translation failure degrades to passthrough
        _LOG.warning("Schema for tool %s not usable, passing arguments through: %s", descriptor.name, exc)
        return None


def build_tool_catalog(
    raw_tools: Iterable[Any],
    *,
    write_mode: bool,
    allowed: Iterable[str] | None = None,
) -> dict[str, RemoteTool]:
    """Translate, filter and index remote tools by name, preserving order.

    Write tools are left out entirely unless *write_mode* is on; *allowed*,
    when given, restricts the catalog to those names.
    """
    allow = set(allowed) if allowed is not None else None
    catalog: dict[str, RemoteTool] = {}
    skipped = 0

    for raw in raw_tools:
        try:
            descriptor = RemoteToolDescriptor.model_validate(raw)
        except ValidationError as exc:
            skipped += 1
            _LOG.warning("Skipping malformed tool descriptor: %s", exc.errors()[:1])
            continue

        if allow is not None and descriptor.name not in allow:
            continue
        write = is_write_tool(descriptor.name, descriptor.kind)
        if write and not write_mode:
            continue
        schema = descriptor.input_schema if isinstance(descriptor.input_schema, dict) else None
        if descriptor.name in catalog:
            _LOG.debug("Duplicate tool %s, keeping the first", descriptor.name)
            continue

        catalog[descriptor.name] = RemoteTool(
            name=descriptor.name,
            description=str(descriptor.description or f"WordPress tool: {descriptor.name}"),
            write=write,
            input_schema=schema,
            validator=_validator_for(descriptor),
        )

    if skipped:
        _LOG.info("Tool catalog built with %d entries, %d skipped", len(catalog), skipped)
    return catalog


def categorize_tools(tools: Iterable[RemoteTool]) -> dict[str, list[RemoteTool]]:
    """Group tools by name substring; empty groups are dropped."""
    groups: dict[str, list[RemoteTool]] = {name: [] for name, _ in _CATEGORY_RULES}
    groups["other"] = []
    for tool in tools:
        lowered = tool.name.lower()
        for category, needles in _CATEGORY_RULES:
            if any(needle in lowered for needle in needles):
                groups[category].append(tool)
                break
        else:
            groups["other"].append(tool)
    return {name: members for name, members in groups.items() if members}


def visible_tools(catalog: dict[str, RemoteTool], *, write_mode: bool) -> dict[str, RemoteTool]:
    """Narrow an ungated catalog to what a connection may see."""
    if write_mode:
        return dict(catalog)
    return {name: tool for name, tool in catalog.items() if not tool.write}
