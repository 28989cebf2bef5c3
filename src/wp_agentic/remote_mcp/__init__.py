from .client import MCPProtocolClient, build_envelope, mcp_endpoint
from .compat import MIN_PLUGIN_VERSION, Compatibility, check_compatibility, version_gte
from .schema import PASSTHROUGH, ArgumentValidator, UnknownSchema, is_passthrough, translate_schema
from .session import RefreshingMCPSession
from .tools import (
    RemoteTool,
    RemoteToolDescriptor,
    build_tool_catalog,
    categorize_tools,
    is_write_tool,
    visible_tools,
)

__all__ = [
    "ArgumentValidator",
    "Compatibility",
    "MCPProtocolClient",
    "MIN_PLUGIN_VERSION",
    "PASSTHROUGH",
    "RefreshingMCPSession",
    "RemoteTool",
    "RemoteToolDescriptor",
    "UnknownSchema",
    "build_envelope",
    "build_tool_catalog",
    "categorize_tools",
    "check_compatibility",
    "is_passthrough",
    "is_write_tool",
    "mcp_endpoint",
    "translate_schema",
    "version_gte",
    "visible_tools",
]
