"""Link WordPress sites to the control plane and talk MCP to them."""

__version__ = "0.1.0"
