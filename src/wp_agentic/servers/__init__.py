from .context import AppContext, build_context
from .main import create_app

__all__ = ["AppContext", "build_context", "create_app"]
