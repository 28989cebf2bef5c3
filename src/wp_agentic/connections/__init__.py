from .models import SiteCredentials, WordPressConnection, normalize_site_url
from .refresh import RefreshPersistError, RefreshResult, TokenRefreshCoordinator
from .store import ConnectionStore

__all__ = [
    "ConnectionStore",
    "RefreshPersistError",
    "RefreshResult",
    "SiteCredentials",
    "TokenRefreshCoordinator",
    "WordPressConnection",
    "normalize_site_url",
]
