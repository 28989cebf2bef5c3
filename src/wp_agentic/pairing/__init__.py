from .entitlements import EntitlementResolver, StaticEntitlements
from .models import DeviceLink, PollResult, StartResult
from .service import PairingCoordinator
from .store import DeviceLinkStore, DiskDeviceLinkStore, DuplicateCodeError

__all__ = [
    "DeviceLink",
    "DeviceLinkStore",
    "DiskDeviceLinkStore",
    "DuplicateCodeError",
    "EntitlementResolver",
    "PairingCoordinator",
    "PollResult",
    "StartResult",
    "StaticEntitlements",
]
