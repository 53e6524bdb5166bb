from .cache import CachePort
from .clipboard import ClipboardPort
from .hot_search_store import HotSearchStorePort
from .settings_store import SettingsStorePort
from .source_gateway import SourceGatewayPort

__all__ = [
    "CachePort",
    "ClipboardPort",
    "HotSearchStorePort",
    "SettingsStorePort",
    "SourceGatewayPort",
]
