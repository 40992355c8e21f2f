"""Persistent catalog of indexed paths and built index artifacts"""

from .schema import TagCatalogEntry, GlobalCacheEntry
from .store import CatalogHandle, HandleCell, IndexCatalogStore, get_catalog_store

__all__ = [
    "TagCatalogEntry",
    "GlobalCacheEntry",
    "CatalogHandle",
    "HandleCell",
    "IndexCatalogStore",
    "get_catalog_store",
]
