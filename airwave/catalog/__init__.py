"""
Catalog module for airwave.

Proposes tracks for discovery:
    - models: CatalogCandidate
    - discogs: Discogs database search provider

Usage:
    from airwave.catalog import DiscogsCatalog

    catalog = DiscogsCatalog.from_config(config.catalog)
    candidates = catalog.search(limit=20)
"""

from airwave.catalog.discogs import CatalogProvider, DiscogsCatalog, build_genre_query
from airwave.catalog.models import CatalogCandidate

__all__ = [
    "CatalogCandidate",
    "CatalogProvider",
    "DiscogsCatalog",
    "build_genre_query",
]
