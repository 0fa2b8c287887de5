"""
Extraction adapters for listing sites.

pick_adapter returns the adapter registered for a URL's domain, falling
back to the heuristic GenericAdapter.
"""

from typing import Dict

from ingestion.utils.urls import domain_from

from .base import DiscoverResult, ExtractedListing, SourceAdapter
from .generic import GenericAdapter
from .imobiliare import ImobiliareAdapter
from .olx import OlxAdapter
from .site import SiteAdapter
from .storia import StoriaAdapter

# Site-specific adapters keyed by domain (without www.)
ADAPTERS: Dict[str, SourceAdapter] = {}

_generic = GenericAdapter()


def register_adapter(adapter: SourceAdapter) -> None:
    ADAPTERS[adapter.DOMAIN] = adapter


def pick_adapter(url: str) -> SourceAdapter:
    return ADAPTERS.get(domain_from(url), _generic)


for _adapter_class in (ImobiliareAdapter, OlxAdapter, StoriaAdapter):
    register_adapter(_adapter_class())


__all__ = [
    "ADAPTERS",
    "DiscoverResult",
    "ExtractedListing",
    "GenericAdapter",
    "ImobiliareAdapter",
    "OlxAdapter",
    "SiteAdapter",
    "SourceAdapter",
    "StoriaAdapter",
    "pick_adapter",
    "register_adapter",
]
