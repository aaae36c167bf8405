"""
Set → bundle splitter for Shopify catalogs.

This package provides modular building blocks for:
- Deciding whether a listing is a multi-piece set and naming its pieces
- Splitting the set price across pieces under a per-piece ceiling
- Creating hidden component entries and linking their sizes to the main entry
- Persisting the bundle configuration and switching the main entry to bundle display

Public API:
- classify.SetClassifier, classify.ComponentNameResolver
- pricing.PriceAllocator
- linker.VariantLinker
- pipeline.SetPipeline
- shopify_client.CatalogClient, shopify_client.ShopifyConfig
- visibility.hide_components, visibility.show_components
"""

from . import classify, linker, models, pipeline, pricing, provenance, visibility  # re-export modules

__all__ = [
    "classify",
    "linker",
    "models",
    "pipeline",
    "pricing",
    "provenance",
    "visibility",
]
