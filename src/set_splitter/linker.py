"""Resolve every size of the main entry to a variant on each component.

Matching runs in tiers over all candidate variants: exact option values,
then size-class equivalence ("S" / "Small" / "sm"), then substring
containment, then the component's first variant. A tier is only tried when
the previous one found nothing for any candidate.
"""

from __future__ import annotations
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .models import (
    CatalogEntry,
    ComponentEntry,
    MatchMethod,
    SizeAvailability,
    Variant,
    VariantSyncEntry,
    VariantSyncMap,
    money,
)
from .normalize import is_valid_size, size_class


log = logging.getLogger(__name__)

TYPE_KEYWORDS = [
    (("top", "shirt", "blouse", "kurta"), "Top"),
    (("bottom", "pant", "trouser", "palazzo", "sharara"), "Bottom"),
    (("jacket", "blazer", "coat", "cardigan"), "Jacket"),
    (("dupatta", "scarf", "stole", "shawl"), "Dupatta"),
    (("skirt", "lehenga"), "Skirt"),
    (("dress", "gown"), "Dress"),
]


def extract_size(variant: Variant) -> Optional[str]:
    for value in (variant.option1, variant.option2, variant.option3, variant.title):
        if value and is_valid_size(value):
            return value
    return None


def size_key(variant: Variant) -> str:
    return (extract_size(variant) or variant.option1 or variant.title or "").strip().upper()


def equivalent(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    a, b = str(a).strip().lower(), str(b).strip().lower()
    if a == b:
        return True
    ca, cb = size_class(a), size_class(b)
    return ca is not None and ca == cb


def contains_either(a: Optional[str], b: Optional[str]) -> bool:
    if not a or not b:
        return False
    a, b = str(a).strip().lower(), str(b).strip().lower()
    return a in b or b in a


def detect_component_type(title: str, handle: str = "") -> str:
    text = f"{title or ''} {handle or ''}".lower()
    for keywords, ctype in TYPE_KEYWORDS:
        if any(k in text for k in keywords):
            return ctype
    return "Component"


class VariantLinker:
    def __init__(self, sync_options: Optional[Sequence[str]] = None):
        self.sync_options = list(sync_options) if sync_options else None

    def options_for(self, main: CatalogEntry) -> List[str]:
        if self.sync_options:
            return list(self.sync_options)
        return [o.name for o in main.options] or ["Size"]

    def _pairs(self, main: CatalogEntry, main_variant: Variant, component: CatalogEntry,
               target: Variant, options: Sequence[str]) -> List[Tuple[Optional[str], Optional[str]]]:
        return [
            (main_variant.option(main.option_position(name)), target.option(component.option_position(name)))
            for name in options
        ]

    def _scan(self, main: CatalogEntry, main_variant: Variant, component: CatalogEntry,
              options: Sequence[str], test: Callable[[Optional[str], Optional[str]], bool]) -> Optional[Variant]:
        for target in component.variants:
            if all(test(a, b) for a, b in self._pairs(main, main_variant, component, target, options)):
                return target
        return None

    def match(self, main: CatalogEntry, main_variant: Variant, component: CatalogEntry,
              options: Optional[Sequence[str]] = None) -> Tuple[Optional[Variant], MatchMethod]:
        options = options or self.options_for(main)
        tiers = [
            (MatchMethod.EXACT, lambda a, b: a == b),
            (MatchMethod.EQUIVALENT, equivalent),
            (MatchMethod.SUBSTRING, contains_either),
        ]
        for method, test in tiers:
            found = self._scan(main, main_variant, component, options, test)
            if found is not None:
                return found, method
        return (component.variants[0] if component.variants else None), MatchMethod.FALLBACK

    def link(self, main: CatalogEntry, components: Sequence[ComponentEntry]) -> VariantSyncMap:
        options = self.options_for(main)
        sync = VariantSyncMap(bundle_entry_id=main.id)

        for mv in main.variants:
            key = size_key(mv)
            if not key or key in sync.by_size:
                continue
            sync.main_variants[key] = {
                "id": mv.id,
                "title": mv.title,
                "price": money(mv.price),
                "size": key,
                "available": mv.available,
            }
            per_component: Dict[str, VariantSyncEntry] = {}
            availability = SizeAvailability()
            for comp in components:
                target, method = self.match(main, mv, comp.entry, options)
                if target is None:
                    log.warning(f"Component {comp.id} has no variants; size {key} unresolved")
                    availability.available = False
                    availability.components[comp.component_type] = False
                    continue
                if method is not MatchMethod.EXACT:
                    log.debug(f"Size {key} -> {target.title!r} on {comp.component_type} via {method.value}")
                per_component[comp.component_type] = VariantSyncEntry(
                    variant_id=target.id,
                    product_id=comp.id,
                    title=target.title,
                    price=target.price,
                    available=target.available,
                    inventory_quantity=target.inventory_quantity,
                    match_method=method,
                )
                availability.components[comp.component_type] = target.available
                if not target.available:
                    availability.available = False
            sync.by_size[key] = per_component
            sync.availability[key] = availability

        log.info(f"Linked sizes for entry {main.id}: {', '.join(sync.sizes)}")
        return sync


def component_summary(comp: ComponentEntry) -> Dict:
    """Compact per-component record persisted on the bundle entry."""
    entry = comp.entry
    return {
        "id": entry.id,
        "handle": entry.handle,
        "title": entry.title,
        "price": money(entry.first_price),
        "image": (entry.images[0].get("src") if entry.images else None),
        "componentType": comp.component_type,
        "variants": [
            {
                "id": v.id,
                "title": v.title,
                "price": money(v.price),
                "options": v.options,
                "option1": v.option1,
                "option2": v.option2,
                "option3": v.option3,
                "available": v.available,
                "inventory_quantity": v.inventory_quantity,
            }
            for v in entry.variants
        ],
        "options": [o.to_api() for o in entry.options],
        "variantMapping": {size_key(v): v.id for v in entry.variants if size_key(v)},
    }
