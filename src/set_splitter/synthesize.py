from __future__ import annotations
import logging
import time
from dataclasses import replace
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from .classify import base_title
from .describe import build_component_body_html
from .errors import PartialCreationFailure
from .models import CENT, Attribute, CatalogEntry, ComponentEntry, EntryOption, Variant
from .provenance import NAMESPACE, ProvenanceTagger


log = logging.getLogger(__name__)

SKU_SUFFIX = "-component"
SKU_MAX_LENGTH = 30


def component_variant(source: Variant, price: Decimal) -> Variant:
    compare_at: Optional[Decimal] = None
    if source.compare_at_price and source.price:
        compare_at = (source.compare_at_price * (price / source.price)).quantize(CENT)
    return replace(
        source,
        id=None,
        price=price,
        compare_at_price=compare_at,
        sku=f"{source.sku or ''}{SKU_SUFFIX}"[:SKU_MAX_LENGTH],
        grams=(source.grams or 0) // 2,
    )


class ComponentSynthesizer:
    def __init__(
        self,
        client,
        tagger: Optional[ProvenanceTagger] = None,
        create_delay: float = 0.5,
        namespace: str = NAMESPACE,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.tagger = tagger or ProvenanceTagger(namespace)
        self.create_delay = create_delay
        self.namespace = namespace
        self.sleep = sleep

    def build_draft(self, parent: CatalogEntry, name: str, index: int, price: Decimal, piece_count: int) -> CatalogEntry:
        return CatalogEntry(
            title=f"{base_title(parent.title)} {name}".strip(),
            body_html=build_component_body_html(parent, name, piece_count),
            vendor=parent.vendor,
            product_type=parent.product_type,
            tags=self.tagger.component_tags([], name, index),
            images=[dict(img) for img in parent.images],
            options=[EntryOption(o.name, o.position, list(o.values)) for o in parent.options],
            variants=[component_variant(v, price) for v in parent.variants],
            attributes=[
                Attribute(self.namespace, "component_of", str(parent.id)),
                Attribute(self.namespace, "component_type", name.lower()),
                Attribute(self.namespace, "component_index", str(index)),
            ],
            status="draft",
            published=False,
        )

    def build_drafts(self, parent: CatalogEntry, names: Sequence[str], prices: Sequence[Decimal]) -> List[CatalogEntry]:
        return [
            self.build_draft(parent, name, idx, prices[idx], len(names))
            for idx, name in enumerate(names)
        ]

    def create(self, drafts: Sequence[CatalogEntry], names: Sequence[str]) -> List[ComponentEntry]:
        """Create drafts one at a time. The first failure aborts the loop."""
        created: List[ComponentEntry] = []
        for idx, draft in enumerate(drafts):
            log.info(f"Creating component {idx + 1}/{len(drafts)}: {draft.title}")
            res = self.client.create_entry(draft)
            if not res.success:
                log.error(f"Failed to create component {draft.title!r}: {res.error}")
                raise PartialCreationFailure(draft.title, res.error, created)
            entry: CatalogEntry = res.data
            log.info(f"Created component {entry.title!r} (ID: {entry.id})")
            created.append(ComponentEntry(entry=entry, component_type=names[idx], index=idx))
            if self.create_delay > 0 and idx < len(drafts) - 1:
                self.sleep(self.create_delay)
        return created
