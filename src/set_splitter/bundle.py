from __future__ import annotations
import json
import logging
import time
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from .errors import UpstreamFailure
from .idempotency import GENERATED_KEY
from .linker import component_summary
from .models import (
    CENT,
    Attribute,
    BundleConfiguration,
    BundlePiece,
    CatalogEntry,
    ComponentEntry,
    VariantSyncMap,
    money,
    utcnow_iso,
)
from .provenance import NAMESPACE, ProvenanceTagger


log = logging.getLogger(__name__)

BUNDLE_TEMPLATE_SUFFIX = "bundle"
DEFAULT_COMPARE_AT_MULTIPLIER = Decimal("1.2")


class BundleConfigBuilder:
    def __init__(
        self,
        client,
        tagger: Optional[ProvenanceTagger] = None,
        namespace: str = NAMESPACE,
        compare_at_multiplier: Decimal = DEFAULT_COMPARE_AT_MULTIPLIER,
    ):
        self.client = client
        self.namespace = namespace
        self.tagger = tagger or ProvenanceTagger(namespace)
        self.compare_at_multiplier = Decimal(str(compare_at_multiplier))

    def assemble(
        self,
        main: CatalogEntry,
        components: Sequence[ComponentEntry],
        sync: Optional[VariantSyncMap] = None,
    ) -> BundleConfiguration:
        sync_options = [o.name for o in main.options]
        pieces = [
            BundlePiece(
                id=c.id,
                title=c.entry.title,
                component_type=c.component_type,
                price=c.entry.first_price,
                sync_options=sync_options,
                hide_variants=idx > 0,
            )
            for idx, c in enumerate(components)
        ]
        total = sum((p.price or Decimal("0") for p in pieces), Decimal("0")).quantize(CENT)
        return BundleConfiguration(
            original_entry_id=main.id,
            original_title=main.title,
            pieces=pieces,
            total_original_price=main.first_price,
            total_bundle_price=total,
            component_names=[c.component_type for c in components],
            variant_sync=sync,
            bundle_id=f"bundle_{main.id}_{int(time.time() * 1000)}",
        )

    def dynamic_config(self, components: Sequence[ComponentEntry], sync: VariantSyncMap) -> Dict:
        return {
            "enabled": True,
            "lastUpdated": utcnow_iso(),
            "componentCount": len(components),
            "availableSizes": sync.sizes,
            "fallbackHandles": [c.entry.handle for c in components],
        }

    def sync_attributes(self, components: Sequence[ComponentEntry], sync: VariantSyncMap) -> List[Tuple[str, str, str]]:
        return [
            ("component_products", json.dumps([component_summary(c) for c in components]), "json"),
            ("variant_sync_mapping", json.dumps(sync.to_dict()), "json"),
            ("dynamic_variant_config", json.dumps(self.dynamic_config(components, sync)), "json"),
        ]

    def attribute_payloads(self, config: BundleConfiguration, components: Sequence[ComponentEntry]) -> List[Tuple[str, str, str]]:
        cart_transform = {
            "enabled": True,
            "bundleItems": [{"productId": c.id, "quantity": 1, "autoSelect": True} for c in components],
            "variantSync": True,
            "hideSubVariants": True,
        }
        payloads = [
            ("bundle_config", json.dumps(config.to_dict()), "json"),
            ("is_bundle", "true", "boolean"),
            ("cart_transform_config", json.dumps(cart_transform), "json"),
        ]
        if config.variant_sync is not None:
            payloads.extend(self.sync_attributes(components, config.variant_sync))
        # generated marker goes last so a partial write is never mistaken for a finished run
        payloads.append((GENERATED_KEY, "true", "boolean"))
        return payloads

    def write_attributes(self, main: CatalogEntry, payloads: Sequence[Tuple[str, str, str]],
                         written: Optional[List[Attribute]] = None) -> List[Attribute]:
        written = written if written is not None else []
        for key, value, value_type in payloads:
            res = self.client.set_attribute(main.id, self.namespace, key, value, value_type)
            if not res.success:
                raise UpstreamFailure(f"set attribute {self.namespace}.{key}", res.error)
            attr: Attribute = res.data
            written.append(attr)
            main.attributes = [a for a in main.attributes if not (a.namespace == attr.namespace and a.key == attr.key)]
            main.attributes.append(attr)
        return written

    def persist(self, main: CatalogEntry, config: BundleConfiguration, components: Sequence[ComponentEntry],
                written: Optional[List[Attribute]] = None) -> List[Attribute]:
        written = self.write_attributes(main, self.attribute_payloads(config, components), written)
        log.info(f"Persisted {len(written)} bundle attributes on entry {main.id}")
        return written

    def activate(self, main: CatalogEntry, config: BundleConfiguration) -> CatalogEntry:
        """Switch the main entry to bundle display at the aggregate price."""
        total = config.total_bundle_price
        compare_at = (total * self.compare_at_multiplier).quantize(CENT)
        patch: Dict[str, object] = {
            "variants": [
                {"id": v.id, "price": money(total), "compare_at_price": money(compare_at)}
                for v in main.variants
            ],
            "template_suffix": BUNDLE_TEMPLATE_SUFFIX,
        }
        decision = self.tagger.safe_tag(main, "original", self.tagger.original_tags([], config.piece_count))
        if decision.should_tag:
            patch["tags"] = ", ".join(decision.new_tags)
        else:
            log.warning(f"Not tagging entry {main.id}: {decision.reason}")

        res = self.client.update_entry(main.id, patch)
        if not res.success:
            raise UpstreamFailure("activate bundle display", res.error)
        log.info(f"Entry {main.id} now displays as bundle at {money(total)}")
        return res.data
