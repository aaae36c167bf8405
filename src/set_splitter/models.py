"""Typed records for catalog entries, bundle configuration and pipeline results.

Records are plain dataclasses. Conversion to and from the Shopify Admin REST
JSON shape happens only in ``from_api`` / ``to_api`` / ``to_dict``.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Dict, List, Optional


CENT = Decimal("0.01")


def to_decimal(value) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value)).quantize(CENT)
    except InvalidOperation:
        return None


def money(value: Optional[Decimal]) -> Optional[str]:
    if value is None:
        return None
    return str(value.quantize(CENT))


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_tags(tags) -> List[str]:
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    return [t.strip() for t in tags if t and t.strip()]


@dataclass
class Attribute:
    namespace: str
    key: str
    value: str
    type: str = "single_line_text_field"
    id: Optional[int] = None

    @classmethod
    def from_api(cls, data: Dict) -> "Attribute":
        return cls(
            namespace=data.get("namespace") or "",
            key=data.get("key") or "",
            value="" if data.get("value") is None else str(data.get("value")),
            type=data.get("type") or "single_line_text_field",
            id=data.get("id"),
        )

    def to_api(self) -> Dict:
        out = {"namespace": self.namespace, "key": self.key, "value": self.value, "type": self.type}
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass
class EntryOption:
    name: str
    position: int = 1
    values: List[str] = field(default_factory=list)

    @classmethod
    def from_api(cls, data: Dict) -> "EntryOption":
        return cls(
            name=data.get("name") or "",
            position=int(data.get("position") or 1),
            values=[str(v) for v in (data.get("values") or [])],
        )

    def to_api(self) -> Dict:
        return {"name": self.name, "position": self.position, "values": list(self.values)}


@dataclass
class Variant:
    id: Optional[int] = None
    title: str = ""
    option1: Optional[str] = None
    option2: Optional[str] = None
    option3: Optional[str] = None
    price: Optional[Decimal] = None
    compare_at_price: Optional[Decimal] = None
    sku: str = ""
    barcode: Optional[str] = None
    grams: int = 0
    inventory_quantity: int = 0
    inventory_policy: Optional[str] = None
    inventory_management: Optional[str] = None
    requires_shipping: bool = True
    taxable: bool = True
    available: bool = True

    @classmethod
    def from_api(cls, data: Dict) -> "Variant":
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            option1=data.get("option1"),
            option2=data.get("option2"),
            option3=data.get("option3"),
            price=to_decimal(data.get("price")),
            compare_at_price=to_decimal(data.get("compare_at_price")),
            sku=data.get("sku") or "",
            barcode=data.get("barcode"),
            grams=int(data.get("grams") or 0),
            inventory_quantity=int(data.get("inventory_quantity") or 0),
            inventory_policy=data.get("inventory_policy"),
            inventory_management=data.get("inventory_management"),
            requires_shipping=data.get("requires_shipping", True) is not False,
            taxable=data.get("taxable", True) is not False,
            available=data.get("available", True) is not False,
        )

    @property
    def options(self) -> List[str]:
        return [o for o in (self.option1, self.option2, self.option3) if o]

    def option(self, position: int) -> Optional[str]:
        return {1: self.option1, 2: self.option2, 3: self.option3}.get(position)

    def to_api(self) -> Dict:
        out: Dict[str, object] = {
            "option1": self.option1,
            "option2": self.option2,
            "option3": self.option3,
            "price": money(self.price),
            "compare_at_price": money(self.compare_at_price),
            "sku": self.sku,
            "barcode": self.barcode,
            "grams": self.grams,
            "inventory_policy": self.inventory_policy,
            "inventory_management": self.inventory_management,
            "inventory_quantity": self.inventory_quantity,
            "requires_shipping": self.requires_shipping,
            "taxable": self.taxable,
        }
        if self.id is not None:
            out["id"] = self.id
        return out


@dataclass
class CatalogEntry:
    id: Optional[int] = None
    title: str = ""
    body_html: str = ""
    vendor: str = ""
    product_type: str = ""
    handle: str = ""
    tags: List[str] = field(default_factory=list)
    images: List[Dict] = field(default_factory=list)
    options: List[EntryOption] = field(default_factory=list)
    variants: List[Variant] = field(default_factory=list)
    attributes: List[Attribute] = field(default_factory=list)
    status: str = "active"
    published: Optional[bool] = None
    template_suffix: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict) -> "CatalogEntry":
        return cls(
            id=data.get("id"),
            title=data.get("title") or "",
            body_html=data.get("body_html") or "",
            vendor=data.get("vendor") or "",
            product_type=data.get("product_type") or "",
            handle=data.get("handle") or "",
            tags=parse_tags(data.get("tags")),
            images=list(data.get("images") or []),
            options=[EntryOption.from_api(o) for o in (data.get("options") or [])],
            variants=[Variant.from_api(v) for v in (data.get("variants") or [])],
            attributes=[Attribute.from_api(m) for m in (data.get("metafields") or [])],
            status=data.get("status") or "active",
            published=data.get("published"),
            template_suffix=data.get("template_suffix"),
        )

    def to_api(self) -> Dict:
        out: Dict[str, object] = {
            "title": self.title,
            "body_html": self.body_html,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "tags": ", ".join(self.tags),
            "images": [{k: v for k, v in img.items() if k in ("src", "alt", "position")} for img in self.images],
            "options": [o.to_api() for o in self.options],
            "variants": [v.to_api() for v in self.variants],
            "status": self.status,
        }
        if self.attributes:
            out["metafields"] = [a.to_api() for a in self.attributes]
        if self.published is not None:
            out["published"] = self.published
        if self.template_suffix:
            out["template_suffix"] = self.template_suffix
        if self.id is not None:
            out["id"] = self.id
        return out

    @property
    def first_price(self) -> Optional[Decimal]:
        if not self.variants:
            return None
        return self.variants[0].price

    def attribute(self, namespace: str, key: str) -> Optional[Attribute]:
        for a in self.attributes:
            if a.namespace == namespace and a.key == key:
                return a
        return None

    def option_position(self, name: str) -> int:
        for idx, opt in enumerate(self.options):
            if opt.name.lower() == (name or "").lower():
                return idx + 1
        return 1


@dataclass
class ComponentEntry:
    entry: CatalogEntry
    component_type: str
    index: int

    @property
    def id(self) -> Optional[int]:
        return self.entry.id


class EntryState(str, Enum):
    UNPROCESSED = "unprocessed"
    PROCESSING = "processing"
    LINKED = "linked"
    BUNDLE_ACTIVE = "bundle_active"
    FAILED = "failed"


class MatchMethod(str, Enum):
    EXACT = "exact"
    EQUIVALENT = "equivalent"
    SUBSTRING = "substring"
    FALLBACK = "fallback"


@dataclass
class VariantSyncEntry:
    variant_id: Optional[int]
    product_id: Optional[int]
    title: str
    price: Optional[Decimal]
    available: bool
    inventory_quantity: int = 0
    match_method: MatchMethod = MatchMethod.EXACT

    def to_dict(self) -> Dict:
        return {
            "variantId": self.variant_id,
            "productId": self.product_id,
            "title": self.title,
            "price": money(self.price),
            "available": self.available,
            "inventory_quantity": self.inventory_quantity,
            "matchMethod": self.match_method.value,
        }


@dataclass
class SizeAvailability:
    available: bool = True
    components: Dict[str, bool] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {"available": self.available, "components": dict(self.components)}


@dataclass
class VariantSyncMap:
    bundle_entry_id: Optional[int]
    main_variants: Dict[str, Dict] = field(default_factory=dict)
    by_size: Dict[str, Dict[str, VariantSyncEntry]] = field(default_factory=dict)
    availability: Dict[str, SizeAvailability] = field(default_factory=dict)
    last_updated: str = field(default_factory=utcnow_iso)

    @property
    def sizes(self) -> List[str]:
        return list(self.by_size.keys())

    def to_dict(self) -> Dict:
        return {
            "bundleProductId": self.bundle_entry_id,
            "lastUpdated": self.last_updated,
            "mainProductVariants": self.main_variants,
            "componentVariantsBySize": {
                size: {ctype: e.to_dict() for ctype, e in comps.items()}
                for size, comps in self.by_size.items()
            },
            "sizeAvailability": {size: a.to_dict() for size, a in self.availability.items()},
        }


@dataclass
class BundlePiece:
    id: Optional[int]
    title: str
    component_type: str
    price: Optional[Decimal]
    sync_options: List[str] = field(default_factory=list)
    hide_variants: bool = False
    quantity: int = 1

    def to_dict(self) -> Dict:
        return {
            "id": self.id,
            "title": self.title,
            "quantity": self.quantity,
            "isUpsell": False,
            "discount": 0,
            "componentType": self.component_type,
            "price": money(self.price),
            "variantMapping": {
                "enabled": True,
                "autoSelect": True,
                "hideVariants": self.hide_variants,
                "syncOptions": [
                    {"mainOption": name, "targetOption": name, "confidence": 100, "autoSync": True}
                    for name in self.sync_options
                ],
            },
        }


@dataclass
class BundleConfiguration:
    original_entry_id: Optional[int]
    original_title: str
    pieces: List[BundlePiece]
    total_original_price: Optional[Decimal]
    total_bundle_price: Decimal
    component_names: List[str]
    variant_sync: Optional[VariantSyncMap] = None
    display_as_bundle: bool = True
    created_at: str = field(default_factory=utcnow_iso)
    bundle_id: Optional[str] = None

    @property
    def piece_count(self) -> int:
        return len(self.pieces)

    def to_dict(self) -> Dict:
        return {
            "bundleId": self.bundle_id,
            "originalProductId": self.original_entry_id,
            "originalProductTitle": self.original_title,
            "isAutoGeneratedSet": True,
            "displayAsBundle": self.display_as_bundle,
            "cartTransform": {
                "enabled": True,
                "hideComponentVariants": True,
                "showOnlyMainVariant": True,
                "autoAddToCart": True,
                "synchronizeVariants": True,
            },
            "bundleProducts": [p.to_dict() for p in self.pieces],
            "bundleMetadata": {
                "totalOriginalPrice": money(self.total_original_price),
                "totalBundlePrice": money(self.total_bundle_price),
                "pieceCount": self.piece_count,
                "componentNames": list(self.component_names),
                "autoGenerated": True,
                "createdAt": self.created_at,
            },
            "displaySettings": {
                "showBundlePrice": True,
                "showComponentPrices": True,
                "showSavings": False,
                "bundlePriceText": f"Total: {money(self.total_bundle_price)}",
                "hideComponentVariantSelectors": True,
            },
            "variantSync": self.variant_sync.to_dict() if self.variant_sync else None,
        }


@dataclass
class ProcessResult:
    success: bool
    data: Dict = field(default_factory=dict)
    error: Optional[str] = None
    reason: Optional[str] = None
    state: EntryState = EntryState.UNPROCESSED

    @classmethod
    def skip(cls, reason: str, error: Optional[str] = None) -> "ProcessResult":
        return cls(success=False, error=error or reason, reason=reason)

    def to_dict(self) -> Dict:
        if self.success:
            return {"success": True, "data": self.data, "state": self.state.value}
        out = {"success": False, "error": self.error, "reason": self.reason, "state": self.state.value}
        if self.data:
            out["data"] = self.data
        return out
