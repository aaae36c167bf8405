import copy
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import pytest

from set_splitter.models import Attribute, CatalogEntry, EntryOption, Variant, parse_tags, to_decimal
from set_splitter.normalize import slugify_for_handle
from set_splitter.shopify_client import ClientResult


class FakeCatalogClient:
    """In-memory catalog with the CatalogClient surface.

    ``fail(op, after=n)`` lets ``n`` calls of ``op`` succeed and fails the rest.
    """

    def __init__(self, entries: Sequence[CatalogEntry] = ()):
        self.entries: Dict[int, CatalogEntry] = {}
        self.calls: List[tuple] = []
        self._failures: Dict[str, List] = {}
        self._next_id = 9000
        self._next_attr_id = 50000
        for e in entries:
            self.add(e)

    # --- test helpers ---

    def add(self, entry: CatalogEntry) -> CatalogEntry:
        if entry.id is None:
            entry.id = self._new_id()
        for a in entry.attributes:
            if a.id is None:
                a.id = self._new_attr_id()
        self.entries[entry.id] = copy.deepcopy(entry)
        return entry

    def fail(self, op: str, after: int = 0, error: str = "boom") -> None:
        self._failures[op] = [after, error]

    def created(self) -> List[CatalogEntry]:
        return [e for op, e in self.calls if op == "create_entry"]

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _new_attr_id(self) -> int:
        self._next_attr_id += 1
        return self._next_attr_id

    def _check(self, op: str) -> Optional[ClientResult]:
        rule = self._failures.get(op)
        if rule is None:
            return None
        if rule[0] > 0:
            rule[0] -= 1
            return None
        return ClientResult.fail(rule[1])

    # --- CatalogClient surface ---

    def get_entry(self, entry_id, with_attributes: bool = True) -> ClientResult:
        self.calls.append(("get_entry", entry_id))
        err = self._check("get_entry")
        if err:
            return err
        entry = self.entries.get(int(entry_id))
        if entry is None:
            return ClientResult.fail("404: Not Found")
        out = copy.deepcopy(entry)
        if not with_attributes:
            out.attributes = []
        return ClientResult.ok(out)

    def list_entries(self, limit: int = 250) -> ClientResult:
        self.calls.append(("list_entries", None))
        err = self._check("list_entries")
        if err:
            return err
        out = []
        for e in self.entries.values():
            c = copy.deepcopy(e)
            c.attributes = []
            out.append(c)
        return ClientResult.ok(out)

    def create_entry(self, draft: CatalogEntry) -> ClientResult:
        self.calls.append(("create_entry", draft))
        err = self._check("create_entry")
        if err:
            return err
        entry = copy.deepcopy(draft)
        entry.id = self._new_id()
        entry.handle = slugify_for_handle(entry.title)
        for v in entry.variants:
            v.id = self._new_id()
        for a in entry.attributes:
            a.id = self._new_attr_id()
        self.entries[entry.id] = copy.deepcopy(entry)
        return ClientResult.ok(entry)

    def update_entry(self, entry_id, patch: Dict) -> ClientResult:
        self.calls.append(("update_entry", (entry_id, patch)))
        err = self._check("update_entry")
        if err:
            return err
        entry = self.entries.get(int(entry_id))
        if entry is None:
            return ClientResult.fail("404: Not Found")
        if "tags" in patch:
            entry.tags = parse_tags(patch["tags"])
        for key in ("status", "published", "template_suffix"):
            if key in patch:
                setattr(entry, key, patch[key])
        for vp in patch.get("variants") or []:
            for v in entry.variants:
                if v.id == vp.get("id"):
                    if "price" in vp:
                        v.price = to_decimal(vp["price"])
                    if "compare_at_price" in vp:
                        v.compare_at_price = to_decimal(vp["compare_at_price"])
        return ClientResult.ok(copy.deepcopy(entry))

    def set_attribute(self, entry_id, namespace: str, key: str, value: str, value_type: str = "json") -> ClientResult:
        self.calls.append(("set_attribute", (entry_id, namespace, key)))
        err = self._check("set_attribute")
        if err:
            return err
        entry = self.entries.get(int(entry_id))
        if entry is None:
            return ClientResult.fail("404: Not Found")
        existing = entry.attribute(namespace, key)
        if existing is not None:
            existing.value = value
            existing.type = value_type
            return ClientResult.ok(copy.deepcopy(existing))
        attr = Attribute(namespace, key, value, value_type, self._new_attr_id())
        entry.attributes.append(attr)
        return ClientResult.ok(copy.deepcopy(attr))

    def delete_attribute(self, attribute_id) -> ClientResult:
        self.calls.append(("delete_attribute", attribute_id))
        err = self._check("delete_attribute")
        if err:
            return err
        for e in self.entries.values():
            e.attributes = [a for a in e.attributes if a.id != attribute_id]
        return ClientResult.ok()

    def delete_entry(self, entry_id) -> ClientResult:
        self.calls.append(("delete_entry", entry_id))
        err = self._check("delete_entry")
        if err:
            return err
        if self.entries.pop(int(entry_id), None) is None:
            return ClientResult.fail("404: Not Found")
        return ClientResult.ok()

    def get_shop(self) -> ClientResult:
        return ClientResult.ok({"name": "Test Shop", "myshopify_domain": "test.myshopify.com"})


def make_entry(
    entry_id: Optional[int],
    title: str,
    price="1200",
    sizes: Sequence[str] = ("S", "M", "L"),
    body_html: str = "",
    compare_at: Optional[str] = None,
    tags: Sequence[str] = (),
    attributes: Sequence[Attribute] = (),
) -> CatalogEntry:
    variants = [
        Variant(
            id=(entry_id * 10 + i) if entry_id else None,
            title=size,
            option1=size,
            price=Decimal(str(price)),
            compare_at_price=Decimal(compare_at) if compare_at else None,
            sku=f"SKU-{entry_id}-{size}",
            grams=400,
            inventory_quantity=5,
        )
        for i, size in enumerate(sizes)
    ]
    return CatalogEntry(
        id=entry_id,
        title=title,
        body_html=body_html,
        vendor="Kalki",
        product_type="Sets",
        handle=slugify_for_handle(title),
        tags=list(tags),
        images=[{"src": "https://cdn.example.com/a.jpg", "position": 1}],
        options=[EntryOption("Size", 1, list(sizes))] if sizes else [],
        variants=variants,
        attributes=list(attributes),
    )


@pytest.fixture
def client():
    return FakeCatalogClient()


@pytest.fixture
def set_entry(client):
    return client.add(make_entry(101, "Embroidered Kurta Set", price="1200", body_html="<p>Kurta with palazzo</p>"))
