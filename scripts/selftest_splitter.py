#!/usr/bin/env python3
"""Self-test for price splitting, set classification and size matching.

No network required. Validates deterministic behavior of non-API logic.
"""
from decimal import Decimal
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'src'))

from set_splitter.classify import ComponentNameResolver, SetClassifier  # type: ignore
from set_splitter.linker import VariantLinker  # type: ignore
from set_splitter.models import CatalogEntry, ComponentEntry, EntryOption, MatchMethod, Variant  # type: ignore
from set_splitter.pricing import PriceAllocator  # type: ignore


def _entry(title: str, sizes, entry_id: int) -> CatalogEntry:
    return CatalogEntry(
        id=entry_id,
        title=title,
        options=[EntryOption('Size', 1, list(sizes))],
        variants=[Variant(id=entry_id * 10 + i, title=s, option1=s, price=Decimal('600')) for i, s in enumerate(sizes)],
    )


def main() -> int:
    # price split
    assert PriceAllocator(Decimal('2499'))('1200', 2) == [Decimal('600.00')] * 2
    assert PriceAllocator(Decimal('1500'))('4500', 3) == [Decimal('1500.00')] * 3
    assert PriceAllocator(Decimal('2000'))('5000', 2) == [Decimal('2000.00'), Decimal('3000.00')]

    # classification
    lehenga = CatalogEntry(title='Three Piece Lehenga Set - dupatta included')
    assert SetClassifier().is_set(lehenga)
    assert SetClassifier().parse_piece_count(lehenga) == 3
    assert ComponentNameResolver().resolve(CatalogEntry(title='Embroidered Set'), 2) == ['Top', 'Bottom']

    # size matching
    main_entry = _entry('Kurta Set', ['S', 'M', 'L'], 1)
    comp = ComponentEntry(_entry('Kurta Top', ['Small', 'Medium', 'Large'], 2), 'Top', 0)
    sync = VariantLinker().link(main_entry, [comp])
    assert [sync.by_size[s]['Top'].title for s in ('S', 'M', 'L')] == ['Small', 'Medium', 'Large']
    assert all(e['Top'].match_method is MatchMethod.EQUIVALENT for e in sync.by_size.values())

    print('Self-test ok: price split, classification and size matching pass basic checks')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
