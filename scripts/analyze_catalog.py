#!/usr/bin/env python3
"""Read-only catalog summary: how many sets exist, how many are already split."""
import sys
from collections import Counter
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1] / 'src'))
from set_splitter.classify import SetClassifier  # type: ignore
from set_splitter.config import load_env, shopify_config_from_env  # type: ignore
from set_splitter.idempotency import IdempotencyGuard  # type: ignore
from set_splitter.provenance import ProvenanceTagger  # type: ignore
from set_splitter.shopify_client import CatalogClient  # type: ignore


def main():
    load_env(sys.argv[1] if len(sys.argv) > 1 else None)
    client = CatalogClient(shopify_config_from_env())
    listed = client.list_entries()
    if not listed.success:
        print(f'Listing failed: {listed.error}')
        return 1
    entries = listed.data

    classifier = SetClassifier()
    guard = IdempotencyGuard(classifier)
    tagger = ProvenanceTagger()
    sets = [e for e in entries if classifier.is_set(e)]
    processed = [e for e in sets if guard.already_processed(e, entries)]
    owned = [e for e in entries if tagger.is_created_by_pipeline(e)]
    pieces = Counter(classifier.parse_piece_count(e) for e in sets)

    print(f'Total entries: {len(entries)}')
    print(f'Set entries: {len(sets)}')
    print(f'Already processed: {len(processed)}')
    print(f'Unprocessed: {len(sets) - len(processed)}')
    print(f'Entries owned by the splitter: {len(owned)}')

    print('\nPiece counts:')
    for k, v in sorted(pieces.items()):
        print(f'- {k} pieces: {v}')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
