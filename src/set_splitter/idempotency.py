from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Sequence

from .classify import ComponentNameResolver, SetClassifier, base_title
from .models import CatalogEntry
from .provenance import COMPONENT_TAGS, GENERATED_TAG, NAMESPACE


log = logging.getLogger(__name__)

GENERATED_KEY = "auto_generated_bundle"
TITLE_PREFIX_LENGTH = 10


class IdempotencyGuard:
    """Decides whether an entry was already split.

    The marker check is reliable. The catalog title scan is approximate: any
    other entry whose title contains a resolved component name and the first
    characters of this entry's base title counts as a previous run, which can
    misfire on generic titles.
    """

    def __init__(
        self,
        classifier: Optional[SetClassifier] = None,
        resolver: Optional[ComponentNameResolver] = None,
        namespace: str = NAMESPACE,
    ):
        self.classifier = classifier or SetClassifier()
        self.resolver = resolver or ComponentNameResolver()
        self.namespace = namespace

    def has_generated_marker(self, entry: CatalogEntry) -> bool:
        attr = entry.attribute(self.namespace, GENERATED_KEY)
        if attr is not None and attr.value.strip().lower() == "true":
            return True
        return GENERATED_TAG in {t.lower() for t in entry.tags}

    def is_component(self, entry: CatalogEntry) -> bool:
        """True for entries the splitter created as pieces of another set.

        Listings carry no attributes, so the role tags are checked as well.
        """
        if entry.attribute(self.namespace, "component_of") is not None:
            return True
        lowered = {t.lower() for t in entry.tags}
        return any(t in lowered for t in COMPONENT_TAGS)

    def find_existing_component(self, entry: CatalogEntry, catalog: Sequence[CatalogEntry]) -> Optional[CatalogEntry]:
        prefix = base_title(entry.title).lower()[:TITLE_PREFIX_LENGTH]
        names = self.resolver.resolve(entry, self.classifier.parse_piece_count(entry))
        for other in catalog:
            if entry.id is not None and other.id == entry.id:
                continue
            title = (other.title or "").lower()
            if prefix in title and any(n.lower() in title for n in names):
                return other
        return None

    def already_processed(self, entry: CatalogEntry, catalog: Optional[Sequence[CatalogEntry]] = None) -> bool:
        if self.has_generated_marker(entry):
            log.info(f"Entry {entry.title!r} already processed (generated marker)")
            return True
        if not catalog:
            return False
        match = self.find_existing_component(entry, catalog)
        if match is not None:
            log.info(f"Entry {entry.title!r} already processed (component {match.title!r} exists)")
            return True
        return False


class SingleFlight:
    """Per-key locks so only one run per entry id proceeds at a time.

    A key's lock lives only while someone holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._holders: Dict[str, int] = {}

    def _enter(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            self._holders[key] = self._holders.get(key, 0) + 1
            return lock

    def _leave(self, key: str) -> None:
        with self._guard:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    def is_busy(self, key) -> bool:
        with self._guard:
            lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    @contextmanager
    def hold(self, key, blocking: bool = False) -> Iterator[bool]:
        """Yield True when the lock was acquired, False when another run holds it."""
        key = str(key)
        lock = self._enter(key)
        acquired = False
        try:
            acquired = lock.acquire(blocking=blocking)
            yield acquired
        finally:
            if acquired:
                lock.release()
            self._leave(key)
