"""Set-to-bundle pipeline.

One run per entry::

    lock -> already processed? -> is set? -> piece count / names -> price split
         -> create hidden components -> link variants -> persist config -> activate

State per entry moves UNPROCESSED -> PROCESSING -> LINKED -> BUNDLE_ACTIVE and
ends in FAILED on any step error. A failed run never returns to UNPROCESSED on
its own: created components are deleted (``rollback_on_failure``) or recorded
under an ``incomplete_run`` attribute for ``reconcile_incomplete``.
"""

from __future__ import annotations
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from .bundle import BundleConfigBuilder
from .classify import ComponentNameResolver, SetClassifier
from .config import PipelineConfig
from .errors import (
    SKIP_ALREADY_PROCESSED,
    SKIP_COMPONENT,
    SKIP_IN_PROGRESS,
    SKIP_NOT_A_SET,
    ConfigurationInvalid,
    PartialCreationFailure,
    SetSplitterError,
    UpstreamFailure,
)
from .idempotency import IdempotencyGuard, SingleFlight
from .linker import VariantLinker, detect_component_type
from .models import (
    Attribute,
    CatalogEntry,
    ComponentEntry,
    EntryState,
    ProcessResult,
    money,
    utcnow_iso,
)
from .pricing import PriceAllocator, PriceSplit
from .provenance import ProvenanceTagger
from .synthesize import ComponentSynthesizer


log = logging.getLogger(__name__)

INCOMPLETE_KEY = "incomplete_run"


@dataclass
class SetPlan:
    piece_count: int
    names: List[str]
    split: PriceSplit


@dataclass
class _Run:
    entry_id: object
    state: EntryState = EntryState.UNPROCESSED
    created: List[ComponentEntry] = field(default_factory=list)
    written: List[Attribute] = field(default_factory=list)

    def move(self, state: EntryState) -> None:
        log.info(f"Entry {self.entry_id}: {self.state.value} -> {state.value}")
        self.state = state


class SetPipeline:
    def __init__(
        self,
        client,
        config: Optional[PipelineConfig] = None,
        classifier: Optional[SetClassifier] = None,
        resolver: Optional[ComponentNameResolver] = None,
        locks: Optional[SingleFlight] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.config = config or PipelineConfig()
        self.classifier = classifier or SetClassifier()
        self.resolver = resolver or ComponentNameResolver()
        self.locks = locks or SingleFlight()
        self.sleep = sleep
        ns = self.config.namespace
        self.tagger = ProvenanceTagger(ns)
        self.allocator = PriceAllocator(self.config.max_component_price)
        self.guard = IdempotencyGuard(self.classifier, self.resolver, ns)
        self.synthesizer = ComponentSynthesizer(client, self.tagger, self.config.create_delay, ns, sleep=sleep)
        self.linker = VariantLinker()
        self.builder = BundleConfigBuilder(client, self.tagger, ns, self.config.compare_at_multiplier)

    # --- collaborator helpers ---

    def _get(self, entry_id) -> CatalogEntry:
        res = self.client.get_entry(entry_id)
        if not res.success:
            raise UpstreamFailure(f"get entry {entry_id}", res.error)
        return res.data

    def _catalog(self) -> List[CatalogEntry]:
        res = self.client.list_entries()
        if not res.success:
            raise UpstreamFailure("list entries", res.error)
        return res.data

    def _json_attribute(self, entry: CatalogEntry, key: str):
        attr = entry.attribute(self.config.namespace, key)
        if attr is None:
            return None
        try:
            return json.loads(attr.value)
        except ValueError:
            raise ConfigurationInvalid(f"attribute {key} on entry {entry.id} is not valid JSON")

    # --- classification ---

    def plan(self, entry: CatalogEntry) -> SetPlan:
        if not entry.variants:
            raise ConfigurationInvalid(f"entry {entry.id} has no variants")
        price = entry.first_price
        if price is None or price <= 0:
            raise ConfigurationInvalid(f"entry {entry.id} has no usable price")
        piece_count = self.classifier.parse_piece_count(entry)
        names = self.resolver.resolve(entry, piece_count)
        if len(names) != piece_count:
            raise ConfigurationInvalid(f"resolved {len(names)} component names for {piece_count} pieces")
        split = self.allocator.split(price, piece_count)
        log.info(f"Price split: {money(price)} -> {', '.join(split.as_strings())}")
        return SetPlan(piece_count, names, split)

    def check_entry(self, entry_id) -> ProcessResult:
        """Classification and proposed split for one entry. Never mutates."""
        try:
            entry = self._get(entry_id)
            data: Dict[str, object] = {"entryId": entry.id, "title": entry.title}
            if not self.classifier.is_set(entry):
                data.update({"isSet": False, "message": 'Entry does not contain "set" in the title'})
                return ProcessResult(success=True, data=data)
            processed = self.guard.already_processed(entry, self._catalog())
            p = self.plan(entry)
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        data.update({
            "isSet": True,
            "isAlreadyProcessed": processed,
            "isComponent": self.guard.is_component(entry),
            "pieceCount": p.piece_count,
            "originalPrice": money(entry.first_price),
            "proposedPriceSplit": p.split.as_strings(),
            "ceilingViolated": p.split.ceiling_violated,
            "componentNames": p.names,
            "detectedFromDescription": bool(self.resolver.find_categories(entry)),
        })
        return ProcessResult(success=True, data=data)

    def find_all_unprocessed_sets(self) -> List[CatalogEntry]:
        catalog = self._catalog()
        sets = [e for e in catalog if self.classifier.is_set(e) and not self.guard.is_component(e)]
        unprocessed = [e for e in sets if not self.guard.already_processed(e, catalog)]
        log.info(f"{len(catalog)} entries, {len(sets)} sets, {len(unprocessed)} unprocessed")
        return unprocessed

    # --- processing ---

    def process_entry(self, entry_id, dry_run: Optional[bool] = None) -> ProcessResult:
        dry_run = self.config.dry_run if dry_run is None else dry_run
        with self.locks.hold(entry_id) as acquired:
            if not acquired:
                log.warning(f"Entry {entry_id} is already being processed")
                return ProcessResult.skip(SKIP_IN_PROGRESS)
            run = _Run(entry_id)
            try:
                return self._process(run, dry_run)
            except SetSplitterError as e:
                run.move(EntryState.FAILED)
                log.error(f"Processing entry {entry_id} failed: {e}")
                return ProcessResult(
                    success=False,
                    error=str(e),
                    reason=e.reason,
                    state=run.state,
                    data={"createdComponentIds": [c.id for c in run.created]},
                )

    def _process(self, run: _Run, dry_run: bool) -> ProcessResult:
        entry = self._get(run.entry_id)
        log.info(f"Fetched entry: {entry.title}")

        if not self.classifier.is_set(entry):
            return ProcessResult.skip(SKIP_NOT_A_SET, 'Entry is not a set (no "set" in title)')
        if self.guard.is_component(entry):
            return ProcessResult.skip(SKIP_COMPONENT, "Entry is a component of another set")
        if self.guard.has_generated_marker(entry) or self.guard.already_processed(entry, self._catalog()):
            return ProcessResult.skip(SKIP_ALREADY_PROCESSED)

        run.move(EntryState.PROCESSING)
        p = self.plan(entry)
        log.info(f"Detected {p.piece_count} piece set with components: {p.names}")
        drafts = self.synthesizer.build_drafts(entry, p.names, p.split.prices)

        if dry_run:
            return ProcessResult(
                success=True,
                state=EntryState.UNPROCESSED,
                data={
                    "dryRun": True,
                    "originalEntry": {"id": entry.id, "title": entry.title},
                    "pieceCount": p.piece_count,
                    "priceSplit": p.split.as_strings(),
                    "componentNames": p.names,
                    "drafts": [d.to_api() for d in drafts],
                    "tagDecision": self.tagger.safe_tag(entry, "original").to_dict(),
                },
            )

        try:
            try:
                run.created = self.synthesizer.create(drafts, p.names)
            except PartialCreationFailure as e:
                run.created = list(e.created)
                raise
            sync = self.linker.link(entry, run.created)
            run.move(EntryState.LINKED)
            config = self.builder.assemble(entry, run.created, sync)
            self.builder.persist(entry, config, run.created, run.written)
            updated = self.builder.activate(entry, config)
        except SetSplitterError as e:
            self._compensate(entry, run, e)
            raise
        run.move(EntryState.BUNDLE_ACTIVE)

        return ProcessResult(
            success=True,
            state=run.state,
            data={
                "originalEntry": {"id": updated.id or entry.id, "title": entry.title},
                "componentEntries": [
                    {"id": c.id, "title": c.entry.title, "price": money(c.entry.first_price), "componentType": c.component_type}
                    for c in run.created
                ],
                "pieceCount": p.piece_count,
                "priceSplit": p.split.as_strings(),
                "totalOriginalPrice": money(entry.first_price),
                "componentNames": p.names,
                "bundleConfig": config.to_dict(),
            },
        )

    def _compensate(self, entry: CatalogEntry, run: _Run, error: SetSplitterError) -> None:
        leftover_components = [c.id for c in run.created]
        leftover_attributes = [a.id for a in run.written if a.id is not None]
        if not leftover_components and not leftover_attributes:
            return

        if self.config.rollback_on_failure:
            log.warning(f"Rolling back {len(leftover_components)} components for entry {entry.id}")
            leftover_components = [cid for cid in reversed(leftover_components) if not self.client.delete_entry(cid).success]
            leftover_attributes = [aid for aid in reversed(leftover_attributes) if not self.client.delete_attribute(aid).success]
            if not leftover_components and not leftover_attributes:
                return

        marker = {
            "componentIds": leftover_components,
            "attributeIds": leftover_attributes,
            "error": str(error),
            "createdAt": utcnow_iso(),
        }
        res = self.client.set_attribute(entry.id, self.config.namespace, INCOMPLETE_KEY, json.dumps(marker), "json")
        if not res.success:
            log.error(f"Could not record incomplete run on entry {entry.id}: {res.error}; leftovers {marker}")
        else:
            log.warning(f"Recorded incomplete run on entry {entry.id}: {marker}")

    def process_all_sets(self, delay: Optional[float] = None) -> ProcessResult:
        delay = self.config.process_all_delay if delay is None else delay
        try:
            entries = self.find_all_unprocessed_sets()
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        results = []
        for idx, entry in enumerate(entries):
            log.info(f"Processing set entry: {entry.title}")
            result = self.process_entry(entry.id)
            results.append({"entryId": entry.id, "title": entry.title, "result": result.to_dict()})
            if delay > 0 and idx < len(entries) - 1:
                self.sleep(delay)
        ok = sum(1 for r in results if r["result"]["success"])
        return ProcessResult(
            success=True,
            state=EntryState.BUNDLE_ACTIVE if ok else EntryState.UNPROCESSED,
            data={"processedCount": ok, "failedCount": len(results) - ok, "results": results},
        )

    # --- persisted configuration ---

    def get_bundle_config(self, entry_id) -> ProcessResult:
        try:
            entry = self._get(entry_id)
            config = self._json_attribute(entry, "bundle_config")
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        if config is None:
            return ProcessResult.skip("not configured", "Bundle configuration not found. Entry may not be processed as a set.")
        return ProcessResult(
            success=True,
            state=EntryState.BUNDLE_ACTIVE,
            data={"originalEntry": {"id": entry.id, "title": entry.title}, "bundleConfig": config},
        )

    def refresh_variant_mapping(self, entry_id) -> ProcessResult:
        """Re-read components listed on the bundle entry and rewrite the sync attributes."""
        try:
            entry = self._get(entry_id)
            listed = self._json_attribute(entry, "component_products")
            if not listed:
                raise ConfigurationInvalid(f"entry {entry_id} has no component_products attribute")
            components: List[ComponentEntry] = []
            for idx, item in enumerate(listed):
                res = self.client.get_entry(item.get("id"))
                if not res.success:
                    log.warning(f"Component {item.get('id')} unavailable: {res.error}")
                    continue
                comp: CatalogEntry = res.data
                ctype = item.get("componentType") or detect_component_type(comp.title, comp.handle)
                components.append(ComponentEntry(entry=comp, component_type=ctype, index=idx))
            if not components:
                raise ConfigurationInvalid("no valid component entries found")
            sync = self.linker.link(entry, components)
            self.builder.write_attributes(entry, self.builder.sync_attributes(components, sync))
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        return ProcessResult(
            success=True,
            state=EntryState.LINKED,
            data={"availableSizes": sync.sizes, "variantMapping": sync.to_dict()},
        )

    def size_mapping(self, entry_id, size: str) -> ProcessResult:
        try:
            entry = self._get(entry_id)
            mapping = self._json_attribute(entry, "variant_sync_mapping")
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        if mapping is None:
            return ProcessResult.skip("not configured", "No variant sync mapping found")
        per_size = (mapping.get("componentVariantsBySize") or {}).get((size or "").strip().upper())
        if per_size is None:
            return ProcessResult.skip("size unavailable", f"Size {size} not available for this bundle")
        return ProcessResult(success=True, state=EntryState.BUNDLE_ACTIVE, data=per_size)

    def reconcile_incomplete(self, entry_id) -> ProcessResult:
        """Delete leftovers recorded by a failed run and clear the marker."""
        try:
            entry = self._get(entry_id)
            marker = self._json_attribute(entry, INCOMPLETE_KEY)
        except SetSplitterError as e:
            return ProcessResult(success=False, error=str(e), reason=e.reason)
        if marker is None:
            return ProcessResult(success=True, data={"entryId": entry.id, "removedComponents": [], "removedAttributes": []})

        removed_components, left_components = [], []
        for cid in marker.get("componentIds") or []:
            (removed_components if self.client.delete_entry(cid).success else left_components).append(cid)
        removed_attributes, left_attributes = [], []
        for aid in marker.get("attributeIds") or []:
            (removed_attributes if self.client.delete_attribute(aid).success else left_attributes).append(aid)
        remaining = len(left_components) + len(left_attributes)
        if remaining:
            # marker lists only what is still there
            if removed_components or removed_attributes:
                marker.update({"componentIds": left_components, "attributeIds": left_attributes})
                res = self.client.set_attribute(entry.id, self.config.namespace, INCOMPLETE_KEY, json.dumps(marker), "json")
                if not res.success:
                    log.error(f"Could not rewrite incomplete run on entry {entry.id}: {res.error}; leftovers {marker}")
            return ProcessResult(
                success=False,
                error=f"{remaining} leftovers could not be deleted",
                reason=UpstreamFailure.reason,
                state=EntryState.FAILED,
                data={"remainingComponents": left_components, "remainingAttributes": left_attributes},
            )
        attr = entry.attribute(self.config.namespace, INCOMPLETE_KEY)
        if attr is not None and attr.id is not None:
            res = self.client.delete_attribute(attr.id)
            if not res.success:
                return ProcessResult(success=False, error=str(res.error), reason=UpstreamFailure.reason, state=EntryState.FAILED)
        log.info(f"Reconciled entry {entry.id}: {len(removed_components)} components removed")
        return ProcessResult(
            success=True,
            data={"entryId": entry.id, "removedComponents": removed_components, "removedAttributes": removed_attributes},
        )
