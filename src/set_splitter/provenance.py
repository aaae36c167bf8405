"""Marker tags and attributes that identify entries owned by the set splitter.

``safe_tag`` only decides; ``apply`` commits. Keeping the two apart lets a
dry run report every proposed tag change without touching the catalog.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence

from .models import CatalogEntry
from .normalize import slugify_for_handle


log = logging.getLogger(__name__)

NAMESPACE = "bundle_app"
APP_NAMESPACES = (NAMESPACE, "splitset")

CORE_TAGS = ["splitter", "splitset", "splitset-created", "billing-tracked"]

ROLE_TAGS: Dict[str, List[str]] = {
    "original": ["set-main", "original-product"],
    "component": ["component", "auto-generated", "set-component", "hidden-component"],
    "bundle": ["bundle", "upsell", "auto-bundle"],
    "variant": ["variant", "set-variant"],
}

APP_MARKER_TAGS = set(CORE_TAGS) | {"auto-generated", "set-component", "auto-bundle"}

GENERATED_TAG = "set-processed"
HIDDEN_TAG = "hidden-component"
COMPONENT_TAGS = ("set-component", HIDDEN_TAG)

STRUCTURAL_TITLE_WORDS = ("set", "component", "- bundle", "top", "bottom", "dupatta")


def merge_tags(*groups: Iterable[str]) -> List[str]:
    """Concatenate tag groups, dropping blanks and case-insensitive duplicates."""
    seen = set()
    out: List[str] = []
    for group in groups:
        for tag in group:
            tag = (tag or "").strip()
            if not tag or tag.lower() in seen:
                continue
            seen.add(tag.lower())
            out.append(tag)
    return out


@dataclass
class TagDecision:
    should_tag: bool
    reason: str
    current_tags: List[str]
    new_tags: List[str] = field(default_factory=list)
    changed: bool = False

    def to_dict(self) -> Dict:
        return {
            "shouldTag": self.should_tag,
            "changed": self.changed,
            "currentTags": ", ".join(self.current_tags),
            "newTags": ", ".join(self.new_tags),
            "reason": self.reason,
        }


class ProvenanceTagger:
    def __init__(self, namespace: str = NAMESPACE):
        self.namespace = namespace

    def tags_for(self, role: str, existing: Sequence[str] = (), extra: Sequence[str] = ()) -> List[str]:
        return merge_tags(existing, CORE_TAGS, ROLE_TAGS.get(role, []), extra)

    def original_tags(self, existing: Sequence[str], piece_count: int) -> List[str]:
        return self.tags_for("original", existing, [
            f"{piece_count}-piece-set",
            "cart-transform",
            "fast-bundle",
            GENERATED_TAG,
        ])

    def component_tags(self, existing: Sequence[str], component_name: str, index: int) -> List[str]:
        return self.tags_for("component", existing, [
            f"component-{index + 1}",
            f"component-{slugify_for_handle(component_name)}",
            "set-part",
        ])

    def has_tracking_tags(self, tags: Sequence[str]) -> bool:
        lowered = {t.lower() for t in tags}
        return any(t in lowered for t in CORE_TAGS)

    def is_created_by_pipeline(self, entry: CatalogEntry) -> bool:
        lowered = {t.lower() for t in entry.tags}
        has_app_tags = bool(lowered & APP_MARKER_TAGS)
        has_app_attributes = any(
            a.namespace in APP_NAMESPACES or a.namespace == self.namespace or a.key == "splitset_created"
            for a in entry.attributes
        )
        title = (entry.title or "").lower()
        has_structure = any(w in title for w in STRUCTURAL_TITLE_WORDS)
        return has_app_tags or has_app_attributes or (has_structure and has_app_tags)

    def safe_tag(self, entry: CatalogEntry, role: str = "original", extra: Sequence[str] = ()) -> TagDecision:
        current = list(entry.tags)
        if not self.is_created_by_pipeline(entry):
            return TagDecision(
                should_tag=False,
                reason="Entry was not created by the set splitter",
                current_tags=current,
                new_tags=current,
            )
        new_tags = self.tags_for(role, current, extra)
        return TagDecision(
            should_tag=True,
            reason="Entry was created by the set splitter and needs tracking tags",
            current_tags=current,
            new_tags=new_tags,
            changed=[t.lower() for t in new_tags] != [t.lower() for t in current],
        )

    def apply(self, client, entry: CatalogEntry, decision: TagDecision, dry_run: bool = False):
        """Commit a tag decision. Returns the client result, or None when nothing was sent."""
        if not decision.should_tag or not decision.changed:
            return None
        if dry_run:
            log.info(f"[dry-run] would tag entry {entry.id}: {decision.new_tags}")
            return None
        res = client.update_entry(entry.id, {"tags": ", ".join(decision.new_tags)})
        if res.success:
            entry.tags = list(decision.new_tags)
        else:
            log.error(f"Tagging entry {entry.id} failed: {res.error}")
        return res

    def validate(self, entry: CatalogEntry) -> Dict:
        lowered = {t.lower() for t in entry.tags}
        has_tracking = self.has_tracking_tags(entry.tags)
        return {
            "isValid": has_tracking,
            "hasSplitterTag": "splitter" in lowered,
            "hasSplitsetTag": "splitset" in lowered,
            "hasBillingTag": "billing-tracked" in lowered,
            "hasCreatedTag": "splitset-created" in lowered,
            "allTags": list(entry.tags),
            "missingTags": [] if has_tracking else list(CORE_TAGS),
        }

    def tagging_report(self, entries: Sequence[CatalogEntry]) -> Dict:
        owned = [e for e in entries if self.is_created_by_pipeline(e)]
        report: Dict[str, object] = {
            "totalProducts": len(entries),
            "splitsetProducts": len(owned),
            "nonSplitsetProducts": len(entries) - len(owned),
            "properlyTagged": 0,
            "missingTags": 0,
            "details": [],
        }
        details: List[Dict] = []
        for e in owned:
            validation = self.validate(e)
            if validation["isValid"]:
                report["properlyTagged"] = int(report["properlyTagged"]) + 1
            else:
                report["missingTags"] = int(report["missingTags"]) + 1
            details.append({"id": e.id, "title": e.title, "validation": validation})
        report["details"] = details
        return report

