from __future__ import annotations
import json
import logging
from typing import Dict, List, Sequence

from .errors import ConfigurationInvalid
from .models import CatalogEntry
from .provenance import HIDDEN_TAG, NAMESPACE


log = logging.getLogger(__name__)


def _set_visibility(client, entry_ids: Sequence, hide: bool) -> Dict:
    results: List[Dict] = []
    for entry_id in entry_ids:
        got = client.get_entry(entry_id, with_attributes=False)
        if not got.success:
            results.append({"productId": entry_id, "success": False, "error": got.error})
            continue
        entry: CatalogEntry = got.data
        tags = [t for t in entry.tags if t.lower() != HIDDEN_TAG]
        if hide:
            tags.append(HIDDEN_TAG)
        patch = {
            "status": "draft" if hide else "active",
            "published": not hide,
            "tags": ", ".join(tags),
        }
        res = client.update_entry(entry_id, patch)
        if res.success:
            results.append({"productId": entry_id, "success": True, "hidden": hide})
        else:
            log.error(f"Changing visibility of {entry_id} failed: {res.error}")
            results.append({"productId": entry_id, "success": False, "error": res.error})

    ok = sum(1 for r in results if r["success"])
    action = "Hidden" if hide else "Shown"
    log.info(f"{action} {ok} of {len(results)} components")
    return {
        "success": ok == len(results),
        "results": results,
        "successCount": ok,
        "totalCount": len(results),
    }


def hide_components(client, entry_ids: Sequence) -> Dict:
    return _set_visibility(client, entry_ids, hide=True)


def show_components(client, entry_ids: Sequence) -> Dict:
    return _set_visibility(client, entry_ids, hide=False)


def visibility_status(client, bundle_entry_id, namespace: str = NAMESPACE) -> Dict:
    """Per-component visibility for the components listed on a bundle entry."""
    got = client.get_entry(bundle_entry_id)
    if not got.success:
        return {"success": False, "error": got.error}
    attr = got.data.attribute(namespace, "component_products")
    if attr is None:
        return {"success": False, "error": "No component products found"}
    try:
        listed = json.loads(attr.value or "[]")
    except ValueError:
        error = f"attribute component_products on entry {bundle_entry_id} is not valid JSON"
        return {"success": False, "error": error, "reason": ConfigurationInvalid.reason}

    status: List[Dict] = []
    for item in listed:
        res = client.get_entry(item.get("id"), with_attributes=False)
        if not res.success:
            status.append({"id": item.get("id"), "title": item.get("title"), "error": res.error})
            continue
        comp: CatalogEntry = res.data
        hidden = HIDDEN_TAG in {t.lower() for t in comp.tags}
        status.append({
            "id": comp.id,
            "title": comp.title,
            "status": comp.status,
            "isHidden": hidden or comp.status == "draft",
            "published": comp.published,
        })
    return {"success": True, "components": status}
