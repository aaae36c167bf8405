"""Text heuristics that decide whether an entry is a set and what its pieces are.

Both strategies are approximate: "set" is a plain substring test and component
keywords are substring matches. Tests pin the current behavior.
"""

from __future__ import annotations
import logging
import re
from typing import Dict, List, Optional

from .models import CatalogEntry
from .normalize import strip_markup


log = logging.getLogger(__name__)


COMPONENT_KEYWORDS: Dict[str, List[str]] = {
    "top": ["top", "blouse", "shirt", "kurta", "kurti", "tunic", "crop top"],
    "bottom": ["bottom", "pant", "pants", "trouser", "palazzo", "dhoti", "sharara", "churidar", "legging", "skirt"],
    "jacket": ["jacket", "blazer", "coat", "shrug", "cardigan", "waistcoat", "vest"],
    "dupatta": ["dupatta", "scarf", "stole", "veil", "chunni"],
    "accessory": ["accessory", "bag", "purse", "necklace", "jewelry", "belt", "handbag", "clutch", "potli"],
    "lehenga": ["lehenga", "lengha", "ghagra"],
    "dress": ["dress", "gown", "frock"],
    "jumpsuit": ["jumpsuit", "romper", "playsuit"],
    "kaftan": ["kaftan", "maxi"],
    "saree": ["saree", "sari"],
    "cape": ["cape", "poncho"],
    "wrap": ["wrap", "shawl"],
}

DEFAULT_COMPONENT_NAMES: Dict[int, List[str]] = {
    2: ["Top", "Bottom"],
    3: ["Top", "Bottom", "Dupatta"],
    4: ["Top", "Bottom", "Dupatta", "Accessory"],
}

# Checked in this order; first hit wins.
PIECE_PATTERNS = [
    (4, re.compile(r"\b(?:four|4)[\s-]?piece", re.IGNORECASE)),
    (3, re.compile(r"\b(?:three|3)[\s-]?piece", re.IGNORECASE)),
    (2, re.compile(r"\b(?:two|2)[\s-]?piece", re.IGNORECASE)),
]

DEFAULT_PIECE_COUNT = 2


def entry_text(entry: CatalogEntry) -> str:
    return f"{entry.title} {entry.body_html or ''}"


def base_title(title: str) -> str:
    """Title with the word "set" removed and whitespace collapsed."""
    stripped = re.sub(r"\bset\b", "", title or "", flags=re.IGNORECASE)
    return re.sub(r"\s+", " ", stripped).strip()


def capitalize_first(s: str) -> str:
    return s[:1].upper() + s[1:]


class SetClassifier:
    def is_set(self, entry: CatalogEntry) -> bool:
        return "set" in (entry.title or "").lower()

    def parse_piece_count(self, entry: CatalogEntry) -> int:
        text = entry_text(entry)
        for count, pattern in PIECE_PATTERNS:
            if pattern.search(text):
                return count
        return DEFAULT_PIECE_COUNT


class ComponentNameResolver:
    def __init__(
        self,
        keywords: Optional[Dict[str, List[str]]] = None,
        defaults: Optional[Dict[int, List[str]]] = None,
    ):
        self.keywords = keywords if keywords is not None else COMPONENT_KEYWORDS
        self.defaults = defaults if defaults is not None else DEFAULT_COMPONENT_NAMES

    def default_names(self, piece_count: int) -> List[str]:
        names = self.defaults.get(piece_count)
        if names is None:
            names = self.defaults[DEFAULT_PIECE_COUNT]
        return list(names)

    def find_categories(self, entry: CatalogEntry) -> List[str]:
        """Matched categories in dictionary order, not text order."""
        text = strip_markup(entry_text(entry)).lower()
        found: List[str] = []
        for category, synonyms in self.keywords.items():
            if category in found:
                continue
            if any(s.lower() in text for s in synonyms):
                found.append(category)
        return found

    def resolve(self, entry: CatalogEntry, piece_count: int) -> List[str]:
        found = self.find_categories(entry)
        log.debug(f"Found components for {entry.title!r}: {found}")

        if len(found) >= piece_count:
            return [capitalize_first(c) for c in found[:piece_count]]

        if found:
            names = list(found)
            for default in self.default_names(piece_count):
                if len(names) >= piece_count:
                    break
                if default.lower() not in (n.lower() for n in names):
                    names.append(default.lower())
            return [capitalize_first(n) for n in names[:piece_count]]

        return self.default_names(piece_count)
