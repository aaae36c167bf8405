import re
import unicodedata
from typing import Optional


SIZE_MAP = {
    "xx-small": "xs", "x-small": "xs", "xs": "xs", "extra small": "xs", "xsmall": "xs",
    "s": "s", "sm": "s", "small": "s",
    "m": "m", "md": "m", "med": "m", "medium": "m",
    "l": "l", "lg": "l", "large": "l",
    "xl": "xl", "x-large": "xl", "xlarge": "xl", "extra large": "xl",
    "xxl": "2xl", "2xl": "2xl", "xx-large": "2xl", "double extra large": "2xl",
    "xxxl": "3xl", "3xl": "3xl", "xxx-large": "3xl", "triple extra large": "3xl",
}

VALID_SIZES = {"XS", "S", "M", "L", "XL", "XXL", "XXXL", "2XL", "3XL", "4XL", "5XL"}

_TAG_RE = re.compile(r"<[^>]*>")


def strip_markup(html: str) -> str:
    if not html:
        return ""
    return _TAG_RE.sub(" ", html)


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def slugify_for_handle(s: str) -> str:
    if not s:
        return ""
    s = unicodedata.normalize('NFKD', s)
    s = s.encode('ascii', 'ignore').decode('ascii')
    s = re.sub(r"[^a-zA-Z0-9]+", "-", s)
    s = s.strip('-').lower()
    return s


def size_class(s: Optional[str]) -> Optional[str]:
    """Return the canonical size class for a value, or None when it is not a known size spelling."""
    if not s:
        return None
    return SIZE_MAP.get(collapse_spaces(str(s)).lower())


def is_valid_size(s: Optional[str]) -> bool:
    if not s:
        return False
    value = str(s).strip().upper()
    return value in VALID_SIZES or value.isdigit() or size_class(value) is not None
