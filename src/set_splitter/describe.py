from __future__ import annotations

from .models import CatalogEntry


def html_escape(s: str) -> str:
    s = str(s)
    s = s.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return s


def build_component_body_html(parent: CatalogEntry, component_name: str, piece_count: int) -> str:
    # parent body is already merchant HTML; pass it through untouched
    name = html_escape(component_name)
    parts = [
        f"<h4>This {name} is part of a {piece_count}-piece set</h4>",
        f"<p><strong>Complete Set:</strong> {html_escape(parent.title)}</p>",
        f"<p><strong>Component:</strong> {name}</p>",
    ]
    if parent.body_html:
        parts.append(f"<div class=\"original-description\">{parent.body_html}</div>")
    parts.append(
        "<p><em>Note: This is an automatically generated component product. "
        "For the complete set experience, visit the main product page.</em></p>"
    )
    html = "".join(parts)
    return f"<div class=\"auto-generated-component\">{html}</div>"
