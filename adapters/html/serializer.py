from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from markupsafe import Markup, escape

from domain.services.render_dispatcher import RenderNode

VOID_TAGS = frozenset({"img", "input", "br", "hr", "meta", "link", "source"})
_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def css_property(name: str) -> str:
    if "-" in name:
        return name
    return _CAMEL_BOUNDARY.sub("-", name).lower()


def style_attribute(style: Mapping[str, Any]) -> str:
    return "; ".join(
        f"{css_property(name)}: {value}"
        for name, value in style.items()
        if value is not None and value != ""
    )


def to_html(node: RenderNode) -> Markup:
    parts: list[str] = [f"<{node.tag}"]
    if node.classes:
        parts.append(f' class="{escape(" ".join(node.classes))}"')
    style = style_attribute(node.style)
    if style:
        parts.append(f' style="{escape(style)}"')
    for name, value in node.attrs.items():
        parts.append(f' {name}="{escape(value)}"')
    parts.append(">")
    if node.tag in VOID_TAGS:
        return Markup("".join(parts))
    parts.append(str(Markup(node.text) if node.raw else escape(node.text)))
    parts.extend(str(to_html(child)) for child in node.children)
    parts.append(f"</{node.tag}>")
    return Markup("".join(parts))
