from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from typing import Any

Fallback = Callable[[str], "str | None"]

_MISSING = object()

_EACH_BLOCK = re.compile(r"\{\{#each\s+([\w.]+)\s*\}\}(.*?)\{\{/each\}\}", re.DOTALL)
# Innermost blocks first: the body may not open another if.
_IF_BLOCK = re.compile(
    r"\{\{#if\s+([\w.]+)\s*\}\}((?:(?!\{\{#if).)*?)(?:\{\{else\}\}((?:(?!\{\{#if).)*?))?\{\{/if\}\}",
    re.DOTALL,
)
_DOUBLE_PLACEHOLDER = re.compile(r"\{\{\s*([A-Za-z_][\w.]*)\s*\}\}")
_SINGLE_PLACEHOLDER = re.compile(r"(?<!\{)\{([A-Za-z_][\w.]*)\}(?!\})")


def lookup_path(data: Any, path: str, default: Any = None) -> Any:
    current = data
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part, _MISSING)
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


def has_path(data: Any, path: str) -> bool:
    return lookup_path(data, path, _MISSING) is not _MISSING


def is_truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in {"", "false", "0"}
    return bool(value)


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, list | tuple):
        return ", ".join(format_value(item) for item in value)
    return str(value)


def item_scope(scope: Mapping[str, Any], item: Any) -> dict[str, Any]:
    local: dict[str, Any] = dict(scope)
    if isinstance(item, Mapping):
        local.update(item)
    local["this"] = item
    return local


def resolve_template(template: str, data: Mapping[str, Any], fallback: Fallback | None = None) -> str:
    if not template or "{" not in template:
        return template

    def expand_each(match: re.Match[str]) -> str:
        items = lookup_path(data, match.group(1))
        if not isinstance(items, Sequence) or isinstance(items, str):
            return ""
        body = match.group(2)
        return "".join(
            resolve_template(body, item_scope(data, item), fallback)
            for item in items
        )

    def expand_if(match: re.Match[str]) -> str:
        if is_truthy(lookup_path(data, match.group(1))):
            return match.group(2)
        return match.group(3) or ""

    def substitute(match: re.Match[str]) -> str:
        path = match.group(1)
        value = lookup_path(data, path, _MISSING)
        if value is not _MISSING:
            return format_value(value)
        if fallback is not None:
            replacement = fallback(path)
            if replacement is not None:
                return replacement
        return match.group(0)

    text = _EACH_BLOCK.sub(expand_each, template)
    previous = None
    while previous != text:
        previous = text
        text = _IF_BLOCK.sub(expand_if, text)
    text = _DOUBLE_PLACEHOLDER.sub(substitute, text)
    return _SINGLE_PLACEHOLDER.sub(substitute, text)


def resolve_mapping(values: Mapping[str, Any], data: Mapping[str, Any]) -> dict[str, Any]:
    return {
        key: resolve_template(value, data) if isinstance(value, str) else value
        for key, value in values.items()
    }
