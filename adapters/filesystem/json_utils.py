from __future__ import annotations

from pathlib import Path
from typing import Any

import orjson


def decode_document(raw: bytes | str) -> dict[str, Any]:
    data = orjson.loads(raw)
    if not isinstance(data, dict):
        msg = "Layout document must be a JSON object"
        raise ValueError(msg)
    return data


def encode_document(payload: Any) -> bytes:
    return orjson.dumps(payload, option=orjson.OPT_INDENT_2 | orjson.OPT_SORT_KEYS)


def load_json(path: Path) -> dict[str, Any]:
    return decode_document(path.read_bytes())


def write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(f"{path.suffix}.tmp")
    tmp_path.write_bytes(encode_document(payload))
    tmp_path.replace(path)
