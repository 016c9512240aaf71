from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any
from urllib.parse import quote

import httpx

from adapters.filesystem.json_utils import decode_document, encode_document
from domain.models import LayoutDocument, LayoutKey
from domain.ports.repositories import LayoutRepository

DEFAULT_TIMEOUT = 10.0


class HttpLayoutRepository(LayoutRepository):
    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.Client | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(timeout=timeout)
        self._base_url = base_url.rstrip("/")
        self._headers = headers

    @classmethod
    def from_settings(cls, settings: Any) -> HttpLayoutRepository:
        return cls(settings.base_url, token=settings.token, timeout=settings.timeout_seconds)

    def close(self) -> None:
        self._client.close()

    def document_url(self, key: LayoutKey) -> str:
        return f"{self._base_url}/layouts/{quote(key.store_id, safe='')}/{quote(key.page_type, safe='')}"

    def load(self, key: LayoutKey) -> LayoutDocument:
        url = self.document_url(key)
        response = self._client.get(url, headers=self._headers)
        self._raise_for_status(response, url)
        return LayoutDocument.model_validate(decode_document(response.content))

    def save(self, key: LayoutKey, document: LayoutDocument) -> None:
        url = self.document_url(key)
        response = self._client.put(
            url,
            content=encode_document(document.to_dict()),
            headers={**self._headers, "Content-Type": "application/json"},
        )
        self._raise_for_status(response, url)

    def patch_slot(self, key: LayoutKey, slot_id: str, patch: Mapping[str, Any]) -> None:
        url = f"{self.document_url(key)}/slots/{quote(slot_id, safe='')}"
        response = self._client.patch(
            url,
            content=encode_document(dict(patch)),
            headers={**self._headers, "Content-Type": "application/json"},
        )
        self._raise_for_status(response, url)

    def list_page_types(self, store_id: str) -> Sequence[str]:
        url = f"{self._base_url}/layouts/{quote(store_id, safe='')}"
        response = self._client.get(url, headers=self._headers)
        if response.status_code == httpx.codes.NOT_FOUND:
            return []
        response.raise_for_status()
        payload = response.json()
        items = payload.get("pageTypes", []) if isinstance(payload, dict) else payload
        return sorted(str(item) for item in items or [])

    def _raise_for_status(self, response: httpx.Response, url: str) -> None:
        if response.status_code == httpx.codes.NOT_FOUND:
            raise FileNotFoundError(url)
        response.raise_for_status()
