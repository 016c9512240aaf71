from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, cast

import boto3  # type: ignore[import-untyped]
from botocore.client import BaseClient  # type: ignore[import-untyped]
from botocore.config import Config  # type: ignore[import-untyped]
from botocore.exceptions import ClientError  # type: ignore[import-untyped]

from adapters.filesystem.json_utils import decode_document, encode_document
from domain.models import LayoutDocument, LayoutKey, UnknownSlotError
from domain.ports.repositories import LayoutRepository

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class S3LayoutRepository(LayoutRepository):
    def __init__(self, client: BaseClient, bucket: str, prefix: str = "") -> None:
        self._client = client
        self._bucket = bucket
        self._prefix = self._normalize_prefix(prefix)

    @classmethod
    def from_settings(cls, settings: Any) -> S3LayoutRepository:
        config = Config(s3={"addressing_style": "path"}) if settings.use_path_style else None
        client = boto3.client(
            "s3",
            region_name=settings.region,
            endpoint_url=settings.endpoint_url or None,
            aws_access_key_id=settings.access_key_id or None,
            aws_secret_access_key=settings.secret_access_key or None,
            aws_session_token=settings.session_token or None,
            config=config,
        )
        return cls(client, settings.bucket, settings.prefix)

    def build_key(self, key: LayoutKey) -> str:
        return f"{self._prefix}{key.store_id}/{key.page_type}.json"

    def load(self, key: LayoutKey) -> LayoutDocument:
        return LayoutDocument.model_validate(self._load_raw(self.build_key(key)))

    def save(self, key: LayoutKey, document: LayoutDocument) -> None:
        self._put_raw(self.build_key(key), document.to_dict())

    def patch_slot(self, key: LayoutKey, slot_id: str, patch: Mapping[str, Any]) -> None:
        object_key = self.build_key(key)
        payload = self._load_raw(object_key)
        slots = payload.get("slots")
        if not isinstance(slots, dict) or not isinstance(slots.get(slot_id), dict):
            msg = f"Slot {slot_id} not found in {key.as_path()}"
            raise UnknownSlotError(msg)
        slots[slot_id] = {**slots[slot_id], **dict(patch)}
        self._put_raw(object_key, LayoutDocument.model_validate(payload).to_dict())

    def list_page_types(self, store_id: str) -> Sequence[str]:
        prefix = f"{self._prefix}{store_id}/"
        page_types: list[str] = []
        token: str | None = None
        while True:
            request: dict[str, Any] = {"Bucket": self._bucket, "Prefix": prefix}
            if token:
                request["ContinuationToken"] = token
            response = self._client.list_objects_v2(**request)
            for entry in response.get("Contents", []) or []:
                name = str(entry.get("Key", ""))[len(prefix) :]
                if name.endswith(".json") and "/" not in name:
                    page_types.append(name[: -len(".json")])
            if not response.get("IsTruncated"):
                break
            token = response.get("NextContinuationToken")
        return sorted(page_types)

    def _load_raw(self, object_key: str) -> dict[str, Any]:
        try:
            response = self._client.get_object(Bucket=self._bucket, Key=object_key)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _NOT_FOUND_CODES:
                raise FileNotFoundError(object_key) from exc
            raise
        body = response.get("Body")
        raw = cast(bytes, body.read()) if hasattr(body, "read") else bytes(body or b"")
        return decode_document(raw)

    def _put_raw(self, object_key: str, payload: dict[str, Any]) -> None:
        self._client.put_object(
            Bucket=self._bucket,
            Key=object_key,
            Body=encode_document(payload),
            ContentType="application/json",
        )

    def _normalize_prefix(self, prefix: str) -> str:
        cleaned = prefix.strip().strip("/")
        return f"{cleaned}/" if cleaned else ""
