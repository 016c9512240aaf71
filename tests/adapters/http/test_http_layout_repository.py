from __future__ import annotations

import httpx
import orjson
import pytest

from adapters.http.layout_repository import HttpLayoutRepository
from domain.models import LayoutDocument, LayoutKey
from tests.helpers.layout_fixtures import make_slot, slot_map

KEY = LayoutKey("store-1", "product")


def _repository(handler: httpx.MockTransport) -> HttpLayoutRepository:
    client = httpx.Client(transport=handler)
    return HttpLayoutRepository("https://layouts.test/api/", token="secret", client=client)


def test_load_sends_bearer_token() -> None:
    seen: list[httpx.Request] = []
    document = LayoutDocument(slots=slot_map(make_slot("title", content="Hi")))

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, content=orjson.dumps(document.to_dict()))

    loaded = _repository(httpx.MockTransport(handler)).load(KEY)

    assert loaded.slots["title"].content == "Hi"
    assert str(seen[0].url) == "https://layouts.test/api/layouts/store-1/product"
    assert seen[0].headers["Authorization"] == "Bearer secret"


def test_missing_layout_maps_to_file_not_found() -> None:
    repository = _repository(httpx.MockTransport(lambda _: httpx.Response(404)))

    with pytest.raises(FileNotFoundError):
        repository.load(KEY)


def test_save_and_patch_use_json_bodies() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    repository = _repository(httpx.MockTransport(handler))
    repository.save(KEY, LayoutDocument(slots=slot_map(make_slot("title"))))
    repository.patch_slot(KEY, "title", {"content": "New"})

    assert [request.method for request in seen] == ["PUT", "PATCH"]
    assert orjson.loads(seen[0].content)["slots"]["title"]["id"] == "title"
    assert seen[1].url.path == "/api/layouts/store-1/product/slots/title"
    assert orjson.loads(seen[1].content) == {"content": "New"}
    assert seen[1].headers["Content-Type"] == "application/json"


def test_server_errors_propagate() -> None:
    repository = _repository(httpx.MockTransport(lambda _: httpx.Response(500)))

    with pytest.raises(httpx.HTTPStatusError):
        repository.save(KEY, LayoutDocument())


def test_list_page_types_accepts_object_or_list() -> None:
    responses = iter(
        [
            httpx.Response(200, json={"pageTypes": ["product", "cart"]}),
            httpx.Response(200, json=["checkout"]),
            httpx.Response(404),
        ]
    )
    repository = _repository(httpx.MockTransport(lambda _: next(responses)))

    assert repository.list_page_types("store-1") == ["cart", "product"]
    assert repository.list_page_types("store-1") == ["checkout"]
    assert repository.list_page_types("store-1") == []
