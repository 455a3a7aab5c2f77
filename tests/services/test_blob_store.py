# tests/services/test_blob_store.py
from __future__ import annotations

import httpx
import pytest

from clearlot_relay.services.blob_store import (
    BlobStoreDisabledError,
    BlobStoreError,
    DisabledBlobStore,
    HttpBlobStore,
)

BASE_URL = "https://objects.test/attachments"


def _store(handler) -> HttpBlobStore:
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpBlobStore(BASE_URL, client=client)


@pytest.mark.asyncio
async def test_upload_puts_bytes_at_path() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(201)

    store = _store(handler)
    blob = await store.upload("messages/c1/alice/1_note.txt", "note.txt", b"hello")
    await store.close()

    assert seen[0].method == "PUT"
    assert seen[0].url.path == "/attachments/messages/c1/alice/1_note.txt"
    assert seen[0].content == b"hello"
    assert blob.url == f"{BASE_URL}/messages/c1/alice/1_note.txt"
    assert blob.name == "note.txt"
    assert blob.size == 5


@pytest.mark.asyncio
async def test_upload_prefers_url_returned_by_store() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"url": "https://cdn.test/abc"})

    blob = await _store(handler).upload("messages/c1/alice/2_a.png", "a.png", b"png")

    assert blob.url == "https://cdn.test/abc"


@pytest.mark.asyncio
async def test_upload_error_status_raises() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500)

    with pytest.raises(BlobStoreError):
        await _store(handler).upload("messages/x", "x", b"x")


@pytest.mark.asyncio
async def test_delete_tolerates_missing_blob() -> None:
    methods: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        methods.append(request.method)
        return httpx.Response(404)

    await _store(handler).delete(f"{BASE_URL}/messages/gone")

    assert methods == ["DELETE"]


@pytest.mark.asyncio
async def test_transport_failure_becomes_blob_store_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(BlobStoreError):
        await _store(handler).delete(f"{BASE_URL}/messages/x")


@pytest.mark.asyncio
async def test_disabled_store_refuses_operations() -> None:
    store = DisabledBlobStore()

    with pytest.raises(BlobStoreDisabledError):
        await store.upload("a", "a", b"")
    with pytest.raises(BlobStoreDisabledError):
        await store.delete("a")
